#!/usr/bin/env python3
"""Jibang backend (FastAPI).

- Honorific templates and joint-enshrinement composition
- Hanja conversion / assistant / glyph images: OpenAI
- Preview: SVG, print: ReportLab
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path as FsPath
from typing import Annotated, Any, Callable, Optional
from uuid import uuid4

# Support both `uvicorn backend.main:app` (repo root) and
# `uvicorn main:app` (backend directory) execution contexts.
if __package__ is None or __package__ == "":
    sys.path.append(str(FsPath(__file__).resolve().parent.parent))

from fastapi import FastAPI, HTTPException, Path, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from backend import pdf_service, settings
from backend.controller import ConversionBusyError, ExportBlockedError, JibangController
from backend.glyph_cache import glyph_cache
from backend.glyph_pipeline import GlyphFallbackPipeline
from backend.glyph_support import build_glyph_checker
from backend.honorific_engine import DetailField
from backend.llm_service import ask_assistant, build_openai_client, generate_glyph_image
from backend.prompts import ASSISTANT_GREETING
from backend.relations import COMMON_CLANS, COMMON_NAMES, JointPosition, RelationKind, catalog_payload
from backend.session_store import SessionStore
from backend.tablet_state import SLOT_COUNT, SlotNotEditableError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s - %(message)s",
)

logger = logging.getLogger("jibang")

pdf_service.init_fonts()

# ------------------------------------------------------------------------------
# OpenAI client initialization
# ------------------------------------------------------------------------------
async_client, OPENAI_HTTP_CLIENT = build_openai_client()
if async_client is None:
    logger.warning("OpenAI client is None. Conversion and glyph generation are disabled. Check OPENAI_API_KEY in .env")

# ------------------------------------------------------------------------------
# Glyph fallback pipeline
# ------------------------------------------------------------------------------
def _build_checker():
    if not settings.GLYPH_GENERATION_ENABLED:
        logger.info("Glyph generation disabled by GLYPH_GENERATION_ENABLED")
        return None
    # Probe against the face that actually draws the glyphs; the system font is its neutral baseline.
    fallback = pdf_service.FALLBACK_FONT_PATH if pdf_service.BRUSH_FONT_AVAILABLE else None
    return build_glyph_checker(settings.GLYPH_SUPPORT_STRATEGY, pdf_service.display_font_path(), fallback)


async def _generate_glyph(char: str) -> Optional[bytes]:
    return await generate_glyph_image(async_client, char)


glyph_pipeline = GlyphFallbackPipeline(
    glyph_cache,
    _build_checker(),
    _generate_glyph,
    max_concurrency=settings.GLYPH_MAX_CONCURRENCY,
)

sessions = SessionStore(on_evict=lambda controller: controller.close())


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    sessions.clear()
    await glyph_pipeline.aclose()
    if OPENAI_HTTP_CLIENT is not None:
        await OPENAI_HTTP_CLIENT.aclose()


app = FastAPI(title="Jibang Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SlotIndex = Annotated[int, Path(ge=0, le=SLOT_COUNT - 1)]


# ------------------------------------------------------------------------------
# Request schemas
# ------------------------------------------------------------------------------
class RelationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    relation: RelationKind


class DetailRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: DetailField
    value: str = Field("", max_length=100)


class TextRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    position: JointPosition = JointPosition.PRIMARY
    text: str = Field("", max_length=64)


class OutlinesRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    show: bool


class AssistantRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question: str = Field(..., min_length=1, max_length=2000)


# ------------------------------------------------------------------------------
# Session helpers
# ------------------------------------------------------------------------------
def _get_controller(session_id: str) -> JibangController:
    controller = sessions.get(session_id)
    if controller is None:
        raise HTTPException(status_code=404, detail="session not found or expired")
    return controller


def _apply(session_id: str, edit: Callable[[JibangController], Any]) -> dict[str, Any]:
    controller = _get_controller(session_id)
    try:
        edit(controller)
    except SlotNotEditableError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return controller.status()


# ------------------------------------------------------------------------------
# API endpoints: Health Check / catalog
# ------------------------------------------------------------------------------
@app.get("/health")
def health():
    return {
        "status": "ok",
        "openai_configured": bool(async_client),
        "model": settings.OPENAI_MODEL,
        "image_model": settings.OPENAI_IMAGE_MODEL,
        "sessions": len(sessions),
        "glyph_cache_items": len(glyph_pipeline.cache),
        "glyph_pending": sorted(glyph_pipeline.cache.pending()),
        "glyph_probe_enabled": glyph_pipeline.checker is not None,
        "glyph_support_strategy": settings.GLYPH_SUPPORT_STRATEGY,
        **pdf_service.font_status(),
    }


@app.get("/relations")
def get_relations():
    return {"relations": catalog_payload()}


@app.get("/presets")
def get_presets():
    return {"clans": COMMON_CLANS, "names": COMMON_NAMES}


# ------------------------------------------------------------------------------
# API endpoints: Sessions
# ------------------------------------------------------------------------------
@app.post("/sessions")
async def create_session():
    session_id = uuid4().hex
    controller = JibangController(glyph_pipeline, llm_client=async_client)
    sessions.set(session_id, controller)
    controller.schedule_rescan()
    logger.info("Session created session_id=%s", session_id)
    return {"session_id": session_id, **controller.status()}


@app.get("/sessions/{session_id}")
async def get_session(session_id: str):
    return _get_controller(session_id).status()


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    if not sessions.drop(session_id):
        raise HTTPException(status_code=404, detail="session not found or expired")
    return {"status": "ok"}


@app.post("/sessions/{session_id}/slots/{index}/relation")
async def select_relation(req: RelationRequest, session_id: str, index: SlotIndex):
    return _apply(session_id, lambda c: c.select_relation(index, req.relation))


@app.post("/sessions/{session_id}/slots/{index}/detail")
async def update_detail(req: DetailRequest, session_id: str, index: SlotIndex):
    return _apply(session_id, lambda c: c.update_detail(index, req.field, req.value))


@app.post("/sessions/{session_id}/slots/{index}/korean")
async def edit_korean(req: TextRequest, session_id: str, index: SlotIndex):
    return _apply(session_id, lambda c: c.edit_korean(index, req.position, req.text))


@app.post("/sessions/{session_id}/slots/{index}/hanja")
async def edit_hanja(req: TextRequest, session_id: str, index: SlotIndex):
    return _apply(session_id, lambda c: c.edit_hanja(index, req.position, req.text))


@app.post("/sessions/{session_id}/slots/{index}/tertiary")
async def toggle_tertiary(session_id: str, index: SlotIndex):
    return _apply(session_id, lambda c: c.toggle_tertiary(index))


@app.post("/sessions/{session_id}/slots/{index}/custom")
async def toggle_custom(session_id: str, index: SlotIndex):
    return _apply(session_id, lambda c: c.toggle_custom(index))


@app.post("/sessions/{session_id}/slots/{index}/convert")
async def convert_slot(session_id: str, index: SlotIndex):
    controller = _get_controller(session_id)
    try:
        converted = await controller.convert_slot(index)
    except ConversionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SlotNotEditableError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "converted": {position.value: text for position, text in (converted or {}).items()},
        **controller.status(),
    }


@app.post("/sessions/{session_id}/outlines")
async def set_outlines(req: OutlinesRequest, session_id: str):
    return _apply(session_id, lambda c: c.set_outlines(req.show))


@app.post("/sessions/{session_id}/rescan")
async def rescan(session_id: str):
    controller = _get_controller(session_id)
    dispatched = await controller.rescan_now()
    return {"dispatched": dispatched, **controller.status()}


# ------------------------------------------------------------------------------
# API endpoints: Preview / export
# ------------------------------------------------------------------------------
@app.get("/sessions/{session_id}/preview.svg")
async def preview_svg(session_id: str):
    controller = _get_controller(session_id)
    return Response(content=controller.preview_svg(), media_type="image/svg+xml")


@app.get("/sessions/{session_id}/pdf")
async def export_pdf(session_id: str):
    controller = _get_controller(session_id)
    try:
        pdf_bytes = await asyncio.to_thread(controller.export_pdf)
    except ExportBlockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except pdf_service.FontUnavailableError as e:
        logger.error("PDF export failed session_id=%s detail=%s", session_id, e.detail)
        raise HTTPException(status_code=503, detail=str(e))

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={pdf_service.EXPORT_FILENAME}"},
    )


# ------------------------------------------------------------------------------
# API endpoints: Assistant
# ------------------------------------------------------------------------------
@app.get("/assistant/greeting")
def assistant_greeting():
    return {"greeting": ASSISTANT_GREETING}


@app.post("/assistant")
async def assistant(req: AssistantRequest):
    answer = await ask_assistant(async_client, req.question)
    return {"answer": answer}


# ------------------------------------------------------------------------------
# Local entrypoint
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
