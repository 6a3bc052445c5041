"""External text/image generation calls.

Every public coroutine here absorbs its own failures and returns the
documented fallback value (original text, fixed apology, or None), so callers
never need to guard them.
"""

import asyncio
import base64
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import uuid4

import httpx
from openai import AsyncOpenAI

from backend import settings
from backend.honorific_engine import extract_hints
from backend.prompts import (
    ASSISTANT_EMPTY_ANSWER,
    ASSISTANT_SERVICE_ERROR,
    ASSISTANT_SYSTEM_PROMPT,
    GLYPH_IMAGE_TEMPLATE,
    HANJA_CONVERSION_TEMPLATE,
    HANJA_SYSTEM_PROMPT,
    HINT_TEMPLATE,
)
from backend.relations import JointPosition
from backend.tablet_state import TabletSlot

logger = logging.getLogger("jibang")
llm_audit_logger = logging.getLogger("llm_audit")


class EmptyCompletionError(RuntimeError):
    """The model answered, but with no usable text."""


def _utc_iso_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _sha256_hex(value: Any) -> str:
    return hashlib.sha256(_canonical_json(value).encode("utf-8")).hexdigest()


def _emit_llm_audit_event(
    *,
    request_id: str,
    endpoint: str,
    model_used: str,
    input_hash: str,
    outcome: str,
) -> dict[str, str]:
    event = {
        "request_id": request_id,
        "endpoint": endpoint,
        "model_used": model_used,
        "input_hash": input_hash,
        "outcome": outcome,
        "timestamp_utc": _utc_iso_now(),
    }
    llm_audit_logger.info(_canonical_json(event))
    return event


def _build_openai_payload(
    *,
    model: str,
    system_message: str,
    user_message: str,
    max_completion_tokens: int,
) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": system_message},
            {"role": "user", "content": user_message},
        ],
        "max_completion_tokens": int(max_completion_tokens),
    }


def _candidate_openai_models(primary_model: str) -> list[str]:
    """Return de-duplicated model fallback order for chat completions."""
    candidates = [primary_model, *settings.OPENAI_FALLBACK_MODELS]
    out: list[str] = []
    for model in candidates:
        normalized = (model or "").strip()
        if normalized and normalized not in out:
            out.append(normalized)
    return out


def _resolve_openai_base_url() -> Optional[str]:
    configured = settings.first_nonempty_env("OPENAI_BASE_URL", "OPENAI_API_BASE")
    if not configured:
        return None
    lowered = configured.lower()
    if "localhost" in lowered or "127.0.0.1" in lowered:
        logger.error("Invalid OPENAI base URL '%s' detected; falling back to default OpenAI endpoint", configured)
        return None
    return configured


def build_openai_client(api_key: Optional[str] = None) -> tuple[Optional[AsyncOpenAI], Optional[httpx.AsyncClient]]:
    key = settings.OPENAI_API_KEY if api_key is None else api_key
    if not key:
        return None, None

    base_url = _resolve_openai_base_url()
    proxy_url = settings.first_nonempty_env("OPENAI_PROXY_URL", "HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy")
    timeout = httpx.Timeout(connect=10.0, read=120.0, write=120.0, pool=120.0)

    try:
        if proxy_url:
            http_client = httpx.AsyncClient(timeout=timeout, trust_env=True, proxy=proxy_url)
        else:
            http_client = httpx.AsyncClient(timeout=timeout, trust_env=True)
        logger.info("OpenAI transport configured: proxy=%s trust_env=%s", proxy_url if proxy_url else "NONE", True)
        client_kwargs: dict[str, Any] = {"api_key": key, "http_client": http_client}
        if base_url:
            client_kwargs["base_url"] = base_url
        client = AsyncOpenAI(**client_kwargs)
        logger.info(
            "OpenAI client initialized base_url=%s proxy_configured=%s",
            str(getattr(client, "base_url", "default")),
            "True" if bool(proxy_url) else "False",
        )
        return client, http_client
    except Exception as e:
        logger.warning("OpenAI client initialization failed: %s", e)
        return None, None


async def _complete_text(
    async_client: Any,
    *,
    system_message: str,
    user_message: str,
    max_tokens: int,
    endpoint: str,
    request_id: str,
    model: Optional[str] = None,
) -> str:
    """Run a chat completion over the model fallback chain.

    Raises RuntimeError when every candidate fails or answers empty.
    """
    if async_client is None:
        raise RuntimeError("OpenAI client not initialized")

    selected_model = str(model or settings.OPENAI_MODEL).strip() or settings.OPENAI_MODEL
    candidate_models = _candidate_openai_models(selected_model)
    input_hash = _sha256_hex([system_message, user_message])
    last_error: Optional[Exception] = None

    for candidate_model in candidate_models:
        payload = _build_openai_payload(
            model=candidate_model,
            system_message=system_message,
            user_message=user_message,
            max_completion_tokens=max_tokens,
        )
        try:
            logger.info(
                "LLM API call started request_id=%s endpoint=%s selected_model=%s",
                request_id,
                endpoint,
                candidate_model,
            )
            response = await async_client.chat.completions.create(**payload)
            text = response.choices[0].message.content if response and response.choices else ""
            response_text = text.strip() if isinstance(text, str) else ""
            if not response_text:
                raise EmptyCompletionError(
                    "LLM returned empty text. Model: "
                    f"{candidate_model}, finish_reason: "
                    f"{response.choices[0].finish_reason if response and response.choices else 'N/A'}"
                )
            _emit_llm_audit_event(
                request_id=request_id,
                endpoint=endpoint,
                model_used=f"openai/{candidate_model}",
                input_hash=input_hash,
                outcome="ok",
            )
            return response_text
        except Exception as e:
            last_error = e
            logger.warning(
                "LLM model attempt failed request_id=%s endpoint=%s selected_model=%s error_type=%s error=%s",
                request_id,
                endpoint,
                candidate_model,
                type(e).__name__,
                str(e),
            )

    _emit_llm_audit_event(
        request_id=request_id,
        endpoint=endpoint,
        model_used="none",
        input_hash=input_hash,
        outcome="failed",
    )
    raise RuntimeError(
        "LLM call failed for all candidate models "
        f"{candidate_models}. last_error={type(last_error).__name__ if last_error else 'N/A'}: {last_error}"
    ) from last_error


def build_hanja_prompt(korean_text: str, hints: Sequence[str] = ()) -> str:
    cleaned = [h.strip() for h in hints if isinstance(h, str) and h.strip()]
    hint_text = HINT_TEMPLATE.format(hints=", ".join(cleaned)) if cleaned else ""
    return HANJA_CONVERSION_TEMPLATE.format(korean_text=korean_text, hint_text=hint_text)


async def convert_to_hanja(
    async_client: Any,
    korean_text: str,
    hints: Sequence[str] = (),
    *,
    request_id: Optional[str] = None,
    model: Optional[str] = None,
) -> str:
    """Convert one honorific string to Hanja; returns the input unchanged on failure."""
    if not isinstance(korean_text, str) or not korean_text.strip():
        return korean_text
    request_id = request_id or str(uuid4())
    try:
        return await _complete_text(
            async_client,
            system_message=HANJA_SYSTEM_PROMPT,
            user_message=build_hanja_prompt(korean_text, hints),
            max_tokens=settings.HANJA_MAX_TOKENS,
            endpoint="hanja_convert",
            request_id=request_id,
            model=model,
        )
    except Exception as e:
        logger.warning(
            "Hanja conversion failed request_id=%s error_type=%s error=%s",
            request_id,
            type(e).__name__,
            str(e),
        )
        return korean_text


async def convert_slot_to_hanja(
    async_client: Any,
    slot: TabletSlot,
    *,
    request_id: Optional[str] = None,
) -> dict[JointPosition, str]:
    """Convert every non-empty Korean column of `slot` independently.

    Only positions with Korean text appear in the result.
    """
    request_id = request_id or str(uuid4())
    hints = extract_hints(slot)
    positions = [p for p in JointPosition if slot.korean_text(p).strip()]
    results = await asyncio.gather(
        *(
            convert_to_hanja(async_client, slot.korean_text(p), hints, request_id=f"{request_id}:{p.value}")
            for p in positions
        )
    )
    return dict(zip(positions, results))


async def ask_assistant(async_client: Any, question: str, *, request_id: Optional[str] = None) -> str:
    request_id = request_id or str(uuid4())
    try:
        return await _complete_text(
            async_client,
            system_message=ASSISTANT_SYSTEM_PROMPT,
            user_message=question,
            max_tokens=settings.ASSISTANT_MAX_TOKENS,
            endpoint="assistant",
            request_id=request_id,
        )
    except RuntimeError as e:
        if isinstance(e.__cause__, EmptyCompletionError):
            return ASSISTANT_EMPTY_ANSWER
        logger.warning("Assistant call failed request_id=%s error=%s", request_id, e)
        return ASSISTANT_SERVICE_ERROR
    except Exception as e:
        logger.warning(
            "Assistant call failed request_id=%s error_type=%s error=%s",
            request_id,
            type(e).__name__,
            str(e),
        )
        return ASSISTANT_SERVICE_ERROR


def _image_request(char: str) -> dict[str, Any]:
    request: dict[str, Any] = {
        "model": settings.OPENAI_IMAGE_MODEL,
        "prompt": GLYPH_IMAGE_TEMPLATE.format(char=char),
        "size": settings.OPENAI_IMAGE_SIZE,
        "n": 1,
    }
    if settings.OPENAI_IMAGE_MODEL.startswith("dall-e"):
        request["response_format"] = "b64_json"
    return request


async def generate_glyph_image(async_client: Any, char: str, *, request_id: Optional[str] = None) -> Optional[bytes]:
    """Return PNG bytes of a brush rendering of `char`, or None on any failure."""
    request_id = request_id or str(uuid4())
    if async_client is None:
        logger.warning("Glyph image skipped request_id=%s char=%r: OpenAI client not initialized", request_id, char)
        return None
    input_hash = _sha256_hex(char)
    try:
        response = await async_client.images.generate(**_image_request(char))
        item = response.data[0] if response and response.data else None
        b64_payload = getattr(item, "b64_json", None) if item is not None else None
        if b64_payload:
            image = base64.b64decode(b64_payload)
        else:
            url = getattr(item, "url", None) if item is not None else None
            if not url:
                raise RuntimeError("image response carried neither b64_json nor url")
            async with httpx.AsyncClient(timeout=httpx.Timeout(30.0)) as http:
                fetched = await http.get(url)
                fetched.raise_for_status()
                image = fetched.content
        if not image:
            raise RuntimeError("image payload is empty")
    except Exception as e:
        logger.warning(
            "Glyph image generation failed request_id=%s char=%r error_type=%s error=%s",
            request_id,
            char,
            type(e).__name__,
            str(e),
        )
        _emit_llm_audit_event(
            request_id=request_id,
            endpoint="glyph_image",
            model_used="none",
            input_hash=input_hash,
            outcome="failed",
        )
        return None

    _emit_llm_audit_event(
        request_id=request_id,
        endpoint="glyph_image",
        model_used=f"openai/{settings.OPENAI_IMAGE_MODEL}",
        input_hash=input_hash,
        outcome="ok",
    )
    logger.info("Glyph image generated request_id=%s char=%r bytes=%s", request_id, char, len(image))
    return image
