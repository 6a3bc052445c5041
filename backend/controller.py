"""Per-session controller: owns the sheet state and drives the glyph rescan."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from backend import honorific_engine, settings
from backend.footer_label import footer_label
from backend.glyph_pipeline import GlyphFallbackPipeline, RescanDebouncer, collect_hanja_characters
from backend.honorific_engine import DetailField
from backend.layout_engine import PageLayout, build_page_layout
from backend.llm_service import convert_slot_to_hanja
from backend.pdf_service import render_sheet_pdf
from backend.preview_renderer import render_preview_svg
from backend.relations import JointPosition, RelationKind
from backend.tablet_state import (
    SheetState,
    SlotNotEditableError,
    TabletSlot,
    effective_slots,
    replace_slot,
    set_outlines,
    toggle_custom,
)

logger = logging.getLogger("jibang")


class ConversionBusyError(RuntimeError):
    """A Hanja conversion is already running for this session."""


class ExportBlockedError(RuntimeError):
    """Glyph images are still being generated."""


class JibangController:
    def __init__(
        self,
        pipeline: GlyphFallbackPipeline,
        llm_client: Any = None,
        state: Optional[SheetState] = None,
        debounce_sec: float = settings.GLYPH_RESCAN_DEBOUNCE_SEC,
    ):
        self.state = state or SheetState()
        self.pipeline = pipeline
        self.llm_client = llm_client
        self.converting = False
        self.closed = False
        self._scans = 0
        self._debouncer = RescanDebouncer(debounce_sec, self.rescan_now)
        pipeline.add_listener(self._on_cache_change)

    # --------------------------------------------------------------------------
    # Derived views
    # --------------------------------------------------------------------------
    def effective_slots(self) -> list[TabletSlot]:
        return effective_slots(self.state)

    def characters(self) -> set[str]:
        return collect_hanja_characters(self.effective_slots())

    def layout(self) -> PageLayout:
        return build_page_layout(self.effective_slots(), show_outlines=self.state.show_outlines)

    def images(self) -> dict[str, bytes]:
        cache = self.pipeline.cache
        out: dict[str, bytes] = {}
        for char in self.characters():
            image = cache.get(char)
            if image:
                out[char] = image
        return out

    def pending(self) -> set[str]:
        return self.characters() & self.pipeline.cache.pending()

    @property
    def rescan_scheduled(self) -> bool:
        return self._debouncer.scheduled

    @property
    def scanning(self) -> bool:
        return self._scans > 0

    @property
    def export_ready(self) -> bool:
        return not self.pending() and not self.rescan_scheduled and not self.scanning

    # --------------------------------------------------------------------------
    # Edits
    # --------------------------------------------------------------------------
    def _commit(self, state: SheetState) -> None:
        self.state = state
        self.schedule_rescan()

    def _edit_slot(self, index: int, transform: Callable[[TabletSlot], TabletSlot]) -> TabletSlot:
        if not self.state.is_custom[index]:
            raise SlotNotEditableError(f"slot {index} mirrors slot 0; enable custom content first")
        updated = transform(self.state.slots[index])
        self._commit(replace_slot(self.state, index, updated))
        return updated

    def select_relation(self, index: int, kind: RelationKind) -> TabletSlot:
        return self._edit_slot(index, lambda slot: honorific_engine.select_relation(slot, kind))

    def update_detail(self, index: int, field: DetailField, value: str) -> TabletSlot:
        return self._edit_slot(index, lambda slot: honorific_engine.update_detail(slot, field, value))

    def edit_korean(self, index: int, position: JointPosition, text: str) -> TabletSlot:
        return self._edit_slot(index, lambda slot: honorific_engine.edit_korean(slot, position, text))

    def edit_hanja(self, index: int, position: JointPosition, text: str) -> TabletSlot:
        return self._edit_slot(index, lambda slot: honorific_engine.edit_hanja(slot, position, text))

    def toggle_tertiary(self, index: int) -> TabletSlot:
        return self._edit_slot(index, honorific_engine.toggle_tertiary)

    def toggle_custom(self, index: int) -> bool:
        self._commit(toggle_custom(self.state, index))
        return self.state.is_custom[index]

    def set_outlines(self, show: bool) -> None:
        self._commit(set_outlines(self.state, show))

    async def convert_slot(self, index: int) -> Optional[dict[JointPosition, str]]:
        """Convert every Korean column of a slot to Hanja.

        Returns None when the session was closed before results arrived.
        """
        if self.converting:
            raise ConversionBusyError("a conversion is already in progress")
        if not self.state.is_custom[index]:
            raise SlotNotEditableError(f"slot {index} mirrors slot 0; enable custom content first")

        source = self.state.slots[index]
        self.converting = True
        try:
            results = await convert_slot_to_hanja(self.llm_client, source)
        finally:
            self.converting = False

        if self.closed:
            logger.info("Conversion result discarded for closed session slot=%s", index)
            return None

        current = self.state.slots[index]
        # Columns edited or removed while the call was in flight keep their new content.
        changes = {
            f"hanja_{position.value}": text
            for position, text in results.items()
            if current.korean_text(position) == source.korean_text(position)
        }
        if changes and self.state.is_custom[index]:
            self._commit(replace_slot(self.state, index, current.evolve(**changes)))
        return results

    # --------------------------------------------------------------------------
    # Glyph rescan
    # --------------------------------------------------------------------------
    def _on_cache_change(self, char: str) -> None:
        if char in self.characters():
            self.schedule_rescan()

    def schedule_rescan(self) -> None:
        if self.closed:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop: callers run rescan_now() themselves.
            return
        self._debouncer.schedule()

    async def rescan_now(self) -> list[str]:
        if self.closed:
            return []
        self._debouncer.cancel()
        # Characters are only claimed once the support check finishes.
        self._scans += 1
        try:
            return await self.pipeline.ensure_glyphs(self.characters())
        finally:
            self._scans -= 1

    # --------------------------------------------------------------------------
    # Output
    # --------------------------------------------------------------------------
    def preview_svg(self) -> str:
        return render_preview_svg(self.layout(), self.images())

    def export_pdf(self) -> bytes:
        pending = self.pending()
        if pending:
            raise ExportBlockedError(f"glyph images pending: {''.join(sorted(pending))}")
        if self.rescan_scheduled or self.scanning:
            raise ExportBlockedError("glyph rescan in progress")
        return render_sheet_pdf(self.layout(), self.images())

    def status(self) -> dict[str, Any]:
        slots = self.effective_slots()
        return {
            "state": self.state.model_dump(mode="json"),
            "effective_slots": [slot.model_dump(mode="json") for slot in slots],
            "footer_labels": [footer_label(slot) for slot in slots],
            "pending": sorted(self.pending()),
            "cached": sorted(self.images()),
            "converting": self.converting,
            "rescan_scheduled": self.rescan_scheduled,
            "scanning": self.scanning,
            "export_ready": self.export_ready,
        }

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._debouncer.cancel()
        self.pipeline.remove_listener(self._on_cache_change)
