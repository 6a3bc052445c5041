"""Deterministic page geometry for the tablet sheet.

All coordinates are millimetres with the origin at the top-left corner of the
page and y growing downwards. The SVG preview and the PDF export both consume
the same `PageLayout`, so neither renderer computes positions of its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from backend.footer_label import column_placeholders, footer_label
from backend.relations import JointPosition
from backend.tablet_state import TabletSlot

PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0
TABLET_WIDTH_MM = 60.0
TABLET_HEIGHT_MM = 220.0
TABLET_COUNT = 3

CROP_MARK_INSET_MM = 5.0
CROP_MARK_LENGTH_MM = 5.0
SEPARATOR_TICK_INSET_MM = 10.0
SEPARATOR_TICK_LENGTH_MM = 3.0

REFERENCE_FONT_SIZE_PT = 36.0
REFERENCE_CHAR_STEP_MM = 16.0
# Shifts the first glyph so the optical centre, not the bounding box, sits on the step grid.
OPTICAL_CENTERING_DIVISOR = 2.5

FOOTER_GAP_MM = 5.0
FOOTER_TICK_LENGTH_MM = 2.0
FOOTER_TEXT_OFFSET_MM = 7.0
FOOTER_FONT_SIZE_PT = 10.0

PT_TO_MM = 25.4 / 72.0

COLUMN_OFFSETS_MM = {
    1: (0.0,),
    2: (-11.0, 11.0),
    3: (-15.0, 0.0, 15.0),
}

_POSITIONS = (JointPosition.PRIMARY, JointPosition.SECONDARY, JointPosition.TERTIARY)


@dataclass(frozen=True)
class Segment:
    x1: float
    y1: float
    x2: float
    y2: float


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class GlyphPlacement:
    char: str
    x: float
    y: float


@dataclass(frozen=True)
class TabletGeometry:
    index: int
    left: float
    top: float
    width: float
    height: float
    center_x: float
    center_y: float
    column_xs: tuple[float, ...]
    footer_tick: Segment
    footer_baseline_y: float


@dataclass(frozen=True)
class SheetGeometry:
    page_width: float
    page_height: float
    font_size_pt: float
    char_step: float
    tablets: tuple[TabletGeometry, ...]
    crop_marks: tuple[Segment, ...]
    separator_ticks: tuple[Segment, ...]


@dataclass(frozen=True)
class ColumnLayout:
    x: float
    text: str
    placeholder: str
    glyphs: tuple[GlyphPlacement, ...]


@dataclass(frozen=True)
class TabletLayout:
    geometry: TabletGeometry
    columns: tuple[ColumnLayout, ...]
    footer_label: str
    separator: Optional[Segment]
    outline: Optional[Rect]


@dataclass(frozen=True)
class PageLayout:
    geometry: SheetGeometry
    tablets: tuple[TabletLayout, ...]
    show_outlines: bool

    @property
    def glyph_font_size_mm(self) -> float:
        return self.geometry.font_size_pt * PT_TO_MM


def char_step_mm(font_size_pt: float = REFERENCE_FONT_SIZE_PT) -> float:
    return REFERENCE_CHAR_STEP_MM * float(font_size_pt) / REFERENCE_FONT_SIZE_PT


def column_offsets(column_count: int) -> tuple[float, ...]:
    try:
        return COLUMN_OFFSETS_MM[int(column_count)]
    except KeyError:
        raise ValueError(f"a tablet holds 1 to 3 columns, got {column_count}") from None


def _crop_marks(page_width: float, page_height: float) -> tuple[Segment, ...]:
    inset = CROP_MARK_INSET_MM
    leg = CROP_MARK_LENGTH_MM
    right = page_width - inset
    bottom = page_height - inset
    return (
        Segment(inset, inset, inset + leg, inset),
        Segment(inset, inset, inset, inset + leg),
        Segment(right - leg, inset, right, inset),
        Segment(right, inset, right, inset + leg),
        Segment(inset, bottom, inset + leg, bottom),
        Segment(inset, bottom, inset, bottom - leg),
        Segment(right - leg, bottom, right, bottom),
        Segment(right, bottom, right, bottom - leg),
    )


def _separator_ticks(boundaries: Sequence[float], page_height: float) -> tuple[Segment, ...]:
    near = SEPARATOR_TICK_INSET_MM
    far = SEPARATOR_TICK_INSET_MM + SEPARATOR_TICK_LENGTH_MM
    ticks: list[Segment] = []
    for x in boundaries:
        ticks.append(Segment(x, near, x, far))
        ticks.append(Segment(x, page_height - near, x, page_height - far))
    return tuple(ticks)


def compute_geometry(
    column_counts: Sequence[int],
    page_width_mm: float = PAGE_WIDTH_MM,
    page_height_mm: float = PAGE_HEIGHT_MM,
    font_size_pt: float = REFERENCE_FONT_SIZE_PT,
) -> SheetGeometry:
    """Pure geometry for 1-3 tablets given the column count of each."""
    count = len(column_counts)
    if not 1 <= count <= TABLET_COUNT:
        raise ValueError(f"a sheet holds 1 to {TABLET_COUNT} tablets, got {count}")

    start_x = (page_width_mm - TABLET_WIDTH_MM * count) / 2.0
    top = (page_height_mm - TABLET_HEIGHT_MM) / 2.0
    bottom = top + TABLET_HEIGHT_MM
    center_y = page_height_mm / 2.0
    footer_y = bottom + FOOTER_GAP_MM

    tablets: list[TabletGeometry] = []
    for index, column_count in enumerate(column_counts):
        left = start_x + index * TABLET_WIDTH_MM
        center_x = left + TABLET_WIDTH_MM / 2.0
        tablets.append(
            TabletGeometry(
                index=index,
                left=left,
                top=top,
                width=TABLET_WIDTH_MM,
                height=TABLET_HEIGHT_MM,
                center_x=center_x,
                center_y=center_y,
                column_xs=tuple(center_x + offset for offset in column_offsets(column_count)),
                footer_tick=Segment(center_x, footer_y, center_x, footer_y + FOOTER_TICK_LENGTH_MM),
                footer_baseline_y=footer_y + FOOTER_TEXT_OFFSET_MM,
            )
        )

    boundaries = [start_x + k * TABLET_WIDTH_MM for k in range(1, count)]
    return SheetGeometry(
        page_width=page_width_mm,
        page_height=page_height_mm,
        font_size_pt=float(font_size_pt),
        char_step=char_step_mm(font_size_pt),
        tablets=tuple(tablets),
        crop_marks=_crop_marks(page_width_mm, page_height_mm),
        separator_ticks=_separator_ticks(boundaries, page_height_mm),
    )


def place_column(text: str, x: float, center_y: float, char_step: float) -> tuple[GlyphPlacement, ...]:
    """Stack characters top to bottom, centred as a block on `center_y`."""
    chars = list(text or "")
    cursor = center_y - (len(chars) * char_step) / 2.0 + char_step / OPTICAL_CENTERING_DIVISOR
    placements = []
    for char in chars:
        placements.append(GlyphPlacement(char, x, cursor))
        cursor += char_step
    return tuple(placements)


def tablet_columns(slot: TabletSlot) -> tuple[str, ...]:
    """Hanja text per column, left to right (husband, first wife, second wife)."""
    return tuple(slot.hanja_text(position) for position in _POSITIONS[: slot.occupant_count])


def build_page_layout(
    slots: Sequence[TabletSlot],
    show_outlines: bool = False,
    page_width_mm: float = PAGE_WIDTH_MM,
    page_height_mm: float = PAGE_HEIGHT_MM,
    font_size_pt: float = REFERENCE_FONT_SIZE_PT,
) -> PageLayout:
    geometry = compute_geometry(
        [slot.occupant_count for slot in slots],
        page_width_mm=page_width_mm,
        page_height_mm=page_height_mm,
        font_size_pt=font_size_pt,
    )

    tablets: list[TabletLayout] = []
    for slot, tablet in zip(slots, geometry.tablets):
        texts = tablet_columns(slot)
        placeholders = column_placeholders(len(texts))
        columns = tuple(
            ColumnLayout(
                x=x,
                text=text,
                placeholder=placeholder,
                glyphs=place_column(text, x, tablet.center_y, geometry.char_step),
            )
            for x, text, placeholder in zip(tablet.column_xs, texts, placeholders)
        )
        separator = None
        if tablet.index > 0 and not show_outlines:
            separator = Segment(tablet.left, tablet.top, tablet.left, tablet.top + tablet.height)
        outline = Rect(tablet.left, tablet.top, tablet.width, tablet.height) if show_outlines else None
        tablets.append(
            TabletLayout(
                geometry=tablet,
                columns=columns,
                footer_label=footer_label(slot),
                separator=separator,
                outline=outline,
            )
        )

    return PageLayout(geometry=geometry, tablets=tuple(tablets), show_outlines=bool(show_outlines))
