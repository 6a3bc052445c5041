"""SVG screen preview of a `PageLayout`.

User units are millimetres (viewBox 210x297), so layout coordinates are
emitted unchanged. Characters with a cached fallback image are drawn as
embedded `<image>` elements instead of text.
"""

from __future__ import annotations

import base64
from typing import Mapping, Optional
from xml.sax.saxutils import escape, quoteattr

from backend.layout_engine import FOOTER_FONT_SIZE_PT, PT_TO_MM, ColumnLayout, PageLayout, Segment

FONT_STACK = (
    "'GapyeongHanseokbongL', 'ChosunGungseo', 'Gungseo', 'GungSeo', "
    "'Batang', 'BatangChe', 'Nanum Myeongjo', serif"
)
LABEL_FONT_STACK = "'Noto Sans KR', 'Malgun Gothic', sans-serif"

INK = "#000000"
FOOTER_INK = "rgb(60,60,60)"
SEPARATOR_INK = "#c8c8c8"
TICK_INK = "#a8a29e"
PLACEHOLDER_INK = "#d6d3d1"
PLACEHOLDER_FONT_MM = 3.5


def _num(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def _image_mime(data: bytes) -> str:
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


def data_uri(data: bytes) -> str:
    return f"data:{_image_mime(data)};base64,{base64.b64encode(data).decode('ascii')}"


def _line(seg: Segment, stroke: str, width: float, dash: Optional[str] = None) -> str:
    dash_attr = f' stroke-dasharray="{dash}"' if dash else ""
    return (
        f'<line x1="{_num(seg.x1)}" y1="{_num(seg.y1)}" x2="{_num(seg.x2)}" y2="{_num(seg.y2)}" '
        f'stroke="{stroke}" stroke-width="{_num(width)}"{dash_attr}/>'
    )


def _column(column: ColumnLayout, center_y: float, glyph_size: float, images: Mapping[str, bytes]) -> list[str]:
    if not column.text:
        x, y = _num(column.x), _num(center_y)
        return [
            f'<text x="{x}" y="{y}" transform="rotate(90 {x} {y})" text-anchor="middle" '
            f'dominant-baseline="central" font-family={quoteattr(LABEL_FONT_STACK)} '
            f'font-size="{_num(PLACEHOLDER_FONT_MM)}" fill="{PLACEHOLDER_INK}">({escape(column.placeholder)})</text>'
        ]

    parts = []
    half = glyph_size / 2.0
    for glyph in column.glyphs:
        image = images.get(glyph.char)
        if image:
            parts.append(
                f'<image x="{_num(glyph.x - half)}" y="{_num(glyph.y - half)}" '
                f'width="{_num(glyph_size)}" height="{_num(glyph_size)}" '
                f'preserveAspectRatio="xMidYMid meet" style="mix-blend-mode:multiply" '
                f'href="{data_uri(image)}"><title>{escape(glyph.char)}</title></image>'
            )
        else:
            parts.append(
                f'<text x="{_num(glyph.x)}" y="{_num(glyph.y)}" text-anchor="middle" '
                f'dominant-baseline="central">{escape(glyph.char)}</text>'
            )
    return parts


def render_preview_svg(layout: PageLayout, images: Optional[Mapping[str, bytes]] = None) -> str:
    images = images or {}
    geometry = layout.geometry
    glyph_size = layout.glyph_font_size_mm
    footer_size = FOOTER_FONT_SIZE_PT * PT_TO_MM

    out = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{_num(geometry.page_width)}mm" '
        f'height="{_num(geometry.page_height)}mm" viewBox="0 0 {_num(geometry.page_width)} {_num(geometry.page_height)}">',
        f'<rect x="0" y="0" width="{_num(geometry.page_width)}" height="{_num(geometry.page_height)}" fill="#ffffff"/>',
        '<g class="crop-marks">',
        *(_line(seg, INK, 0.2) for seg in geometry.crop_marks),
        *(_line(seg, TICK_INK, 0.2) for seg in geometry.separator_ticks),
        "</g>",
    ]

    for tablet in layout.tablets:
        tg = tablet.geometry
        out.append(f'<g class="tablet" data-index="{tg.index}">')
        if tablet.outline is not None:
            r = tablet.outline
            out.append(
                f'<rect x="{_num(r.x)}" y="{_num(r.y)}" width="{_num(r.width)}" height="{_num(r.height)}" '
                f'fill="none" stroke="{INK}" stroke-width="0.3"/>'
            )
        if tablet.separator is not None:
            out.append(_line(tablet.separator, SEPARATOR_INK, 0.2, dash="2 2"))

        out.append(
            f'<g class="columns" font-family={quoteattr(FONT_STACK)} font-size="{_num(glyph_size)}" fill="{INK}">'
        )
        for column in tablet.columns:
            out.extend(_column(column, tg.center_y, glyph_size, images))
        out.append("</g>")

        if not layout.show_outlines:
            out.append(_line(tg.footer_tick, SEPARATOR_INK, 0.2))
        out.append(
            f'<text class="footer" x="{_num(tg.center_x)}" y="{_num(tg.footer_baseline_y)}" text-anchor="middle" '
            f'font-family={quoteattr(LABEL_FONT_STACK)} font-size="{_num(footer_size)}" '
            f'fill="{FOOTER_INK}">{escape(tablet.footer_label)}</text>'
        )
        out.append("</g>")

    out.append("</svg>")
    return "\n".join(out)
