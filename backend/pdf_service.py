import logging
import subprocess
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Any, Mapping, Optional

from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas as pdf_canvas

from backend import settings
from backend.layout_engine import FOOTER_FONT_SIZE_PT, PageLayout, Segment

logger = logging.getLogger("jibang")

MODULE_DIR = settings.MODULE_DIR
REPO_ROOT = settings.REPO_ROOT

EXPORT_FILENAME = "jibang_a4.pdf"
EXPORT_FAILURE_MESSAGE = "PDF 생성 중 오류가 발생했습니다. (폰트 로드 실패 등)"

# ------------------------------------------------------------------------------
# Brush display font / system Korean fallback setup
# ------------------------------------------------------------------------------
BRUSH_FONT_NAME = "JibangBrush"
FALLBACK_FONT_NAME = "KoreanFallback"

BRUSH_FONT_CANDIDATES = [
    MODULE_DIR / "fonts" / "GapyeongHanseokbongL.ttf",
    REPO_ROOT / "assets" / "fonts" / "GapyeongHanseokbongL.ttf",
]
SYSTEM_KOREAN_FONT_CANDIDATES = [
    Path("/usr/share/fonts/truetype/nanum/NanumMyeongjo.ttf"),
    Path("/usr/share/fonts/truetype/nanum/NanumGothic.ttf"),
    Path("/usr/share/fonts/truetype/nanum/NanumBarunGothic.ttf"),
]

BRUSH_FONT_AVAILABLE = False
KOREAN_FONT_AVAILABLE = False
BRUSH_FONT_PATH: Optional[Path] = None
FALLBACK_FONT_PATH: Optional[Path] = None
PDF_FONT_GLYPH = "Helvetica"
PDF_FONT_LABEL = "Helvetica"
PDF_FEATURE_AVAILABLE = False
PDF_FEATURE_ERROR: Optional[str] = None


class FontUnavailableError(RuntimeError):
    """No usable font for export; the preview is unaffected."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(EXPORT_FAILURE_MESSAGE)
        self.detail = detail


def _configured_path(raw: Optional[str]) -> list[Path]:
    return [Path(raw).expanduser()] if raw else []


def _first_existing_path(candidates: list[Path]) -> Optional[Path]:
    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate
    return None


def _fontconfig_match(family: str) -> Optional[Path]:
    try:
        result = subprocess.run(
            ["fc-match", "-f", "%{file}\n", family],
            check=False,
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None

    if result.returncode != 0:
        return None

    raw = result.stdout.strip()
    if not raw:
        return None

    candidate = Path(raw)
    if candidate.exists() and candidate.is_file() and candidate.suffix.lower() == ".ttf":
        return candidate
    return None


def _discover_system_korean_font() -> Optional[Path]:
    direct = _first_existing_path(SYSTEM_KOREAN_FONT_CANDIDATES)
    if direct:
        return direct

    for family in ("NanumMyeongjo", "NanumGothic", "Batang"):
        matched = _fontconfig_match(family)
        if matched:
            return matched

    try:
        result = subprocess.run(
            ["fc-list", ":lang=ko", "file"],
            check=False,
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None

    if result.returncode != 0:
        return None

    for line in result.stdout.splitlines():
        path_text = line.split(":", 1)[0].strip()
        if not path_text:
            continue
        candidate = Path(path_text)
        # ReportLab only embeds TrueType outlines.
        if candidate.suffix.lower() == ".ttf" and candidate.exists() and candidate.is_file():
            return candidate
    return None


def resolve_brush_font_path() -> Optional[Path]:
    return _first_existing_path(_configured_path(settings.JIBANG_FONT_PATH) + BRUSH_FONT_CANDIDATES)


def resolve_fallback_font_path() -> Optional[Path]:
    configured = _first_existing_path(_configured_path(settings.JIBANG_FALLBACK_FONT_PATH))
    return configured or _discover_system_korean_font()


def init_fonts() -> None:
    """Register the brush face and the Korean fallback face with ReportLab."""
    global BRUSH_FONT_AVAILABLE, KOREAN_FONT_AVAILABLE, BRUSH_FONT_PATH, FALLBACK_FONT_PATH
    global PDF_FONT_GLYPH, PDF_FONT_LABEL, PDF_FEATURE_AVAILABLE, PDF_FEATURE_ERROR

    BRUSH_FONT_AVAILABLE = False
    KOREAN_FONT_AVAILABLE = False
    BRUSH_FONT_PATH = None
    FALLBACK_FONT_PATH = None
    PDF_FONT_GLYPH = "Helvetica"
    PDF_FONT_LABEL = "Helvetica"
    PDF_FEATURE_AVAILABLE = False
    PDF_FEATURE_ERROR = None

    errors: list[str] = []

    brush = resolve_brush_font_path()
    if brush:
        try:
            pdfmetrics.registerFont(TTFont(BRUSH_FONT_NAME, str(brush)))
            BRUSH_FONT_AVAILABLE = True
            BRUSH_FONT_PATH = brush
            logger.info("Brush display font loaded: %s", brush)
        except Exception as e:
            errors.append(f"brush font {brush}: {e}")
            logger.error("Brush display font failed to load from %s: %s", brush, e)
    else:
        logger.warning("Brush display font not found in %s", BRUSH_FONT_CANDIDATES)

    fallback = resolve_fallback_font_path()
    if fallback:
        try:
            pdfmetrics.registerFont(TTFont(FALLBACK_FONT_NAME, str(fallback)))
            KOREAN_FONT_AVAILABLE = True
            FALLBACK_FONT_PATH = fallback
            logger.info("System Korean font loaded: %s", fallback)
        except Exception as e:
            errors.append(f"fallback font {fallback}: {e}")
            logger.error("Korean fallback font failed to load from %s: %s", fallback, e)

    if BRUSH_FONT_AVAILABLE:
        PDF_FONT_GLYPH = BRUSH_FONT_NAME
        PDF_FONT_LABEL = FALLBACK_FONT_NAME if KOREAN_FONT_AVAILABLE else BRUSH_FONT_NAME
    elif KOREAN_FONT_AVAILABLE:
        PDF_FONT_GLYPH = FALLBACK_FONT_NAME
        PDF_FONT_LABEL = FALLBACK_FONT_NAME
    else:
        PDF_FEATURE_ERROR = "; ".join(errors) or (
            f"No display font found in candidates={BRUSH_FONT_CANDIDATES} "
            f"or system candidates={SYSTEM_KOREAN_FONT_CANDIDATES}."
        )
        logger.error("Font initialization failed; PDF feature disabled: %s", PDF_FEATURE_ERROR)
        return

    PDF_FEATURE_AVAILABLE = True


def display_font_path() -> Optional[Path]:
    """Font file that actually draws tablet glyphs in the export."""
    return BRUSH_FONT_PATH or FALLBACK_FONT_PATH


def font_status() -> dict[str, Any]:
    return {
        "pdf_feature_available": PDF_FEATURE_AVAILABLE,
        "pdf_feature_error": PDF_FEATURE_ERROR,
        "brush_font_available": BRUSH_FONT_AVAILABLE,
        "korean_font_available": KOREAN_FONT_AVAILABLE,
        "glyph_font": PDF_FONT_GLYPH,
        "label_font": PDF_FONT_LABEL,
    }


# ------------------------------------------------------------------------------
# Sheet drawing
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class PdfFonts:
    glyph: str
    label: str


def current_fonts() -> PdfFonts:
    if not PDF_FEATURE_AVAILABLE:
        raise FontUnavailableError(PDF_FEATURE_ERROR)
    return PdfFonts(glyph=PDF_FONT_GLYPH, label=PDF_FONT_LABEL)


def _line(c, page_h: float, seg: Segment) -> None:
    c.line(seg.x1 * mm, (page_h - seg.y1) * mm, seg.x2 * mm, (page_h - seg.y2) * mm)


def draw_sheet(c, layout: PageLayout, images: Mapping[str, bytes], fonts: PdfFonts) -> None:
    """Draw one sheet onto a ReportLab canvas; layout units are millimetres from the top-left."""
    geometry = layout.geometry
    page_h = geometry.page_height

    c.setLineWidth(0.1 * mm)
    c.setStrokeColorRGB(0, 0, 0)
    for seg in geometry.crop_marks:
        _line(c, page_h, seg)
    for seg in geometry.separator_ticks:
        _line(c, page_h, seg)

    glyph_size_pt = geometry.font_size_pt
    glyph_size_mm = layout.glyph_font_size_mm
    ascent, descent = pdfmetrics.getAscentDescent(fonts.glyph, glyph_size_pt)
    middle_to_baseline = (ascent + descent) / 2.0

    for tablet in layout.tablets:
        tg = tablet.geometry

        if tablet.separator is not None:
            c.setDash([2 * mm, 2 * mm], 0)
            c.setStrokeColorRGB(200 / 255, 200 / 255, 200 / 255)
            _line(c, page_h, tablet.separator)
            c.setDash()
            c.setStrokeColorRGB(0, 0, 0)
        if tablet.outline is not None:
            r = tablet.outline
            c.setLineWidth(0.3 * mm)
            c.setStrokeColorRGB(0, 0, 0)
            c.rect(r.x * mm, (page_h - r.y - r.height) * mm, r.width * mm, r.height * mm, stroke=1, fill=0)
            c.setLineWidth(0.1 * mm)

        c.setFillColorRGB(0, 0, 0)
        c.setFont(fonts.glyph, glyph_size_pt)
        for column in tablet.columns:
            # Empty columns are left blank on paper.
            for glyph in column.glyphs:
                image = images.get(glyph.char)
                if image:
                    half = glyph_size_mm / 2.0
                    c.drawImage(
                        ImageReader(BytesIO(image)),
                        (glyph.x - half) * mm,
                        (page_h - glyph.y - half) * mm,
                        width=glyph_size_mm * mm,
                        height=glyph_size_mm * mm,
                        preserveAspectRatio=True,
                        anchor="c",
                        mask="auto",
                    )
                else:
                    c.drawCentredString(glyph.x * mm, (page_h - glyph.y) * mm - middle_to_baseline, glyph.char)

        if not layout.show_outlines:
            c.setStrokeColorRGB(200 / 255, 200 / 255, 200 / 255)
            _line(c, page_h, tg.footer_tick)
            c.setStrokeColorRGB(0, 0, 0)

        c.setFont(fonts.label, FOOTER_FONT_SIZE_PT)
        c.setFillColorRGB(60 / 255, 60 / 255, 60 / 255)
        c.drawCentredString(tg.center_x * mm, (page_h - tg.footer_baseline_y) * mm, tablet.footer_label)
        c.setFillColorRGB(0, 0, 0)


def render_sheet_pdf(layout: PageLayout, images: Optional[Mapping[str, bytes]] = None) -> bytes:
    fonts = current_fonts()
    geometry = layout.geometry
    with BytesIO() as buffer:
        c = pdf_canvas.Canvas(buffer, pagesize=(geometry.page_width * mm, geometry.page_height * mm))
        c.setTitle("Jibang")
        draw_sheet(c, layout, images or {}, fonts)
        c.showPage()
        c.save()
        pdf_bytes = buffer.getvalue()
    logger.info("PDF sheet rendered bytes=%s tablets=%s", len(pdf_bytes), len(layout.tablets))
    return pdf_bytes
