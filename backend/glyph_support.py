"""Decide whether the display font can render a character.

Two interchangeable strategies share the `GlyphSupportChecker` contract:

- `PixelDiffGlyphChecker` rasterises the character once with the neutral
  fallback face and once with the brush face stacked over the fallback, then
  compares pixels. Identical output means the brush face silently fell back.
  This is a heuristic: it assumes the brush face never draws a glyph exactly
  like the fallback face does.
- `CoverageGlyphChecker` reads the font's character map through ReportLab.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Protocol, Union

from PIL import Image, ImageDraw, ImageFont
from reportlab.pdfbase.ttfonts import TTFError, TTFontFile

logger = logging.getLogger("jibang")

PROBE_CANVAS_PX = 96
PROBE_FONT_PX = 72
# Private-use code point; a brush face draws its .notdef box for it.
NOTDEF_PROBE = "\U000F0000"

ProbeFont = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


class GlyphSupportChecker(Protocol):
    def is_glyph_supported(self, char: str) -> bool:
        ...


def render_probe(font: ProbeFont, char: str, canvas_size: int = PROBE_CANVAS_PX) -> bytes:
    """Rasterise `char` centred on a square greyscale canvas and return raw pixels."""
    img = Image.new("L", (canvas_size, canvas_size), 0)
    bbox = font.getbbox(char)
    if bbox:
        w = bbox[2] - bbox[0]
        h = bbox[3] - bbox[1]
        x = (canvas_size - w) // 2 - bbox[0]
        y = (canvas_size - h) // 2 - bbox[1]
        ImageDraw.Draw(img).text((x, y), char, fill=255, font=font)
    return img.tobytes()


class PixelDiffGlyphChecker:
    def __init__(self, target_font: ProbeFont, fallback_font: ProbeFont, canvas_size: int = PROBE_CANVAS_PX):
        self._target = target_font
        self._fallback = fallback_font
        self._canvas_size = canvas_size
        self._notdef = render_probe(target_font, NOTDEF_PROBE, canvas_size)
        self._results: dict[str, bool] = {}
        self._lock = threading.Lock()
        # FreeType faces are not safe to render from several threads at once.
        self._render_lock = threading.Lock()

    @classmethod
    def from_paths(
        cls,
        target_path: Union[str, Path],
        fallback_path: Optional[Union[str, Path]] = None,
        size: int = PROBE_FONT_PX,
    ) -> "PixelDiffGlyphChecker":
        target = ImageFont.truetype(str(target_path), size)
        if fallback_path:
            fallback = ImageFont.truetype(str(fallback_path), size)
        else:
            fallback = ImageFont.load_default(size)
        return cls(target, fallback)

    def _render_stacked(self, char: str) -> bytes:
        primary = render_probe(self._target, char, self._canvas_size)
        if primary == self._notdef or not any(primary):
            return render_probe(self._fallback, char, self._canvas_size)
        return primary

    def is_glyph_supported(self, char: str) -> bool:
        with self._lock:
            cached = self._results.get(char)
        if cached is not None:
            return cached

        with self._render_lock:
            stacked = self._render_stacked(char)
            baseline = render_probe(self._fallback, char, self._canvas_size)
        supported = stacked != baseline

        with self._lock:
            self._results[char] = supported
        return supported


class CoverageGlyphChecker:
    def __init__(self, font_path: Union[str, Path]):
        face = TTFontFile(str(font_path))
        self._codepoints = frozenset(code for code, glyph in face.charToGlyph.items() if glyph)

    def is_glyph_supported(self, char: str) -> bool:
        return len(char) == 1 and ord(char) in self._codepoints


def build_glyph_checker(
    strategy: str,
    target_path: Optional[Path],
    fallback_path: Optional[Path] = None,
) -> Optional[GlyphSupportChecker]:
    """Build the configured checker; None when the display font is missing."""
    if target_path is None:
        logger.warning("Display font not found; glyph support probing disabled.")
        return None
    try:
        if strategy == "coverage":
            checker: GlyphSupportChecker = CoverageGlyphChecker(target_path)
        else:
            checker = PixelDiffGlyphChecker.from_paths(target_path, fallback_path)
    except (OSError, ValueError, TTFError) as e:
        logger.error("Glyph support checker initialization failed for %s: %s", target_path, e)
        return None
    logger.info("Glyph support checker ready strategy=%s font=%s", strategy, target_path)
    return checker
