from __future__ import annotations

import base64
import unittest

from backend.honorific_engine import edit_hanja, select_relation, update_detail, DetailField
from backend.layout_engine import build_page_layout
from backend.preview_renderer import data_uri, render_preview_svg
from backend.relations import JointPosition, RelationKind
from backend.tablet_state import TabletSlot

PNG = b"\x89PNG\r\n\x1a\n0000"


class TestPreviewSvg(unittest.TestCase):
    def test_page_in_millimetres(self) -> None:
        svg = render_preview_svg(build_page_layout([TabletSlot()] * 3))
        self.assertTrue(svg.startswith("<svg"))
        self.assertIn('width="210mm" height="297mm" viewBox="0 0 210 297"', svg)
        self.assertEqual(svg.count('<g class="tablet"'), 3)
        self.assertTrue(svg.rstrip().endswith("</svg>"))

    def test_glyphs_as_text(self) -> None:
        svg = render_preview_svg(build_page_layout([TabletSlot()]))
        for char in "顯考學生府君神位":
            self.assertIn(f">{char}</text>", svg)
        self.assertNotIn("<image", svg)

    def test_cached_chars_are_embedded_images(self) -> None:
        slot = edit_hanja(TabletSlot(), JointPosition.PRIMARY, "顯考")
        svg = render_preview_svg(build_page_layout([slot]), images={"考": PNG})
        self.assertIn(">顯</text>", svg)
        self.assertNotIn(">考</text>", svg)
        self.assertIn("<title>考</title></image>", svg)
        self.assertIn(f'href="data:image/png;base64,{base64.b64encode(PNG).decode()}"', svg)
        self.assertIn("mix-blend-mode:multiply", svg)

    def test_empty_columns_show_placeholder(self) -> None:
        mother = select_relation(TabletSlot(), RelationKind.MOTHER)
        svg = render_preview_svg(build_page_layout([mother]))
        self.assertIn("(내용 없음)</text>", svg)
        self.assertIn('transform="rotate(90', svg)

    def test_separators_versus_outlines(self) -> None:
        dashed = render_preview_svg(build_page_layout([TabletSlot()] * 3))
        self.assertEqual(dashed.count('stroke-dasharray="2 2"'), 2)
        self.assertNotIn('stroke-width="0.3"', dashed)

        outlined = render_preview_svg(build_page_layout([TabletSlot()] * 3, show_outlines=True))
        self.assertEqual(outlined.count('stroke-width="0.3"'), 3)
        self.assertNotIn("stroke-dasharray", outlined)

    def test_footer_label_is_escaped(self) -> None:
        slot = select_relation(TabletSlot(), RelationKind.MOTHER)
        slot = update_detail(slot, DetailField.FAMILY_NAME, "<박>")
        svg = render_preview_svg(build_page_layout([slot]))
        self.assertIn("&lt;박&gt;", svg)
        self.assertIn('class="footer"', svg)


class TestDataUri(unittest.TestCase):
    def test_mime_sniffing(self) -> None:
        self.assertTrue(data_uri(PNG).startswith("data:image/png;base64,"))
        self.assertTrue(data_uri(b"\xff\xd8\xff").startswith("data:image/jpeg;base64,"))


if __name__ == "__main__":
    unittest.main()
