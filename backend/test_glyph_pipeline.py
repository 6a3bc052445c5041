from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock

from backend.glyph_cache import GlyphFallbackCache
from backend.glyph_pipeline import GlyphFallbackPipeline, RescanDebouncer, collect_hanja_characters
from backend.honorific_engine import edit_hanja, select_relation
from backend.relations import JointPosition, RelationKind
from backend.tablet_state import TabletSlot


class _SetChecker:
    """Reports every character in `missing` as unsupported."""

    def __init__(self, missing: str):
        self.missing = set(missing)
        self.calls: list[str] = []

    def is_glyph_supported(self, char: str) -> bool:
        self.calls.append(char)
        return char not in self.missing


class TestCollectCharacters(unittest.TestCase):
    def test_collects_every_column(self) -> None:
        slot = select_relation(TabletSlot(), RelationKind.COUPLE_PARENTS)
        slot = edit_hanja(slot, JointPosition.PRIMARY, "顯考 府君")
        slot = edit_hanja(slot, JointPosition.SECONDARY, "顯妣")
        self.assertEqual(collect_hanja_characters([slot]), {"顯", "考", "府", "君", "妣"})


class TestGlyphFallbackPipeline(unittest.IsolatedAsyncioTestCase):
    async def test_unsupported_chars_generated_once(self) -> None:
        cache = GlyphFallbackCache()
        generator = AsyncMock(return_value=b"png")
        pipeline = GlyphFallbackPipeline(cache, _SetChecker("妣"), generator)

        dispatched = await pipeline.ensure_glyphs("顯妣孺人")
        self.assertEqual(dispatched, ["妣"])
        self.assertTrue(cache.is_pending("妣"))
        await pipeline.drain()

        self.assertEqual(cache.get("妣"), b"png")
        self.assertFalse(cache.is_pending("妣"))
        self.assertEqual(await pipeline.ensure_glyphs("顯妣孺人"), [])
        generator.assert_awaited_once_with("妣")

    async def test_pending_char_is_not_resubmitted(self) -> None:
        cache = GlyphFallbackCache()
        release = asyncio.Event()

        async def slow(char: str) -> bytes:
            await release.wait()
            return b"png"

        generator = AsyncMock(side_effect=slow)
        pipeline = GlyphFallbackPipeline(cache, _SetChecker("妣"), generator)
        await pipeline.ensure_glyphs("妣")
        self.assertEqual(await pipeline.ensure_glyphs("妣"), [])
        release.set()
        await pipeline.drain()
        self.assertEqual(generator.await_count, 1)

    async def test_discarded_char_is_regenerated_on_rescan(self) -> None:
        cache = GlyphFallbackCache()
        cache.put("妣", b"old")
        generator = AsyncMock(return_value=b"new")
        pipeline = GlyphFallbackPipeline(cache, _SetChecker("妣"), generator)

        self.assertEqual(await pipeline.ensure_glyphs("妣"), [])
        cache.discard("妣")
        self.assertEqual(await pipeline.ensure_glyphs("妣"), ["妣"])
        await pipeline.drain()
        generator.assert_awaited_once_with("妣")
        self.assertEqual(cache.get("妣"), b"new")

    async def test_failed_generation_leaves_nothing_behind(self) -> None:
        for outcome in (None, RuntimeError("boom")):
            with self.subTest(outcome=outcome):
                cache = GlyphFallbackCache()
                if isinstance(outcome, Exception):
                    generator = AsyncMock(side_effect=outcome)
                else:
                    generator = AsyncMock(return_value=outcome)
                pipeline = GlyphFallbackPipeline(cache, _SetChecker("妣"), generator)
                listener_calls: list[str] = []
                pipeline.add_listener(listener_calls.append)

                await pipeline.ensure_glyphs("妣")
                await pipeline.drain()

                self.assertFalse(cache.has("妣"))
                self.assertFalse(cache.is_pending("妣"))
                self.assertEqual(listener_calls, [])
                # Next scan retries.
                self.assertEqual(await pipeline.ensure_glyphs("妣"), ["妣"])
                await pipeline.drain()

    async def test_listener_notified_on_success(self) -> None:
        cache = GlyphFallbackCache()
        pipeline = GlyphFallbackPipeline(cache, _SetChecker("妣"), AsyncMock(return_value=b"png"))
        seen: list[str] = []
        pipeline.add_listener(seen.append)
        await pipeline.ensure_glyphs("妣")
        await pipeline.drain()
        self.assertEqual(seen, ["妣"])

        pipeline.remove_listener(seen.append)
        cache.discard("妣")
        await pipeline.ensure_glyphs("妣")
        await pipeline.drain()
        self.assertEqual(seen, ["妣"])

    async def test_no_checker_disables_fallback(self) -> None:
        generator = AsyncMock(return_value=b"png")
        pipeline = GlyphFallbackPipeline(GlyphFallbackCache(), None, generator)
        self.assertEqual(await pipeline.ensure_glyphs("妣"), [])
        generator.assert_not_awaited()

    async def test_cached_chars_are_not_probed(self) -> None:
        cache = GlyphFallbackCache()
        cache.put("妣", b"png")
        checker = _SetChecker("妣")
        pipeline = GlyphFallbackPipeline(cache, checker, AsyncMock())
        await pipeline.ensure_glyphs(" 妣 ")
        self.assertEqual(checker.calls, [])

    async def test_aclose_cancels_in_flight(self) -> None:
        cache = GlyphFallbackCache()

        async def never(char: str) -> bytes:
            await asyncio.Event().wait()
            return b""

        pipeline = GlyphFallbackPipeline(cache, _SetChecker("妣"), never, max_concurrency=1)
        await pipeline.ensure_glyphs("妣")
        await asyncio.sleep(0)
        self.assertEqual(pipeline.in_flight, 1)
        await pipeline.aclose()
        self.assertFalse(cache.is_pending("妣"))


class TestRescanDebouncer(unittest.IsolatedAsyncioTestCase):
    async def test_rapid_schedules_fire_once(self) -> None:
        callback = AsyncMock()
        debouncer = RescanDebouncer(0.05, callback)
        for _ in range(5):
            debouncer.schedule()
            await asyncio.sleep(0.01)
        self.assertTrue(debouncer.scheduled)
        await asyncio.sleep(0.15)
        callback.assert_awaited_once()
        self.assertFalse(debouncer.scheduled)

    async def test_cancel_prevents_callback(self) -> None:
        callback = AsyncMock()
        debouncer = RescanDebouncer(0.02, callback)
        debouncer.schedule()
        debouncer.cancel()
        await asyncio.sleep(0.05)
        callback.assert_not_awaited()

    async def test_callback_errors_are_contained(self) -> None:
        callback = AsyncMock(side_effect=RuntimeError("boom"))
        debouncer = RescanDebouncer(0.0, callback)
        with self.assertLogs("jibang", level="ERROR"):
            debouncer.schedule()
            await asyncio.sleep(0.02)
        callback.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
