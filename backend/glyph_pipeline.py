"""Glyph fallback generation pipeline.

`GlyphFallbackPipeline.ensure_glyphs` probes characters the display font
cannot draw and dispatches one image-generation request per character.
Failed requests leave nothing behind (not cached, not pending); the next
rescan picks the character up again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from backend.glyph_cache import GlyphFallbackCache
from backend.glyph_support import GlyphSupportChecker
from backend.layout_engine import tablet_columns
from backend.tablet_state import TabletSlot

logger = logging.getLogger("jibang")

GlyphGenerator = Callable[[str], Awaitable[Optional[bytes]]]
CacheListener = Callable[[str], None]


def collect_hanja_characters(slots: Sequence[TabletSlot]) -> set[str]:
    """Every distinct non-whitespace character laid out across `slots`."""
    chars: set[str] = set()
    for slot in slots:
        for text in tablet_columns(slot):
            chars.update(c for c in text if not c.isspace())
    return chars


class GlyphFallbackPipeline:
    def __init__(
        self,
        cache: GlyphFallbackCache,
        checker: Optional[GlyphSupportChecker],
        generator: GlyphGenerator,
        max_concurrency: Optional[int] = None,
    ):
        self.cache = cache
        self.checker = checker
        self._generator = generator
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency and max_concurrency > 0 else None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[CacheListener] = []

    def add_listener(self, listener: CacheListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: CacheListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, char: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(char)
            except Exception:
                logger.exception("Glyph cache listener failed char=%r", char)

    def _unsupported(self, chars: list[str]) -> list[str]:
        return [c for c in chars if not self.checker.is_glyph_supported(c)]

    async def ensure_glyphs(self, chars: Iterable[str]) -> list[str]:
        """Dispatch generation for unsupported, unresolved characters.

        Returns the characters a request was dispatched for.
        """
        if self.checker is None:
            return []
        candidates = sorted(
            {c for c in chars if c and not c.isspace() and not self.cache.has(c) and not self.cache.is_pending(c)}
        )
        if not candidates:
            return []

        # Font rasterisation is CPU bound; keep it off the event loop.
        unsupported = await asyncio.to_thread(self._unsupported, candidates)

        dispatched: list[str] = []
        for char in unsupported:
            # Another scan may have claimed it while we were probing.
            if not self.cache.claim(char):
                continue
            task = asyncio.create_task(self._generate(char), name=f"glyph-{ord(char):x}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            dispatched.append(char)

        if dispatched:
            logger.info("Glyph generation dispatched chars=%s", "".join(dispatched))
        return dispatched

    async def _call_generator(self, char: str) -> Optional[bytes]:
        if self._semaphore is None:
            return await self._generator(char)
        async with self._semaphore:
            return await self._generator(char)

    async def _generate(self, char: str) -> None:
        try:
            image = await self._call_generator(char)
        except asyncio.CancelledError:
            self.cache.release(char)
            raise
        except Exception as e:
            logger.warning("Glyph generator raised char=%r error_type=%s error=%s", char, type(e).__name__, e)
            image = None

        if not image:
            self.cache.release(char)
            logger.info("Glyph generation failed; %r left for the next rescan", char)
            return

        self.cache.put(char, image)
        self._notify(char)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every dispatched request has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()


class RescanDebouncer:
    """Run `callback` once after `delay` seconds without a new `schedule()`."""

    def __init__(self, delay: float, callback: Callable[[], Awaitable[object]]):
        self.delay = max(0.0, float(delay))
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        # Detach first so a schedule() during the callback does not cancel it.
        self._task = None
        try:
            await self._callback()
        except Exception:
            logger.exception("Debounced glyph rescan failed")
