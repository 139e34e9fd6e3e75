"""Batch scheduling of frame enhancement across a whole sequence."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from .enhancer import TileEnhancer
from .errors import BatchFailure
from .frames import EnhancedFrame, Frame
from .interfaces import ProgressFn
from .timing import mean_frame_interval

logger = logging.getLogger(__name__)


class EnhancementScheduler:
    """Run a :class:`TileEnhancer` over ordered frames, one batch at a time.

    Frames inside a batch run concurrently; batches never overlap. Results
    are written into slots by position and sorted by ``sequence_index``
    before they are returned, so completion order never leaks out. With
    ``pace_batches`` a batch takes at least ``len(batch)`` mean frame
    intervals of wall-clock time.
    """

    def __init__(self, enhancer: TileEnhancer, batch_size: int = 2, pace_batches: bool = False) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be >= 1")
        self._enhancer = enhancer
        self._batch_size = batch_size
        self._pace = pace_batches

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def _enhance_one(self, frame: Frame, batch_index: int) -> EnhancedFrame:
        try:
            return await self._enhancer.enhance_frame(frame)
        except Exception as exc:
            raise BatchFailure(frame.sequence_index, batch_index, exc) from exc

    async def enhance_sequence(
        self,
        frames: Sequence[Frame],
        on_progress: Optional[ProgressFn] = None,
    ) -> List[EnhancedFrame]:
        """Return one enhanced frame per input, ordered by ``sequence_index``.

        ``on_progress`` receives the completed fraction after each batch.
        The first failing frame aborts the run with :class:`BatchFailure`.
        """

        total = len(frames)
        if total == 0:
            return []
        interval = mean_frame_interval([f.timestamp_s for f in frames]) if self._pace else 0.0
        slots: List[Optional[EnhancedFrame]] = [None] * total

        for batch_index, start in enumerate(range(0, total, self._batch_size)):
            batch = frames[start:start + self._batch_size]
            began = time.monotonic()
            results = await asyncio.gather(
                *(self._enhance_one(frame, batch_index) for frame in batch),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                first = min(
                    failures,
                    key=lambda f: f.sequence_index if isinstance(f, BatchFailure) else -1,
                )
                logger.error("Enhancement aborted: %s", first)
                raise first
            for offset, result in enumerate(results):
                slots[start + offset] = result

            completed = start + len(batch)
            logger.debug("Batch %d done (%d/%d frames)", batch_index, completed, total)
            if on_progress is not None:
                on_progress(completed / total)

            if interval > 0 and completed < total:
                remaining = interval * len(batch) - (time.monotonic() - began)
                if remaining > 0:
                    await asyncio.sleep(remaining)

        enhanced = [s for s in slots if s is not None]
        enhanced.sort(key=lambda f: f.sequence_index)
        return enhanced
