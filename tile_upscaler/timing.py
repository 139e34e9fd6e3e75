"""Frame-rate estimation, timestamp grids and presentation pacing."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

MIN_FPS_SAMPLES = 10


def deltas_from_timestamps(timestamps: Sequence[float]) -> List[float]:
    """Return consecutive differences of ``timestamps``."""

    return [float(b - a) for a, b in zip(timestamps, timestamps[1:])]


def estimate_frame_rate(deltas: Sequence[float], max_samples: Optional[int] = None) -> int:
    """Estimate fps from inter-frame deltas with an interquartile trim.

    Non-positive deltas are ignored. At most ``max_samples`` deltas are
    used. The lower and upper quartiles are discarded before averaging.
    """

    valid = [float(d) for d in deltas if d > 0]
    if max_samples is not None:
        valid = valid[:max_samples]
    if not valid:
        raise ValueError("at least one positive frame delta is required")
    if len(valid) < MIN_FPS_SAMPLES:
        logger.warning("Estimating fps from only %d deltas", len(valid))
    ordered = sorted(valid)
    q1 = int(math.floor(len(ordered) * 0.25))
    q3 = int(math.floor(len(ordered) * 0.75))
    kept = ordered[q1:q3 + 1]
    mean_delta = float(np.mean(kept))
    return int(round(1.0 / mean_delta))


def uniform_timestamp_grid(duration_s: float, fps: float) -> List[float]:
    """Return ``i / fps`` for every frame slot in ``[0, duration_s)``."""

    if fps <= 0:
        raise ValueError("fps must be > 0")
    if duration_s <= 0:
        return []
    count = int(math.ceil(duration_s * fps - 1e-9))
    return [i / fps for i in range(count)]


def mean_frame_interval(timestamps: Sequence[float]) -> float:
    """Average spacing of ``timestamps``, 0.0 when fewer than two."""

    deltas = deltas_from_timestamps(timestamps)
    if not deltas:
        return 0.0
    return float(np.mean(deltas))


@dataclass(frozen=True)
class SyncState:
    """Timing facts fixed once per input video."""

    estimated_fps: float
    frame_interval_s: float

    @classmethod
    def from_fps(cls, fps: float) -> "SyncState":
        if fps <= 0:
            raise ValueError("fps must be > 0")
        return cls(float(fps), 1.0 / float(fps))

    @classmethod
    def from_deltas(cls, deltas: Sequence[float], max_samples: Optional[int] = None) -> "SyncState":
        return cls.from_fps(estimate_frame_rate(deltas, max_samples))


class VirtualClock:
    """Clock that only moves when slept on."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += max(0.0, seconds)


class FramePacer:
    """Release frame indices no earlier than ``index / fps`` after start.

    When the consumer falls behind, every overdue frame is released at
    once; pacing ticks are dropped, frames are not.
    """

    def __init__(
        self,
        fps: float,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if fps <= 0:
            raise ValueError("fps must be > 0")
        if clock is None:
            virtual = VirtualClock()
            clock, sleep = virtual, virtual.sleep
        self._fps = float(fps)
        self._clock = clock
        self._sleep = sleep or time.sleep
        self.late_frames = 0

    @classmethod
    def realtime(cls, fps: float) -> "FramePacer":
        return cls(fps, time.monotonic, time.sleep)

    def schedule(self, count: int) -> Iterator[Tuple[int, float]]:
        """Yield ``(frame index, presentation offset seconds)`` pairs."""

        self.late_frames = 0
        interval = 1.0 / self._fps
        start = self._clock()
        next_index = 0
        while next_index < count:
            elapsed = self._clock() - start
            expected = int(math.floor(elapsed * self._fps + 1e-9))
            if expected > next_index:
                self.late_frames += min(expected, count - 1) - next_index
            while next_index <= expected and next_index < count:
                yield next_index, max(elapsed, next_index * interval)
                next_index += 1
            if next_index < count:
                self._sleep(max(0.0, next_index * interval - (self._clock() - start)))
