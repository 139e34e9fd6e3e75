"""Frame sources: decode videos and images into RGB frames."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import cv2
import numpy as np

from .frames import Frame, FrameSequence
from .interfaces import IFrameSource, ProgressFn
from .timing import SyncState, deltas_from_timestamps, estimate_frame_rate, uniform_timestamp_grid

logger = logging.getLogger(__name__)


def read_image(path: Path) -> np.ndarray:
    """Load an image file as an RGB ``uint8`` buffer."""

    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")
    bgr = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if bgr is None:
        raise RuntimeError(f"Failed to decode image: {path}")
    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)


class OpenCVFrameSource(IFrameSource):
    """Frame source based on :mod:`cv2`."""

    def __init__(self, path: Path, fps_sample_count: int = 30) -> None:
        if not path.exists():
            raise FileNotFoundError(f"Video not found: {path}")
        self._path = path
        self._sample_count = fps_sample_count
        cap = self._open()
        try:
            self._fps_hint = float(cap.get(cv2.CAP_PROP_FPS)) or 30.0
            self._frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
            self._width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            self._height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        finally:
            cap.release()
        self._sync: Optional[SyncState] = None

    def _open(self) -> "cv2.VideoCapture":
        cap = cv2.VideoCapture(str(self._path))
        if not cap.isOpened():
            raise RuntimeError(f"Failed to open video: {self._path}")
        return cap

    def info(self) -> Dict[str, float]:
        duration = (
            (self._frame_count / self._fps_hint)
            if (self._fps_hint > 0 and self._frame_count > 0)
            else 0.0
        )
        return {
            "width": float(self._width),
            "height": float(self._height),
            "fps": float(self._fps_hint),
            "frame_count": float(self._frame_count),
            "duration_s": duration,
        }

    def _timestamp(self, cap: "cv2.VideoCapture", idx: int) -> float:
        pos_ms = float(cap.get(cv2.CAP_PROP_POS_MSEC))
        if pos_ms <= 0.0 and idx > 0:
            return idx / self._fps_hint
        return pos_ms / 1000.0

    def sample_timestamps(self) -> List[float]:
        """Presentation times of the first ``fps_sample_count + 1`` frames."""

        cap = self._open()
        stamps: List[float] = []
        try:
            while len(stamps) <= self._sample_count and cap.grab():
                stamps.append(self._timestamp(cap, len(stamps)))
        finally:
            cap.release()
        return stamps

    def estimate_frame_rate(self) -> float:
        if self._sync is None:
            deltas = deltas_from_timestamps(self.sample_timestamps())
            if any(d > 0 for d in deltas):
                fps = estimate_frame_rate(deltas, self._sample_count)
            else:
                logger.warning("Too few frames to sample, using container fps %.3f", self._fps_hint)
                fps = round(self._fps_hint)
            self._sync = SyncState.from_fps(fps)
            logger.info("Estimated frame rate: %s fps", fps)
        return self._sync.estimated_fps

    def _count_frames(self) -> int:
        cap = self._open()
        count = 0
        try:
            while cap.grab():
                count += 1
        finally:
            cap.release()
        return count

    def _decoded(self) -> Iterator[Tuple[float, np.ndarray]]:
        cap = self._open()
        try:
            idx = 0
            while True:
                ok, frame = cap.read()
                if not ok:
                    break
                yield self._timestamp(cap, idx), cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                idx += 1
        finally:
            cap.release()

    def extract_frames(self, on_progress: Optional[ProgressFn] = None) -> FrameSequence:
        fps = self.estimate_frame_rate()
        duration = self.info()["duration_s"]
        if duration <= 0.0:
            duration = self._count_frames() / fps
        grid = uniform_timestamp_grid(duration, fps)
        frames: List[Frame] = []
        prev: Optional[Tuple[float, np.ndarray]] = None

        def emit(target: float, pixels: np.ndarray) -> None:
            frames.append(Frame(pixels, target, len(frames)))
            if on_progress is not None and grid:
                on_progress(len(frames) / len(grid))

        for ts, pixels in self._decoded():
            while len(frames) < len(grid) and grid[len(frames)] <= ts:
                target = grid[len(frames)]
                nearest_prev = prev is not None and (target - prev[0]) <= (ts - target)
                emit(target, prev[1] if nearest_prev else pixels)
            prev = (ts, pixels)
            if len(frames) >= len(grid):
                break

        if prev is None:
            raise RuntimeError(f"No frames decoded from {self._path}")
        # Grid slots past the last decoded frame repeat it.
        while len(frames) < len(grid):
            emit(grid[len(frames)], prev[1])

        frames.sort(key=lambda f: f.timestamp_s)
        logger.info("Extracted %d frames at %s fps over %.3fs", len(frames), fps, duration)
        return FrameSequence(frames, float(fps), duration, self._width, self._height)
