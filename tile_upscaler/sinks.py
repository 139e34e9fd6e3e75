"""Frame sink implementations."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
import pandas as pd

from .errors import InvalidGeometry
from .frames import EnhancedFrame
from .interfaces import IFrameSink


def write_image(path: Path, pixels: np.ndarray, jpg_quality: int = 95) -> None:
    """Write an RGB buffer to ``path``; the suffix picks the format."""

    bgr = cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
    if path.suffix.lower() in (".jpg", ".jpeg"):
        ok = cv2.imwrite(str(path), bgr, [int(cv2.IMWRITE_JPEG_QUALITY), jpg_quality])
    else:
        ok = cv2.imwrite(str(path), bgr)
    if not ok:
        raise RuntimeError(f"Failed to write image: {path}")


class VideoFrameSink(IFrameSink):
    """Encode frames with ``cv2.VideoWriter`` and log their timing."""

    def __init__(
        self,
        path: Path,
        fps: float,
        size: Tuple[int, int],
        fourcc: str = "mp4v",
        timing_csv: Optional[Path] = None,
    ) -> None:
        width, height = size
        if width <= 0 or height <= 0:
            raise InvalidGeometry(f"frame size must be positive, got {width}x{height}")
        path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path
        self._size = (width, height)
        self._timing_csv = timing_csv
        self._writer = cv2.VideoWriter(
            str(path), cv2.VideoWriter_fourcc(*fourcc), float(fps), (width, height)
        )
        if not self._writer.isOpened():
            raise RuntimeError(f"Failed to open video writer: {path}")
        self._rows: List[Dict[str, float]] = []

    @property
    def frames_written(self) -> int:
        return len(self._rows)

    def write(self, frame: EnhancedFrame, presented_at_s: float) -> None:
        if (frame.width, frame.height) != self._size:
            raise InvalidGeometry(
                f"frame {frame.sequence_index} is {frame.width}x{frame.height}, "
                f"writer expects {self._size[0]}x{self._size[1]}"
            )
        self._writer.write(cv2.cvtColor(frame.pixels, cv2.COLOR_RGB2BGR))
        self._rows.append(
            {
                "frame_idx": float(frame.sequence_index),
                "timestamp_s": float(frame.timestamp_s),
                "presented_at_s": float(presented_at_s),
                "width": float(frame.width),
                "height": float(frame.height),
            }
        )

    def close(self) -> None:
        self._writer.release()
        if not self._rows or self._timing_csv is None:
            return
        df = pd.DataFrame(self._rows)
        df.sort_values(by=["frame_idx"], inplace=True)
        df.to_csv(self._timing_csv, index=False)
