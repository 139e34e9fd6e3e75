"""Frame containers passed between pipeline stages.

Pixel buffers are ``uint8`` arrays shaped ``(height, width, 3)`` in RGB
order. They are never mutated after being handed downstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import numpy as np

from .errors import InvalidGeometry


def validate_pixels(pixels: np.ndarray) -> np.ndarray:
    """Check that ``pixels`` is a non-empty RGB(A) ``uint8`` buffer.

    An alpha channel is dropped; the returned array is always 3-channel.
    """

    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise InvalidGeometry(f"expected an (H, W, 3|4) buffer, got shape {pixels.shape}")
    height, width = pixels.shape[:2]
    if width <= 0 or height <= 0:
        raise InvalidGeometry(f"frame must be non-empty, got {width}x{height}")
    if pixels.dtype != np.uint8:
        raise InvalidGeometry(f"expected uint8 samples, got {pixels.dtype}")
    return pixels[:, :, :3]


@dataclass(frozen=True)
class Frame:
    """A decoded source frame at its presentation position."""

    pixels: np.ndarray
    timestamp_s: float
    sequence_index: int

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class EnhancedFrame:
    """An upscaled frame; timing fields are copied from the source frame."""

    pixels: np.ndarray
    timestamp_s: float
    sequence_index: int

    @classmethod
    def from_source(cls, frame: Frame, pixels: np.ndarray) -> "EnhancedFrame":
        return cls(pixels, frame.timestamp_s, frame.sequence_index)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class FrameSequence:
    """Result of decoding a video into an evenly spaced frame grid."""

    frames: List[Frame]
    fps: float
    duration_s: float
    width: int
    height: int


@dataclass(frozen=True)
class AudioTrack:
    """Opaque encoded audio covering the full source duration."""

    path: Path
    codec: Optional[str] = None
    duration_s: Optional[float] = None


@dataclass(frozen=True)
class VideoArtifact:
    """The final remuxed output."""

    path: Path
    duration_s: float
    frame_count: int
    fps: float
    has_audio: bool
