"""Core protocol interfaces used across the pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Protocol, Tuple

import numpy as np

from .frames import AudioTrack, EnhancedFrame, FrameSequence

ProgressFn = Callable[[float], None]


class IInferenceEngine(Protocol):
    """Maps one fixed-shape input tensor to one fixed-shape output tensor."""

    tile_size: int
    scale: int

    def initialize(self) -> "IInferenceEngine":
        """Load the model. Calling it again is a no-op."""

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """Return the flat ``float32`` output for a ``[1, 3, T, T]`` input."""


class IFrameSource(Protocol):
    """Decodes a video into ordered, timestamped frames."""

    def estimate_frame_rate(self) -> float:
        """Return the estimated frame rate of the source."""

    def extract_frames(self, on_progress: Optional[ProgressFn] = None) -> FrameSequence:
        """Return frames on a uniform ``1/fps`` timestamp grid."""


class IAudioExtractor(Protocol):
    """Pulls the audio stream out of a video."""

    def extract(self, video: Path, work_dir: Path) -> Optional[AudioTrack]:
        """Return the full audio track, or ``None`` when there is none."""


class IFrameSink(Protocol):
    """Encodes frames into a video stream."""

    def write(self, frame: EnhancedFrame, presented_at_s: float) -> None:
        """Append one frame to the stream."""

    def close(self) -> None:
        """Finalize the stream, flushing any buffered data."""


SinkFactory = Callable[[Path, float, Tuple[int, int]], IFrameSink]
