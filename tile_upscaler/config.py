"""Configuration models for the tile upscaler pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import InvalidGeometry


class EngineTarget(str, Enum):
    """Compute targets understood by the OpenCV DNN runtime."""

    CPU = "cpu"
    OPENCL = "opencl"
    OPENCL_FP16 = "opencl_fp16"
    CUDA = "cuda"
    CUDA_FP16 = "cuda_fp16"  # half precision, fastest on supported GPUs


class MergeMode(str, Enum):
    """How overlapping tile outputs are combined."""

    OVERWRITE = "overwrite"  # last write wins in tile order
    FEATHER = "feather"


@dataclass(frozen=True)
class EngineOptions:
    """Every option the inference runtime recognizes.

    ``target`` picks the backend/target pair, ``num_threads`` caps the
    threads OpenCV may use per forward pass (0 keeps the library default),
    ``input_name``/``output_name`` select named blobs for multi-IO graphs
    and ``swap_rb`` feeds BGR planes to models trained on BGR data.
    """

    target: EngineTarget = EngineTarget.CPU
    num_threads: int = 0
    input_name: str = ""
    output_name: str = ""
    swap_rb: bool = False

    def __post_init__(self) -> None:
        if self.num_threads < 0:
            raise ValueError("num_threads must be >= 0")


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable container with pipeline configuration options."""

    # IO
    input_path: Path
    output_path: Path
    model_path: Optional[Path] = None

    # Tiling
    tile_size: int = 256
    tile_overlap: int = 0
    scale_factor: int = 4
    merge_mode: MergeMode = MergeMode.OVERWRITE
    max_frame_pixels: int = 2048 * 2048

    # Scheduling
    batch_size: int = 2
    max_concurrent_tiles: int = 2
    pace_batches: bool = True

    # Engine
    engine: EngineOptions = field(default_factory=EngineOptions)
    fail_on_missing_model: bool = False

    # Timing
    fps_sample_count: int = 30

    # Remux
    audio_delay_s: float = 0.01
    duration_tolerance_s: float = 0.05
    realtime_mux: bool = False
    fourcc: str = "mp4v"
    audio_bitrate: str = "128k"
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"

    # Reports
    metrics_csv: Optional[Path] = None
    timing_csv: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.tile_size <= 0:
            raise InvalidGeometry("tile_size must be > 0")
        if self.scale_factor <= 0:
            raise InvalidGeometry("scale_factor must be > 0")
        if not 0 <= self.tile_overlap < self.tile_size:
            raise InvalidGeometry("tile_overlap must be in [0, tile_size)")
        if self.max_frame_pixels <= 0:
            raise InvalidGeometry("max_frame_pixels must be > 0")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be >= 1")
        if self.max_concurrent_tiles <= 0:
            raise ValueError("max_concurrent_tiles must be >= 1")
        if self.fps_sample_count < 10:
            raise ValueError("fps_sample_count must be >= 10")
        if self.audio_delay_s < 0:
            raise ValueError("audio_delay_s must be >= 0")
        if self.duration_tolerance_s <= 0:
            raise ValueError("duration_tolerance_s must be > 0")
        if len(self.fourcc) != 4:
            raise ValueError("fourcc must be exactly four characters")
