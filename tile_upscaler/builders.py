"""Factory helpers for assembling the pipeline from configuration."""

from __future__ import annotations

from concurrent.futures import Executor
from typing import Optional

from .audio import FfmpegAudioExtractor
from .config import PipelineConfig
from .engine import build_engine
from .enhancer import TileEnhancer
from .frame_source import OpenCVFrameSource
from .media import resolve_binary
from .pipeline import VideoEnhancementPipeline
from .remux import Remuxer
from .scheduler import EnhancementScheduler
from .tensor_codec import self_test

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp"}


def is_image(cfg: PipelineConfig) -> bool:
    return cfg.input_path.suffix.lower() in IMAGE_SUFFIXES


def build_enhancer(cfg: PipelineConfig, executor: Optional[Executor] = None) -> TileEnhancer:
    """Instantiate the engine and wrap it in a :class:`TileEnhancer`."""

    self_test()
    engine = build_engine(cfg).initialize()
    return TileEnhancer(
        engine,
        max_concurrent_tiles=cfg.max_concurrent_tiles,
        overlap=cfg.tile_overlap,
        merge_mode=cfg.merge_mode,
        max_frame_pixels=cfg.max_frame_pixels,
        swap_rb=cfg.engine.swap_rb,
        executor=executor,
    )


def build_pipeline(cfg: PipelineConfig, executor: Optional[Executor] = None) -> VideoEnhancementPipeline:
    """Assemble the full :class:`VideoEnhancementPipeline`."""

    ffmpeg = resolve_binary(cfg.ffmpeg_bin)
    ffprobe = resolve_binary(cfg.ffprobe_bin)
    source = OpenCVFrameSource(cfg.input_path, cfg.fps_sample_count)
    audio = FfmpegAudioExtractor(ffmpeg, ffprobe, cfg.audio_bitrate)
    scheduler = EnhancementScheduler(
        build_enhancer(cfg, executor),
        batch_size=cfg.batch_size,
        pace_batches=cfg.pace_batches,
    )
    remuxer = Remuxer(
        ffmpeg,
        ffprobe,
        audio_delay_s=cfg.audio_delay_s,
        duration_tolerance_s=cfg.duration_tolerance_s,
        audio_bitrate=cfg.audio_bitrate,
        fourcc=cfg.fourcc,
        timing_csv=cfg.timing_csv,
        realtime=cfg.realtime_mux,
    )
    return VideoEnhancementPipeline(
        cfg.input_path,
        cfg.output_path,
        source,
        audio,
        scheduler,
        remuxer,
        metrics_csv=cfg.metrics_csv,
    )
