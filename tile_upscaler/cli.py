"""Command line entry point for the tile upscaler."""

from __future__ import annotations

import argparse
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from .builders import build_enhancer, build_pipeline, is_image
from .config import EngineOptions, EngineTarget, MergeMode, PipelineConfig
from .errors import TileUpscalerError
from .pipeline import enhance_image_file

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Create the CLI parser and return parsed arguments."""

    parser = argparse.ArgumentParser(description="Tiled neural upscaler for images and video")
    parser.add_argument("input", type=Path)
    parser.add_argument("-o", "--out", type=Path, required=True)
    parser.add_argument("--model", type=Path, default=None)
    parser.add_argument("--strict-model", action="store_true")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    tiling = parser.add_argument_group("Tiling")
    tiling.add_argument("--tile", type=int, default=256)
    tiling.add_argument("--overlap", type=int, default=0)
    tiling.add_argument("--scale", type=int, default=4)
    tiling.add_argument("--merge", type=str, default=MergeMode.OVERWRITE.value,
                        choices=[m.value for m in MergeMode])
    tiling.add_argument("--max-pixels", type=int, default=2048 * 2048)

    engine = parser.add_argument_group("Engine")
    engine.add_argument("--target", type=str, default=EngineTarget.CPU.value,
                        choices=[t.value for t in EngineTarget])
    engine.add_argument("--threads", type=int, default=0)
    engine.add_argument("--input-name", type=str, default="")
    engine.add_argument("--output-name", type=str, default="")
    engine.add_argument("--bgr", action="store_true")

    sched = parser.add_argument_group("Scheduling")
    sched.add_argument("--batch", type=int, default=2)
    sched.add_argument("--tile-workers", type=int, default=2)
    sched.add_argument("--no-pace", action="store_true")

    remux = parser.add_argument_group("Remux")
    remux.add_argument("--fps-samples", type=int, default=30)
    remux.add_argument("--audio-delay-ms", type=float, default=10.0)
    remux.add_argument("--tolerance-ms", type=float, default=50.0)
    remux.add_argument("--realtime", action="store_true")
    remux.add_argument("--fourcc", type=str, default="mp4v")
    remux.add_argument("--audio-bitrate", type=str, default="128k")
    remux.add_argument("--ffmpeg", type=str, default="ffmpeg")
    remux.add_argument("--ffprobe", type=str, default="ffprobe")

    reports = parser.add_argument_group("Reports")
    reports.add_argument("--metrics", type=Path, default=None)
    reports.add_argument("--timing", type=Path, default=None)

    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    """Convert CLI arguments into :class:`PipelineConfig`."""

    return PipelineConfig(
        input_path=args.input,
        output_path=args.out,
        model_path=args.model,
        tile_size=args.tile,
        tile_overlap=args.overlap,
        scale_factor=args.scale,
        merge_mode=MergeMode(args.merge),
        max_frame_pixels=args.max_pixels,
        batch_size=args.batch,
        max_concurrent_tiles=args.tile_workers,
        pace_batches=not args.no_pace,
        engine=EngineOptions(
            target=EngineTarget(args.target),
            num_threads=args.threads,
            input_name=args.input_name,
            output_name=args.output_name,
            swap_rb=args.bgr,
        ),
        fail_on_missing_model=args.strict_model,
        fps_sample_count=args.fps_samples,
        audio_delay_s=args.audio_delay_ms / 1000.0,
        duration_tolerance_s=args.tolerance_ms / 1000.0,
        realtime_mux=args.realtime,
        fourcc=args.fourcc,
        audio_bitrate=args.audio_bitrate,
        ffmpeg_bin=args.ffmpeg,
        ffprobe_bin=args.ffprobe,
        metrics_csv=args.metrics,
        timing_csv=args.timing,
    )


def _print_progress(value: float) -> None:
    print(f"\rProgress: {value:5.1f}%", end="", file=sys.stderr, flush=True)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point used by ``python -m tile_upscaler`` and scripts."""

    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = config_from_args(args)
    workers = cfg.batch_size * cfg.max_concurrent_tiles
    try:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tile") as executor:
            if is_image(cfg):
                stats = enhance_image_file(cfg.input_path, cfg.output_path,
                                           build_enhancer(cfg, executor))
            else:
                stats = build_pipeline(cfg, executor).run(_print_progress)
                print(file=sys.stderr)
    except TileUpscalerError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc
    print(f"Done. Stats: {stats}")


if __name__ == "__main__":  # pragma: no cover
    main()
