"""Pipeline orchestration."""

from __future__ import annotations

import asyncio
import logging
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from .enhancer import TileEnhancer
from .frame_source import read_image
from .interfaces import IAudioExtractor, IFrameSource
from .metrics import score
from .progress import ProgressReporter
from .remux import Remuxer
from .scheduler import EnhancementScheduler
from .sinks import write_image

logger = logging.getLogger(__name__)


class VideoEnhancementPipeline:
    """Coordinate extraction, enhancement and remuxing of one video."""

    def __init__(
        self,
        input_video: Path,
        output_video: Path,
        source: IFrameSource,
        audio: IAudioExtractor,
        scheduler: EnhancementScheduler,
        remuxer: Remuxer,
        metrics_csv: Optional[Path] = None,
    ) -> None:
        self._input = input_video
        self._output = output_video
        self._source = source
        self._audio = audio
        self._scheduler = scheduler
        self._remuxer = remuxer
        self._metrics_csv = metrics_csv

    async def run_async(
        self, on_progress: Optional[Callable[[float], None]] = None
    ) -> Dict[str, float]:
        progress = ProgressReporter(on_progress)
        start = time.time()
        loop = asyncio.get_running_loop()

        sequence = await loop.run_in_executor(
            None, self._source.extract_frames, progress.phase("extract")
        )
        if not sequence.frames:
            raise RuntimeError(f"No frames extracted from {self._input}")

        with tempfile.TemporaryDirectory(prefix="tile_upscaler_") as tmp:
            work_dir = Path(tmp)
            track = await loop.run_in_executor(None, self._audio.extract, self._input, work_dir)
            progress.report("audio", 1.0)

            enhanced = await self._scheduler.enhance_sequence(
                sequence.frames, progress.phase("enhance")
            )

            artifact = await loop.run_in_executor(
                None,
                lambda: self._remuxer.mux(
                    enhanced,
                    sequence.fps,
                    track,
                    self._output,
                    sequence.duration_s,
                    work_dir,
                    on_render=progress.phase("encode"),
                    on_mux=progress.phase("remux"),
                ),
            )

        stats: Dict[str, float] = {
            "frames": float(len(enhanced)),
            "fps": float(sequence.fps),
            "duration_s": float(artifact.duration_s),
            "source_duration_s": float(sequence.duration_s),
            "has_audio": float(artifact.has_audio),
            "late_frames": float(self._remuxer.late_frames),
        }
        if self._metrics_csv is not None:
            report = await loop.run_in_executor(None, score, sequence.frames, enhanced)
            report.write_csv(self._metrics_csv)
            stats["psnr"] = report.psnr
            stats["ssim"] = report.ssim
            stats["baseline_psnr"] = report.baseline_psnr
            stats["baseline_ssim"] = report.baseline_ssim
        stats["elapsed_s"] = float(time.time() - start)
        return stats

    def run(self, on_progress: Optional[Callable[[float], None]] = None) -> Dict[str, float]:
        return asyncio.run(self.run_async(on_progress))


def enhance_image_file(input_path: Path, output_path: Path, enhancer: TileEnhancer) -> Dict[str, float]:
    """Upscale a still image file."""

    start = time.time()
    pixels = read_image(input_path)
    upscaled = enhancer.enhance_image(pixels)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    write_image(output_path, upscaled)
    logger.info("Wrote %s (%dx%d)", output_path, upscaled.shape[1], upscaled.shape[0])
    return {
        "width": float(upscaled.shape[1]),
        "height": float(upscaled.shape[0]),
        "elapsed_s": float(time.time() - start),
    }
