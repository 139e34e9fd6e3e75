"""Reassemble enhanced frames and the source audio into one video."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .errors import RemuxFailure
from .frames import AudioTrack, EnhancedFrame, VideoArtifact
from .interfaces import IFrameSink, ProgressFn, SinkFactory
from .media import MediaInfo, probe_media, run_subprocess
from .sinks import VideoFrameSink
from .timing import FramePacer

logger = logging.getLogger(__name__)


def check_duration(actual_s: float, expected_s: float, tolerance_s: float) -> None:
    """Raise :class:`RemuxFailure` when durations differ by more than ``tolerance_s``."""

    if abs(actual_s - expected_s) > tolerance_s:
        raise RemuxFailure(
            f"output lasts {actual_s:.3f}s, source lasts {expected_s:.3f}s "
            f"(tolerance {tolerance_s:.3f}s)",
            expected_s=expected_s,
            actual_s=actual_s,
        )


class Remuxer:
    """Render frames at the source rate, then attach the audio track.

    The audio input is delayed by ``audio_delay_s`` and both streams are
    cut to the source duration. The delay is an empirical sync offset,
    not derived from the input.
    """

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        audio_delay_s: float = 0.01,
        duration_tolerance_s: float = 0.05,
        audio_bitrate: str = "128k",
        fourcc: str = "mp4v",
        timing_csv: Optional[Path] = None,
        realtime: bool = False,
        sink_factory: Optional[SinkFactory] = None,
        prober: Callable[[str, Path], MediaInfo] = probe_media,
    ) -> None:
        if audio_delay_s < 0:
            raise ValueError("audio_delay_s must be >= 0")
        if duration_tolerance_s <= 0:
            raise ValueError("duration_tolerance_s must be > 0")
        self._ffmpeg = ffmpeg_bin
        self._ffprobe = ffprobe_bin
        self._audio_delay = audio_delay_s
        self._tolerance = duration_tolerance_s
        self._audio_bitrate = audio_bitrate
        self._realtime = realtime
        self._probe = prober
        self._sink_factory = sink_factory or (
            lambda path, fps, size: VideoFrameSink(path, fps, size, fourcc, timing_csv)
        )
        self.late_frames = 0

    def render(
        self,
        frames: Sequence[EnhancedFrame],
        fps: float,
        path: Path,
        on_progress: Optional[ProgressFn] = None,
    ) -> int:
        """Encode ``frames`` into a silent video stream at ``fps``."""

        if not frames:
            raise RemuxFailure("no frames to render")
        ordered = sorted(frames, key=lambda f: f.sequence_index)
        size = (ordered[0].width, ordered[0].height)
        sink: IFrameSink = self._sink_factory(path, fps, size)
        pacer = FramePacer.realtime(fps) if self._realtime else FramePacer(fps)
        written = 0
        try:
            for index, presented_at in pacer.schedule(len(ordered)):
                sink.write(ordered[index], presented_at)
                written += 1
                if on_progress is not None:
                    on_progress(written / len(ordered))
        finally:
            sink.close()
        self.late_frames = pacer.late_frames
        if pacer.late_frames:
            logger.info("Renderer fell behind by %d frame slots", pacer.late_frames)
        return written

    def _mux_cmd(self, video: Path, audio: AudioTrack, output: Path, duration_s: float,
                 audio_codec: List[str]) -> List[str]:
        return [
            self._ffmpeg,
            "-i", str(video),
            "-itsoffset", f"{self._audio_delay:.3f}",
            "-i", str(audio.path),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            *audio_codec,
            "-t", f"{duration_s:.3f}",
            str(output),
            "-y", "-hide_banner", "-loglevel", "warning",
        ]

    def attach_audio(
        self,
        video: Path,
        audio: Optional[AudioTrack],
        output: Path,
        duration_s: float,
    ) -> None:
        """Mux optional audio track into a pre-rendered video stream."""

        if audio is None or not audio.path.exists():
            if video != output:
                shutil.move(str(video), str(output))
            return

        # Try stream-copy first (lossless, fast).
        copy_result = run_subprocess(
            self._mux_cmd(video, audio, output, duration_s, ["-c:a", "copy"]),
            check=False,
            capture_output=True,
        )
        if copy_result.returncode == 0 and output.exists():
            return

        logger.warning("Audio stream copy into container failed, transcoding to AAC")
        result = run_subprocess(
            self._mux_cmd(
                video, audio, output, duration_s, ["-c:a", "aac", "-b:a", self._audio_bitrate]
            ),
            check=False,
            capture_output=True,
        )
        if result.returncode != 0 or not output.exists():
            raise RemuxFailure(f"ffmpeg could not attach audio: {result.stderr}")

    def mux(
        self,
        frames: Sequence[EnhancedFrame],
        fps: float,
        audio: Optional[AudioTrack],
        output: Path,
        source_duration_s: float,
        work_dir: Path,
        on_render: Optional[ProgressFn] = None,
        on_mux: Optional[ProgressFn] = None,
    ) -> VideoArtifact:
        """Produce the final artifact and verify its duration."""

        output.parent.mkdir(parents=True, exist_ok=True)
        silent = work_dir / f"video_only{output.suffix or '.mp4'}"
        written = self.render(frames, fps, silent, on_render)
        self.attach_audio(silent, audio, output, source_duration_s)
        if on_mux is not None:
            on_mux(0.5)

        info = self._probe(self._ffprobe, output)
        check_duration(info.duration_s, source_duration_s, self._tolerance)
        if audio is not None and not info.has_audio:
            raise RemuxFailure("audio track missing from output")
        if on_mux is not None:
            on_mux(1.0)
        logger.info("Wrote %s (%.3fs, %d frames)", output, info.duration_s, written)
        return VideoArtifact(
            path=output,
            duration_s=info.duration_s,
            frame_count=written,
            fps=float(fps),
            has_audio=info.has_audio,
        )
