"""Audio track extraction through ffmpeg."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from .errors import MediaToolError
from .frames import AudioTrack
from .interfaces import IAudioExtractor
from .media import MediaInfo, probe_media, run_subprocess

logger = logging.getLogger(__name__)


class FfmpegAudioExtractor(IAudioExtractor):
    """Copy the first audio stream out of a video, transcoding if needed."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        audio_bitrate: str = "128k",
        prober: Callable[[str, Path], MediaInfo] = probe_media,
    ) -> None:
        self._ffmpeg = ffmpeg_bin
        self._ffprobe = ffprobe_bin
        self._bitrate = audio_bitrate
        self._probe = prober

    def _ffmpeg_cmd(self, video: Path, target: Path, codec_args: list) -> list:
        return [
            self._ffmpeg,
            "-i", str(video),
            "-vn",
            "-map", "0:a:0",
            *codec_args,
            str(target),
            "-y", "-hide_banner", "-loglevel", "warning",
        ]

    def extract(self, video: Path, work_dir: Path) -> Optional[AudioTrack]:
        info = self._probe(self._ffprobe, video)
        if not info.has_audio:
            logger.info("No audio track in %s", video)
            return None

        copy_target = work_dir / "audio_track.mka"
        copy_result = run_subprocess(
            self._ffmpeg_cmd(video, copy_target, ["-c:a", "copy"]),
            check=False,
            capture_output=True,
        )
        if copy_result.returncode == 0 and copy_target.exists():
            return AudioTrack(copy_target, info.audio_codec, info.duration_s)

        # Stream copy failed, transcode to AAC for predictable mux support.
        logger.warning("Audio stream copy failed, transcoding to AAC")
        transcode_target = work_dir / "audio_track.m4a"
        transcode_result = run_subprocess(
            self._ffmpeg_cmd(video, transcode_target, ["-c:a", "aac", "-b:a", self._bitrate]),
            check=False,
            capture_output=True,
        )
        if transcode_result.returncode == 0 and transcode_target.exists():
            return AudioTrack(transcode_target, "aac", info.duration_s)

        raise MediaToolError(
            f"Audio extraction failed for {video}: {transcode_result.stderr or 'unknown error'}"
        )
