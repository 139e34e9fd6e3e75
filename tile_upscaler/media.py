"""ffmpeg/ffprobe helpers: binary lookup, subprocess wrapper, probing."""

from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .errors import MediaToolError, MissingTool


@dataclass(frozen=True)
class MediaInfo:
    duration_s: float
    has_audio: bool
    audio_codec: Optional[str] = None


def resolve_binary(name: str) -> str:
    """Return the absolute path of ``name`` on ``PATH``."""

    found = shutil.which(name)
    if found is None:
        raise MissingTool(f"Required binary not found on PATH: {name}")
    return found


def run_subprocess(
    cmd: Sequence[object],
    *,
    check: bool = True,
    capture_output: bool = False,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    return subprocess.run(
        [str(part) for part in cmd],
        check=check,
        capture_output=capture_output,
        text=True,
        timeout=timeout,
    )


def probe_media(ffprobe_bin: str, path: Path) -> MediaInfo:
    """Read container duration and audio stream metadata with ffprobe."""
    cmd = [
        ffprobe_bin,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_streams",
        "-show_format",
        str(path),
    ]
    result = run_subprocess(cmd, capture_output=True)

    try:
        payload = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise MediaToolError(f"Failed to parse ffprobe output: {exc}") from exc

    video_stream = None
    audio_stream = None
    for stream in payload.get("streams", []):
        stream_type = stream.get("codec_type")
        if stream_type == "video" and video_stream is None:
            video_stream = stream
        elif stream_type == "audio" and audio_stream is None:
            audio_stream = stream

    duration_raw = payload.get("format", {}).get("duration") or (
        video_stream.get("duration") if video_stream else None
    ) or "0"
    try:
        duration_s = max(float(duration_raw), 0.0)
    except (TypeError, ValueError):
        duration_s = 0.0

    return MediaInfo(
        duration_s=duration_s,
        has_audio=audio_stream is not None,
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
    )
