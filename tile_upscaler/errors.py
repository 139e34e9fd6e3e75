"""Exception taxonomy shared by every pipeline stage."""

from __future__ import annotations

from typing import Optional


class TileUpscalerError(Exception):
    """Base class for all pipeline errors."""


class InvalidGeometry(TileUpscalerError, ValueError):
    """Bad tile or frame dimensions supplied by the caller."""


class NotInitialized(TileUpscalerError, RuntimeError):
    """An inference engine was used before ``initialize()``."""


class InferenceFailure(TileUpscalerError, RuntimeError):
    """The model call failed or returned a malformed tensor."""

    def __init__(
        self,
        message: str,
        *,
        stage: str = "inference",
        tile_index: Optional[int] = None,
    ) -> None:
        self.detail = message
        self.stage = stage
        self.tile_index = tile_index
        where = f"[{stage}]" if tile_index is None else f"[{stage} tile={tile_index}]"
        super().__init__(f"{where} {message}")


class BatchFailure(TileUpscalerError, RuntimeError):
    """A frame inside a batch failed; the whole sequence run is aborted."""

    def __init__(self, sequence_index: int, batch_index: int, cause: BaseException) -> None:
        self.sequence_index = sequence_index
        self.batch_index = batch_index
        self.cause = cause
        super().__init__(
            f"[enhance batch={batch_index} frame={sequence_index}] {cause}"
        )


class RemuxFailure(TileUpscalerError, RuntimeError):
    """The assembled artifact does not match the source timing."""

    def __init__(
        self,
        message: str,
        *,
        expected_s: Optional[float] = None,
        actual_s: Optional[float] = None,
    ) -> None:
        self.expected_s = expected_s
        self.actual_s = actual_s
        super().__init__(f"[remux] {message}")


class MissingTool(TileUpscalerError, FileNotFoundError):
    """A required external binary (ffmpeg, ffprobe) is not on ``PATH``."""


class MediaToolError(TileUpscalerError, RuntimeError):
    """ffmpeg or ffprobe ran but could not produce the expected output."""
