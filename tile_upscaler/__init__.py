"""Tile Upscaler package."""

from .config import EngineOptions, EngineTarget, MergeMode, PipelineConfig
from .enhancer import TileEnhancer
from .errors import (
    BatchFailure,
    InferenceFailure,
    InvalidGeometry,
    MediaToolError,
    MissingTool,
    NotInitialized,
    RemuxFailure,
    TileUpscalerError,
)
from .frames import EnhancedFrame, Frame
from .pipeline import VideoEnhancementPipeline, enhance_image_file
from .scheduler import EnhancementScheduler
from .cli import main

__all__ = [
    "PipelineConfig",
    "EngineOptions",
    "EngineTarget",
    "MergeMode",
    "Frame",
    "EnhancedFrame",
    "TileEnhancer",
    "EnhancementScheduler",
    "VideoEnhancementPipeline",
    "enhance_image_file",
    "TileUpscalerError",
    "InvalidGeometry",
    "NotInitialized",
    "InferenceFailure",
    "BatchFailure",
    "RemuxFailure",
    "MissingTool",
    "MediaToolError",
    "main",
]
