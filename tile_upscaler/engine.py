"""Inference engine implementations."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from .config import EngineOptions, EngineTarget, PipelineConfig
from .errors import InferenceFailure, InvalidGeometry, NotInitialized
from .interfaces import IInferenceEngine
from .tensor_codec import tensor_length

logger = logging.getLogger(__name__)


def _backend_and_target(target: EngineTarget) -> tuple[int, int]:
    dnn = cv2.dnn
    return {
        EngineTarget.CPU: (dnn.DNN_BACKEND_OPENCV, dnn.DNN_TARGET_CPU),
        EngineTarget.OPENCL: (dnn.DNN_BACKEND_OPENCV, dnn.DNN_TARGET_OPENCL),
        EngineTarget.OPENCL_FP16: (dnn.DNN_BACKEND_OPENCV, dnn.DNN_TARGET_OPENCL_FP16),
        EngineTarget.CUDA: (dnn.DNN_BACKEND_CUDA, dnn.DNN_TARGET_CUDA),
        EngineTarget.CUDA_FP16: (dnn.DNN_BACKEND_CUDA, dnn.DNN_TARGET_CUDA_FP16),
    }[target]


def _check_output(output: np.ndarray, tile_size: int, scale: int) -> np.ndarray:
    flat = np.asarray(output, dtype=np.float32).ravel()
    expected = tensor_length(tile_size * scale)
    if flat.size != expected:
        raise InferenceFailure(f"model returned {flat.size} values, expected {expected}")
    return flat


class DnnInferenceEngine(IInferenceEngine):
    """Fixed-shape super-resolution model run through ``cv2.dnn``.

    ``cv2.dnn.Net`` keeps per-call state, so every worker thread lazily
    loads its own network. Calls on different threads never share a net.
    """

    def __init__(
        self,
        model_path: Path,
        tile_size: int,
        scale: int,
        options: Optional[EngineOptions] = None,
    ) -> None:
        if tile_size <= 0 or scale <= 0:
            raise InvalidGeometry("tile_size and scale must be > 0")
        self.tile_size = tile_size
        self.scale = scale
        self.options = options or EngineOptions()
        self._model_path = model_path
        self._local = threading.local()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _load_net(self) -> "cv2.dnn.Net":
        net = cv2.dnn.readNet(str(self._model_path))
        backend, target = _backend_and_target(self.options.target)
        net.setPreferableBackend(backend)
        net.setPreferableTarget(target)
        return net

    def _thread_net(self) -> "cv2.dnn.Net":
        net = getattr(self._local, "net", None)
        if net is None:
            net = self._load_net()
            self._local.net = net
        return net

    def initialize(self) -> "DnnInferenceEngine":
        if self._initialized:
            return self
        model_path = self._model_path.resolve()
        if not model_path.exists():
            raise FileNotFoundError(f"Missing model {model_path}")
        if self.options.num_threads > 0:
            cv2.setNumThreads(self.options.num_threads)
        logger.info("Loading model %s (target=%s)", model_path, self.options.target.value)
        self._thread_net()
        self._initialized = True
        return self

    def run(self, tensor: np.ndarray) -> np.ndarray:
        if not self._initialized:
            raise NotInitialized("initialize() must be called before run()")
        flat = np.asarray(tensor, dtype=np.float32).ravel()
        if flat.size != tensor_length(self.tile_size):
            raise InferenceFailure(
                f"input has {flat.size} values, expected {tensor_length(self.tile_size)}"
            )
        blob = flat.reshape(1, 3, self.tile_size, self.tile_size)
        net = self._thread_net()
        try:
            net.setInput(blob, self.options.input_name)
            if self.options.output_name:
                output = net.forward(self.options.output_name)
            else:
                output = net.forward()
        except cv2.error as exc:
            raise InferenceFailure(f"forward pass failed: {exc}") from exc
        return _check_output(output, self.tile_size, self.scale)


class InterpolationEngine(IInferenceEngine):
    """Model-free fallback that resizes each plane with OpenCV."""

    def __init__(self, tile_size: int, scale: int, interpolation: int = cv2.INTER_CUBIC) -> None:
        if tile_size <= 0 or scale <= 0:
            raise InvalidGeometry("tile_size and scale must be > 0")
        self.tile_size = tile_size
        self.scale = scale
        self._interpolation = interpolation
        self._initialized = False

    def initialize(self) -> "InterpolationEngine":
        self._initialized = True
        return self

    def run(self, tensor: np.ndarray) -> np.ndarray:
        if not self._initialized:
            raise NotInitialized("initialize() must be called before run()")
        flat = np.asarray(tensor, dtype=np.float32).ravel()
        if flat.size != tensor_length(self.tile_size):
            raise InferenceFailure(
                f"input has {flat.size} values, expected {tensor_length(self.tile_size)}"
            )
        hwc = np.transpose(flat.reshape(3, self.tile_size, self.tile_size), (1, 2, 0))
        side = self.tile_size * self.scale
        resized = cv2.resize(hwc, (side, side), interpolation=self._interpolation)
        planar = np.transpose(np.clip(resized, 0.0, 1.0), (2, 0, 1))
        return _check_output(np.ascontiguousarray(planar), self.tile_size, self.scale)


def build_engine(cfg: PipelineConfig) -> IInferenceEngine:
    """Create the appropriate inference engine based on :class:`PipelineConfig`."""

    if cfg.model_path is None:
        if cfg.fail_on_missing_model:
            raise ValueError("model_path must be set when a model is required.")
        logger.warning("No model configured, using bicubic interpolation")
        return InterpolationEngine(cfg.tile_size, cfg.scale_factor)
    engine = DnnInferenceEngine(cfg.model_path, cfg.tile_size, cfg.scale_factor, cfg.engine)
    try:
        return engine.initialize()
    except (FileNotFoundError, cv2.error) as exc:
        if cfg.fail_on_missing_model:
            raise
        logger.warning("Model load failed (%s), falling back to bicubic", exc)
        return InterpolationEngine(cfg.tile_size, cfg.scale_factor)
