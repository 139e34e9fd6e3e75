"""Single-frame tile enhancement: split, encode, infer, decode, merge."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from typing import List, Optional, Tuple

import numpy as np

from .config import MergeMode
from .errors import InferenceFailure, InvalidGeometry, NotInitialized
from .frames import EnhancedFrame, Frame, validate_pixels
from .interfaces import IInferenceEngine
from .tensor_codec import decode, encode, tensor_length
from .tiler import Tile, TileRect, merge_tiles, plan_tiles

logger = logging.getLogger(__name__)


class TileEnhancer:
    """Upscale one frame by running the engine on each tile.

    Up to ``max_concurrent_tiles`` tiles are in flight at once. Encoding,
    inference and decoding run on ``executor`` (the loop's default pool
    when ``None``) so the event loop never blocks on tensor math. The merge
    only starts once every tile has returned.
    """

    def __init__(
        self,
        engine: IInferenceEngine,
        max_concurrent_tiles: int = 2,
        overlap: int = 0,
        merge_mode: MergeMode = MergeMode.OVERWRITE,
        max_frame_pixels: int = 2048 * 2048,
        swap_rb: bool = False,
        executor: Optional[Executor] = None,
    ) -> None:
        if max_concurrent_tiles <= 0:
            raise ValueError("max_concurrent_tiles must be >= 1")
        if not 0 <= overlap < engine.tile_size:
            raise InvalidGeometry(f"overlap must be in [0, {engine.tile_size})")
        self._engine = engine
        self._max_tiles = max_concurrent_tiles
        self._overlap = overlap
        self._merge_mode = merge_mode
        self._max_pixels = max_frame_pixels
        self._swap_rb = swap_rb
        self._executor = executor

    @property
    def scale(self) -> int:
        return self._engine.scale

    @property
    def tile_size(self) -> int:
        return self._engine.tile_size

    def split(self, pixels: np.ndarray) -> List[Tile]:
        """Plan the tile grid for ``pixels`` and encode every tile."""

        height, width = pixels.shape[:2]
        tiles = []
        for rect in plan_tiles(width, height, self.tile_size, self._overlap):
            region = pixels[
                rect.origin_y:rect.origin_y + rect.height,
                rect.origin_x:rect.origin_x + rect.width,
            ]
            tiles.append(Tile(rect, encode(region, self.tile_size, self._swap_rb)))
        return tiles

    def _infer_tile(self, tile: Tile) -> Tuple[TileRect, np.ndarray]:
        rect = tile.rect
        try:
            output = self._engine.run(tile.tensor)
        except NotInitialized:
            raise
        except InferenceFailure as exc:
            raise InferenceFailure(exc.detail, stage=exc.stage, tile_index=rect.index) from exc
        except Exception as exc:
            raise InferenceFailure(
                f"engine raised {type(exc).__name__}: {exc}", tile_index=rect.index
            ) from exc
        expected = tensor_length(self.tile_size * self.scale)
        if np.asarray(output).size != expected:
            raise InferenceFailure(
                f"output has {np.asarray(output).size} values, expected {expected}",
                tile_index=rect.index,
            )
        decoded = decode(output, self.tile_size, self.scale, self._swap_rb)
        return rect, decoded[: rect.height * self.scale, : rect.width * self.scale]

    async def enhance_pixels(self, pixels: np.ndarray) -> np.ndarray:
        """Return ``pixels`` upscaled by the engine scale factor."""

        pixels = validate_pixels(pixels)
        height, width = pixels.shape[:2]
        if width * height > self._max_pixels:
            raise InvalidGeometry(
                f"frame {width}x{height} exceeds the {self._max_pixels} pixel limit"
            )
        loop = asyncio.get_running_loop()
        tiles = await loop.run_in_executor(self._executor, self.split, pixels)
        limiter = asyncio.Semaphore(self._max_tiles)

        async def run_one(tile: Tile) -> Tuple[TileRect, np.ndarray]:
            async with limiter:
                return await loop.run_in_executor(self._executor, self._infer_tile, tile)

        results = await asyncio.gather(*(run_one(t) for t in tiles), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        logger.debug("Merging %d tiles for %dx%d frame", len(tiles), width, height)
        return await loop.run_in_executor(
            self._executor,
            lambda: merge_tiles(
                results,
                self.scale,
                width * self.scale,
                height * self.scale,
                self._merge_mode,
                self._overlap,
            ),
        )

    async def enhance_frame(self, frame: Frame) -> EnhancedFrame:
        pixels = await self.enhance_pixels(frame.pixels)
        return EnhancedFrame.from_source(frame, pixels)

    def enhance_image(self, pixels: np.ndarray) -> np.ndarray:
        """Synchronous helper for still images."""

        return asyncio.run(self.enhance_pixels(pixels))
