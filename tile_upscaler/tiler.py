"""Tile grid planning and reassembly."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import MergeMode
from .errors import InvalidGeometry


@dataclass(frozen=True)
class TileRect:
    """Sub-rectangle of a frame in source pixel coordinates."""

    index: int
    origin_x: int
    origin_y: int
    width: int
    height: int

    def scaled(self, scale: int) -> Tuple[int, int, int, int]:
        """Return ``(x, y, w, h)`` in output coordinates."""

        return (
            self.origin_x * scale,
            self.origin_y * scale,
            self.width * scale,
            self.height * scale,
        )


@dataclass(frozen=True)
class Tile:
    """A planned rectangle together with its encoded model input."""

    rect: TileRect
    tensor: np.ndarray


def _axis_origins(length: int, tile_edge: int, overlap: int) -> List[int]:
    stride = tile_edge - overlap
    origins = []
    pos = 0
    while True:
        origins.append(pos)
        if pos + tile_edge >= length:
            break
        pos += stride
    return origins


def plan_tiles(width: int, height: int, tile_edge: int, overlap: int = 0) -> List[TileRect]:
    """Return the row-major tile grid covering a ``width`` x ``height`` frame.

    Edge tiles are clipped to the frame; they are never padded here.
    """

    if tile_edge <= 0:
        raise InvalidGeometry(f"tile edge must be > 0, got {tile_edge}")
    if width <= 0 or height <= 0:
        raise InvalidGeometry(f"frame must be non-empty, got {width}x{height}")
    if not 0 <= overlap < tile_edge:
        raise InvalidGeometry(f"overlap must be in [0, {tile_edge}), got {overlap}")

    rects: List[TileRect] = []
    for y in _axis_origins(height, tile_edge, overlap):
        for x in _axis_origins(width, tile_edge, overlap):
            rects.append(
                TileRect(
                    index=len(rects),
                    origin_x=x,
                    origin_y=y,
                    width=min(tile_edge, width - x),
                    height=min(tile_edge, height - y),
                )
            )
    return rects


def _edge_ramp(length: int, ramp_in: int, ramp_out: int) -> np.ndarray:
    weights = np.ones(length, dtype=np.float32)
    if ramp_in > 0:
        n = min(ramp_in, length)
        weights[:n] = np.arange(1, n + 1, dtype=np.float32) / (n + 1)
    if ramp_out > 0:
        n = min(ramp_out, length)
        weights[length - n:] = np.minimum(
            weights[length - n:],
            np.arange(n, 0, -1, dtype=np.float32) / (n + 1),
        )
    return weights


def _feather_weights(
    rect: TileRect, scale: int, overlap: int, frame_w: int, frame_h: int
) -> np.ndarray:
    band = overlap * scale
    _, _, w, h = rect.scaled(scale)
    wx = _edge_ramp(
        w,
        band if rect.origin_x > 0 else 0,
        band if rect.origin_x + rect.width < frame_w else 0,
    )
    wy = _edge_ramp(
        h,
        band if rect.origin_y > 0 else 0,
        band if rect.origin_y + rect.height < frame_h else 0,
    )
    return np.outer(wy, wx)


def merge_tiles(
    outputs: Sequence[Tuple[TileRect, np.ndarray]],
    scale: int,
    output_width: int,
    output_height: int,
    mode: MergeMode = MergeMode.OVERWRITE,
    overlap: int = 0,
) -> np.ndarray:
    """Place decoded tile outputs into one ``uint8`` RGB buffer.

    Each output must already be cropped to ``rect`` size times ``scale``.
    With :attr:`MergeMode.OVERWRITE` overlapping pixels take the value of
    the tile that comes last in ``outputs``. :attr:`MergeMode.FEATHER`
    blends linearly across the overlap band instead.
    """

    if scale <= 0:
        raise InvalidGeometry(f"scale must be > 0, got {scale}")
    if output_width <= 0 or output_height <= 0:
        raise InvalidGeometry(f"output must be non-empty, got {output_width}x{output_height}")

    canvas = np.zeros((output_height, output_width, 3), dtype=np.uint8)
    feather = mode is MergeMode.FEATHER and overlap > 0
    acc: Optional[np.ndarray] = None
    weight_sum: Optional[np.ndarray] = None
    if feather:
        acc = np.zeros((output_height, output_width, 3), dtype=np.float32)
        weight_sum = np.zeros((output_height, output_width), dtype=np.float32)

    frame_w = output_width // scale
    frame_h = output_height // scale
    for rect, pixels in outputs:
        x, y, w, h = rect.scaled(scale)
        if x + w > output_width or y + h > output_height:
            raise InvalidGeometry(
                f"tile {rect.index} at ({x}, {y}) size {w}x{h} exceeds "
                f"{output_width}x{output_height} output"
            )
        if pixels.shape[:2] != (h, w):
            raise InvalidGeometry(
                f"tile {rect.index} output is {pixels.shape[1]}x{pixels.shape[0]}, expected {w}x{h}"
            )
        if feather:
            weights = _feather_weights(rect, scale, overlap, frame_w, frame_h)
            acc[y:y + h, x:x + w] += pixels.astype(np.float32) * weights[:, :, None]
            weight_sum[y:y + h, x:x + w] += weights
        else:
            canvas[y:y + h, x:x + w] = pixels

    if feather:
        blended = acc / np.maximum(weight_sum, 1e-6)[:, :, None]
        canvas = np.clip(np.rint(blended), 0, 255).astype(np.uint8)
    return canvas
