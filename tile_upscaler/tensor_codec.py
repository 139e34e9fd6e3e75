"""Conversion between RGB pixel buffers and planar model tensors."""

from __future__ import annotations

import numpy as np

from .errors import InvalidGeometry


def tensor_length(tile_edge: int) -> int:
    """Number of floats in a ``[1, 3, tile_edge, tile_edge]`` tensor."""

    return 3 * tile_edge * tile_edge


def encode(pixels: np.ndarray, tile_edge: int, swap_rb: bool = False) -> np.ndarray:
    """Return a flat ``float32`` CHW tensor normalized to ``[0, 1]``.

    Content smaller than ``tile_edge`` is padded by replicating the last
    valid row, then the last valid column.
    """

    if tile_edge <= 0:
        raise InvalidGeometry(f"tile edge must be > 0, got {tile_edge}")
    height, width = pixels.shape[:2]
    if width <= 0 or height <= 0:
        raise InvalidGeometry(f"tile must be non-empty, got {width}x{height}")
    if width > tile_edge or height > tile_edge:
        raise InvalidGeometry(f"tile {width}x{height} exceeds tile edge {tile_edge}")

    rgb = pixels[:, :, :3]
    if height < tile_edge:
        rgb = np.concatenate(
            [rgb, np.repeat(rgb[-1:, :, :], tile_edge - height, axis=0)], axis=0
        )
    if width < tile_edge:
        rgb = np.concatenate(
            [rgb, np.repeat(rgb[:, -1:, :], tile_edge - width, axis=1)], axis=1
        )
    if swap_rb:
        rgb = rgb[:, :, ::-1]
    planar = np.transpose(rgb, (2, 0, 1)).astype(np.float32) / 255.0
    return np.ascontiguousarray(planar).ravel()


def decode(tensor: np.ndarray, tile_edge: int, scale: int, swap_rb: bool = False) -> np.ndarray:
    """Return the ``uint8`` RGB buffer of side ``tile_edge * scale``."""

    side = tile_edge * scale
    flat = np.asarray(tensor, dtype=np.float32).ravel()
    if flat.size != tensor_length(side):
        raise InvalidGeometry(
            f"tensor has {flat.size} values, expected {tensor_length(side)} for side {side}"
        )
    planar = flat.reshape(3, side, side)
    if swap_rb:
        planar = planar[::-1]
    samples = np.clip(np.rint(planar * 255.0), 0, 255).astype(np.uint8)
    return np.ascontiguousarray(np.transpose(samples, (1, 2, 0)))


def self_test(tile_edge: int = 16) -> None:
    """Check that ``decode(encode(x))`` reproduces ``x`` at scale 1."""

    rng = np.random.default_rng(0)
    sample = rng.integers(0, 256, size=(tile_edge, tile_edge, 3), dtype=np.uint8)
    for swap_rb in (False, True):
        restored = decode(encode(sample, tile_edge, swap_rb), tile_edge, 1, swap_rb)
        if not np.array_equal(restored, sample):
            raise RuntimeError("tensor codec round trip failed")
