import numpy as np
import pytest

from tile_upscaler.errors import InvalidGeometry
from tile_upscaler.tensor_codec import decode, encode, self_test, tensor_length


@pytest.mark.parametrize("width,height", [(1, 1), (3, 7), (8, 2), (8, 8)])
def test_encode_always_fills_fixed_tensor(width, height) -> None:
    pixels = np.full((height, width, 3), 17, dtype=np.uint8)
    tensor = encode(pixels, 8)
    assert tensor.dtype == np.float32
    assert tensor.size == tensor_length(8) == 3 * 8 * 8


def test_encode_is_planar_and_normalized() -> None:
    pixels = np.zeros((2, 2, 3), dtype=np.uint8)
    pixels[..., 0] = 255
    pixels[..., 2] = 51
    planes = encode(pixels, 2).reshape(3, 2, 2)
    np.testing.assert_allclose(planes[0], 1.0)
    np.testing.assert_allclose(planes[1], 0.0)
    np.testing.assert_allclose(planes[2], 0.2)


def test_encode_pads_by_edge_replication() -> None:
    pixels = np.arange(2 * 3 * 3, dtype=np.uint8).reshape(2, 3, 3)
    planes = encode(pixels, 5).reshape(3, 5, 5) * 255.0
    red = np.rint(planes[0]).astype(int)
    expected = np.pad(pixels[..., 0].astype(int), ((0, 3), (0, 2)), mode="edge")
    np.testing.assert_array_equal(red, expected)
    assert red[4, 4] == pixels[1, 2, 0]


def test_encode_rejects_oversized_tile() -> None:
    with pytest.raises(InvalidGeometry):
        encode(np.zeros((9, 4, 3), dtype=np.uint8), 8)


def test_round_trip_at_scale_one_is_exact() -> None:
    rng = np.random.default_rng(3)
    pixels = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)
    np.testing.assert_array_equal(decode(encode(pixels, 16), 16, 1), pixels)


def test_round_trip_with_swapped_channels() -> None:
    pixels = np.zeros((4, 4, 3), dtype=np.uint8)
    pixels[..., 0] = 9
    planes = encode(pixels, 4, swap_rb=True).reshape(3, 4, 4)
    assert np.allclose(planes[2], 9 / 255.0)
    np.testing.assert_array_equal(decode(encode(pixels, 4, True), 4, 1, True), pixels)


def test_decode_clamps_and_rounds() -> None:
    planes = np.zeros((3, 2, 2), dtype=np.float32)
    planes[0] = -0.5
    planes[1] = 1.5
    planes[2] = 100.4 / 255.0
    pixels = decode(planes.ravel(), 1, 2)
    assert pixels.shape == (2, 2, 3)
    assert np.all(pixels[..., 0] == 0)
    assert np.all(pixels[..., 1] == 255)
    assert np.all(pixels[..., 2] == 100)


def test_decode_rejects_wrong_length() -> None:
    with pytest.raises(InvalidGeometry):
        decode(np.zeros(10, dtype=np.float32), 4, 2)


def test_self_test_passes() -> None:
    self_test(8)
