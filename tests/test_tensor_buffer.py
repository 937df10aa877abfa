"""Tests for planar tensor buffers."""

import pytest
import torch

from waifu2x_tiler.errors import GeometryError
from waifu2x_tiler.tensor_buffer import TensorBuffer


def test_crop_is_a_view():
    buffer = TensorBuffer.zeros(3, 10, 12)
    crop = buffer.crop(2, 3, 4, 5)

    assert crop.shape == (3, 5, 4)
    crop.data.fill_(1.0)
    assert float(buffer.data.sum()) == 3 * 5 * 4


def test_paste_in_place():
    buffer = TensorBuffer.zeros(3, 10, 12)
    buffer.paste(TensorBuffer(torch.ones((3, 2, 3))), 9, 8)

    assert float(buffer.data[:, 8:10, 9:12].min()) == 1.0
    assert float(buffer.data.sum()) == 3 * 2 * 3


@pytest.mark.parametrize("x,y,w,h", [(-1, 0, 2, 2), (0, 0, 13, 2), (11, 9, 2, 2)])
def test_crop_out_of_bounds(x, y, w, h):
    with pytest.raises(GeometryError):
        TensorBuffer.zeros(1, 10, 12).crop(x, y, w, h)


def test_paste_validation():
    buffer = TensorBuffer.zeros(3, 4, 4)
    with pytest.raises(GeometryError):
        buffer.paste(TensorBuffer.zeros(1, 2, 2), 0, 0)
    with pytest.raises(GeometryError):
        buffer.paste(TensorBuffer.zeros(3, 2, 2), 3, 0)


def test_requires_planar_tensor():
    with pytest.raises(GeometryError):
        TensorBuffer(torch.zeros((1, 3, 4, 4)))


def test_converts_to_float32_and_batches():
    buffer = TensorBuffer(torch.zeros((3, 2, 2), dtype=torch.uint8))

    assert buffer.data.dtype == torch.float32
    batch = buffer.crop(0, 0, 1, 2).as_batch()
    assert batch.shape == (1, 3, 2, 1)
    assert batch.is_contiguous()
