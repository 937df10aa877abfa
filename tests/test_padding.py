"""Tests for border extension."""

import pytest
import torch

from waifu2x_tiler.errors import GeometryError
from waifu2x_tiler.padding import PaddingMode, pad_tensor, torch_border_fill
from waifu2x_tiler.tensor_buffer import TensorBuffer


@pytest.fixture
def ramp():
    return TensorBuffer(torch.arange(8, dtype=torch.float32).reshape(1, 2, 4))


def test_replicate_values(ramp):
    padded = pad_tensor(ramp, (2, 1, 1, 0), PaddingMode.REPLICATE)

    assert padded.shape == (1, 3, 7)
    assert padded.data[0, 0].tolist() == [0, 0, 0, 1, 2, 3, 3]
    assert padded.data[0, 2].tolist() == [4, 4, 4, 5, 6, 7, 7]


def test_mirror_values(ramp):
    padded = pad_tensor(ramp, (2, 1, 0, 0), "mirror")

    assert padded.data[0, 0].tolist() == [2, 1, 0, 1, 2, 3, 2]


def test_mirror_wider_than_image():
    buffer = TensorBuffer(torch.rand((3, 3, 3)))
    padded = pad_tensor(buffer, (5, 5, 5, 5), PaddingMode.MIRROR)

    assert padded.shape == (3, 13, 13)
    assert torch.equal(padded.data[:, 5:8, 5:8], buffer.data)
    assert set(padded.data.unique().tolist()) <= set(buffer.data.unique().tolist())


def test_mirror_single_pixel_row_replicates():
    buffer = TensorBuffer(torch.tensor([[[1.0, 2.0, 3.0]]]))
    padded = pad_tensor(buffer, (0, 0, 2, 2), PaddingMode.MIRROR)

    assert padded.shape == (1, 5, 3)
    assert torch.equal(padded.data[0, 0], buffer.data[0, 0])


def test_zero_pad_is_a_no_op(ramp):
    assert pad_tensor(ramp, (0, 0, 0, 0), PaddingMode.REPLICATE) is ramp


def test_negative_pad_rejected(ramp):
    with pytest.raises(GeometryError):
        pad_tensor(ramp, (-1, 0, 0, 0), PaddingMode.REPLICATE)


def test_unknown_mode_rejected(ramp):
    with pytest.raises(ValueError):
        pad_tensor(ramp, (1, 1, 1, 1), "wrap")


def test_custom_border_fill_receives_pad_vector(ramp):
    calls = []

    def fill(tensor, left, right, top, bottom, mode):
        calls.append((left, right, top, bottom, mode))
        return torch_border_fill(tensor, left, right, top, bottom, mode)

    pad_tensor(ramp, (1, 2, 3, 4), PaddingMode.REPLICATE, border_fill=fill)
    assert calls == [(1, 2, 3, 4, PaddingMode.REPLICATE)]


def test_border_fill_shape_is_validated(ramp):
    def bad_fill(tensor, left, right, top, bottom, mode):
        return torch.zeros((1, 2, 2))

    with pytest.raises(GeometryError):
        pad_tensor(ramp, (1, 1, 1, 1), PaddingMode.REPLICATE, border_fill=bad_fill)
