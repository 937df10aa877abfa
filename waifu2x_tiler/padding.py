"""Border extension of planar tensors before tiling."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Sequence

import torch
import torch.nn.functional as F

from .errors import GeometryError
from .tensor_buffer import TensorBuffer

logger = logging.getLogger(__name__)


class PaddingMode(str, Enum):
    REPLICATE = "replicate"
    MIRROR = "mirror"


# extend(tensor, left, right, top, bottom, mode) -> tensor
BorderFill = Callable[[torch.Tensor, int, int, int, int, PaddingMode], torch.Tensor]


def _reflect(x: torch.Tensor, left: int, right: int, top: int, bottom: int) -> torch.Tensor:
    # F.pad(mode="reflect") needs pad < size, so wide pads are applied in passes
    while left or right or top or bottom:
        height, width = x.shape[-2:]
        if height == 1 or width == 1:
            return F.pad(x, (left, right, top, bottom), mode="replicate")
        step_l, step_r = min(left, width - 1), min(right, width - 1)
        step_t, step_b = min(top, height - 1), min(bottom, height - 1)
        x = F.pad(x, (step_l, step_r, step_t, step_b), mode="reflect")
        left, right, top, bottom = left - step_l, right - step_r, top - step_t, bottom - step_b
    return x


def torch_border_fill(tensor, left, right, top, bottom, mode):
    """Default border fill backed by ``torch.nn.functional.pad``."""
    batch = tensor.unsqueeze(0)
    if PaddingMode(mode) is PaddingMode.MIRROR:
        padded = _reflect(batch, left, right, top, bottom)
    else:
        padded = F.pad(batch, (left, right, top, bottom), mode="replicate")
    return padded.squeeze(0)


def pad_tensor(
    buffer: TensorBuffer,
    pad: Sequence[int],
    mode: PaddingMode,
    border_fill: BorderFill = torch_border_fill,
) -> TensorBuffer:
    """Extend ``buffer`` by ``pad = (left, right, top, bottom)`` using ``mode``."""
    left, right, top, bottom = (int(p) for p in pad)
    if min(left, right, top, bottom) < 0:
        raise GeometryError(f"Negative padding {tuple(pad)}")
    if not (left or right or top or bottom):
        return buffer

    mode = PaddingMode(mode)
    padded = border_fill(buffer.data, left, right, top, bottom, mode)

    expected = (buffer.channels, buffer.height + top + bottom, buffer.width + left + right)
    if tuple(padded.shape) != expected:
        raise GeometryError(
            f"Border fill returned shape {tuple(padded.shape)}, expected {expected}"
        )
    logger.debug("Padded %s by %s (%s)", buffer.shape, (left, right, top, bottom), mode.value)
    return TensorBuffer(padded)


__all__ = ["PaddingMode", "BorderFill", "torch_border_fill", "pad_tensor"]
