"""Planar (channel-major) float buffers with zero-copy crop and in-place paste."""

from __future__ import annotations

from typing import Tuple

import torch

from .errors import GeometryError


class TensorBuffer:
    """Owns a ``(C, H, W)`` float32 tensor.

    ``crop`` returns a view sharing storage with the parent; ``paste`` writes
    into this buffer in place.
    """

    __slots__ = ("data",)

    def __init__(self, data: torch.Tensor):
        if data.dim() != 3:
            raise GeometryError(f"TensorBuffer expects (C, H, W), got shape {tuple(data.shape)}")
        if data.dtype != torch.float32:
            data = data.to(torch.float32)
        self.data = data

    @classmethod
    def zeros(cls, channels: int, height: int, width: int) -> "TensorBuffer":
        return cls(torch.zeros((channels, height, width), dtype=torch.float32))

    @property
    def channels(self) -> int:
        return self.data.shape[0]

    @property
    def height(self) -> int:
        return self.data.shape[1]

    @property
    def width(self) -> int:
        return self.data.shape[2]

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.channels, self.height, self.width)

    def crop(self, x: int, y: int, width: int, height: int) -> "TensorBuffer":
        if x < 0 or y < 0 or x + width > self.width or y + height > self.height:
            raise GeometryError(
                f"Crop ({x}, {y}, {width}x{height}) outside buffer {self.width}x{self.height}"
            )
        return TensorBuffer(self.data[:, y:y + height, x:x + width])

    def paste(self, source: "TensorBuffer", x: int, y: int) -> None:
        if source.channels != self.channels:
            raise GeometryError(
                f"Channel mismatch: pasting {source.channels} into {self.channels}"
            )
        if x < 0 or y < 0 or x + source.width > self.width or y + source.height > self.height:
            raise GeometryError(
                f"Paste of {source.width}x{source.height} at ({x}, {y}) "
                f"outside buffer {self.width}x{self.height}"
            )
        self.data[:, y:y + source.height, x:x + source.width].copy_(source.data)

    def as_batch(self) -> torch.Tensor:
        """Return a contiguous ``(1, C, H, W)`` tensor for inference."""
        return self.data.unsqueeze(0).contiguous()

    def clone(self) -> "TensorBuffer":
        return TensorBuffer(self.data.clone())

    def __repr__(self) -> str:
        return f"TensorBuffer(shape={self.shape})"
