"""Weight masks used to blend overlapping tile outputs."""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol

import torch

from .errors import GeometryError
from .tiling import DEFAULT_BLEND_SIZE


class BlendFilterProvider(Protocol):
    def generate(self, scale: int, offset: int, tile_size: int) -> torch.Tensor:
        """Return a ``(C, tile_size*scale - 2*offset, same)`` weight mask."""
        ...


@lru_cache(maxsize=32)
def _linear_ramp(length: int, blend_size: int) -> torch.Tensor:
    ramp = torch.ones(length, dtype=torch.float32)
    fade = min(blend_size, length // 2)
    for i in range(fade):
        value = (i + 1) / (blend_size + 1)
        ramp[i] = value
        ramp[length - 1 - i] = value
    return ramp


class LinearBlendFilter:
    """Separable linear falloff over ``blend_size`` output pixels at each edge.

    Every weight is strictly positive, so a pixel covered by a single tile
    (image borders) keeps that tile's value unchanged.
    """

    def __init__(self, blend_size: int = DEFAULT_BLEND_SIZE, channels: int = 3):
        self.blend_size = blend_size
        self.channels = channels

    def generate(self, scale: int, offset: int, tile_size: int) -> torch.Tensor:
        size = tile_size * scale - 2 * offset
        if size <= 0:
            raise GeometryError(
                f"Tile {tile_size} at scale {scale} leaves no output after offset {offset}"
            )
        ramp = _linear_ramp(size, self.blend_size)
        mask = ramp[:, None] * ramp[None, :]
        return mask.unsqueeze(0).expand(self.channels, size, size).contiguous()


__all__ = ["BlendFilterProvider", "LinearBlendFilter"]
