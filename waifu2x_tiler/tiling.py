"""Tiling utilities for dividing images into overlapping tiles."""

import logging
import math
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from .errors import GeometryError

logger = logging.getLogger(__name__)

# Tile sizes offered to users, smallest (least memory, slowest) first
TILE_SIZE_PRESETS = (16, 32, 48, 64, 96, 128, 192, 256, 384)
DEFAULT_TILE_SIZE = 96
DEFAULT_BLEND_SIZE = 16
FLOAT_BYTES = 4


@dataclass(frozen=True)
class TilingPlan:
    """Grid and buffer geometry for one stage.

    ``pad`` is ``(left, right, top, bottom)`` in input pixels. The stage output
    is cut out of the ``buffer_height x buffer_width`` accumulator at
    ``output_crop`` with size ``output_height x output_width``.
    """

    h_blocks: int
    w_blocks: int
    input_tile_step: int
    output_tile_step: int
    pad: Tuple[int, int, int, int]
    buffer_height: int
    buffer_width: int
    effective_tile_size: int
    scale: int
    offset: int
    input_offset: int
    image_height: int
    image_width: int

    @property
    def tile_count(self) -> int:
        return self.h_blocks * self.w_blocks

    @property
    def output_tile_size(self) -> int:
        return self.effective_tile_size * self.scale - 2 * self.offset

    @property
    def padded_height(self) -> int:
        return self.image_height + self.pad[2] + self.pad[3]

    @property
    def padded_width(self) -> int:
        return self.image_width + self.pad[0] + self.pad[1]

    @property
    def output_height(self) -> int:
        return self.image_height * self.scale

    @property
    def output_width(self) -> int:
        return self.image_width * self.scale

    @property
    def output_crop(self) -> int:
        return self.input_offset * self.scale - self.offset

    def input_origin(self, row: int, col: int) -> Tuple[int, int]:
        """Top-left ``(x, y)`` of a tile in the padded input."""
        return col * self.input_tile_step, row * self.input_tile_step

    def output_origin(self, row: int, col: int) -> Tuple[int, int]:
        """Top-left ``(x, y)`` of a tile's output in the accumulator buffer."""
        return col * self.output_tile_step, row * self.output_tile_step


def _grow_blocks(extent: int, step: int, tile_size: int) -> Tuple[int, int]:
    blocks, covered = 0, 0
    while covered < extent:
        covered = blocks * step + tile_size
        blocks += 1
    return blocks, covered


def plan_tiles(x_h, x_w, scale, offset, tile_size, blend_size=DEFAULT_BLEND_SIZE):
    """Compute the tiling grid and padding for an ``x_h x x_w`` image.

    When the tile is too small to hold its context and blend margin the whole
    image becomes a single tile and ``effective_tile_size`` grows to match.
    """
    if x_h <= 0 or x_w <= 0:
        raise GeometryError(f"Cannot tile an empty image ({x_w}x{x_h})")
    if scale < 1:
        raise GeometryError(f"Scale must be at least 1, got {scale}")
    if offset < 0 or blend_size < 0:
        raise GeometryError(f"Offset and blend size must be non-negative ({offset}, {blend_size})")

    input_offset = math.ceil(offset / scale)
    input_blend = math.ceil(blend_size / scale)
    input_tile_step = tile_size - (2 * input_offset + input_blend)

    if input_tile_step <= 0:
        longest = max(x_h, x_w)
        effective_tile_size = longest + 2 * input_offset
        logger.info(
            "Tile size %d too small for offset %d and blend %d; using one %dpx tile",
            tile_size, input_offset, input_blend, effective_tile_size,
        )
        h_blocks = w_blocks = 1
        input_tile_step = longest
        input_h = input_w = effective_tile_size
    else:
        effective_tile_size = tile_size
        h_blocks, input_h = _grow_blocks(x_h + 2 * input_offset, input_tile_step, tile_size)
        w_blocks, input_w = _grow_blocks(x_w + 2 * input_offset, input_tile_step, tile_size)

    if h_blocks <= 0 or w_blocks <= 0:
        raise GeometryError(f"Tiling grid has no blocks ({h_blocks}x{w_blocks})")

    pad = (
        input_offset,
        input_w - (x_w + input_offset),
        input_offset,
        input_h - (x_h + input_offset),
    )
    return TilingPlan(
        h_blocks=h_blocks,
        w_blocks=w_blocks,
        input_tile_step=input_tile_step,
        output_tile_step=input_tile_step * scale,
        pad=pad,
        buffer_height=input_h * scale,
        buffer_width=input_w * scale,
        effective_tile_size=effective_tile_size,
        scale=scale,
        offset=offset,
        input_offset=input_offset,
        image_height=x_h,
        image_width=x_w,
    )


def iter_tiles(plan: TilingPlan) -> Iterator[Tuple[int, int]]:
    """Yield ``(row, col)`` in row-major order."""
    for row in range(plan.h_blocks):
        for col in range(plan.w_blocks):
            yield row, col


# Tile-size functions. The inference kernels only accept particular spatial
# sizes; an incompatible size corrupts the output without raising.
#
# Each takes an optional ``ceiling``: when the legal size for the request is
# larger, the largest legal size at or below the ceiling is used instead, and
# GeometryError is raised if there is none.

def _swin_unet_legal(tile_size):
    return (tile_size - 16) % 12 == 0 and (tile_size - 16) % 16 == 0


def swin_unet_tile_size(tile_size, scale, offset, ceiling=None):
    size = tile_size
    while not _swin_unet_legal(size):
        size += 1
    if ceiling is None or size <= ceiling:
        return size

    size = ceiling
    while size >= 16 and not _swin_unet_legal(size):
        size -= 1
    if size < 16:
        raise GeometryError(f"No swin_unet tile size fits within {ceiling}px")
    return size


def cunet_tile_size(tile_size, scale, offset, ceiling=None):
    size = tile_size + 2 * math.ceil(offset / scale)
    size = max(size - size % 4, 4)
    if ceiling is None or size <= ceiling:
        return size

    size = ceiling - ceiling % 4
    if size < 4:
        raise GeometryError(f"No cunet tile size fits within {ceiling}px")
    return size


def fixed_tile_size(size):
    def _tile_size(tile_size, scale, offset, ceiling=None):
        if ceiling is not None and size > ceiling:
            raise GeometryError(f"Fixed {size}px tiles do not fit within {ceiling}px")
        return size
    return _tile_size


def min_tile_size(scale, offset, blend_size=DEFAULT_BLEND_SIZE):
    """Smallest tile that still leaves a positive step between neighbours."""
    return 2 * math.ceil(offset / scale) + math.ceil(blend_size / scale) + 1


def max_tile_size_for_budget(memory_budget, scale, channels=3):
    """Largest square tile whose input and output float buffers fit ``memory_budget`` bytes."""
    per_pixel = FLOAT_BYTES * channels * (1 + scale * scale)
    return max(1, int(math.isqrt(max(0, int(memory_budget)) // per_pixel)))


def estimate_stage_memory(plan: TilingPlan, channels=3):
    """Bytes held by the pixel and weight accumulators of a stage."""
    return 2 * FLOAT_BYTES * channels * plan.buffer_height * plan.buffer_width


@dataclass(frozen=True)
class OverlapTile:
    """A tile for paste-only stitching.

    ``core`` is the ``(x, y, w, h)`` region this tile owns in the input;
    ``crop`` is the region fed to the model, extended by the margin wherever a
    neighbouring tile exists.
    """

    row: int
    col: int
    core: Tuple[int, int, int, int]
    crop: Tuple[int, int, int, int]

    @property
    def keep(self) -> Tuple[int, int]:
        """Offset of the core inside the crop, ``(x, y)``."""
        return self.core[0] - self.crop[0], self.core[1] - self.crop[1]


def generate_overlap_tiles(height, width, tile_size, margin) -> List[OverlapTile]:
    """Generate row-major tiles whose cores partition the image."""
    if height <= 0 or width <= 0:
        raise GeometryError(f"Cannot tile an empty image ({width}x{height})")
    step = tile_size - 2 * margin
    if step <= 0:
        raise GeometryError(f"Tile size {tile_size} leaves no core with overlap margin {margin}")

    tiles = []
    for row, y in enumerate(range(0, height, step)):
        for col, x in enumerate(range(0, width, step)):
            core_w = min(step, width - x)
            core_h = min(step, height - y)

            # Only overlap where there are adjacent tiles
            left = margin if x > 0 else 0
            top = margin if y > 0 else 0
            right = margin if x + core_w < width else 0
            bottom = margin if y + core_h < height else 0

            tiles.append(OverlapTile(
                row=row,
                col=col,
                core=(x, y, core_w, core_h),
                crop=(x - left, y - top, core_w + left + right, core_h + top + bottom),
            ))
    return tiles
