"""Stitching of tile outputs into the stage output buffer."""

import logging
from enum import Enum

import torch

from .errors import GeometryError, InferenceError
from .tensor_buffer import TensorBuffer
from .tiling import TilingPlan, estimate_stage_memory

logger = logging.getLogger(__name__)


class AccumulatorState(Enum):
    BUILDING = "building"
    FINALIZED = "finalized"


class SeamBlendAccumulator:
    """Running weighted mean of overlapping tile outputs.

    Each pixel ends up as ``sum(filter_k * value_k) / sum(filter_k)`` over the
    tiles ``k`` covering it, whatever order the tiles arrive in.
    """

    def __init__(self, plan: TilingPlan, blend_filter: torch.Tensor):
        channels, filter_h, filter_w = blend_filter.shape
        if filter_h != plan.output_tile_size or filter_w != plan.output_tile_size:
            raise GeometryError(
                f"Blend filter {filter_w}x{filter_h} does not match "
                f"tile output {plan.output_tile_size}px"
            )
        self.plan = plan
        self.blend_filter = blend_filter.to(torch.float32)
        self.pixels = torch.zeros((channels, plan.buffer_height, plan.buffer_width), dtype=torch.float32)
        self.weights = torch.zeros_like(self.pixels)
        self.state = AccumulatorState.BUILDING
        logger.debug(
            "Accumulator %dx%d allocated (%.1f MB)",
            plan.buffer_width, plan.buffer_height, estimate_stage_memory(plan, channels) / 2**20,
        )

    def update(self, tile_output: torch.Tensor, tile_row: int, tile_col: int) -> torch.Tensor:
        """Blend one tile's output in and return the updated pixels under its footprint."""
        if self.state is not AccumulatorState.BUILDING:
            raise RuntimeError("Cannot update a finalized accumulator")
        if tuple(tile_output.shape) != tuple(self.blend_filter.shape):
            raise InferenceError(
                f"Tile ({tile_row}, {tile_col}) output has shape {tuple(tile_output.shape)}, "
                f"expected {tuple(self.blend_filter.shape)}"
            )

        _, height, width = self.blend_filter.shape
        w_i, h_i = self.plan.output_origin(tile_row, tile_col)
        if h_i + height > self.plan.buffer_height or w_i + width > self.plan.buffer_width:
            raise GeometryError(
                f"Tile ({tile_row}, {tile_col}) at ({w_i}, {h_i}) overruns the "
                f"{self.plan.buffer_width}x{self.plan.buffer_height} buffer"
            )

        pixels = self.pixels[:, h_i:h_i + height, w_i:w_i + width]
        weights = self.weights[:, h_i:h_i + height, w_i:w_i + width]
        value = tile_output.to(torch.float32)

        next_weight = weights + self.blend_filter
        written = next_weight > 0
        # blend of 1 on a zero total weight is a plain first write
        blend = torch.where(
            written,
            self.blend_filter / torch.where(written, next_weight, torch.ones_like(next_weight)),
            torch.ones_like(next_weight),
        )
        pixels.mul_(1.0 - blend).add_(value * blend)
        weights.add_(self.blend_filter)
        return pixels.clone()

    def finalize(self) -> TensorBuffer:
        """Cut the stage output out of the buffer and release the accumulators."""
        if self.state is not AccumulatorState.BUILDING:
            raise RuntimeError("Accumulator already finalized")
        crop = self.plan.output_crop
        output = TensorBuffer(
            self.pixels[:, crop:crop + self.plan.output_height, crop:crop + self.plan.output_width].clone()
        )
        self.pixels = None
        self.weights = None
        self.state = AccumulatorState.FINALIZED
        return output


class OverlapCropStitcher:
    """Paste-only stitching for models without a blending requirement.

    The overlap margin is cut from every side of a tile output that borders
    another tile and the remaining core is pasted directly.
    """

    def __init__(self, channels, height, width, scale):
        self.scale = scale
        self.output = TensorBuffer.zeros(channels, height * scale, width * scale)
        self.state = AccumulatorState.BUILDING

    def update(self, tile_output: torch.Tensor, tile) -> torch.Tensor:
        if self.state is not AccumulatorState.BUILDING:
            raise RuntimeError("Cannot update a finalized stitcher")
        scale = self.scale
        _, _, crop_w, crop_h = tile.crop
        expected = (self.output.channels, crop_h * scale, crop_w * scale)
        if tuple(tile_output.shape) != expected:
            raise InferenceError(
                f"Tile ({tile.row}, {tile.col}) output has shape {tuple(tile_output.shape)}, "
                f"expected {expected}"
            )

        keep_x, keep_y = tile.keep
        core_x, core_y, core_w, core_h = tile.core
        core = TensorBuffer(tile_output.to(torch.float32)).crop(
            keep_x * scale, keep_y * scale, core_w * scale, core_h * scale
        )
        self.output.paste(core, core_x * scale, core_y * scale)
        return core.data.clone()

    def finalize(self) -> TensorBuffer:
        if self.state is not AccumulatorState.BUILDING:
            raise RuntimeError("Stitcher already finalized")
        self.state = AccumulatorState.FINALIZED
        output, self.output = self.output, None
        return output


__all__ = ["AccumulatorState", "SeamBlendAccumulator", "OverlapCropStitcher"]
