"""Sequential tile loops feeding the inference capability and the stitchers.

Both schedulers are generators: every tile yields a :class:`ProgressEvent`
followed by a :class:`TileResultEvent`, strictly in row-major order. The stage
output is the generator's return value, so a caller collects it with
``output = yield from scheduler.run()``.
"""

import logging

from .errors import GeometryError
from .inference import invoke
from .progress import Progress, TileResultEvent
from .stitching import OverlapCropStitcher, SeamBlendAccumulator
from .tiling import generate_overlap_tiles, iter_tiles

logger = logging.getLogger(__name__)


class TileScheduler:
    def __init__(self, plan, padded, inference, blend_filter, stage_name="", stage_index=0):
        expected = (padded.height, padded.width)
        if expected != (plan.padded_height, plan.padded_width):
            raise GeometryError(
                f"Padded input {padded.width}x{padded.height} does not match plan "
                f"{plan.padded_width}x{plan.padded_height}"
            )
        self.plan = plan
        self.padded = padded
        self.inference = inference
        self.blend_filter = blend_filter
        self.stage_name = stage_name
        self.stage_index = stage_index

    def run(self):
        plan = self.plan
        accumulator = SeamBlendAccumulator(plan, self.blend_filter)
        progress = Progress(plan.tile_count, self.stage_name)
        tile_size = plan.effective_tile_size
        out_size = plan.output_tile_size
        expected = (self.padded.channels, out_size, out_size)
        logger.debug("%s: scheduling %d tiles of %dpx", self.stage_name, plan.tile_count, tile_size)

        for row, col in iter_tiles(plan):
            x, y = plan.input_origin(row, col)
            tile = self.padded.crop(x, y, tile_size, tile_size)
            output = invoke(self.inference, tile.as_batch(), expected, f"tile ({row}, {col})")
            blended = accumulator.update(output, row, col)

            yield progress.update(row, col)
            yield self._tile_result(blended, row, col)

        return accumulator.finalize()

    def _tile_result(self, blended, row, col):
        """Clip a tile's footprint to the stage output and place it in output coordinates."""
        plan = self.plan
        buffer_x, buffer_y = plan.output_origin(row, col)
        size = plan.output_tile_size
        crop = plan.output_crop

        left = max(buffer_x, crop)
        top = max(buffer_y, crop)
        right = min(buffer_x + size, crop + plan.output_width)
        bottom = min(buffer_y + size, crop + plan.output_height)
        width, height = max(0, right - left), max(0, bottom - top)

        pixels = blended[:, top - buffer_y:top - buffer_y + height, left - buffer_x:left - buffer_x + width]
        return TileResultEvent(
            pixels=pixels,
            width=width,
            height=height,
            x_offset=left - crop,
            y_offset=top - crop,
            stage_name=self.stage_name,
            stage_index=self.stage_index,
        )


class OverlapCropScheduler:
    """Fixed-size tiles overlapped by ``margin``, pasted without weighting.

    Only valid when the margin comfortably exceeds any edge artifact the model
    produces.
    """

    def __init__(self, image, inference, scale, tile_size, margin, stage_name="", stage_index=0):
        self.image = image
        self.inference = inference
        self.scale = scale
        self.tile_size = tile_size
        self.margin = margin
        self.stage_name = stage_name
        self.stage_index = stage_index

    def run(self):
        image, scale = self.image, self.scale
        tiles = generate_overlap_tiles(image.height, image.width, self.tile_size, self.margin)
        stitcher = OverlapCropStitcher(image.channels, image.height, image.width, scale)
        progress = Progress(len(tiles), self.stage_name)
        logger.debug("%s: %d overlap tiles, margin %d", self.stage_name, len(tiles), self.margin)

        for tile in tiles:
            x, y, w, h = tile.crop
            crop = image.crop(x, y, w, h)
            expected = (image.channels, h * scale, w * scale)
            output = invoke(self.inference, crop.as_batch(), expected, f"tile ({tile.row}, {tile.col})")
            core = stitcher.update(output, tile)

            core_x, core_y, core_w, core_h = tile.core
            yield progress.update(tile.row, tile.col)
            yield TileResultEvent(
                pixels=core,
                width=core_w * scale,
                height=core_h * scale,
                x_offset=core_x * scale,
                y_offset=core_y * scale,
                stage_name=self.stage_name,
                stage_index=self.stage_index,
            )

        return stitcher.finalize()


__all__ = ["TileScheduler", "OverlapCropScheduler"]
