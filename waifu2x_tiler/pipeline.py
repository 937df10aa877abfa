"""Stage chaining: each stage tiles, infers and stitches the previous stage's output."""

import logging
import traceback

from .architectures import BlendedStage, OverlapCropStage, build_stages
from .blend_filter import LinearBlendFilter
from .errors import GeometryError, InferenceError
from .image_utils import buffer_to_interleaved
from .inference import load_onnx_model
from .models import ModelCache
from .padding import pad_tensor, torch_border_fill
from .progress import FatalErrorEvent, PipelineDoneEvent, StageDoneEvent, StatusEvent
from .scheduler import OverlapCropScheduler, TileScheduler
from .tiling import estimate_stage_memory, max_tile_size_for_budget, min_tile_size, plan_tiles

logger = logging.getLogger(__name__)


class UpscalePipeline:
    """Runs the stage list resolved from an :class:`UpscaleConfig`.

    Configuration errors surface from the constructor, before any tile work.
    ``run`` is a generator of events whose return value is the final
    :class:`TensorBuffer`; ``upscale`` drains it.
    """

    def __init__(self, config, cache=None, loader=None, border_fill=torch_border_fill, blend_filter_provider=None):
        self.config = config
        self.cache = cache if cache is not None else ModelCache()
        self.loader = loader or self._load_onnx
        self.border_fill = border_fill
        self.blend_filter_provider = blend_filter_provider or LinearBlendFilter(config.blend_size)
        self.stages = build_stages(config)

    def _load_onnx(self, handle):
        return load_onnx_model(handle.path, self.config.device)

    def tile_ceiling(self, scale):
        """Largest tile the memory budget allows at ``scale``, or None without a budget."""
        if not self.config.memory_budget:
            return None
        return max_tile_size_for_budget(self.config.memory_budget, scale)

    def stage_tile_size(self, stage):
        """Legal tile size for ``stage``, never above the memory budget's ceiling.

        Under a budget the single whole-image tile fallback is not allowed, so
        a ceiling too small to hold the context and blend margin raises
        GeometryError.
        """
        ceiling = self.tile_ceiling(stage.scale)
        tile_size = stage.tile_size_fn(self.config.tile_size, stage.scale, stage.offset, ceiling)
        if ceiling is None:
            return tile_size

        if tile_size != self.config.tile_size:
            logger.info(
                "Memory budget ceiling %dpx: %s tiles are %dpx (requested %d)",
                ceiling, stage.name, tile_size, self.config.tile_size,
            )
        if isinstance(stage, BlendedStage):
            smallest = min_tile_size(stage.scale, stage.offset, stage.blend_size)
            if tile_size < smallest:
                raise GeometryError(
                    f"Memory budget allows {tile_size}px tiles but {stage.name} needs at least {smallest}px"
                )
        return tile_size

    def _run_blended(self, stage, image, model, index, label):
        tile_size = self.stage_tile_size(stage)
        plan = plan_tiles(image.height, image.width, stage.scale, stage.offset, tile_size, stage.blend_size)
        logger.info(
            "%s: %dx%d tiles of %dpx, step %d, pad %s, buffer %dx%d (%.1f MB)",
            label, plan.w_blocks, plan.h_blocks, plan.effective_tile_size, plan.input_tile_step,
            plan.pad, plan.buffer_width, plan.buffer_height, estimate_stage_memory(plan) / 2**20,
        )
        padded = pad_tensor(image, plan.pad, stage.padding_mode, self.border_fill)
        blend_filter = self.blend_filter_provider.generate(stage.scale, stage.offset, plan.effective_tile_size)
        scheduler = TileScheduler(plan, padded, model, blend_filter, label, index)
        return (yield from scheduler.run())

    def _run_overlap_crop(self, stage, image, model, index, label):
        scheduler = OverlapCropScheduler(
            image, model, stage.scale, self.stage_tile_size(stage), stage.margin, label, index
        )
        return (yield from scheduler.run())

    def run(self, image):
        try:
            if not self.stages:
                yield StatusEvent("Nothing to do, returning the original image")
            total = len(self.stages)
            for index, stage in enumerate(self.stages):
                label = f"{index + 1}/{total} ({stage.model.label})"
                yield StatusEvent(f"Loading model {stage.model.label}")
                model = self.cache.get_or_load(stage.model, self.loader)

                yield StatusEvent(f"Running stage {label}")
                if isinstance(stage, BlendedStage):
                    output = yield from self._run_blended(stage, image, model, index, label)
                elif isinstance(stage, OverlapCropStage):
                    output = yield from self._run_overlap_crop(stage, image, model, index, label)
                else:
                    raise TypeError(f"Unknown stage type {type(stage).__name__}")

                # The next stage owns the output; the previous input is dropped
                image = output
                yield StageDoneEvent(label, index, image.width, image.height)
        except Exception as exc:
            detail = exc.detail if isinstance(exc, InferenceError) else None
            yield FatalErrorEvent(str(exc), detail or traceback.format_exc())
            raise

        yield PipelineDoneEvent(buffer_to_interleaved(image), image.width, image.height)
        return image

    def upscale(self, image):
        """Run every stage and return the final buffer, discarding events."""
        events = self.run(image)
        while True:
            try:
                next(events)
            except StopIteration as stop:
                return stop.value


__all__ = ["UpscalePipeline"]
