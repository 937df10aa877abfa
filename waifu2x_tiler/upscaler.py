"""ComfyUI node running the seam-blended waifu2x pipeline."""

import logging

import torch

from .config import NOISE_LEVELS, SCALES, STYLES, Architecture, load_config
from .image_utils import buffer_to_image_tensor, image_tensor_to_buffer
from .models import ModelCache
from .pipeline import UpscalePipeline
from .progress import HostProgressReporter, ProgressEvent, StatusEvent, TileResultEvent
from .tiling import DEFAULT_BLEND_SIZE, DEFAULT_TILE_SIZE, TILE_SIZE_PRESETS

logger = logging.getLogger(__name__)


class Waifu2xTilingUpscaler:
    def __init__(self, cache=None, loader=None, reporter_factory=HostProgressReporter):
        # Models stay loaded for as long as this node instance lives
        self.cache = cache if cache is not None else ModelCache()
        self.loader = loader
        self.reporter_factory = reporter_factory

    @classmethod
    def INPUT_TYPES(s):
        return {
            "required": {
                "image": ("IMAGE",),
                "architecture": ([a.value for a in Architecture], {
                    "default": Architecture.SWIN_UNET.value,
                    "tooltip": "Model family. cunet uses art models only; upconv_7 supports 2x only."
                }),
                "style": (list(STYLES), {
                    "default": "art",
                    "tooltip": "Model style matching the source material."
                }),
                "noise_level": (["none"] + [str(n) for n in NOISE_LEVELS], {
                    "default": "none",
                    "tooltip": "JPEG noise reduction strength. none skips the denoise stage."
                }),
                "scale": ([str(s) for s in SCALES], {
                    "default": "2",
                    "tooltip": "Upscale factor."
                }),
                "tile_size": ("INT", {
                    "default": DEFAULT_TILE_SIZE,
                    "min": TILE_SIZE_PRESETS[0],
                    "max": 8192,
                    "step": 4,
                    "tooltip": "Requested tile size; adjusted to what the model accepts. Smaller tiles use less memory but run slower."
                }),
                "blend_size": ("INT", {
                    "default": DEFAULT_BLEND_SIZE,
                    "min": 0,
                    "max": 128,
                    "step": 1,
                    "tooltip": "Overlap between neighbouring tile outputs that is smoothly blended."
                }),
                "models_dir": ("STRING", {
                    "default": "models/waifu2x",
                    "tooltip": "Directory holding <architecture>/<style>/<model>.onnx files."
                }),
            },
            "optional": {
                "memory_budget_mb": ("INT", {
                    "default": 0,
                    "min": 0,
                    "max": 65536,
                    "step": 64,
                    "tooltip": "Caps the tile size so one tile's buffers fit in this many MB. 0 disables the cap."
                }),
            }
        }

    RETURN_TYPES = ("IMAGE",)
    FUNCTION = "upscale"
    CATEGORY = "image/upscaling"

    def upscale(self, image, architecture, style, noise_level, scale, tile_size, blend_size, models_dir,
                memory_budget_mb=0):
        config = load_config({
            "architecture": architecture,
            "style": style,
            "noise_level": noise_level,
            "scale": scale,
            "tile_size": tile_size,
            "blend_size": blend_size,
            "models_dir": models_dir,
            "memory_budget": memory_budget_mb * 2**20 if memory_budget_mb else None,
        })
        pipeline = UpscalePipeline(config, cache=self.cache, loader=self.loader)
        reporter = self.reporter_factory()

        frames = []
        for frame in image:
            events = pipeline.run(image_tensor_to_buffer(frame))
            progress = None
            while True:
                try:
                    event = next(events)
                except StopIteration as stop:
                    frames.append(buffer_to_image_tensor(stop.value))
                    break
                if isinstance(event, StatusEvent):
                    logger.info(event.message)
                    reporter.status(event.message)
                elif isinstance(event, ProgressEvent):
                    progress = event
                    if event.completed == event.total:
                        logger.info("[%s] %d tiles done", event.stage_name, event.total)
                elif isinstance(event, TileResultEvent) and progress is not None:
                    reporter.report(progress, event)

        return (torch.stack(frames, dim=0),)


NODE_CLASS_MAPPINGS = {
    "Waifu2xTilingUpscaler": Waifu2xTilingUpscaler
}

NODE_DISPLAY_NAME_MAPPINGS = {
    "Waifu2xTilingUpscaler": "Waifu2x Tiling Upscaler"
}
