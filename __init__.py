"""Waifu2x Tiling Upscaler - ComfyUI custom node for seam-blended tiled upscaling."""

from .waifu2x_tiler import NODE_CLASS_MAPPINGS, NODE_DISPLAY_NAME_MAPPINGS

__all__ = ["NODE_CLASS_MAPPINGS", "NODE_DISPLAY_NAME_MAPPINGS"]
