"""Waifu2x Tiling Upscaler - seam-blended tiled super-resolution with bounded memory."""

from .upscaler import NODE_CLASS_MAPPINGS, NODE_DISPLAY_NAME_MAPPINGS

__all__ = ["NODE_CLASS_MAPPINGS", "NODE_DISPLAY_NAME_MAPPINGS"]
