"""Image utility functions for converting between interleaved pixels and planar buffers."""

import numpy as np
import torch
from PIL import Image

from .tensor_buffer import TensorBuffer


def interleaved_to_buffer(pixels):
    """Convert an ``(H, W, C)`` uint8 array to a planar [0, 1] buffer, dropping alpha."""
    array = np.asarray(pixels)
    if array.ndim == 2:
        array = np.stack([array] * 3, axis=2)
    array = array[:, :, :3].astype(np.float32) / 255.0
    return TensorBuffer(torch.from_numpy(np.ascontiguousarray(array.transpose(2, 0, 1))))


def buffer_to_interleaved(buffer):
    """Convert a planar buffer to an ``(H, W, 3)`` uint8 array."""
    array = buffer.data.mul(255).round().clamp(0, 255).byte()
    return array.permute(1, 2, 0).contiguous().numpy()


def buffer_to_pil(buffer):
    return Image.fromarray(buffer_to_interleaved(buffer))


def image_tensor_to_buffer(tensor):
    """Convert one ComfyUI ``IMAGE`` frame ``(H, W, C)`` to a planar buffer."""
    return TensorBuffer(tensor[:, :, :3].permute(2, 0, 1).contiguous().float())


def buffer_to_image_tensor(buffer):
    return buffer.data.clamp(0, 1).permute(1, 2, 0).contiguous()
