"""
Pytest configuration and fixtures for waifu2x_tiler tests.

Fake inference capabilities stand in for ONNX models:
    NearestUpscaler - nearest-neighbour upscale that discards ``offset`` border pixels
    FailingInference - raises after a number of successful calls

The comfy_host fixture stands in for the ComfyUI progress bar and prompt server.
"""

import sys
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest
import torch

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from waifu2x_tiler import progress  # noqa: E402
from waifu2x_tiler.tensor_buffer import TensorBuffer  # noqa: E402


class NearestUpscaler:
    """Upscales by pixel repetition and crops ``offset`` pixels from every side."""

    def __init__(self, scale=1, offset=0):
        self.scale = scale
        self.offset = offset
        self.calls = []

    def run(self, x):
        self.calls.append(tuple(x.shape))
        y = x.repeat_interleave(self.scale, dim=2).repeat_interleave(self.scale, dim=3)
        if self.offset:
            y = y[:, :, self.offset:-self.offset, self.offset:-self.offset]
        return y.clone()


class FailingInference:
    def __init__(self, fail_after=0, scale=1, offset=0):
        self.inner = NearestUpscaler(scale, offset)
        self.fail_after = fail_after

    def run(self, x):
        if len(self.inner.calls) >= self.fail_after:
            raise RuntimeError("kernel exploded")
        return self.inner.run(x)


def nearest_reference(buffer, scale):
    return buffer.data.repeat_interleave(scale, dim=1).repeat_interleave(scale, dim=2)


@pytest.fixture
def reference():
    """Nearest-neighbour upscale of a buffer, the exact output of NearestUpscaler stages."""
    return nearest_reference


@pytest.fixture
def nearest():
    return NearestUpscaler


@pytest.fixture
def failing():
    return FailingInference


@pytest.fixture
def random_image():
    """Factory for seeded random planar RGB buffers."""

    def _make(height, width, seed=0):
        generator = torch.Generator().manual_seed(seed)
        return TensorBuffer(torch.rand((3, height, width), generator=generator))

    return _make


@pytest.fixture
def gradient_pixels():
    """An interleaved uint8 RGB gradient, 40x30."""
    y, x = np.mgrid[0:30, 0:40]
    return np.stack([x * 6, y * 8, (x + y) * 3], axis=2).astype(np.uint8)


class FakeProgressBar:
    def __init__(self, total):
        self.total = total
        self.updates = []

    def update_absolute(self, value, total=None, preview=None):
        self.updates.append((value, total, preview))


class FakePromptServer:
    def __init__(self):
        self.texts = []

    def send_progress_text(self, text, node_id):
        self.texts.append((node_id, text))


@pytest.fixture
def comfy_host(monkeypatch):
    """Installs stand-ins for the ComfyUI progress APIs, as node 7 of a running prompt."""
    host = SimpleNamespace(bars=[], server=FakePromptServer())

    def make_bar(total):
        bar = FakeProgressBar(total)
        host.bars.append(bar)
        return bar

    monkeypatch.setattr(progress, "LEGACY_PROGRESS_AVAILABLE", True)
    monkeypatch.setattr(progress, "WEBSOCKET_PROGRESS_AVAILABLE", True)
    monkeypatch.setattr(progress, "comfy", SimpleNamespace(utils=SimpleNamespace(ProgressBar=make_bar)), raising=False)
    monkeypatch.setattr(progress, "get_executing_context", lambda: SimpleNamespace(node_id="7"), raising=False)
    monkeypatch.setattr(progress, "PromptServer", SimpleNamespace(instance=host.server), raising=False)
    return host
