"""Tests for the inference adapters."""

from types import SimpleNamespace

import numpy as np
import pytest
import torch

from waifu2x_tiler import inference
from waifu2x_tiler.errors import InferenceError
from waifu2x_tiler.inference import (
    CPU_PROVIDERS,
    CUDA_PROVIDERS,
    OnnxInference,
    invoke,
    load_onnx_model,
    select_providers,
)


class DoublingSession:
    """Mimics an onnxruntime session for a 2x nearest model."""

    def __init__(self):
        self.feeds = []

    def get_inputs(self):
        return [SimpleNamespace(name="input")]

    def get_outputs(self):
        return [SimpleNamespace(name="output")]

    def run(self, output_names, feed):
        assert output_names == ["output"]
        x = feed["input"]
        self.feeds.append(x)
        return [x.repeat(2, axis=2).repeat(2, axis=3)]


class Returning:
    def __init__(self, value):
        self.value = value

    def run(self, x):
        return self.value


def test_onnx_inference_round_trip():
    session = DoublingSession()
    model = OnnxInference(session)
    x = torch.rand((1, 3, 4, 5), dtype=torch.float64)

    y = model.run(x)

    assert session.feeds[0].dtype == np.float32
    assert session.feeds[0].flags["C_CONTIGUOUS"]
    assert y.shape == (1, 3, 8, 10)
    assert y.dtype == torch.float32
    assert torch.allclose(y[0, :, ::2, ::2], x[0].float())


def test_invoke_squeezes_batch():
    output = invoke(Returning(torch.zeros((1, 3, 6, 6))), torch.zeros((1, 3, 6, 6)), (3, 6, 6))
    assert output.shape == (3, 6, 6)


def test_invoke_accepts_unbatched_and_numpy():
    output = invoke(Returning(np.ones((3, 2, 2))), torch.zeros((1, 3, 1, 1)), (3, 2, 2))
    assert isinstance(output, torch.Tensor)
    assert torch.all(output == 1)


def test_invoke_rejects_wrong_shape():
    with pytest.raises(InferenceError) as excinfo:
        invoke(Returning(torch.zeros((1, 3, 5, 6))), torch.zeros((1, 3, 6, 6)), (3, 6, 6), "tile (0, 1)")

    assert "invalid shape on tile (0, 1)" in excinfo.value.message
    assert "got (3, 5, 6), expected (3, 6, 6)" in excinfo.value.detail


def test_invoke_wraps_exceptions():
    class Broken:
        def run(self, x):
            raise ValueError("bad input")

    with pytest.raises(InferenceError) as excinfo:
        invoke(Broken(), torch.zeros((1, 3, 2, 2)), (3, 2, 2))

    assert "bad input" in str(excinfo.value)
    assert "ValueError" in excinfo.value.detail
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_select_providers_cpu():
    assert select_providers("cpu") == CPU_PROVIDERS


def test_select_providers_prefers_cuda(monkeypatch):
    monkeypatch.setattr(inference.ort, "get_available_providers", lambda: list(CUDA_PROVIDERS))
    assert select_providers("auto") == CUDA_PROVIDERS


def test_select_providers_cuda_fallback(monkeypatch):
    monkeypatch.setattr(inference.ort, "get_available_providers", lambda: ["CPUExecutionProvider"])
    assert select_providers("cuda") == CPU_PROVIDERS


def test_load_missing_model(tmp_path):
    with pytest.raises(InferenceError, match="Missing model file"):
        load_onnx_model(tmp_path / "scale2x.onnx", device="cpu")


def test_load_corrupt_model(tmp_path):
    path = tmp_path / "scale2x.onnx"
    path.write_bytes(b"not an onnx graph")

    with pytest.raises(InferenceError) as excinfo:
        load_onnx_model(path, device="cpu")

    assert "scale2x.onnx" in excinfo.value.message
    assert excinfo.value.detail
