"""Adapters around the external inference capability."""

from __future__ import annotations

import logging
import traceback
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple, Union

import numpy as np
import onnxruntime as ort
import torch

from .errors import InferenceError

logger = logging.getLogger(__name__)

CPU_PROVIDERS: Tuple[str, ...] = ("CPUExecutionProvider",)
CUDA_PROVIDERS: Tuple[str, ...] = ("CUDAExecutionProvider", "CPUExecutionProvider")


class InferenceCapability(Protocol):
    def run(self, x: torch.Tensor) -> torch.Tensor:
        """Map ``(1, C, H, W)`` to ``(1, C, H*scale - 2*offset, W*scale - 2*offset)``."""
        ...


class OnnxInference:
    """Runs an ONNX session through its first named input and output."""

    def __init__(self, session):
        self.session = session
        self.input_name = session.get_inputs()[0].name
        self.output_name = session.get_outputs()[0].name

    def run(self, x: torch.Tensor) -> torch.Tensor:
        feed = np.ascontiguousarray(x.detach().cpu().numpy(), dtype=np.float32)
        output = self.session.run([self.output_name], {self.input_name: feed})[0]
        return torch.from_numpy(np.asarray(output, dtype=np.float32))

    def __repr__(self) -> str:
        return f"OnnxInference(input={self.input_name!r}, output={self.output_name!r})"


def select_providers(device: str) -> Sequence[str]:
    normalized = (device or "auto").lower()
    if normalized == "cpu":
        return CPU_PROVIDERS
    available = set(ort.get_available_providers())
    if "CUDAExecutionProvider" in available:
        return CUDA_PROVIDERS
    if normalized == "cuda":
        logger.warning("CUDAExecutionProvider unavailable, falling back to CPU")
    return CPU_PROVIDERS


def load_onnx_model(path: Union[str, Path], device: str = "auto") -> OnnxInference:
    path = Path(path)
    if not path.exists():
        raise InferenceError(f"Missing model file: {path}")
    try:
        session = ort.InferenceSession(str(path), providers=list(select_providers(device)))
    except Exception as exc:
        raise InferenceError(f"Failed to load model {path.name}: {exc}", traceback.format_exc()) from exc
    logger.info("Loaded model %s", path.name)
    return OnnxInference(session)


def invoke(
    capability: InferenceCapability,
    batch: torch.Tensor,
    expected: Tuple[int, int, int],
    label: Optional[str] = None,
) -> torch.Tensor:
    """Run ``capability`` on ``batch`` and return a ``(C, H, W)`` output of shape ``expected``.

    A ``(1, C, H, W)`` or ``(C, H, W)`` output is accepted; anything else, and
    any exception from the capability, becomes an :class:`InferenceError`.
    """
    where = f" on {label}" if label else ""
    try:
        output = capability.run(batch)
    except InferenceError:
        raise
    except Exception as exc:
        raise InferenceError(f"Inference failed{where}: {exc}", traceback.format_exc()) from exc

    if not isinstance(output, torch.Tensor):
        output = torch.as_tensor(np.asarray(output, dtype=np.float32))
    if output.dim() == 4 and output.shape[0] == 1:
        output = output[0]
    if tuple(output.shape) != tuple(expected):
        raise InferenceError(
            f"Inference returned an invalid shape{where}",
            f"got {tuple(output.shape)}, expected {tuple(expected)} for input {tuple(batch.shape)}",
        )
    return output


__all__ = [
    "InferenceCapability",
    "OnnxInference",
    "select_providers",
    "load_onnx_model",
    "invoke",
]
