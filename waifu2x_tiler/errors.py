"""Error types raised by the tiling engine."""

from __future__ import annotations

from typing import Optional


class UpscalerError(RuntimeError):
    """Base error for tiled upscaling failures."""


class GeometryError(UpscalerError):
    """Raised when a tiling grid or buffer geometry is invalid."""


class ConfigurationError(UpscalerError):
    """Raised when no stage list exists for the requested configuration."""


class InferenceError(UpscalerError):
    """Raised when the inference capability fails or returns an invalid tensor."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


__all__ = [
    "UpscalerError",
    "GeometryError",
    "ConfigurationError",
    "InferenceError",
]
