"""Model resolution and an explicit, caller-owned model cache."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, Tuple

from .config import Architecture
from .inference import InferenceCapability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelHandle:
    architecture: Architecture
    style: str
    name: str
    path: Path

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.architecture.value, self.style, self.name)

    @property
    def label(self) -> str:
        return f"{self.architecture.value}/{self.style}/{self.name}"


def resolve_model(models_dir: Path, architecture: Architecture, style: str, name: str) -> ModelHandle:
    """Map a model identity to ``<models_dir>/<architecture>/<style>/<name>.onnx``."""
    path = Path(models_dir) / architecture.value / style / f"{name}.onnx"
    return ModelHandle(architecture=architecture, style=style, name=name, path=path)


ModelLoader = Callable[[ModelHandle], InferenceCapability]


class ModelCache:
    """Loaded models keyed by :attr:`ModelHandle.key`; lifetime is the owner's."""

    def __init__(self):
        self._models: Dict[Tuple[str, str, str], InferenceCapability] = {}

    def get_or_load(self, handle: ModelHandle, loader: ModelLoader) -> InferenceCapability:
        model = self._models.get(handle.key)
        if model is not None:
            logger.debug("Using cached model %s", handle.label)
            return model
        model = loader(handle)
        self._models[handle.key] = model
        return model

    def clear(self) -> None:
        self._models.clear()

    def __contains__(self, handle: object) -> bool:
        return isinstance(handle, ModelHandle) and handle.key in self._models

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[Tuple[str, str, str]]:
        return iter(self._models)


__all__ = ["ModelHandle", "ModelLoader", "ModelCache", "resolve_model"]
