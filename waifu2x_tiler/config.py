"""Configuration helpers for tiled upscaling."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError
from .tiling import DEFAULT_BLEND_SIZE, DEFAULT_TILE_SIZE


class Architecture(str, Enum):
    SWIN_UNET = "swin_unet"
    CUNET = "cunet"
    UPCONV_7 = "upconv_7"


STYLES = ("art", "art_scan", "photo")
NOISE_LEVELS = (0, 1, 2, 3)
SCALES = (1, 2, 4)
# Values meaning "no denoise stage"
NO_DENOISE = {None, "", "none", "-1", -1}


@dataclass(frozen=True)
class UpscaleConfig:
    architecture: Architecture = Architecture.SWIN_UNET
    style: str = "art"
    noise_level: Optional[int] = None
    scale: int = 2
    tile_size: int = DEFAULT_TILE_SIZE
    memory_budget: Optional[int] = None
    blend_size: int = DEFAULT_BLEND_SIZE
    models_dir: Path = Path("models/waifu2x")
    device: str = "auto"

    @property
    def denoise(self) -> bool:
        return self.noise_level is not None


def _parse_int(name: str, value: object) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a whole number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    # rejects 2.5 as well as inf and nan
    if not number.is_integer():
        raise ConfigurationError(f"{name} must be a whole number, got {value!r}")
    return int(number)


def parse_noise_level(value: object) -> Optional[int]:
    if isinstance(value, str):
        value = value.strip().lower()
    if value in NO_DENOISE:
        return None
    level = _parse_int("noise_level", value)
    if level not in NOISE_LEVELS:
        raise ConfigurationError(f"noise_level must be none or one of {NOISE_LEVELS}, got {value!r}")
    return level


def parse_architecture(value: object) -> Architecture:
    try:
        return Architecture(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(a.value for a in Architecture)
        raise ConfigurationError(f"Unknown architecture {value!r}; expected one of {choices}") from exc


def load_config(raw: Mapping[str, object] | None) -> UpscaleConfig:
    raw = raw or {}
    defaults = UpscaleConfig()

    architecture = parse_architecture(raw.get("architecture", defaults.architecture.value))
    style = str(raw.get("style", defaults.style)).strip().lower()
    if style not in STYLES:
        raise ConfigurationError(f"style must be one of {STYLES}, got {style!r}")

    noise_level = parse_noise_level(raw.get("noise_level", raw.get("noiseLevel")))

    scale = _parse_int("scale", raw.get("scale", defaults.scale))
    if scale not in SCALES:
        raise ConfigurationError(f"scale must be one of {SCALES}, got {scale}")

    tile_size = _parse_int("tile_size", raw.get("tile_size", raw.get("requestedTileSize", defaults.tile_size)))
    if tile_size < 1:
        raise ConfigurationError(f"tile_size must be positive, got {tile_size}")

    memory_budget = raw.get("memory_budget", raw.get("memoryBudget"))
    if memory_budget is not None:
        memory_budget = _parse_int("memory_budget", memory_budget)
        if memory_budget <= 0:
            raise ConfigurationError(f"memory_budget must be positive, got {memory_budget}")

    blend_size = _parse_int("blend_size", raw.get("blend_size", defaults.blend_size))
    if blend_size < 0:
        raise ConfigurationError(f"blend_size must not be negative, got {blend_size}")

    return UpscaleConfig(
        architecture=architecture,
        style=style,
        noise_level=noise_level,
        scale=scale,
        tile_size=tile_size,
        memory_budget=memory_budget,
        blend_size=blend_size,
        models_dir=Path(str(raw.get("models_dir", defaults.models_dir))),
        device=str(raw.get("device", defaults.device)),
    )


__all__ = [
    "Architecture",
    "STYLES",
    "NOISE_LEVELS",
    "SCALES",
    "UpscaleConfig",
    "parse_noise_level",
    "parse_architecture",
    "load_config",
]
