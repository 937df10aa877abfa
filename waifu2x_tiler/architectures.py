"""Per-architecture stage constants and stage-list resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Union

from .config import Architecture, UpscaleConfig
from .errors import ConfigurationError
from .models import ModelHandle, resolve_model
from .padding import PaddingMode
from .tiling import cunet_tile_size, fixed_tile_size, swin_unet_tile_size

logger = logging.getLogger(__name__)

# tile_size_fn(requested, scale, offset, ceiling=None) -> legal tile size
TileSizeFn = Callable[..., int]

# Border pixels each model consumes as context, by stage scale
SWIN_UNET_OFFSETS = {1: 8, 2: 16, 4: 32}
CUNET_OFFSETS = {1: 28, 2: 36}
UPCONV_7_TILE_SIZE = 64
UPCONV_7_MARGIN = 8


@dataclass(frozen=True)
class BlendedStage:
    """A stage tiled on the seam-blending grid."""

    model: ModelHandle
    scale: int
    offset: int
    padding_mode: PaddingMode
    tile_size_fn: TileSizeFn
    blend_size: int

    @property
    def name(self) -> str:
        return self.model.name


@dataclass(frozen=True)
class OverlapCropStage:
    """A stage whose tiles are cropped and pasted without weighting."""

    model: ModelHandle
    scale: int
    tile_size_fn: TileSizeFn
    margin: int

    @property
    def name(self) -> str:
        return self.model.name

    @property
    def offset(self) -> int:
        # full-frame models consume no border context
        return 0


PipelineStage = Union[BlendedStage, OverlapCropStage]


def _swin_unet_stages(config: UpscaleConfig, models_dir: Path) -> List[PipelineStage]:
    def stage(name, scale):
        return BlendedStage(
            model=resolve_model(models_dir, Architecture.SWIN_UNET, config.style, name),
            scale=scale,
            offset=SWIN_UNET_OFFSETS[scale],
            padding_mode=PaddingMode.REPLICATE,
            tile_size_fn=swin_unet_tile_size,
            blend_size=config.blend_size,
        )

    stages = []
    if config.denoise:
        stages.append(stage(f"noise{config.noise_level}", 1))
    if config.scale > 1:
        stages.append(stage(f"scale{config.scale}x", config.scale))
    return stages


def _cunet_stages(config: UpscaleConfig, models_dir: Path) -> List[PipelineStage]:
    if config.scale not in CUNET_OFFSETS:
        raise ConfigurationError(f"cunet supports scale 1 or 2, got {config.scale}")
    if config.style != "art":
        logger.info("cunet only ships art models; ignoring style %s", config.style)

    if config.scale == 1:
        name = f"noise{config.noise_level}"
    elif config.denoise:
        name = f"noise{config.noise_level}_scale2x"
    else:
        name = "scale2x"
    return [BlendedStage(
        model=resolve_model(models_dir, Architecture.CUNET, "art", name),
        scale=config.scale,
        offset=CUNET_OFFSETS[config.scale],
        padding_mode=PaddingMode.MIRROR,
        tile_size_fn=cunet_tile_size,
        blend_size=config.blend_size,
    )]


def _upconv_7_stages(config: UpscaleConfig, models_dir: Path) -> List[PipelineStage]:
    if config.scale != 2:
        raise ConfigurationError(f"upconv_7 supports scale 2 only, got {config.scale}")
    name = f"noise{config.noise_level}_scale2x" if config.denoise else "scale2x"
    return [OverlapCropStage(
        model=resolve_model(models_dir, Architecture.UPCONV_7, config.style, name),
        scale=2,
        tile_size_fn=fixed_tile_size(UPCONV_7_TILE_SIZE),
        margin=UPCONV_7_MARGIN,
    )]


_STAGE_BUILDERS = {
    Architecture.SWIN_UNET: _swin_unet_stages,
    Architecture.CUNET: _cunet_stages,
    Architecture.UPCONV_7: _upconv_7_stages,
}


def build_stages(config: UpscaleConfig) -> List[PipelineStage]:
    """Resolve the ordered stage list; empty when there is nothing to do."""
    if config.scale == 1 and not config.denoise:
        return []
    stages = _STAGE_BUILDERS[config.architecture](config, Path(config.models_dir))
    if not stages:
        raise ConfigurationError(
            f"No stages for {config.architecture.value} with scale {config.scale} "
            f"and noise level {config.noise_level}"
        )
    return stages


__all__ = [
    "BlendedStage",
    "OverlapCropStage",
    "PipelineStage",
    "build_stages",
    "SWIN_UNET_OFFSETS",
    "CUNET_OFFSETS",
]
