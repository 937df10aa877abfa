"""Progress tracking and the events emitted while upscaling."""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
import torch

from .image_utils import buffer_to_pil
from .tensor_buffer import TensorBuffer

try:
    from server import PromptServer
    from comfy_execution.utils import get_executing_context
    WEBSOCKET_PROGRESS_AVAILABLE = True
except ImportError:
    WEBSOCKET_PROGRESS_AVAILABLE = False

try:
    import comfy.utils
    LEGACY_PROGRESS_AVAILABLE = True
except ImportError:
    LEGACY_PROGRESS_AVAILABLE = False

logger = logging.getLogger(__name__)

PREVIEW_MAX_SIZE = 512


@dataclass(frozen=True)
class StatusEvent:
    message: str


@dataclass(frozen=True)
class ProgressEvent:
    ratio: float
    row: int
    col: int
    stage_name: str
    completed: int
    total: int
    eta: float = 0.0

    @property
    def tile_coords(self) -> Tuple[int, int]:
        return (self.row, self.col)


@dataclass(frozen=True)
class TileResultEvent:
    """Blended pixels of one tile, planar ``(C, height, width)``.

    ``x_offset``/``y_offset`` place the tile in the stage's output image; the
    footprint is clipped to that image, so padding never shows up here.
    """

    pixels: torch.Tensor = field(repr=False)
    width: int
    height: int
    x_offset: int
    y_offset: int
    stage_name: str
    stage_index: int


@dataclass(frozen=True)
class StageDoneEvent:
    stage_name: str
    stage_index: int
    width: int
    height: int


@dataclass(frozen=True)
class FatalErrorEvent:
    message: str
    detail: Optional[str] = None


@dataclass(frozen=True)
class PipelineDoneEvent:
    """Final image, interleaved ``uint8`` with shape ``(height, width, 3)``."""

    image: np.ndarray = field(repr=False)
    width: int
    height: int


class Progress:
    def __init__(self, total_steps, stage_name=""):
        self.total_steps = total_steps
        self.stage_name = stage_name
        self.current_step = 0
        self.started = time.perf_counter()

        logger.info("Starting %s - %d tiles to process", stage_name or "stage", total_steps)

    def eta(self):
        ratio = self.current_step / self.total_steps if self.total_steps else 1.0
        # Too early for a meaningful estimate
        if ratio <= 0.01:
            return 0.0
        elapsed = time.perf_counter() - self.started
        return elapsed / ratio * (1.0 - ratio)

    def update(self, row, col) -> ProgressEvent:
        self.current_step += 1
        ratio = self.current_step / self.total_steps if self.total_steps else 1.0

        percentage = ratio * 100
        progress_bar = "█" * int(percentage // 5) + "░" * (20 - int(percentage // 5))
        logger.debug(
            "Processing tile %d/%d [%s] %.1f%%", self.current_step, self.total_steps, progress_bar, percentage
        )

        if self.current_step == self.total_steps:
            logger.info("%s completed, processed %d tiles", self.stage_name or "Stage", self.total_steps)

        return ProgressEvent(
            ratio=ratio,
            row=row,
            col=col,
            stage_name=self.stage_name,
            completed=self.current_step,
            total=self.total_steps,
            eta=self.eta(),
        )


class HostProgressReporter:
    """Forwards pipeline events to the ComfyUI frontend.

    The progress bar (with a preview of the latest tile) goes through
    ``comfy.utils.ProgressBar``, status text through the prompt server's
    websocket. Outside ComfyUI both are unavailable and this does nothing.
    """

    def __init__(self):
        self.node_id = None
        self.bar = None
        self.bar_stage = None

        if WEBSOCKET_PROGRESS_AVAILABLE:
            try:
                context = get_executing_context()
                if context:
                    self.node_id = context.node_id
            except Exception as e:
                logger.warning("Could not get execution context: %s", e)

    def _send_text(self, text):
        if not WEBSOCKET_PROGRESS_AVAILABLE or not self.node_id:
            return
        try:
            if getattr(PromptServer, "instance", None):
                PromptServer.instance.send_progress_text(text, self.node_id)
        except Exception as e:
            logger.warning("WebSocket progress failed: %s", e)

    def status(self, message):
        self._send_text(message)

    def report(self, event: ProgressEvent, tile: Optional[TileResultEvent] = None):
        # ProgressBar raises when the user interrupts the prompt; that propagates
        if LEGACY_PROGRESS_AVAILABLE:
            if self.bar is None or self.bar_stage != event.stage_name:
                self.bar = comfy.utils.ProgressBar(event.total)
                self.bar_stage = event.stage_name
            preview = None
            if tile is not None and tile.width and tile.height:
                preview = ("JPEG", buffer_to_pil(TensorBuffer(tile.pixels)), PREVIEW_MAX_SIZE)
            self.bar.update_absolute(event.completed, event.total, preview)

        self._send_text(f"{event.stage_name} • Tile {event.completed}/{event.total}")


__all__ = [
    "HostProgressReporter",
    "StatusEvent",
    "ProgressEvent",
    "TileResultEvent",
    "StageDoneEvent",
    "FatalErrorEvent",
    "PipelineDoneEvent",
    "Progress",
]
