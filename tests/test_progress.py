"""Tests for progress tracking."""

import torch

from waifu2x_tiler import progress
from waifu2x_tiler.progress import PREVIEW_MAX_SIZE, HostProgressReporter, Progress, TileResultEvent


def test_ratio_and_counts():
    progress = Progress(4, "stage")
    events = [progress.update(0, c) for c in range(4)]

    assert [e.ratio for e in events] == [0.25, 0.5, 0.75, 1.0]
    assert [e.completed for e in events] == [1, 2, 3, 4]
    assert events[-1].total == 4
    assert events[-1].eta == 0.0
    assert events[2].tile_coords == (0, 2)
    assert events[0].stage_name == "stage"


def test_eta_is_zero_before_start():
    progress = Progress(1000)
    assert progress.eta() == 0.0
    progress.update(0, 0)
    # below 1% complete
    assert progress.eta() == 0.0


def test_eta_non_negative():
    progress = Progress(3)
    event = progress.update(0, 0)
    assert event.eta >= 0.0


def _tile(width=5, height=4):
    return TileResultEvent(
        pixels=torch.rand((3, height, width)),
        width=width,
        height=height,
        x_offset=0,
        y_offset=0,
        stage_name="s",
        stage_index=0,
    )


class TestHostProgressReporter:
    def test_inactive_outside_comfyui(self, monkeypatch):
        monkeypatch.setattr(progress, "LEGACY_PROGRESS_AVAILABLE", False)
        monkeypatch.setattr(progress, "WEBSOCKET_PROGRESS_AVAILABLE", False)
        reporter = HostProgressReporter()

        reporter.status("hello")
        reporter.report(Progress(1, "s").update(0, 0), _tile())

        assert reporter.node_id is None
        assert reporter.bar is None

    def test_forwards_tiles_to_progress_bar(self, comfy_host):
        reporter = HostProgressReporter()
        tracker = Progress(2, "s")

        reporter.report(tracker.update(0, 0), _tile())
        reporter.report(tracker.update(0, 1))

        assert len(comfy_host.bars) == 1
        bar = comfy_host.bars[0]
        assert bar.total == 2
        assert [(value, total) for value, total, _ in bar.updates] == [(1, 2), (2, 2)]

        kind, image, max_size = bar.updates[0][2]
        assert kind == "JPEG"
        assert image.size == (5, 4)
        assert max_size == PREVIEW_MAX_SIZE
        assert bar.updates[1][2] is None

    def test_sends_text_to_executing_node(self, comfy_host):
        reporter = HostProgressReporter()
        reporter.status("Loading model")
        reporter.report(Progress(3, "s").update(0, 0))

        assert comfy_host.server.texts == [("7", "Loading model"), ("7", "s • Tile 1/3")]

    def test_new_bar_per_stage(self, comfy_host):
        reporter = HostProgressReporter()
        reporter.report(Progress(1, "first").update(0, 0))
        reporter.report(Progress(4, "second").update(0, 0))

        assert [bar.total for bar in comfy_host.bars] == [1, 4]

    def test_empty_footprint_has_no_preview(self, comfy_host):
        reporter = HostProgressReporter()
        reporter.report(Progress(1, "s").update(0, 0), _tile(width=0))
        assert comfy_host.bars[0].updates[0][2] is None
