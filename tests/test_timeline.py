"""Tests for wavenavlib/timeline.py — viewport zoom, pan and snapping."""

from __future__ import annotations

import random

import pytest

from wavenavlib.timeline import (
    MAX_ZOOM,
    MIN_ZOOM,
    TimelineViewport,
    choose_major_step,
    format_time_label,
)

WIDTH = 1000.0


def _assert_in_bounds(vp: TimelineViewport) -> None:
    assert vp.visible_start_time >= 0.0
    assert vp.visible_end_time <= vp.duration + 1e-9
    assert MIN_ZOOM <= vp.zoom_scale <= MAX_ZOOM


class TestInitialState:
    """Construction and derived values."""

    def test_full_view(self) -> None:
        """A new viewport shows the whole timeline."""
        vp = TimelineViewport(60.0)
        assert vp.zoom_scale == 1.0
        assert vp.visible_start_time == 0.0
        assert vp.visible_duration == pytest.approx(60.0)
        assert vp.visible_end_time == pytest.approx(60.0)

    def test_duration_floor(self) -> None:
        """Durations are floored at 10 ms."""
        assert TimelineViewport(0.0).duration == pytest.approx(0.01)


class TestZoom:
    """Anchored zooming."""

    @pytest.mark.parametrize("s1,s2", [(1.0, 4.0), (2.0, 50.0), (10.0, 200.0), (1.0, 1.5)])
    def test_anchor_keeps_screen_position_zooming_in(self, s1, s2) -> None:
        """Zooming in keeps the anchor at the same x."""
        vp = TimelineViewport(100.0)
        vp.zoom(s1, 30.0)
        for anchor in (vp.visible_start_time, 30.0, vp.visible_end_time - 1e-6):
            view = TimelineViewport(100.0)
            view.zoom(s1, 30.0)
            before = view.time_to_x(anchor, WIDTH)
            view.zoom(s2, anchor)
            assert view.time_to_x(anchor, WIDTH) == pytest.approx(before, abs=1e-6)

    def test_anchor_kept_zooming_out_away_from_edges(self) -> None:
        """Zooming out from a centered window keeps the centre fixed."""
        vp = TimelineViewport(100.0)
        vp.zoom(20.0, 50.0)
        before = vp.time_to_x(50.0, WIDTH)
        vp.zoom(4.0, 50.0)
        assert vp.time_to_x(50.0, WIDTH) == pytest.approx(before)

    def test_scale_is_clamped(self) -> None:
        """Requests beyond the limits are clamped."""
        vp = TimelineViewport(100.0)
        vp.zoom(1000.0, 10.0)
        assert vp.zoom_scale == MAX_ZOOM
        vp.zoom(0.1, 10.0)
        assert vp.zoom_scale == MIN_ZOOM

    def test_negligible_change_is_skipped(self) -> None:
        """Changes below the epsilon report no change."""
        vp = TimelineViewport(100.0)
        assert vp.zoom(2.0, 10.0) is True
        start = vp.visible_start_time
        assert vp.zoom(2.00001, 90.0) is False
        assert vp.visible_start_time == start

    def test_zoom_out_near_edge_clamps(self) -> None:
        """A window pushed past the end is pulled back inside."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 99.0)
        vp.zoom(2.0, vp.visible_end_time)
        _assert_in_bounds(vp)


class TestPanAndScroll:
    """pan, ensure_visible and center_on_time."""

    def test_pan_clamps(self) -> None:
        """Panning stops at both ends."""
        vp = TimelineViewport(100.0)
        vp.zoom(4.0, 0.0)
        vp.pan(-10.0)
        assert vp.visible_start_time == 0.0
        vp.pan(1000.0)
        assert vp.visible_end_time == pytest.approx(100.0)

    def test_pan_at_full_view_is_noop(self) -> None:
        """Nothing moves when the whole file is visible."""
        vp = TimelineViewport(100.0)
        assert vp.pan(5.0) is False

    def test_pan_suppresses_jitter(self) -> None:
        """Sub-epsilon pans leave the window untouched."""
        vp = TimelineViewport(100.0)
        vp.zoom(4.0, 50.0)
        start = vp.visible_start_time
        assert vp.pan(5e-5) is False
        assert vp.visible_start_time == start
        assert vp.pan(1e-3) is True
        assert vp.visible_start_time == pytest.approx(start + 1e-3)

    def test_ensure_visible_scrolls_minimally(self) -> None:
        """A time past the right edge is brought just inside."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 0.0)
        assert vp.ensure_visible(15.0, padding=0.5)
        assert vp.visible_end_time == pytest.approx(15.5)

    def test_ensure_visible_noop_when_inside(self) -> None:
        """Already-visible times do not scroll."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 0.0)
        assert vp.ensure_visible(5.0, padding=0.5) is False
        assert vp.visible_start_time == 0.0

    def test_ensure_visible_caps_padding(self) -> None:
        """Padding is limited to 10% of the window."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 0.0)
        vp.ensure_visible(50.0, padding=100.0)
        assert vp.visible_end_time == pytest.approx(51.0)

    def test_center_on_time(self) -> None:
        """The playhead lands in the middle of the window."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 0.0)
        vp.center_on_time(40.0)
        assert vp.visible_start_time == pytest.approx(35.0)

    def test_center_on_time_suppresses_jitter(self) -> None:
        """Sub-millisecond moves are ignored."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 0.0)
        vp.center_on_time(40.0)
        assert vp.center_on_time(40.0005) is False

    def test_center_on_time_clamps(self) -> None:
        """Centering near the start clamps to 0."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 50.0)
        vp.center_on_time(1.0)
        assert vp.visible_start_time == 0.0

    def test_reset(self) -> None:
        """reset returns to the full view."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 70.0)
        vp.reset()
        assert (vp.zoom_scale, vp.visible_start_time) == (1.0, 0.0)

    def test_random_walk_stays_in_bounds(self) -> None:
        """Any sequence of pan/zoom calls keeps the window inside."""
        rng = random.Random(7)
        vp = TimelineViewport(37.5)
        for _ in range(500):
            if rng.random() < 0.5:
                vp.pan(rng.uniform(-20.0, 20.0))
            else:
                vp.zoom(rng.uniform(0.5, 250.0), rng.uniform(-5.0, 45.0))
            _assert_in_bounds(vp)

    def test_resync_duration_reclamps(self) -> None:
        """Shortening the timeline pulls the window back inside."""
        vp = TimelineViewport(100.0)
        vp.zoom(10.0, 95.0)
        vp.resync_duration(50.0)
        _assert_in_bounds(vp)
        assert vp.duration == 50.0


class TestQuantization:
    """Zoom-dependent snapping."""

    @pytest.mark.parametrize("duration,zoom,step", [
        (1.5, 1.0, 0.01),
        (8.0, 1.0, 0.05),
        (20.0, 1.0, 0.1),
        (100.0, 1.0, 0.5),
        (600.0, 1.0, 1.0),
        (300.0, 400.0, 0.01),
    ])
    def test_step_table(self, duration, zoom, step) -> None:
        """Visible duration selects the snap step."""
        vp = TimelineViewport(duration)
        vp.zoom(zoom, 0.0)
        assert vp.quantization_step() == step

    def test_quantize(self) -> None:
        """Times round to the nearest step."""
        vp = TimelineViewport(20.0)
        assert vp.quantize(1.234) == pytest.approx(1.2)
        assert vp.quantize(1.26) == pytest.approx(1.3)


class TestCoordinates:
    """time_to_x / x_to_time and ruler helpers."""

    def test_round_trip(self) -> None:
        """x_to_time inverts time_to_x."""
        vp = TimelineViewport(120.0)
        vp.zoom(7.0, 33.0)
        for t in (vp.visible_start_time, 35.0, vp.visible_end_time):
            assert vp.x_to_time(vp.time_to_x(t, WIDTH), WIDTH) == pytest.approx(t)

    def test_edges_map_to_width(self) -> None:
        """The window edges map to 0 and the full width."""
        vp = TimelineViewport(10.0)
        assert vp.time_to_x(0.0, WIDTH) == 0.0
        assert vp.time_to_x(10.0, WIDTH) == pytest.approx(WIDTH)

    def test_seconds_per_point(self) -> None:
        """Zero width falls back to 10 ms per point."""
        vp = TimelineViewport(10.0)
        assert vp.seconds_per_point(1000) == pytest.approx(0.01)
        assert vp.seconds_per_point(0) == 0.01

    @pytest.mark.parametrize("duration,major,minor", [
        (0.04, 0.01, 0.002),
        (1.5, 0.5, 0.1),
        (10.0, 2.0, 0.5),
        (1000.0, 120.0, 30.0),
    ])
    def test_tick_intervals(self, duration, major, minor) -> None:
        """Tick spacing follows the visible duration."""
        assert TimelineViewport(duration).tick_intervals() == (major, minor)

    def test_choose_major_step(self) -> None:
        """The smallest step with room for a label wins."""
        assert choose_major_step(100.0) == 1.0
        assert choose_major_step(1000.0) == 0.1
        assert choose_major_step(0.01) == 600.0

    @pytest.mark.parametrize("time,step,label", [
        (0.0, 1.0, "0"),
        (90.0, 60.0, "1:30"),
        (3725.0, 60.0, "1:02:05"),
        (5.0, 1.0, "5"),
        (2.5, 1.0, "2.5"),
        (65.0, 5.0, "1:05"),
        (1.5, 0.5, "1.5"),
        (0.3, 0.1, ".3"),
        (0.25, 0.05, ".25"),
        (1.234, 0.01, "1.234"),
    ])
    def test_format_time_label(self, time, step, label) -> None:
        """Label precision tracks the step size."""
        assert format_time_label(time, step) == label
