"""Zoom / pan / snapping state for one editing session's waveform view.

Pure arithmetic over ``duration`` and a screen width; no rendering and no
locking.  A viewport belongs to a single editor session.
"""

from __future__ import annotations

import math

MIN_ZOOM = 1.0
MAX_ZOOM = 200.0
MIN_DURATION = 0.01

# Changes smaller than these are not applied.
_ZOOM_EPSILON = 1e-4
_SCROLL_EPSILON = 1e-4
_FOLLOW_EPSILON = 1e-3

# (visible duration upper bound, snap step)
_QUANTIZATION_STEPS = (
    (2.0, 0.01),
    (10.0, 0.05),
    (30.0, 0.1),
    (120.0, 0.5),
)

# (visible duration upper bound, (major, minor))
_TICK_INTERVALS = (
    (0.05, (0.01, 0.002)),
    (0.2, (0.05, 0.01)),
    (0.5, (0.1, 0.02)),
    (1.0, (0.2, 0.05)),
    (2.0, (0.5, 0.1)),
    (5.0, (1.0, 0.2)),
    (15.0, (2.0, 0.5)),
    (30.0, (5.0, 1.0)),
    (60.0, (10.0, 2.0)),
    (180.0, (30.0, 5.0)),
    (600.0, (60.0, 10.0)),
)

_MAJOR_STEP_CANDIDATES = (
    0.01, 0.02, 0.05,
    0.1, 0.2, 0.25, 0.5,
    1.0, 2.0, 5.0, 10.0, 15.0, 30.0, 60.0,
    120.0, 300.0, 600.0,
)


class TimelineViewport:
    """Visible window over ``[0, duration]`` seconds.

    ``zoom_scale`` lives in ``[MIN_ZOOM, MAX_ZOOM]``; the visible window is
    ``duration / zoom_scale`` long and always lies inside the timeline.
    Mutators return ``True`` when they changed the state and ``False``
    when the change was below the jitter threshold.
    """

    def __init__(self, duration: float):
        self.duration = max(MIN_DURATION, float(duration))
        self.zoom_scale = MIN_ZOOM
        self.visible_start_time = 0.0

    def __repr__(self) -> str:
        return (f"TimelineViewport(duration={self.duration:.3f}, "
                f"zoom={self.zoom_scale:.3f}, start={self.visible_start_time:.3f})")

    # -- derived ----------------------------------------------------------

    @property
    def visible_duration(self) -> float:
        return self.duration / self.zoom_scale

    @property
    def visible_end_time(self) -> float:
        return self.visible_start_time + self.visible_duration

    def _clamp_start(self, start: float) -> float:
        return max(0.0, min(start, self.duration - self.visible_duration))

    # -- mutation -----------------------------------------------------------

    def zoom(self, scale: float, anchor_time: float) -> bool:
        """Set the zoom so *anchor_time* keeps its on-screen position.

        The anchor stays fixed unless the new window would extend past
        either end of the timeline, in which case the window is clamped.
        """
        clamped = max(MIN_ZOOM, min(float(scale), MAX_ZOOM))
        if abs(clamped - self.zoom_scale) <= _ZOOM_EPSILON:
            return False

        old_visible = self.visible_duration
        progress = (anchor_time - self.visible_start_time) / old_visible
        self.zoom_scale = clamped
        new_start = anchor_time - progress * self.visible_duration
        self.visible_start_time = self._clamp_start(new_start)
        return True

    def pan(self, delta_seconds: float) -> bool:
        new_start = self._clamp_start(self.visible_start_time + delta_seconds)
        if abs(new_start - self.visible_start_time) <= _SCROLL_EPSILON:
            return False
        self.visible_start_time = new_start
        return True

    def ensure_visible(self, time: float, padding: float = 0.0) -> bool:
        """Scroll as little as possible so *time* sits at least *padding*
        inside the window (padding is capped at 10% of the window)."""
        pad = min(padding, self.visible_duration * 0.1)
        new_start = self.visible_start_time
        if time < self.visible_start_time + pad:
            new_start = time - pad
        elif time > self.visible_end_time - pad:
            new_start = time - self.visible_duration + pad
        new_start = self._clamp_start(new_start)

        if abs(new_start - self.visible_start_time) <= _SCROLL_EPSILON:
            return False
        self.visible_start_time = new_start
        return True

    def center_on_time(self, time: float) -> bool:
        """Put *time* at the middle of the window (playback follow mode)."""
        new_start = self._clamp_start(time - self.visible_duration / 2)
        if abs(new_start - self.visible_start_time) <= _FOLLOW_EPSILON:
            return False
        self.visible_start_time = new_start
        return True

    def reset(self) -> None:
        self.zoom_scale = MIN_ZOOM
        self.visible_start_time = 0.0

    def resync_duration(self, duration: float) -> None:
        """Adopt a new total length (e.g. after a destructive edit)."""
        self.duration = max(MIN_DURATION, float(duration))
        self.visible_start_time = self._clamp_start(self.visible_start_time)

    # -- snapping & rulers ----------------------------------------------------

    def quantization_step(self) -> float:
        visible = self.visible_duration
        for upper, step in _QUANTIZATION_STEPS:
            if visible < upper:
                return step
        return 1.0

    def quantize(self, time: float) -> float:
        step = self.quantization_step()
        return round(time / step) * step

    def tick_intervals(self) -> tuple[float, float]:
        """``(major, minor)`` tick spacing in seconds for the ruler and grid."""
        visible = self.visible_duration
        for upper, intervals in _TICK_INTERVALS:
            if visible < upper:
                return intervals
        return 120.0, 30.0

    # -- coordinates ------------------------------------------------------------

    def seconds_per_point(self, width: float) -> float:
        if width <= 0:
            return 0.01
        return self.visible_duration / width

    def time_to_x(self, time: float, width: float) -> float:
        return (time - self.visible_start_time) / self.visible_duration * width

    def x_to_time(self, x: float, width: float) -> float:
        if width <= 0:
            return self.visible_start_time
        return self.visible_start_time + (x / width) * self.visible_duration


# ---------------------------------------------------------------------------
# Ruler helpers
# ---------------------------------------------------------------------------

def choose_major_step(pixels_per_second: float,
                      min_label_width: float = 65.0) -> float:
    """Smallest candidate step whose labels are at least *min_label_width*
    pixels apart."""
    for step in _MAJOR_STEP_CANDIDATES:
        if step * pixels_per_second >= min_label_width:
            return step
    return _MAJOR_STEP_CANDIDATES[-1]


def format_time_label(time: float, step: float) -> str:
    """Ruler label for *time*, with precision matched to the major *step*.

    ``step >= 60`` gives ``m:ss`` (``h:mm:ss`` past an hour), whole-second
    steps give seconds, and sub-second steps give one to three decimals.
    """
    if abs(time) < 0.0005:
        return "0"

    if step >= 60:
        total = int(round(time))
        hours, rem = divmod(total, 3600)
        minutes, seconds = divmod(rem, 60)
        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    total_seconds = int(time)
    minutes, seconds = divmod(total_seconds, 60)
    fraction = math.fmod(time, 1.0)

    if step >= 1:
        if minutes > 0:
            if abs(fraction) > 0.05:
                return f"{minutes}:{seconds:02d}.{int(round(fraction * 10))}"
            return f"{minutes}:{seconds:02d}"
        if step <= 2 and abs(fraction) > 0.05:
            return f"{seconds}.{int(round(fraction * 10))}"
        return str(seconds)

    if step >= 0.1:
        tenths = int(round(fraction * 10))
        if minutes > 0:
            return f"{minutes}:{seconds:02d}.{tenths:01d}"
        if total_seconds > 0:
            return f"{seconds}.{tenths:01d}"
        return f".{tenths:01d}"

    hundredths = int(round(fraction * 100))
    if minutes > 0:
        return f"{minutes}:{seconds:02d}.{hundredths:02d}"
    if step < 0.02:
        millis = int(round(fraction * 1000))
        if total_seconds > 0:
            return f"{seconds}.{millis:03d}"
        return f".{millis:03d}"
    if total_seconds > 0:
        return f"{seconds}.{hundredths:02d}"
    return f".{hundredths:02d}"
