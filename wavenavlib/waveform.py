"""Multi-resolution peak pyramid and the queries the editor runs against it."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np

# Screen points per rendered sample considered smooth.
_POINTS_PER_SAMPLE = 2.0
_MIN_RANGE_SEC = 0.001


# ---------------------------------------------------------------------------
# Peak-preserving resampling
# ---------------------------------------------------------------------------

def _bucket_starts(n: int, target: int) -> np.ndarray:
    """Start index of each of *target* buckets over *n* items (n >= target)."""
    bucket = n / target
    return (np.arange(target, dtype=np.float64) * bucket).astype(np.intp)


def downsample_peak(source: np.ndarray, target_count: int) -> np.ndarray:
    """Reduce *source* to *target_count* values, keeping the max per bucket.

    Buckets are ``[floor(i*b), floor((i+1)*b))`` with ``b = n/target``,
    so each holds at least one element when ``n >= target``.
    """
    source = np.asarray(source, dtype=np.float32)
    n = source.size
    if n == 0 or target_count <= 0:
        return np.zeros(0, dtype=np.float32)
    if n == target_count:
        return source.copy()
    if n < target_count:
        return resample(source, target_count)
    starts = _bucket_starts(n, target_count)
    return np.maximum.reduceat(source, starts).astype(np.float32)


def resample(samples: np.ndarray, target_count: int) -> np.ndarray:
    """Resample to exactly *target_count* values.

    Shorter input is linearly interpolated between neighbouring points;
    longer input is partitioned into buckets and the peak of each is kept.
    """
    samples = np.asarray(samples, dtype=np.float32)
    n = samples.size
    if n == 0 or target_count <= 0:
        return np.zeros(0, dtype=np.float32)
    if n == target_count:
        return samples.copy()
    if n > target_count:
        starts = _bucket_starts(n, target_count)
        return np.maximum.reduceat(samples, starts).astype(np.float32)
    if target_count == 1:
        return samples[:1].copy()
    positions = np.arange(target_count, dtype=np.float64) * (n - 1) / (target_count - 1)
    return np.interp(positions, np.arange(n), samples).astype(np.float32)


# ---------------------------------------------------------------------------
# WaveformData
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class WaveformData:
    """Immutable LOD pyramid of normalized peak amplitudes.

    Attributes:
        lod_levels:              Level 0 is the finest (~1 ms per value by
                                 default); each following level covers the
                                 same duration with about half the values.
                                 Every value lies in ``[0, 1]``.
        duration:                Source length in seconds.
        samplerate:              Source sample rate in Hz.
        samples_per_second_lod0: Nominal density of level 0.

    Arrays are stored read-only.  Instances compare equal when all scalar
    fields and every level match exactly.
    """
    lod_levels: tuple[np.ndarray, ...]
    duration: float
    samplerate: float
    samples_per_second_lod0: int

    def __post_init__(self):
        levels = []
        for level in self.lod_levels:
            arr = np.array(level, dtype=np.float32, copy=True)
            arr.setflags(write=False)
            levels.append(arr)
        object.__setattr__(self, "lod_levels", tuple(levels))
        object.__setattr__(self, "duration", float(self.duration))
        object.__setattr__(self, "samplerate", float(self.samplerate))
        object.__setattr__(self, "samples_per_second_lod0",
                           int(self.samples_per_second_lod0))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WaveformData):
            return NotImplemented
        if (self.duration != other.duration
                or self.samplerate != other.samplerate
                or self.samples_per_second_lod0 != other.samples_per_second_lod0
                or len(self.lod_levels) != len(other.lod_levels)):
            return False
        return all(np.array_equal(a, b)
                   for a, b in zip(self.lod_levels, other.lod_levels))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        counts = ", ".join(str(level.size) for level in self.lod_levels)
        return (f"WaveformData(duration={self.duration:.3f}, "
                f"samplerate={self.samplerate:g}, lod_counts=[{counts}])")

    @property
    def level_count(self) -> int:
        return len(self.lod_levels)

    def samples_per_second(self, level: int) -> float:
        """Actual density of *level* in values per second of audio."""
        if self.duration <= 0:
            return 0.0
        return self.lod_levels[level].size / self.duration

    # -- queries ------------------------------------------------------------

    def lod_level(self, zoom_scale: float, view_width: float) -> tuple[int, np.ndarray]:
        """Pick the coarsest level dense enough for *view_width* at *zoom_scale*.

        Aims for about two screen points per sample.  Falls back to the
        coarsest level when none qualifies and to level 0 when duration
        or zoom are not positive.
        """
        if not self.lod_levels:
            return 0, np.zeros(0, dtype=np.float32)
        if self.duration <= 0 or zoom_scale <= 0:
            return 0, self.lod_levels[0]

        visible_duration = self.duration / zoom_scale
        ideal_per_second = (view_width / _POINTS_PER_SAMPLE) / visible_duration

        # Scan coarse → fine: the first level that is dense enough wins.
        for index in range(len(self.lod_levels) - 1, -1, -1):
            if self.samples_per_second(index) >= ideal_per_second:
                return index, self.lod_levels[index]
        return len(self.lod_levels) - 1, self.lod_levels[-1]

    def samples(self, start: float, end: float, target_count: int) -> np.ndarray:
        """Return exactly *target_count* amplitudes covering ``[start, end]``.

        The time range is clamped to ``[0, duration]``.  The level is the
        first (finest-first) one whose density meets the request; level 0
        is used when none does, preferring over- to under-resolution.
        An empty array is returned for ``target_count <= 0`` or an empty
        pyramid.
        """
        if target_count <= 0 or not self.lod_levels or self.duration <= 0:
            return np.zeros(0, dtype=np.float32)

        clamped_start = max(0.0, min(float(start), self.duration))
        clamped_end = max(clamped_start, min(float(end), self.duration))
        range_duration = max(_MIN_RANGE_SEC, clamped_end - clamped_start)
        ideal_per_second = target_count / range_duration

        chosen = self.lod_levels[0]
        for level in self.lod_levels:
            if level.size / self.duration >= ideal_per_second:
                chosen = level
                break

        count = chosen.size
        if count == 0:
            return np.zeros(target_count, dtype=np.float32)

        start_index = int(math.floor(clamped_start / self.duration * count))
        end_index = int(math.ceil(clamped_end / self.duration * count))
        safe_start = max(0, min(start_index, count - 1))
        safe_end = max(safe_start + 1, min(end_index, count))

        return resample(chosen[safe_start:safe_end], target_count)

    # -- serialization --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "lod_levels": [level.tolist() for level in self.lod_levels],
            "duration": self.duration,
            "samplerate": self.samplerate,
            "samples_per_second_lod0": self.samples_per_second_lod0,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WaveformData":
        """Rebuild from :meth:`to_dict` output.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` on malformed
        input; the cache treats any of these as a corrupt artifact.
        """
        levels = data["lod_levels"]
        if not isinstance(levels, list):
            raise TypeError("lod_levels must be a list")
        return cls(
            lod_levels=tuple(np.asarray(level, dtype=np.float32) for level in levels),
            duration=float(data["duration"]),
            samplerate=float(data["samplerate"]),
            samples_per_second_lod0=int(data["samples_per_second_lod0"]),
        )

    @classmethod
    def empty(cls, samplerate: float = 0.0,
              samples_per_second_lod0: int = 1000) -> "WaveformData":
        return cls(lod_levels=(), duration=0.0, samplerate=samplerate,
                   samples_per_second_lod0=samples_per_second_lod0)
