"""Opt-in debug tracing and stage timing for the analysis pipelines.

Tracing is off unless ``WAVENAV_DEBUG`` is ``1`` or ``true``; it writes
``[HH:MM:SS.mmm module] message`` lines to stderr.  Normal diagnostics go
through :mod:`logging` as usual; this module only covers the noisy
per-stage detail nobody wants in a log file.

    timer = StageTimer()
    levels = frame_levels_db(...)
    timer.lap("levels")
    ranges = detect_raw_ranges(...)
    timer.lap("ranges")
    dbg(f"detected {len(ranges)} ranges: {timer}")
    # [12:04:31.207 silence] detected 3 ranges: levels=41.2ms ranges=0.3ms total=41.5ms
"""

from __future__ import annotations

import functools
import os
import sys
import time
from datetime import datetime


@functools.lru_cache(maxsize=1)
def _is_enabled() -> bool:
    return os.environ.get("WAVENAV_DEBUG", "").strip().lower() in ("1", "true")


def reset() -> None:
    """Re-read ``WAVENAV_DEBUG`` on the next :func:`dbg` call."""
    _is_enabled.cache_clear()


def dbg(msg: str) -> None:
    """Write *msg* to stderr, tagged with the calling module, when enabled."""
    if not _is_enabled():
        return
    module = sys._getframe(1).f_globals.get("__name__", "?")
    stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    print(f"[{stamp} {module.rsplit('.', 1)[-1]}] {msg}",
          file=sys.stderr, flush=True)


class StageTimer:
    """Wall-clock time per named stage of one pipeline run.

    Each :meth:`lap` charges the time since the previous lap (or since
    construction) to *stage*; repeated stage names accumulate.
    """

    def __init__(self) -> None:
        self._start = self._last = time.perf_counter()
        self.laps: dict[str, float] = {}

    def lap(self, stage: str) -> float:
        now = time.perf_counter()
        ms = (now - self._last) * 1000
        self.laps[stage] = self.laps.get(stage, 0.0) + ms
        self._last = now
        return ms

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    def __str__(self) -> str:
        parts = [f"{stage}={ms:.1f}ms" for stage, ms in self.laps.items()]
        parts.append(f"total={self.total_ms:.1f}ms")
        return " ".join(parts)
