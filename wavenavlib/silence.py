"""Removable-silence detection: framed RMS → dBFS, hysteresis + debounce.

Pipeline order:

1. Per-window level (max across channels) drives a four-state machine
   ``NON_SILENT → PENDING_SILENT → SILENT → PENDING_NON_SILENT``.  Entry
   and exit are confirmed only after a hold, and the confirmed edge is
   backdated to where the level first crossed.
2. Raw ranges separated by short gaps are merged.
3. Each merged range is shrunk by pre-roll / post-roll.
4. Ranges shorter than the minimum duration are dropped.
"""

from __future__ import annotations

import logging
import math
from typing import Any

import numpy as np

from .audio import AudioSource, rms_to_dbfs
from .config import SILENCE_PARAMS, ParamSpec, raise_for_errors, validate_param_values
from .errors import BufferAllocationError, NoSampleDataError
from .log import StageTimer, dbg
from .models import SilenceRange, SilenceState

log = logging.getLogger(__name__)

# Tolerance for comparing times that sit on the hop grid.
_GRID_EPSILON = 1e-6


# ---------------------------------------------------------------------------
# Stage 1: framed levels + state machine
# ---------------------------------------------------------------------------

def frame_levels_db(
    source: AudioSource,
    window_samples: int,
    hop_samples: int,
    chunk_frames: int = 65536,
    floor_db: float = -96.0,
) -> np.ndarray:
    """Stream *source* and return one dBFS value per analysis window.

    Window ``k`` covers frames ``[k*hop, k*hop + window)``; only windows
    that fit entirely inside the source are produced.  Per window the RMS
    of every channel is taken and the loudest channel wins.
    """
    channels = max(1, int(source.channels))
    try:
        carry = np.zeros((0, channels), dtype=np.float64)
    except MemoryError as exc:
        raise BufferAllocationError() from exc

    levels: list[np.ndarray] = []
    offset = 0
    for block in source.blocks(chunk_frames):
        if block.ndim != 2 or block.shape[1] == 0 or block.shape[0] == 0:
            raise NoSampleDataError(
                f"Chunk at frame {offset} carried no channel data")
        offset += block.shape[0]
        # A single NaN would poison every later cumsum entry in the chunk.
        block = np.nan_to_num(block.astype(np.float64), nan=0.0,
                              posinf=0.0, neginf=0.0)
        try:
            buf = np.concatenate((carry, block), axis=0)
        except MemoryError as exc:
            raise BufferAllocationError() from exc

        n = buf.shape[0]
        consumed = 0
        if n >= window_samples:
            count = (n - window_samples) // hop_samples + 1
            cs = np.zeros((n + 1, buf.shape[1]), dtype=np.float64)
            np.cumsum(buf * buf, axis=0, out=cs[1:])
            starts = np.arange(count, dtype=np.intp) * hop_samples
            sums = np.maximum(cs[starts + window_samples] - cs[starts], 0.0)
            rms = np.sqrt(sums / window_samples)
            levels.append(rms_to_dbfs(rms.max(axis=1), floor_db))
            consumed = count * hop_samples
        carry = buf[consumed:]

    if not levels:
        return np.zeros(0, dtype=np.float64)
    return np.concatenate(levels)


def detect_raw_ranges(
    levels_db: np.ndarray,
    hop_sec: float,
    enter_db: float,
    exit_db: float,
    enter_hold: int,
    exit_hold: int,
    duration: float,
) -> list[SilenceRange]:
    """Run the hysteresis/debounce state machine over per-window levels.

    A window is *below* when ``level <= enter_db`` and *above* when
    ``level > exit_db``.  A silence still open at end of stream is closed
    at *duration*.
    """
    state = SilenceState.NON_SILENT
    counter = 0
    silence_start: float | None = None
    ranges: list[SilenceRange] = []

    for index, level in enumerate(levels_db):
        below = level <= enter_db
        above = level > exit_db

        if state is SilenceState.NON_SILENT:
            if below:
                state, counter = SilenceState.PENDING_SILENT, 1

        elif state is SilenceState.PENDING_SILENT:
            if not below:
                state = SilenceState.NON_SILENT
            elif counter >= enter_hold:
                silence_start = (index - counter) * hop_sec
                state = SilenceState.SILENT
            else:
                counter += 1

        elif state is SilenceState.SILENT:
            if above:
                state, counter = SilenceState.PENDING_NON_SILENT, 1

        elif state is SilenceState.PENDING_NON_SILENT:
            if not above:
                state = SilenceState.SILENT
            elif counter >= exit_hold:
                end = (index - counter) * hop_sec
                if silence_start is not None and end > silence_start:
                    ranges.append(SilenceRange(silence_start, end))
                silence_start = None
                state = SilenceState.NON_SILENT
            else:
                counter += 1

    if (state in (SilenceState.SILENT, SilenceState.PENDING_NON_SILENT)
            and silence_start is not None and duration > silence_start):
        ranges.append(SilenceRange(silence_start, duration))
    return ranges


# ---------------------------------------------------------------------------
# Stages 2-4
# ---------------------------------------------------------------------------

def merge_ranges(ranges: list[SilenceRange], merge_gap: float) -> list[SilenceRange]:
    """Join consecutive ranges whose gap does not exceed *merge_gap* seconds."""
    merged: list[SilenceRange] = []
    for r in ranges:
        if merged and r.start - merged[-1].end <= merge_gap + _GRID_EPSILON:
            merged[-1] = SilenceRange(merged[-1].start, max(merged[-1].end, r.end))
        else:
            merged.append(r)
    return merged


def apply_roll(
    ranges: list[SilenceRange],
    pre_roll: float,
    post_roll: float,
    duration: float,
) -> list[SilenceRange]:
    """Shrink every range inward; ranges that invert are discarded."""
    rolled: list[SilenceRange] = []
    for r in ranges:
        start = r.start + pre_roll
        end = r.end - post_roll
        if start >= end:
            continue
        start = max(0.0, min(start, duration))
        end = max(start, min(end, duration))
        if start < end:
            rolled.append(SilenceRange(start, end))
    return rolled


def filter_min_duration(ranges: list[SilenceRange],
                        min_duration: float) -> list[SilenceRange]:
    return [r for r in ranges if r.duration >= min_duration - _GRID_EPSILON]


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

def _hold_count(hold_ms: float, hop_ms: float) -> int:
    return int(math.ceil(round(hold_ms / hop_ms, 9)))


class SilenceDetector:
    """Finds removable silence in a decoded source.

    Defaults: enter at -55 dBFS, exit at threshold + 5 dB, 30 ms windows
    on a 10 ms hop, 80 ms enter hold, 30 ms exit hold, 40 ms merge gap,
    50 ms pre/post roll and a 0.5 s minimum.
    """

    @classmethod
    def config_params(cls) -> list[ParamSpec]:
        return list(SILENCE_PARAMS)

    def __init__(self, config: dict[str, Any] | None = None):
        self.configure(config or {})

    def configure(self, config: dict[str, Any]) -> None:
        errors = validate_param_values(self.config_params(), config)
        if errors:
            raise_for_errors(errors)
        self.threshold_db: float = config.get("silence_threshold_db", -55.0)
        self.hysteresis_db: float = config.get("silence_hysteresis_db", 5.0)
        self.min_duration: float = config.get("silence_min_duration", 0.5)
        self.window_ms: float = config.get("silence_window_ms", 30.0)
        self.hop_ms: float = config.get("silence_hop_ms", 10.0)
        self.enter_hold_ms: float = config.get("silence_enter_hold_ms", 80.0)
        self.exit_hold_ms: float = config.get("silence_exit_hold_ms", 30.0)
        self.merge_gap_ms: float = config.get("silence_merge_gap_ms", 40.0)
        self.pre_roll_ms: float = config.get("silence_pre_roll_ms", 50.0)
        self.post_roll_ms: float = config.get("silence_post_roll_ms", 50.0)
        self.floor_db: float = config.get("silence_floor_db", -96.0)
        self.chunk_frames: int = config.get("chunk_frames", 65536)

    def detect(
        self,
        source: AudioSource,
        threshold: float | None = None,
        min_duration: float | None = None,
    ) -> list[SilenceRange]:
        """Return ordered, non-overlapping removable silence ranges.

        *threshold* (dBFS) overrides the enter level; the exit level is
        always ``threshold + hysteresis``.  *min_duration* (seconds) is
        applied after the roll.  A zero-frame source yields ``[]``.
        """
        sr = int(source.samplerate)
        total_frames = int(source.frames)
        if total_frames <= 0 or sr <= 0:
            return []

        enter_db = self.threshold_db if threshold is None else float(threshold)
        exit_db = enter_db + self.hysteresis_db
        min_silence = self.min_duration if min_duration is None else float(min_duration)
        duration = total_frames / float(sr)

        window_samples = max(1, int(sr * self.window_ms / 1000.0))
        hop_samples = max(1, int(sr * self.hop_ms / 1000.0))
        hop_sec = hop_samples / float(sr)
        enter_hold = _hold_count(self.enter_hold_ms, self.hop_ms)
        exit_hold = _hold_count(self.exit_hold_ms, self.hop_ms)

        dbg(f"threshold={enter_db}dB exit={exit_db}dB window={window_samples} "
            f"hop={hop_samples} enterHold={enter_hold} exitHold={exit_hold}")

        timer = StageTimer()
        levels = frame_levels_db(source, window_samples, hop_samples,
                                 self.chunk_frames, self.floor_db)
        timer.lap("levels")
        raw = detect_raw_ranges(levels, hop_sec, enter_db, exit_db,
                                enter_hold, exit_hold, duration)
        merged = merge_ranges(raw, self.merge_gap_ms / 1000.0)
        rolled = apply_roll(merged, self.pre_roll_ms / 1000.0,
                            self.post_roll_ms / 1000.0, duration)
        final = filter_min_duration(rolled, min_silence)
        timer.lap("ranges")

        dbg(f"{levels.size} windows; raw={len(raw)} merged={len(merged)} "
            f"rolled={len(rolled)} final={len(final)}: {timer}")
        total = sum(r.duration for r in final)
        log.info("Detected %d removable silence ranges (from %d raw) in %s, total %.1fs",
                 len(final), len(raw), source.name or "source", total)
        return final
