from __future__ import annotations

import logging
from typing import Any

import numpy as np

from .audio import AudioSource
from .config import EXTRACTION_PARAMS, ParamSpec, raise_for_errors, validate_param_values
from .errors import BufferAllocationError, EmptySourceError, NoSampleDataError
from .log import StageTimer, dbg
from .waveform import WaveformData, downsample_peak

log = logging.getLogger(__name__)


class PeakExtractor:
    """Streams a decoded source into a normalized LOD peak pyramid.

    Level 0 holds ``round(duration * base_samples_per_second)`` buckets;
    every source frame is mapped to ``floor(frame / bucket_size)`` and the
    bucket keeps the running maximum absolute amplitude (peak-hold, so
    transients survive).  Levels 1..K-1 are peak-preserving reductions of
    level 0 to ``lod0_count / 2**level`` values.
    """

    @classmethod
    def config_params(cls) -> list[ParamSpec]:
        return list(EXTRACTION_PARAMS)

    def __init__(self, config: dict[str, Any] | None = None):
        self.configure(config or {})

    def configure(self, config: dict[str, Any]) -> None:
        errors = validate_param_values(self.config_params(), config)
        if errors:
            raise_for_errors(errors)
        self.lod_level_count: int = config.get("lod_level_count", 6)
        self.base_samples_per_second: int = config.get("base_samples_per_second", 1000)
        self.chunk_frames: int = config.get("chunk_frames", 65536)
        self.normalize_floor: float = config.get("normalize_floor", 0.001)
        self.peak_channel: str = config.get("peak_channel", "first")

    def extract(self, source: AudioSource) -> WaveformData:
        """Build the pyramid for *source*.

        Raises :class:`EmptySourceError` for zero-frame sources,
        :class:`BufferAllocationError` when buffers cannot be allocated,
        :class:`NoSampleDataError` when a chunk carries no channel data and
        :class:`~wavenavlib.errors.DecodeError` for decoder failures.
        """
        total_frames = int(source.frames)
        samplerate = float(source.samplerate)
        if total_frames <= 0 or samplerate <= 0:
            raise EmptySourceError()

        timer = StageTimer()
        duration = total_frames / samplerate
        lod0 = self._build_lod0(source, total_frames, duration)
        timer.lap("lod0")
        lod0 = self._normalize(lod0)

        levels = [lod0]
        for level in range(1, self.lod_level_count):
            target = max(1, lod0.size // (1 << level))
            levels.append(downsample_peak(lod0, target))
        timer.lap("pyramid")

        waveform = WaveformData(
            lod_levels=tuple(levels),
            duration=duration,
            samplerate=samplerate,
            samples_per_second_lod0=self.base_samples_per_second,
        )
        dbg(f"extracted {source.name or source!r}: {lod0.size} LOD0 buckets, "
            f"{len(levels)} levels: {timer}")
        log.debug("Waveform extracted: %d samples at LOD0, duration %.2fs",
                  lod0.size, duration)
        return waveform

    # ------------------------------------------------------------------

    def _build_lod0(self, source: AudioSource, total_frames: int,
                    duration: float) -> np.ndarray:
        lod0_count = max(1, int(round(duration * self.base_samples_per_second)))
        bucket_size = total_frames / lod0_count
        try:
            lod0 = np.zeros(lod0_count, dtype=np.float32)
        except MemoryError as exc:
            raise BufferAllocationError(
                f"Failed to allocate {lod0_count} peak buckets") from exc

        frames_read = 0
        for block in source.blocks(self.chunk_frames):
            if block.ndim != 2 or block.shape[1] == 0 or block.shape[0] == 0:
                raise NoSampleDataError(
                    f"Chunk at frame {frames_read} carried no channel data")
            n = block.shape[0]
            if frames_read >= total_frames:
                break
            n = min(n, total_frames - frames_read)
            amp = self._magnitude(block[:n])

            index = np.arange(frames_read, frames_read + n, dtype=np.float64)
            buckets = np.minimum((index / bucket_size).astype(np.intp),
                                 lod0_count - 1)
            # Buckets are non-decreasing within a chunk: reduce each run.
            starts = np.concatenate(([0], np.flatnonzero(np.diff(buckets)) + 1))
            peaks = np.maximum.reduceat(amp, starts)
            targets = buckets[starts]
            lod0[targets] = np.maximum(lod0[targets], peaks)

            frames_read += n

        if frames_read == 0:
            raise NoSampleDataError()
        return lod0

    def _magnitude(self, block: np.ndarray) -> np.ndarray:
        # NaN/inf samples never win a bucket.
        block = np.nan_to_num(block, nan=0.0, posinf=0.0, neginf=0.0)
        if self.peak_channel == "max" and block.shape[1] > 1:
            return np.max(np.abs(block), axis=1).astype(np.float32)
        return np.abs(block[:, 0]).astype(np.float32)

    def _normalize(self, lod0: np.ndarray) -> np.ndarray:
        peak = float(lod0.max()) if lod0.size else 0.0
        if peak < self.normalize_floor:
            # Near-silent: report as silent rather than amplify noise.
            return np.zeros_like(lod0)
        return np.minimum(1.0, lod0 / np.float32(peak)).astype(np.float32)
