from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Iterator

import numpy as np
import soundfile as sf

from .errors import DecodeError

AUDIO_EXTENSIONS = (".wav", ".aif", ".aiff", ".flac", ".ogg", ".mp3", ".caf")


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def db_to_linear(db: float) -> float:
    return 10 ** (db / 20.0)


def linear_to_db(linear: float) -> float:
    if linear <= 0:
        return float(-np.inf)
    return float(20 * np.log10(linear))


def rms_to_dbfs(rms: np.ndarray, floor_db: float = -96.0,
                epsilon: float = 1e-6) -> np.ndarray:
    """Vectorized RMS → dBFS, pinned to *floor_db* for near-zero RMS."""
    rms = np.asarray(rms, dtype=np.float64)
    out = np.full(rms.shape, float(floor_db), dtype=np.float64)
    audible = rms > epsilon
    out[audible] = 20.0 * np.log10(rms[audible])
    return np.maximum(out, floor_db)


def format_time(seconds: float) -> str:
    """``MM:SS.mmm`` for a time in seconds."""
    if seconds <= 0 or not np.isfinite(seconds):
        return "00:00.000"
    m = int(seconds // 60)
    s = int(seconds % 60)
    ms = int(round((seconds % 1) * 1000))
    if ms == 1000:
        s, ms = s + 1, 0
        if s == 60:
            m, s = m + 1, 0
    return f"{m:02d}:{s:02d}.{ms:03d}"


# ---------------------------------------------------------------------------
# Decoded audio sources
# ---------------------------------------------------------------------------

class AudioSource(ABC):
    """A readable decoded-audio source consumed in fixed-size chunks.

    Implementations never need to hold the whole signal in memory:
    :meth:`blocks` yields ``(frames, channels)`` float32 arrays in order.
    """
    samplerate: int
    channels: int
    frames: int
    name: str = ""

    @property
    def duration(self) -> float:
        if self.samplerate <= 0:
            return 0.0
        return self.frames / float(self.samplerate)

    @abstractmethod
    def blocks(self, blocksize: int) -> Iterator[np.ndarray]:
        """Yield consecutive 2-D ``(n, channels)`` float32 chunks."""
        ...


class SoundFileSource(AudioSource):
    """File-backed source decoded by libsndfile through ``soundfile``.

    Header information is read eagerly; sample data is streamed by
    :meth:`blocks` and the file handle is closed when iteration ends.
    Decoder failures surface as :class:`~wavenavlib.errors.DecodeError`.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = os.fspath(path)
        self.name = os.path.basename(self.path)
        try:
            info = sf.info(self.path)
        except (RuntimeError, OSError) as exc:
            raise DecodeError(str(exc)) from exc
        self.samplerate = int(info.samplerate)
        self.channels = int(info.channels)
        self.frames = int(info.frames)
        self.subtype = info.subtype

    def blocks(self, blocksize: int) -> Iterator[np.ndarray]:
        try:
            with sf.SoundFile(self.path) as f:
                yield from f.blocks(blocksize=blocksize, dtype="float32",
                                    always_2d=True)
        except (RuntimeError, OSError) as exc:
            raise DecodeError(str(exc)) from exc

    def __repr__(self) -> str:
        return (f"SoundFileSource({self.path!r}, sr={self.samplerate}, "
                f"ch={self.channels}, frames={self.frames})")


class ArraySource(AudioSource):
    """In-memory source over a numpy array (1-D mono or 2-D frames×channels)."""

    def __init__(self, data: np.ndarray, samplerate: int, name: str = "<array>"):
        data = np.asarray(data, dtype=np.float32)
        if data.ndim == 1:
            data = data[:, np.newaxis]
        if data.ndim != 2:
            raise ValueError(f"Expected 1-D or 2-D audio, got shape {data.shape}")
        self._data = data
        self.samplerate = int(samplerate)
        self.channels = int(data.shape[1])
        self.frames = int(data.shape[0])
        self.name = name

    def blocks(self, blocksize: int) -> Iterator[np.ndarray]:
        for start in range(0, self.frames, blocksize):
            yield self._data[start:start + blocksize]


def open_source(path: str | os.PathLike) -> SoundFileSource:
    """Open *path* for chunked decoding."""
    return SoundFileSource(path)
