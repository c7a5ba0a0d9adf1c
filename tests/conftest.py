"""
Shared fixtures for the test suite.

Synthetic signals are built from sines at a given dBFS peak level so
silence-detection timings can be reasoned about exactly.  WAV fixtures
are written with ``soundfile`` into ``tmp_path``.
"""

from __future__ import annotations

import numpy as np
import pytest
import soundfile as sf

from wavenavlib import log as wavelog

SR = 44100
"""Sample rate used by every synthetic signal."""


# ---------------------------------------------------------------------------
# Signal builders
# ---------------------------------------------------------------------------


def tone(duration: float, level_db: float = -10.0, freq: float = 440.0,
         sr: int = SR) -> np.ndarray:
    """Mono sine with peak amplitude at *level_db* dBFS."""
    n = int(round(duration * sr))
    t = np.arange(n, dtype=np.float64) / sr
    amp = 10 ** (level_db / 20.0)
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def quiet(duration: float, level_db: float = -80.0, sr: int = SR) -> np.ndarray:
    """Very low-level sine standing in for room-tone silence."""
    return tone(duration, level_db=level_db, freq=220.0, sr=sr)


def concat(*parts: np.ndarray) -> np.ndarray:
    return np.concatenate(parts).astype(np.float32)


def write_wav(path, data: np.ndarray, sr: int = SR) -> str:
    sf.write(str(path), data, sr, subtype="FLOAT")
    return str(path)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _no_debug_env(monkeypatch):
    """Keep ``dbg`` tracing off regardless of the caller's environment."""
    monkeypatch.delenv("WAVENAV_DEBUG", raising=False)
    wavelog.reset()
    yield
    wavelog.reset()


@pytest.fixture()
def speech_like() -> np.ndarray:
    """2 s tone, 1 s of -80 dBFS, 2 s tone."""
    return concat(tone(2.0), quiet(1.0), tone(2.0))


@pytest.fixture()
def wav_file(tmp_path, speech_like) -> str:
    return write_wav(tmp_path / "take1.wav", speech_like)


@pytest.fixture()
def cache_dir(tmp_path) -> str:
    return str(tmp_path / "cache")
