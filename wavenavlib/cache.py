"""Two-tier (memory + disk) cache for waveforms and silence ranges.

Disk artifacts live in one directory, one JSON file per source for the
waveform and one per (source, threshold, min-duration) for silence::

    <stem>-<sha256(abspath)[:16]>.waveform.json
    <stem>-<sha256(abspath)[:16]>.<param tag>.silence.json

Default locations:
    Windows : %LOCALAPPDATA%\\wavenav\\waveforms
    macOS   : ~/Library/Caches/wavenav/waveforms
    Linux   : $XDG_CACHE_HOME/wavenav/waveforms
              (defaults to ~/.cache/wavenav/waveforms)
"""

from __future__ import annotations

import glob
import hashlib
import json
import logging
import os
import platform
import threading
from typing import Any, Callable

from .audio import AudioSource, open_source
from .config import CACHE_PARAMS, raise_for_errors, validate_param_values
from .events import EventBus
from .extractor import PeakExtractor
from .log import StageTimer, dbg
from .models import SilenceRange
from .silence import SilenceDetector
from .waveform import WaveformData

log = logging.getLogger(__name__)

ARTIFACT_FORMAT = "wavenav.waveform"
SILENCE_FORMAT = "wavenav.silence"
_WAVEFORM_SUFFIX = ".waveform.json"
_SILENCE_SUFFIX = ".silence.json"

# Anything a malformed artifact can raise while being parsed.
_CORRUPT_ERRORS = (json.JSONDecodeError, UnicodeDecodeError,
                   KeyError, TypeError, ValueError)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def default_cache_dir() -> str:
    """Return the OS-specific cache directory for waveform artifacts."""
    system = platform.system()
    if system == "Windows":
        base = os.environ.get("LOCALAPPDATA")
        if not base:
            base = os.path.expanduser("~")
        return os.path.join(base, "wavenav", "waveforms")
    elif system == "Darwin":
        return os.path.join(
            os.path.expanduser("~"), "Library", "Caches", "wavenav", "waveforms",
        )
    else:  # Linux / BSD / …
        base = os.environ.get("XDG_CACHE_HOME")
        if not base:
            base = os.path.join(os.path.expanduser("~"), ".cache")
        return os.path.join(base, "wavenav", "waveforms")


def source_identity(source: str | os.PathLike) -> str:
    """Canonical identity of a source file: its absolute, normalized path."""
    return os.path.normcase(os.path.abspath(os.fspath(source)))


def cache_key(source: str | os.PathLike) -> str:
    """Artifact stem: readable base name plus a hash of the full path.

    Two files sharing a base name in different directories get distinct
    keys.
    """
    identity = source_identity(source)
    stem = os.path.splitext(os.path.basename(identity))[0] or "audio"
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()[:16]
    return f"{stem}-{digest}"


def silence_param_tag(threshold: float, min_duration: float) -> str:
    raw = f"{float(threshold)!r}|{float(min_duration)!r}"
    return "s" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:12]


def _mtime_ns(path: str) -> int | None:
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        log.warning("Cannot remove cache artifact %s (%s)", path, exc)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class WaveformCache:
    """Memory + disk cache in front of :class:`PeakExtractor` and
    :class:`SilenceDetector`.

    Every public method runs under one re-entrant lock, so memory-map
    access, disk I/O and the extraction a miss triggers are linearized.
    Requests for different files are therefore served one at a time.

    Memory entries remember the source's modification time and are
    dropped once the source changes.  A disk artifact older than its
    source is deleted; one that fails to parse is deleted as corrupt.
    Neither condition is surfaced to the caller.  Persistence is
    best-effort: write failures are logged and otherwise ignored.
    """

    def __init__(
        self,
        cache_dir: str | None = None,
        *,
        config: dict[str, Any] | None = None,
        extractor: PeakExtractor | None = None,
        detector: SilenceDetector | None = None,
        event_bus: EventBus | None = None,
        disk_cache: bool | None = None,
        source_opener: Callable[[str], AudioSource] = open_source,
    ):
        config = config or {}
        errors = validate_param_values(CACHE_PARAMS, config)
        if errors:
            raise_for_errors(errors)

        self.cache_dir = cache_dir or config.get("cache_dir") or default_cache_dir()
        self.disk_cache = (config.get("disk_cache", True)
                           if disk_cache is None else disk_cache)
        self.extractor = extractor or PeakExtractor(config)
        self.detector = detector or SilenceDetector(config)
        self.event_bus = event_bus
        self._open = source_opener

        self._lock = threading.RLock()
        self._waveforms: dict[str, tuple[int | None, WaveformData]] = {}
        self._silences: dict[tuple[str, float, float],
                             tuple[int | None, list[SilenceRange]]] = {}

    def _emit(self, event_type: str, **data):
        if self.event_bus:
            self.event_bus.emit(event_type, **data)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def waveform_path(self, source: str | os.PathLike) -> str:
        return os.path.join(self.cache_dir, cache_key(source) + _WAVEFORM_SUFFIX)

    def silence_path(self, source: str | os.PathLike,
                     threshold: float, min_duration: float) -> str:
        name = f"{cache_key(source)}.{silence_param_tag(threshold, min_duration)}"
        return os.path.join(self.cache_dir, name + _SILENCE_SUFFIX)

    def _silence_artifacts(self, source: str | os.PathLike) -> list[str]:
        pattern = glob.escape(os.path.join(self.cache_dir, cache_key(source)))
        return glob.glob(pattern + ".*" + _SILENCE_SUFFIX)

    # ------------------------------------------------------------------
    # Waveforms
    # ------------------------------------------------------------------

    def get_or_extract(self, source: str | os.PathLike) -> WaveformData:
        """Return the waveform for *source*, extracting it on a miss.

        Lookup order: memory, then disk, then :class:`PeakExtractor`.
        Extraction errors propagate unchanged.
        """
        identity = source_identity(source)
        with self._lock:
            current_mtime = _mtime_ns(identity)

            hit = self._waveforms.get(identity)
            if hit is not None:
                if hit[0] == current_mtime:
                    self._emit("waveform.cache_hit", source=identity, tier="memory")
                    return hit[1]
                dbg(f"memory entry stale for {identity}")
                del self._waveforms[identity]

            waveform = self._load_waveform(identity)
            if waveform is not None:
                self._waveforms[identity] = (current_mtime, waveform)
                self._emit("waveform.cache_hit", source=identity, tier="disk")
                return waveform

            self._emit("waveform.extract_start", source=identity)
            timer = StageTimer()
            waveform = self.extractor.extract(self._open(identity))
            elapsed_ms = timer.total_ms

            self._waveforms[identity] = (current_mtime, waveform)
            self._save_waveform(identity, waveform)
            log.info("Waveform extracted for %s: %d samples at LOD0, %.2fs",
                     os.path.basename(identity), waveform.lod_levels[0].size,
                     waveform.duration)
            self._emit("waveform.extract_complete", source=identity,
                       duration=waveform.duration,
                       lod0_count=int(waveform.lod_levels[0].size),
                       elapsed_ms=elapsed_ms)
            return waveform

    def precompute(self, source: str | os.PathLike) -> bool:
        """Warm the memory tier for *source* (e.g. right after recording).

        Returns ``True`` when a waveform is available afterwards.  Errors
        are logged, not raised.
        """
        try:
            self.get_or_extract(source)
        except Exception as exc:
            log.warning("Pre-computing waveform for %s failed: %s", source, exc)
            return False
        return True

    def _load_waveform(self, identity: str) -> WaveformData | None:
        if not self.disk_cache:
            return None
        path = self.waveform_path(identity)
        data = self._read_artifact(identity, path)
        if data is None:
            return None
        try:
            if data.get("format") != ARTIFACT_FORMAT:
                raise ValueError(f"unexpected format {data.get('format')!r}")
            if data.get("source") != identity:
                dbg(f"{path} belongs to {data.get('source')!r}, ignoring")
                return None
            waveform = WaveformData.from_dict(data)
        except _CORRUPT_ERRORS as exc:
            log.warning("Discarding corrupt waveform cache %s (%s)", path, exc)
            _remove_quietly(path)
            return None
        log.info("Loaded waveform from disk cache: %s", os.path.basename(identity))
        return waveform

    def _save_waveform(self, identity: str, waveform: WaveformData) -> None:
        if not self.disk_cache:
            return
        payload = {"format": ARTIFACT_FORMAT, "source": identity}
        payload.update(waveform.to_dict())
        self._write_artifact(self.waveform_path(identity), payload)

    # ------------------------------------------------------------------
    # Silence
    # ------------------------------------------------------------------

    def get_or_detect_silence(
        self,
        source: str | os.PathLike,
        threshold: float | None = None,
        min_duration: float | None = None,
    ) -> list[SilenceRange]:
        """Return removable silence for *source* with the given parameters.

        Results are cached per ``(source, threshold, min_duration)``;
        ``None`` parameters resolve to the detector's configured defaults
        before the lookup.  The returned list is a fresh copy.
        """
        identity = source_identity(source)
        thr = float(self.detector.threshold_db if threshold is None else threshold)
        min_dur = float(self.detector.min_duration if min_duration is None else min_duration)
        key = (identity, thr, min_dur)

        with self._lock:
            current_mtime = _mtime_ns(identity)

            hit = self._silences.get(key)
            if hit is not None:
                if hit[0] == current_mtime:
                    self._emit("silence.cache_hit", source=identity, tier="memory")
                    return list(hit[1])
                del self._silences[key]

            ranges = self._load_silence(identity, thr, min_dur)
            if ranges is not None:
                self._silences[key] = (current_mtime, ranges)
                self._emit("silence.cache_hit", source=identity, tier="disk")
                return list(ranges)

            self._emit("silence.detect_start", source=identity,
                       threshold=thr, min_duration=min_dur)
            timer = StageTimer()
            ranges = self.detector.detect(self._open(identity), thr, min_dur)
            elapsed_ms = timer.total_ms

            self._silences[key] = (current_mtime, ranges)
            self._save_silence(identity, thr, min_dur, ranges)
            self._emit("silence.detect_complete", source=identity,
                       count=len(ranges),
                       total_sec=sum(r.duration for r in ranges),
                       elapsed_ms=elapsed_ms)
            return list(ranges)

    def _load_silence(self, identity: str, threshold: float,
                      min_duration: float) -> list[SilenceRange] | None:
        if not self.disk_cache:
            return None
        path = self.silence_path(identity, threshold, min_duration)
        data = self._read_artifact(identity, path)
        if data is None:
            return None
        try:
            if data.get("format") != SILENCE_FORMAT:
                raise ValueError(f"unexpected format {data.get('format')!r}")
            if (data.get("source") != identity
                    or float(data["threshold"]) != threshold
                    or float(data["min_duration"]) != min_duration):
                return None
            ranges = [SilenceRange.from_dict(r) for r in data["ranges"]]
        except _CORRUPT_ERRORS as exc:
            log.warning("Discarding corrupt silence cache %s (%s)", path, exc)
            _remove_quietly(path)
            return None
        return ranges

    def _save_silence(self, identity: str, threshold: float, min_duration: float,
                      ranges: list[SilenceRange]) -> None:
        if not self.disk_cache:
            return
        payload = {
            "format": SILENCE_FORMAT,
            "source": identity,
            "threshold": threshold,
            "min_duration": min_duration,
            "ranges": [r.to_dict() for r in ranges],
        }
        self._write_artifact(
            self.silence_path(identity, threshold, min_duration), payload)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, source: str | os.PathLike) -> None:
        """Forget everything cached for *source*, in memory and on disk."""
        identity = source_identity(source)
        with self._lock:
            self._waveforms.pop(identity, None)
            self._drop_silence(identity)
            _remove_quietly(self.waveform_path(identity))
            self._emit("cache.invalidated", source=identity, silence_only=False)

    def invalidate_silence_only(self, source: str | os.PathLike) -> None:
        """Forget silence ranges for *source* (every parameter set); keep
        the waveform."""
        identity = source_identity(source)
        with self._lock:
            self._drop_silence(identity)
            self._emit("cache.invalidated", source=identity, silence_only=True)

    def clear_all(self) -> None:
        """Empty the memory tier and delete every artifact this cache wrote."""
        with self._lock:
            self._waveforms.clear()
            self._silences.clear()
            for suffix in (_WAVEFORM_SUFFIX, _SILENCE_SUFFIX):
                pattern = os.path.join(glob.escape(self.cache_dir), "*" + suffix)
                for path in glob.glob(pattern):
                    _remove_quietly(path)
            self._emit("cache.cleared")

    def _drop_silence(self, identity: str) -> None:
        for key in [k for k in self._silences if k[0] == identity]:
            del self._silences[key]
        for path in self._silence_artifacts(identity):
            _remove_quietly(path)

    def is_cached(self, source: str | os.PathLike) -> bool:
        """True when a waveform for *source* is held in memory."""
        with self._lock:
            return source_identity(source) in self._waveforms

    # ------------------------------------------------------------------
    # Disk I/O
    # ------------------------------------------------------------------

    def _read_artifact(self, identity: str, path: str) -> dict[str, Any] | None:
        """Load a JSON artifact, dropping it when its source is newer."""
        cache_mtime = _mtime_ns(path)
        if cache_mtime is None:
            return None
        source_mtime = _mtime_ns(identity)
        if source_mtime is not None and source_mtime > cache_mtime:
            dbg(f"source newer than {path}, discarding")
            _remove_quietly(path)
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except _CORRUPT_ERRORS as exc:
            log.warning("Discarding corrupt cache artifact %s (%s)", path, exc)
            _remove_quietly(path)
            return None
        except OSError as exc:
            log.warning("Cannot read cache artifact %s (%s)", path, exc)
            return None
        if not isinstance(data, dict):
            log.warning("Discarding cache artifact %s: root is %s, expected object",
                        path, type(data).__name__)
            _remove_quietly(path)
            return None
        return data

    def _write_artifact(self, path: str, payload: dict[str, Any]) -> None:
        tmp = path + ".tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            log.warning("Cannot persist cache artifact %s (%s)", path, exc)
            _remove_quietly(tmp)
            return
        dbg(f"saved {path}")
