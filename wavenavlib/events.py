from __future__ import annotations

import threading
from typing import Any, Callable

# Event types emitted by the cache and worker.  Payloads are keyword
# arguments; every event carries ``source`` except ``cache.cleared``.
EVENT_TYPES: tuple[str, ...] = (
    "waveform.cache_hit",        # source, tier ("memory" | "disk")
    "waveform.extract_start",    # source
    "waveform.extract_complete", # source, duration, lod0_count, elapsed_ms
    "silence.cache_hit",         # source, tier
    "silence.detect_start",      # source, threshold, min_duration
    "silence.detect_complete",   # source, count, total_sec, elapsed_ms
    "cache.invalidated",         # source, silence_only
    "cache.cleared",
    "job.start",                 # job_id, kind, source
    "job.complete",              # job_id, kind, source, status
)


class EventBus:
    """Publish/subscribe bus for analysis progress events.

    Thread-safe: the handler table is guarded by a lock so events can be
    emitted from the analysis worker thread while the interactive side
    subscribes and unsubscribes.  Handlers run on the emitting thread.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Callable[..., Any]) -> None:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: Callable[..., Any]) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def has_subscribers(self, event_type: str) -> bool:
        with self._lock:
            return bool(self._handlers.get(event_type))

    def emit(self, event_type: str, **data: Any) -> None:
        """Fire all handlers for *event_type* with *data* as keywords."""
        with self._lock:
            handlers = list(self._handlers.get(event_type, []))
        for handler in handlers:
            handler(**data)
