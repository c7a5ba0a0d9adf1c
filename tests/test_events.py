"""Tests for wavenavlib/events.py — the progress event bus."""

from __future__ import annotations

import os

from wavenavlib.cache import WaveformCache
from wavenavlib.events import EVENT_TYPES, EventBus


class TestEventBus:
    """subscribe / unsubscribe / emit."""

    def test_emit_reaches_subscribers(self) -> None:
        """Handlers receive the payload as keywords."""
        bus = EventBus()
        got = []
        bus.subscribe("cache.cleared", lambda **d: got.append(d))
        bus.emit("cache.cleared", reason="test")
        assert got == [{"reason": "test"}]

    def test_unsubscribe(self) -> None:
        """Removed handlers are no longer called."""
        bus = EventBus()
        got = []

        def handler(**d):
            got.append(d)

        bus.subscribe("job.start", handler)
        assert bus.has_subscribers("job.start")
        bus.unsubscribe("job.start", handler)
        bus.emit("job.start", job_id="1")
        assert got == []
        assert not bus.has_subscribers("job.start")

    def test_unsubscribe_unknown_is_harmless(self) -> None:
        """Unsubscribing something never subscribed does nothing."""
        EventBus().unsubscribe("job.start", lambda **d: None)

    def test_emit_without_subscribers(self) -> None:
        """Events nobody listens to are dropped."""
        EventBus().emit("waveform.extract_start", source="x")


class TestCacheEvents:
    """Events emitted by WaveformCache."""

    def test_extraction_lifecycle(self, wav_file, cache_dir) -> None:
        """A miss emits start and complete with summary fields."""
        bus = EventBus()
        got = []
        for event_type in EVENT_TYPES:
            bus.subscribe(event_type, lambda _t=event_type, **d: got.append((_t, d)))

        cache = WaveformCache(cache_dir, event_bus=bus)
        cache.get_or_extract(wav_file)
        cache.get_or_extract(wav_file)
        cache.clear_all()

        kinds = [t for t, _ in got]
        assert kinds == ["waveform.extract_start", "waveform.extract_complete",
                         "waveform.cache_hit", "cache.cleared"]
        complete = got[1][1]
        assert complete["source"] == os.path.abspath(wav_file)
        assert complete["lod0_count"] == 5000
        assert complete["elapsed_ms"] >= 0.0
        assert got[2][1]["tier"] == "memory"
