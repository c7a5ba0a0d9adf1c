"""Tests for wavenavlib/worker.py — serialized background analysis."""

from __future__ import annotations

import gc
import threading
import time
import weakref

import pytest

from wavenavlib.cache import WaveformCache
from wavenavlib.errors import DecodeError
from wavenavlib.events import EventBus
from wavenavlib.models import JobKind, JobStatus
from wavenavlib.waveform import WaveformData
from wavenavlib.worker import AnalysisWorker


class _SlowCache:
    """Stand-in cache that records how many calls overlap."""

    def __init__(self):
        self.event_bus = None
        self.active = 0
        self.max_active = 0
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def get_or_extract(self, source):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.02)
        with self._lock:
            self.active -= 1
            self.calls.append(str(source))
        return source


class TestJobs:
    """Submission, results and failures."""

    def test_waveform_job(self, wav_file, cache_dir) -> None:
        """A waveform job completes with the extracted pyramid."""
        with AnalysisWorker(WaveformCache(cache_dir)) as worker:
            job, future = worker.submit_waveform(wav_file)
            result = future.result(timeout=30)
        assert isinstance(result, WaveformData)
        assert job.kind is JobKind.WAVEFORM
        assert job.status is JobStatus.COMPLETED
        assert job.result is result
        assert job.completed_at is not None

    def test_silence_job(self, wav_file, cache_dir) -> None:
        """A silence job returns the detected ranges."""
        with AnalysisWorker(WaveformCache(cache_dir)) as worker:
            job, future = worker.submit_silence(wav_file, -55.0, 0.5)
            ranges = future.result(timeout=30)
        assert len(ranges) == 1
        assert job.params == {"threshold": -55.0, "min_duration": 0.5}

    def test_precompute_job(self, wav_file, cache_dir) -> None:
        """Precompute warms the shared cache."""
        cache = WaveformCache(cache_dir)
        with AnalysisWorker(cache) as worker:
            _job, future = worker.submit_precompute(wav_file)
            assert future.result(timeout=30) is True
        assert cache.is_cached(wav_file)

    def test_failure_is_recorded_and_raised(self, tmp_path, cache_dir) -> None:
        """Errors land on the job and propagate through the future."""
        with AnalysisWorker(WaveformCache(cache_dir)) as worker:
            job, future = worker.submit_waveform(str(tmp_path / "missing.wav"))
            with pytest.raises(DecodeError):
                future.result(timeout=30)
        assert job.status is JobStatus.FAILED
        assert job.error

    def test_on_done_callback(self, wav_file, cache_dir) -> None:
        """on_done receives the finished job."""
        done = threading.Event()
        received = []

        def on_done(job):
            received.append(job)
            done.set()

        with AnalysisWorker(WaveformCache(cache_dir)) as worker:
            job, _future = worker.submit_waveform(wav_file, on_done=on_done)
            assert done.wait(timeout=30)
        assert received == [job]


class TestSerialization:
    """Ordering and relevance."""

    def test_jobs_never_overlap(self) -> None:
        """Requests run one at a time in submission order."""
        cache = _SlowCache()
        with AnalysisWorker(cache) as worker:
            futures = [worker.submit_waveform(f"/tmp/{i}.wav")[1] for i in range(5)]
            for f in futures:
                f.result(timeout=30)
        assert cache.max_active == 1
        assert cache.calls == [f"/tmp/{i}.wav" for i in range(5)]

    def test_is_latest_tracks_supersession(self) -> None:
        """Only the newest request for a source is current."""
        with AnalysisWorker(_SlowCache()) as worker:
            first, f1 = worker.submit_waveform("/tmp/a.wav")
            second, f2 = worker.submit_waveform("/tmp/a.wav")
            other, f3 = worker.submit_waveform("/tmp/b.wav")
            for f in (f1, f2, f3):
                f.result(timeout=30)
        assert not worker.is_latest(first)
        assert worker.is_latest(second)
        assert worker.is_latest(other)
        assert (first.sequence, second.sequence, other.sequence) == (1, 2, 1)

    def test_pending_lists_queued_jobs(self) -> None:
        """Queued jobs are pending; finished jobs leave the list."""
        with AnalysisWorker(_SlowCache()) as worker:
            submitted = [worker.submit_waveform(f"/tmp/{i}.wav") for i in range(3)]
            assert 1 <= len(worker.pending()) <= 3
            for _job, future in submitted:
                future.result(timeout=30)
            assert worker.pending() == []
            assert worker.is_latest(submitted[-1][0])

    def test_finished_results_are_released(self, wav_file, cache_dir) -> None:
        """After invalidation nothing in the worker keeps a pyramid alive."""
        cache = WaveformCache(cache_dir, disk_cache=False)
        refs = []
        with AnalysisWorker(cache) as worker:
            for _ in range(20):
                _job, future = worker.submit_waveform(wav_file)
                refs.append(weakref.ref(future.result(timeout=30)))
                cache.invalidate(wav_file)
            del _job, future
            gc.collect()
            assert worker.pending() == []
            assert all(ref() is None for ref in refs)


class TestEvents:
    """Job lifecycle events."""

    def test_start_and_complete(self) -> None:
        """job.start precedes job.complete with the final status."""
        bus = EventBus()
        seen = []
        bus.subscribe("job.start", lambda **d: seen.append(("start", d["kind"])))
        bus.subscribe("job.complete", lambda **d: seen.append(("complete", d["status"])))
        with AnalysisWorker(_SlowCache(), event_bus=bus) as worker:
            worker.submit_waveform("/tmp/e.wav")[1].result(timeout=30)
        assert seen == [("start", "waveform"), ("complete", "completed")]
