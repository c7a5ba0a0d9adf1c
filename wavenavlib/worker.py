"""Background execution of cache requests off the interactive thread."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from .cache import WaveformCache, source_identity
from .events import EventBus
from .models import AnalysisJob, JobKind, JobStatus

log = logging.getLogger(__name__)


class AnalysisWorker:
    """Runs waveform and silence requests on one background thread.

    Jobs execute strictly one at a time in submission order.  There is no
    cancellation: a superseded job still completes (and its result is
    cached), so callers check :meth:`is_latest` before applying a result.
    Finished jobs are released; only the caller's handle keeps a result
    alive.

    A failing job is recorded on the job (``status=FAILED``, ``error``)
    and its exception is re-raised through the returned ``Future``.
    """

    def __init__(self, cache: WaveformCache, event_bus: EventBus | None = None):
        self.cache = cache
        self.event_bus = event_bus if event_bus is not None else cache.event_bus
        self._executor = ThreadPoolExecutor(max_workers=1,
                                            thread_name_prefix="wavenav-worker")
        self._lock = threading.Lock()
        self._latest: dict[str, int] = {}
        self._jobs: list[AnalysisJob] = []

    def _emit(self, event_type: str, **data):
        if self.event_bus:
            self.event_bus.emit(event_type, **data)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_waveform(
        self,
        source: str | os.PathLike,
        on_done: Callable[[AnalysisJob], None] | None = None,
    ) -> tuple[AnalysisJob, Future]:
        """Queue ``cache.get_or_extract(source)``."""
        return self._submit(JobKind.WAVEFORM, source, {}, on_done,
                            lambda: self.cache.get_or_extract(source))

    def submit_silence(
        self,
        source: str | os.PathLike,
        threshold: float | None = None,
        min_duration: float | None = None,
        on_done: Callable[[AnalysisJob], None] | None = None,
    ) -> tuple[AnalysisJob, Future]:
        """Queue ``cache.get_or_detect_silence(source, ...)``."""
        params = {"threshold": threshold, "min_duration": min_duration}
        return self._submit(
            JobKind.SILENCE, source, params, on_done,
            lambda: self.cache.get_or_detect_silence(source, threshold, min_duration),
        )

    def submit_precompute(
        self,
        source: str | os.PathLike,
        on_done: Callable[[AnalysisJob], None] | None = None,
    ) -> tuple[AnalysisJob, Future]:
        """Queue a cache warm-up; the job result is ``True`` on success."""
        return self._submit(JobKind.PRECOMPUTE, source, {}, on_done,
                            lambda: self.cache.precompute(source))

    def _submit(self, kind: JobKind, source, params: dict[str, Any],
                on_done: Callable[[AnalysisJob], None] | None,
                fn: Callable[[], Any]) -> tuple[AnalysisJob, Future]:
        identity = source_identity(source)
        with self._lock:
            sequence = self._latest.get(identity, 0) + 1
            self._latest[identity] = sequence
            job = AnalysisJob(
                job_id=str(uuid4()),
                kind=kind,
                source=identity,
                sequence=sequence,
                params=params,
            )
            self._jobs.append(job)

        future = self._executor.submit(self._run, job, fn)
        if on_done is not None:
            future.add_done_callback(lambda _f: on_done(job))
        return job, future

    def _run(self, job: AnalysisJob, fn: Callable[[], Any]) -> Any:
        job.status = JobStatus.RUNNING
        self._emit("job.start", job_id=job.job_id, kind=job.kind.value,
                   source=job.source)
        try:
            job.result = fn()
            job.status = JobStatus.COMPLETED
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            log.warning("%s job for %s failed: %s", job.kind.value,
                        os.path.basename(job.source), e)
            raise
        finally:
            job.completed_at = datetime.now()
            with self._lock:
                self._jobs.remove(job)
            self._emit("job.complete", job_id=job.job_id, kind=job.kind.value,
                       source=job.source, status=job.status.value)
        return job.result

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def is_latest(self, job: AnalysisJob) -> bool:
        """True when no newer request for ``job.source`` has been submitted."""
        with self._lock:
            return self._latest.get(job.source) == job.sequence

    def pending(self) -> list[AnalysisJob]:
        """Queued and running jobs; finished jobs are not retained."""
        with self._lock:
            return list(self._jobs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "AnalysisWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)
