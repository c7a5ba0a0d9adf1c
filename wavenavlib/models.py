from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SilenceState(Enum):
    NON_SILENT = "non_silent"
    PENDING_SILENT = "pending_silent"
    SILENT = "silent"
    PENDING_NON_SILENT = "pending_non_silent"


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(Enum):
    WAVEFORM = "waveform"
    SILENCE = "silence"
    PRECOMPUTE = "precompute"


@dataclass(frozen=True)
class SilenceRange:
    """A removable stretch of silence, in seconds.

    Attributes:
        start: Start time (inclusive).
        end:   End time (exclusive). Always greater than ``start``.
    """
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, time: float) -> bool:
        return self.start <= time < self.end

    def to_dict(self) -> dict[str, float]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SilenceRange":
        return cls(start=float(data["start"]), end=float(data["end"]))


@dataclass
class AnalysisJob:
    """One request handed to the :class:`~wavenavlib.worker.AnalysisWorker`.

    ``sequence`` increases per source path, so a caller holding an older
    job can tell that its result has been superseded.
    """
    job_id: str
    kind: JobKind
    source: str
    sequence: int
    params: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    result: Any = None
    error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
