"""
Per-job processing context.

One :class:`ProcessingContext` is created for every job invocation and
shared by all stages of that job's pipeline.  It holds:

- the counters ``processed``, ``skipped`` and ``error``
- an append-only log of :class:`~kiar.core.models.job.JobLog` entries
- the cooperative cancellation flag

Stages run on the job worker thread while the server reads progress from
other threads, so every mutation goes through a lock and readers only ever
get a :class:`ContextSnapshot`.

Accounting rule: every record a source yields ends up in exactly one
counter.  The sink counts ``processed``; a stage that drops a record counts
``skipped`` (intentionally filtered) or ``error`` (invalid).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

from kiar.core.errors import JobCancelledError
from kiar.core.models.job import JobLog, JobLogContext, JobLogLevel
from kiar.framework.logging import get_logger

log = get_logger(__name__)

_LEVEL_METHODS = {
    JobLogLevel.INFO: "info",
    JobLogLevel.WARNING: "warning",
    JobLogLevel.ERROR: "error",
    JobLogLevel.SEVERE: "critical",
}


@dataclass(frozen=True)
class ContextSnapshot:
    """Immutable copy of a context's counters and log."""

    job_id: str
    participant: str
    template_name: str | None
    processed: int
    skipped: int
    error: int
    logs: tuple[JobLog, ...]
    cancelled: bool = False

    @property
    def total(self) -> int:
        """Records accounted for so far."""
        return self.processed + self.skipped + self.error

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "participant": self.participant,
            "template_name": self.template_name,
            "processed": self.processed,
            "skipped": self.skipped,
            "error": self.error,
            "cancelled": self.cancelled,
            "logs": [entry.to_dict() for entry in self.logs],
        }


class ProcessingContext:
    """Mutable state of one pipeline run.

    Args:
        job_id: Job being executed
        participant: Participant owning the job's template
        template_name: Name of the job's template (for logging)
        collection: Index collection; default ``collection`` of log entries
    """

    def __init__(
        self,
        job_id: str,
        participant: str,
        template_name: str | None = None,
        collection: str | None = None,
    ):
        self.job_id = job_id
        self.participant = participant
        self.template_name = template_name
        self.collection = collection

        self._lock = threading.Lock()
        self._processed = 0
        self._skipped = 0
        self._error = 0
        self._logs: list[JobLog] = []
        self._cancelled = threading.Event()

    # ── Counters ─────────────────────────────────────────────────
    @property
    def processed(self) -> int:
        with self._lock:
            return self._processed

    @property
    def skipped(self) -> int:
        with self._lock:
            return self._skipped

    @property
    def error(self) -> int:
        with self._lock:
            return self._error

    def increment_processed(self, n: int = 1) -> None:
        with self._lock:
            self._processed += n

    def increment_skipped(self, n: int = 1) -> None:
        with self._lock:
            self._skipped += n

    def increment_error(self, n: int = 1) -> None:
        with self._lock:
            self._error += n

    # ── Log ──────────────────────────────────────────────────────
    @property
    def logs(self) -> tuple[JobLog, ...]:
        with self._lock:
            return tuple(self._logs)

    def append(self, entry: JobLog) -> None:
        with self._lock:
            self._logs.append(entry)

    def log(
        self,
        level: JobLogLevel,
        description: str,
        *,
        document_id: str | None = None,
        context: JobLogContext = JobLogContext.METADATA,
        collection: str | None = None,
    ) -> JobLog:
        """Append a job log entry and mirror it to the process log."""
        entry = JobLog(
            document_id=document_id,
            context=context,
            level=level,
            description=description,
            collection=collection if collection is not None else self.collection,
        )
        self.append(entry)
        getattr(log, _LEVEL_METHODS[level])(
            "job.log",
            description=description,
            document_id=document_id,
            log_context=context.value,
        )
        return entry

    # ── Cancellation ─────────────────────────────────────────────
    def cancel(self) -> None:
        """Request cooperative cancellation; stages stop at the next record."""
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check_cancelled(self) -> None:
        """Raise :class:`JobCancelledError` if cancellation was requested."""
        if self._cancelled.is_set():
            raise JobCancelledError(f"Job {self.job_id} was cancelled.").with_context(job_id=self.job_id)

    # ── Snapshot ─────────────────────────────────────────────────
    def snapshot(self) -> ContextSnapshot:
        with self._lock:
            return ContextSnapshot(
                job_id=self.job_id,
                participant=self.participant,
                template_name=self.template_name,
                processed=self._processed,
                skipped=self._skipped,
                error=self._error,
                logs=tuple(self._logs),
                cancelled=self._cancelled.is_set(),
            )

    def __repr__(self) -> str:
        return (
            f"ProcessingContext(job_id={self.job_id!r}, processed={self.processed}, "
            f"skipped={self.skipped}, error={self.error})"
        )
