"""Job domain models.

Defines the persisted record of one ingestion run and its lifecycle:
- Job: a single execution of a template's pipeline
- JobStatus: the job state machine
- JobLog: one structured diagnostic entry produced while processing

Valid transition graph::

    CREATED      → HARVESTED | SCHEDULED | ABORTED
    HARVESTED    → SCHEDULED | ABORTED
    FAILED       → SCHEDULED            (retry)
    INTERRUPTED  → SCHEDULED            (retry after crash)
    SCHEDULED    → RUNNING | ABORTED | FAILED | INTERRUPTED
    RUNNING      → INGESTED | FAILED | ABORTED | INTERRUPTED
    INGESTED     → (terminal)
    ABORTED      → (terminal)

Only FAILED, HARVESTED and INTERRUPTED jobs may be (re)scheduled.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class InvalidTransitionError(ValueError):
    """Raised when an illegal status transition is attempted."""

    def __init__(self, current: str, target: str, enum_name: str = "JobStatus") -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid {enum_name} transition: {current} → {target}")


class JobStatus(str, Enum):
    """Status of an ingestion job."""

    CREATED = "CREATED"
    HARVESTED = "HARVESTED"
    SCHEDULED = "SCHEDULED"
    RUNNING = "RUNNING"
    INGESTED = "INGESTED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    INTERRUPTED = "INTERRUPTED"

    @property
    def active(self) -> bool:
        """Active jobs show up in the job list; all others are history."""
        return self in ACTIVE_STATUSES

    @property
    def schedulable(self) -> bool:
        return self in SCHEDULABLE_STATUSES


ACTIVE_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.CREATED,
    JobStatus.SCHEDULED,
    JobStatus.RUNNING,
    JobStatus.HARVESTED,
})

SCHEDULABLE_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.FAILED,
    JobStatus.HARVESTED,
    JobStatus.INTERRUPTED,
})

JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.CREATED: frozenset({JobStatus.HARVESTED, JobStatus.SCHEDULED, JobStatus.ABORTED}),
    JobStatus.HARVESTED: frozenset({JobStatus.SCHEDULED, JobStatus.ABORTED}),
    JobStatus.FAILED: frozenset({JobStatus.SCHEDULED}),
    JobStatus.INTERRUPTED: frozenset({JobStatus.SCHEDULED}),
    JobStatus.SCHEDULED: frozenset({
        JobStatus.RUNNING,
        JobStatus.ABORTED,
        JobStatus.FAILED,
        JobStatus.INTERRUPTED,
    }),
    JobStatus.RUNNING: frozenset({
        JobStatus.INGESTED,
        JobStatus.FAILED,
        JobStatus.ABORTED,
        JobStatus.INTERRUPTED,
    }),
    JobStatus.INGESTED: frozenset(),  # terminal
    JobStatus.ABORTED: frozenset(),  # terminal
}


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_job_transition(JobStatus.HARVESTED, JobStatus.SCHEDULED)
        >>> validate_job_transition(JobStatus.INGESTED, JobStatus.RUNNING)
        Traceback (most recent call last):
        ...
        InvalidTransitionError: Invalid JobStatus transition: INGESTED → RUNNING
    """
    allowed = JOB_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current.value, target.value)


class JobSource(str, Enum):
    """Origin of a job."""

    WEB = "WEB"  # created manually through the API or CLI
    WATCHER = "WATCHER"  # created by a file watcher


class JobLogLevel(str, Enum):
    """Severity of a job log entry."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    SEVERE = "SEVERE"


class JobLogContext(str, Enum):
    """Category of the stage that produced a job log entry."""

    METADATA = "METADATA"
    RESOURCE = "RESOURCE"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class JobLog:
    """One diagnostic entry recorded while a job processed its records."""

    document_id: str | None
    context: JobLogContext
    level: JobLogLevel
    description: str
    collection: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "document_id": self.document_id,
            "context": self.context.value,
            "level": self.level.value,
            "description": self.description,
            "collection": self.collection,
        }


@dataclass
class Job:
    """A persisted ingestion run.

    Example:
        >>> job = Job.create(name="museum-a-1700000000000", template_id="tpl-1")
        >>> job.status
        <JobStatus.CREATED: 'CREATED'>
    """

    id: str
    name: str
    template_id: str
    source: JobSource = JobSource.WEB
    status: JobStatus = JobStatus.CREATED
    created_at: datetime = field(default_factory=utcnow)
    changed_at: datetime | None = None
    created_by: str | None = None

    # Terminal counters, copied from the final processing context
    processed: int = 0
    skipped: int = 0
    error: int = 0
    logs: list[JobLog] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        name: str,
        template_id: str,
        *,
        source: JobSource = JobSource.WEB,
        status: JobStatus = JobStatus.CREATED,
        created_by: str | None = None,
    ) -> Job:
        """Create a new job with a generated id."""
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            name=name,
            template_id=template_id,
            source=source,
            status=status,
            created_at=now,
            changed_at=now,
            created_by=created_by,
        )
