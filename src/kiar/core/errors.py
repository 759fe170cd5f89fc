"""
Structured error types for the KIAR ingestion engine.

Every error raised by the engine extends :class:`KiarError` and carries a
category, a retry hint, structured context and an optional chained cause.
The hierarchy mirrors the three ways an ingestion can go wrong:

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          KiarError                               │
        │        (category, retryable, context, cause)                     │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  SourceError        SinkError          ValidationError           │
        │  (SOURCE)           (SINK)             (VALIDATION)              │
        │     │                                  record-level, non-fatal   │
        │  SourceNotFoundError                                             │
        │  ParseError                                                      │
        │                                                                  │
        │  SchedulingError    ConfigError        StoreError                │
        │  (SCHEDULING)       (CONFIG)           (STORAGE)                 │
        │     │                                                            │
        │  InvalidJobStateError                                            │
        │  JobNotFoundError                                                │
        │  TemplateNotFoundError                                           │
        │                                                                  │
        │  JobCancelledError  (CANCELLED) - never a failure                │
        └─────────────────────────────────────────────────────────────────┘

Error policy:
    - **Record-level** problems are handled inside the stage that detects
      them: the record is dropped, counted and logged.  An unparseable value
      (:class:`ValidationError`, raised by the record mapper) only drops the
      field and is logged as a WARNING.
    - **Stage-level** problems (:class:`SourceError`, :class:`SinkError`)
      terminate the pipeline; the job ends FAILED.
    - **Scheduling** problems surface synchronously to the caller and leave
      the store untouched.
    - **Cancellation** (:class:`JobCancelledError`) ends the job ABORTED.

Usage:
    from kiar.core.errors import SourceError

    try:
        handle = path.open("rb")
    except OSError as e:
        raise SourceError("Cannot open source file", cause=e).with_context(path=str(path))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    SOURCE = "SOURCE"             # Input file missing or unreadable
    PARSE = "PARSE"               # Malformed input document
    SINK = "SINK"                 # Index unreachable, publish failed
    VALIDATION = "VALIDATION"     # Record-level field problems
    CONFIG = "CONFIG"             # Bad template, mapping or settings
    SCHEDULING = "SCHEDULING"     # Job lifecycle precondition violated
    STORAGE = "STORAGE"           # Entity store failures
    CANCELLED = "CANCELLED"       # Cooperative cancellation
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        job_id: Job being executed when the error occurred
        template_id: Job template the job was built from
        participant: Participant (tenant) of the job
        stage: Pipeline stage that raised the error
        path: File path involved, if any
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    template_id: str | None = None
    participant: str | None = None
    stage: str | None = None
    path: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "template_id", "participant", "stage", "path"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class KiarError(Exception):
    """
    Base exception for all ingestion engine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    only pass what differs from the defaults.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> KiarError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SinkError("Commit failed").with_context(job_id=job_id, stage="IndexSink")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# STAGE-LEVEL ERRORS (fatal for the pipeline)
# =============================================================================


class SourceError(KiarError):
    """A source cannot deliver records at all."""

    default_category = ErrorCategory.SOURCE
    default_retryable = True


class SourceNotFoundError(SourceError):
    """The input file of a job does not exist."""

    default_retryable = False


class ParseError(SourceError):
    """The input document is malformed and cannot be streamed."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class SinkError(KiarError):
    """The sink cannot publish records (index unreachable, commit failed)."""

    default_category = ErrorCategory.SINK
    default_retryable = True


# =============================================================================
# RECORD-LEVEL ERRORS (handled inside stages)
# =============================================================================


class ValidationError(KiarError):
    """A single record or value failed validation."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# CONFIGURATION / STORAGE
# =============================================================================


class ConfigError(KiarError):
    """A template, mapping or setting is invalid."""

    default_category = ErrorCategory.CONFIG


class StoreError(KiarError):
    """The entity store failed to read or write."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


# =============================================================================
# SCHEDULING ERRORS (surfaced synchronously, no state mutated)
# =============================================================================


class SchedulingError(KiarError):
    """Base class for job lifecycle precondition violations."""

    default_category = ErrorCategory.SCHEDULING


class InvalidJobStateError(SchedulingError):
    """The job is not in a status that allows the requested transition."""

    def __init__(self, job_id: str, status: Any, message: str | None = None, **kwargs: Any):
        self.job_id = job_id
        self.status = status
        status_name = getattr(status, "value", status)
        super().__init__(
            message or f"Job {job_id} cannot be executed because it is in wrong state ({status_name}).",
            **kwargs,
        )
        self.with_context(job_id=job_id)


class JobNotFoundError(SchedulingError):
    """No job with the given id exists."""

    def __init__(self, job_id: str, **kwargs: Any):
        self.job_id = job_id
        super().__init__(f"Job {job_id} could not be found.", **kwargs)
        self.with_context(job_id=job_id)


class TemplateNotFoundError(SchedulingError):
    """No job template with the given id exists."""

    def __init__(self, template_id: str, **kwargs: Any):
        self.template_id = template_id
        super().__init__(f"Job template {template_id} could not be found.", **kwargs)
        self.with_context(template_id=template_id)


# =============================================================================
# CANCELLATION
# =============================================================================


class JobCancelledError(KiarError):
    """Raised inside a pipeline when its job has been cancelled.

    Stages raise it from ``ProcessingContext.check_cancelled()``; the server
    maps it to ABORTED, never FAILED.
    """

    default_category = ErrorCategory.CANCELLED


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "KiarError",
    "SourceError",
    "SourceNotFoundError",
    "ParseError",
    "SinkError",
    "ValidationError",
    "ConfigError",
    "StoreError",
    "SchedulingError",
    "InvalidJobStateError",
    "JobNotFoundError",
    "TemplateNotFoundError",
    "JobCancelledError",
]
