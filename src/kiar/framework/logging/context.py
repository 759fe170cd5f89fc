"""
Job-scoped log context.

Every log entry emitted while a job runs carries the job's identifiers
without them being passed through the stages.  The context is a frozen
:class:`LogContext` held in a ``ContextVar``; threads start empty, so the
job worker and each watcher set their own:

    worker   job_id, participant, template
    watcher  watcher (template id), participant, template
    step     stage (pushed by ``log_step`` for the duration of the step)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from typing import Any

import structlog


@dataclass(frozen=True)
class LogContext:
    job_id: str | None = None
    participant: str | None = None
    template: str | None = None
    watcher: str | None = None
    stage: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}


_EMPTY = LogContext()
_current: ContextVar[LogContext] = ContextVar("kiar_log_context", default=_EMPTY)


def get_context() -> LogContext:
    return _current.get()


def set_context(**fields: str | None) -> LogContext:
    """Replace the context of the current thread."""
    ctx = LogContext(**fields)
    _current.set(ctx)
    return ctx


def bind_context(**fields: str | None) -> LogContext:
    """Add ``fields`` to the current context; ``None`` values are ignored."""
    ctx = replace(get_context(), **{k: v for k, v in fields.items() if v is not None})
    _current.set(ctx)
    return ctx


def clear_context() -> None:
    _current.set(_EMPTY)


@contextmanager
def scoped_context(**fields: str | None) -> Iterator[LogContext]:
    """Bind ``fields`` for the body of a ``with`` block, then restore.

    Usage:
        with scoped_context(job_id=job.id, participant=template.participant):
            pipeline.run(context)
    """
    token = _current.set(replace(get_context(), **{k: v for k, v in fields.items() if v is not None}))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


def merge_job_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor; explicit event fields win over the context."""
    for key, value in get_context().to_dict().items():
        event_dict.setdefault(key, value)
    return event_dict


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
