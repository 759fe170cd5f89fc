"""
Structured, job-aware logging (structlog).

Usage:
    from kiar.framework.logging import get_logger, log_step, scoped_context

    log = get_logger(__name__)

    with scoped_context(job_id=job.id, participant=template.participant):
        with log_step("pipeline.run", context, pipeline="objects"):
            ...
"""

from kiar.framework.logging.config import configure_logging
from kiar.framework.logging.context import (
    LogContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    scoped_context,
    set_context,
)
from kiar.framework.logging.timing import StepTimer, log_step

__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
    "get_context",
    "set_context",
    "bind_context",
    "clear_context",
    "scoped_context",
    "log_step",
    "StepTimer",
]
