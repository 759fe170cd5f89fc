"""
Timed pipeline steps.

``log_step`` wraps one step of a job (draining the pipeline, committing
the index) and logs its outcome:

    <event>.done       INFO   duration_ms, step metrics, job counters
    <event>.cancelled  INFO   duration_ms, job counters
    <event>.failed     ERROR  duration_ms, error_type, error, job counters

The counters (``processed``, ``skipped``, ``error``) are read from the
job's processing context when one is passed.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from kiar.core.errors import JobCancelledError
from kiar.framework.logging.context import get_logger, scoped_context

if TYPE_CHECKING:
    from kiar.framework.pipelines.context import ProcessingContext


@dataclass
class StepTimer:
    """Elapsed time and metrics of one step."""

    event: str
    started: float = field(default_factory=time.perf_counter)
    finished: float | None = None
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        end = self.finished if self.finished is not None else time.perf_counter()
        return (end - self.started) * 1000

    def add_metric(self, key: str, value: Any) -> StepTimer:
        self.metrics[key] = value
        return self


def _counters(context: ProcessingContext | None) -> dict[str, int]:
    if context is None:
        return {}
    snapshot = context.snapshot()
    return {"processed": snapshot.processed, "skipped": snapshot.skipped, "error": snapshot.error}


@contextmanager
def log_step(event: str, context: ProcessingContext | None = None, **fields: Any) -> Iterator[StepTimer]:
    """Time a step and log its outcome; exceptions are logged and re-raised.

    ``stage`` is bound to ``event`` in the log context while the step runs.

    Usage:
        with log_step("index.commit", context, collection="objects") as step:
            client.commit("objects")
            step.add_metric("documents", 120)
    """
    log = get_logger("kiar.step")
    step = StepTimer(event, metrics=dict(fields))

    with scoped_context(stage=event):
        try:
            yield step
        except JobCancelledError:
            step.finished = time.perf_counter()
            log.info(f"{event}.cancelled", duration_ms=round(step.duration_ms, 2), **_counters(context))
            raise
        except Exception as e:
            step.finished = time.perf_counter()
            log.error(
                f"{event}.failed",
                duration_ms=round(step.duration_ms, 2),
                error_type=type(e).__name__,
                error=str(e),
                **step.metrics,
                **_counters(context),
            )
            raise

    step.finished = time.perf_counter()
    log.info(f"{event}.done", duration_ms=round(step.duration_ms, 2), **step.metrics, **_counters(context))
