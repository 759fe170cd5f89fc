"""Pipeline: a sink and the chain of stages it drains."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from kiar.framework.logging import get_logger, log_step
from kiar.framework.pipelines.context import ContextSnapshot, ProcessingContext
from kiar.framework.pipelines.stage import Sink, Source, Stage

log = get_logger(__name__)


@dataclass
class PipelineResult:
    """Outcome of a fully drained pipeline."""

    started_at: datetime
    completed_at: datetime
    snapshot: ContextSnapshot

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class Pipeline:
    """Source → Transformers → Sink, run by draining the sink.

    ``run`` returns only when every record has been accounted for.  Stage
    errors and :class:`~kiar.core.errors.JobCancelledError` propagate to the
    caller, which owns the job's terminal status.
    """

    def __init__(self, sink: Sink, name: str = ""):
        self.sink = sink
        self.name = name

    @property
    def stages(self) -> list[Stage]:
        """Stages in stream order, source first."""
        chain: list[Stage] = []
        stage: Stage | None = self.sink
        while stage is not None:
            chain.append(stage)
            stage = getattr(stage, "input", None)
        chain.reverse()
        return chain

    @property
    def source(self) -> Source:
        first = self.stages[0]
        if not isinstance(first, Source):
            raise TypeError(f"Pipeline {self.name!r} does not start with a source: {first!r}")
        return first

    def run(self, context: ProcessingContext) -> PipelineResult:
        started_at = datetime.now(UTC)
        log.debug("pipeline.start", pipeline=self.name, stages=[s.name for s in self.stages])

        with log_step("pipeline.run", context, pipeline=self.name):
            for _ in self.sink.to_stream(context):
                pass

        return PipelineResult(started_at=started_at, completed_at=datetime.now(UTC), snapshot=context.snapshot())

    def __repr__(self) -> str:
        return " -> ".join(s.name for s in self.stages)
