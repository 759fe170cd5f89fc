"""
Pipeline stages.

Every stage exposes ``to_stream(context)``: a lazy, single-pass,
forward-only iterator of records.  Stages are chained by wrapping::

    Source ──► Transformer ──► Transformer ──► Sink
     read()     transform()     transform()    write() / close()

The sink pulls the whole chain.  All stages check the context's
cancellation flag once per record, so a cancelled job unwinds from
wherever it currently is by raising
:class:`~kiar.core.errors.JobCancelledError`.

Error policy:
    - Record-level problems are handled in the stage: count, log, drop.
    - Anything raised out of ``read``, ``transform`` or ``write`` ends the
      stream and propagates to the pipeline owner.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

from kiar.framework.logging import get_logger
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Record

log = get_logger(__name__)


class Stage(ABC):
    """Base class of all pipeline stages."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def to_stream(self, context: ProcessingContext) -> Iterator[Record]:
        """Return the lazy record stream of this stage."""
        ...

    def __repr__(self) -> str:
        return f"{self.name}()"


class Source(Stage):
    """First stage of a pipeline; produces records from its input."""

    @abstractmethod
    def read(self, context: ProcessingContext) -> Iterator[Record]:
        """Yield records in input order."""
        ...

    def to_stream(self, context: ProcessingContext) -> Iterator[Record]:
        context.check_cancelled()
        for record in self.read(context):
            context.check_cancelled()
            yield record


class Transformer(Stage):
    """Filters or enriches the records of exactly one upstream stage.

    ``transform`` returns the record to pass on, or ``None`` to drop it.  A
    transformer that drops a record logs an entry and increments ``skipped``
    or ``error`` on the context.  Records are never reordered.
    """

    def __init__(self, input: Stage):
        self.input = input

    def open(self, context: ProcessingContext) -> None:
        """Called once before the first record is pulled."""

    @abstractmethod
    def transform(self, record: Record, context: ProcessingContext) -> Record | None:
        ...

    def to_stream(self, context: ProcessingContext) -> Iterator[Record]:
        self.open(context)
        for record in self.input.to_stream(context):
            context.check_cancelled()
            result = self.transform(record, context)
            if result is not None:
                yield result


class Sink(Stage):
    """Last stage of a pipeline; drains its upstream and publishes records.

    Lifecycle: ``open`` → ``write`` per record → ``close`` (commit).  When
    the stream fails or is cancelled, ``abort`` is called instead of
    ``close`` and the original exception propagates.  The sink counts
    ``processed`` for every record it accepts.
    """

    def __init__(self, input: Stage):
        self.input = input

    def open(self, context: ProcessingContext) -> None:
        """Prepare the target."""

    @abstractmethod
    def write(self, record: Record, context: ProcessingContext) -> None:
        ...

    def close(self, context: ProcessingContext) -> None:
        """Commit everything written."""

    def abort(self, context: ProcessingContext) -> None:
        """Discard everything written since ``open``."""

    def drain(self, context: ProcessingContext) -> None:
        """Pull every upstream record through ``write`` and commit."""
        self.open(context)
        try:
            for record in self.input.to_stream(context):
                context.check_cancelled()
                self.write(record, context)
            context.check_cancelled()
            self.close(context)
        except Exception:
            try:
                self.abort(context)
            except Exception:
                log.exception("sink.abort_failed", sink=self.name)
            raise

    def to_stream(self, context: ProcessingContext) -> Iterator[Record]:
        self.drain(context)
        yield from ()
