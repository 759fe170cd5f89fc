"""
Index sink.

Publishes a job's records to one index collection as a full resync:

    open   → client.delete_all(collection)
    write  → buffered, client.add(collection, batch) every ``batch_size``
    close  → flush, client.commit(collection)
    abort  → client.rollback(collection)

Nothing becomes visible in the collection until the commit; a failed or
cancelled run rolls back and leaves the previous state in place.
"""

from __future__ import annotations

from typing import Any

from kiar.core.errors import KiarError, SinkError
from kiar.core.models.job import JobLogContext, JobLogLevel
from kiar.core.protocols import IndexClient
from kiar.framework.logging import get_logger, log_step
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Record
from kiar.framework.pipelines.stage import Sink, Stage

log = get_logger(__name__)


class IndexSink(Sink):
    """Writes records to an :class:`~kiar.core.protocols.IndexClient`."""

    def __init__(self, input: Stage, client: IndexClient, collection: str, batch_size: int = 500):
        super().__init__(input)
        self.client = client
        self.collection = collection
        self.batch_size = batch_size
        self._buffer: list[dict[str, Any]] = []
        self._published = 0

    def open(self, context: ProcessingContext) -> None:
        self._buffer = []
        self._published = 0
        self._call("delete_all", context)

    def write(self, record: Record, context: ProcessingContext) -> None:
        if record.uuid is None:
            context.log(
                JobLogLevel.SEVERE,
                "Document could not be published: Field 'uuid' is missing.",
                context=JobLogContext.SYSTEM,
                collection=self.collection,
            )
            context.increment_error()
            return

        self._buffer.append(record.to_document())
        context.increment_processed()
        if len(self._buffer) >= self.batch_size:
            self._flush(context)

    def close(self, context: ProcessingContext) -> None:
        with log_step("index.commit", context, collection=self.collection) as step:
            self._flush(context)
            self._call("commit", context)
            step.add_metric("documents", self._published)

    def abort(self, context: ProcessingContext) -> None:
        self._buffer = []
        self.client.rollback(self.collection)
        log.warning("index.rolled_back", collection=self.collection)

    def _flush(self, context: ProcessingContext) -> None:
        if not self._buffer:
            return
        batch, self._buffer = self._buffer, []
        self._call("add", context, batch)
        self._published += len(batch)

    def _call(self, operation: str, context: ProcessingContext, *args: Any) -> None:
        try:
            getattr(self.client, operation)(self.collection, *args)
        except KiarError:
            raise
        except Exception as e:
            raise SinkError(f"Index {operation} failed for collection {self.collection}: {e}", cause=e).with_context(
                job_id=context.job_id, stage=self.name, collection=self.collection
            ) from e
