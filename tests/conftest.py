"""
Shared pytest fixtures for kiar tests.

This module provides:
- An in-memory SQLite entity store
- An in-memory index client that records every call
- Template, institution and job factories
- Settings pointing at ``tmp_path`` with short poll intervals
- Small in-memory sources for pipeline tests
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest

from kiar.core.models.institution import Institution, License
from kiar.core.models.job import Job, JobSource, JobStatus
from kiar.core.models.template import AttributeMapping, EntityMapping, JobTemplate, JobType, ValueParser
from kiar.core.settings import KiarSettings, clear_settings_cache
from kiar.core.store import SqliteEntityStore
from kiar.framework.pipelines.context import ProcessingContext
from kiar.framework.pipelines.record import Field, Record, Value
from kiar.framework.pipelines.stage import Source
from kiar.ingester.paths import job_path

PARTICIPANT = "museum-net"


# =============================================================================
# Fakes
# =============================================================================


class InMemoryIndexClient:
    """IndexClient keeping staged and committed documents in dicts."""

    def __init__(self, fail_on: str | None = None):
        self.fail_on = fail_on
        self.calls: list[tuple[str, str]] = []
        self.staged: dict[str, list[dict[str, Any]]] = {}
        self.committed: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _record(self, operation: str, collection: str) -> None:
        self.calls.append((operation, collection))
        if operation == self.fail_on:
            raise ConnectionError(f"index unavailable during {operation}")

    def delete_all(self, collection: str) -> None:
        with self._lock:
            self._record("delete_all", collection)
            self.staged[collection] = []

    def add(self, collection: str, documents: Sequence[dict[str, Any]]) -> None:
        with self._lock:
            self._record("add", collection)
            self.staged.setdefault(collection, []).extend(documents)

    def commit(self, collection: str) -> None:
        with self._lock:
            self._record("commit", collection)
            self.committed[collection] = list(self.staged.pop(collection, []))

    def rollback(self, collection: str) -> None:
        with self._lock:
            self._record("rollback", collection)
            self.staged.pop(collection, None)

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]


class ListSource(Source):
    """Source yielding prepared records."""

    def __init__(self, records: list[Record]):
        self.records = records

    def read(self, context: ProcessingContext) -> Iterator[Record]:
        yield from (r.copy() for r in self.records)


class BlockingSource(Source):
    """Yields one record, then blocks until released.

    ``started`` is set once the first record has been handed downstream.
    """

    def __init__(self, total: int = 3):
        self.total = total
        self.started = threading.Event()
        self.release = threading.Event()

    def read(self, context: ProcessingContext) -> Iterator[Record]:
        for i in range(self.total):
            if i == 1:
                self.started.set()
                self.release.wait(5.0)
            yield make_record(f"uuid-{i}", institution="Museum B")


class FailingSource(Source):
    """Yields ``good`` records, then raises."""

    def __init__(self, good: int = 1, error: Exception | None = None):
        self.good = good
        self.error = error or RuntimeError("disk on fire")

    def read(self, context: ProcessingContext) -> Iterator[Record]:
        for i in range(self.good):
            yield make_record(f"uuid-{i}", institution="Museum B")
        raise self.error


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is truthy or ``timeout`` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


# =============================================================================
# Factories
# =============================================================================


def make_record(uuid: str | None = "uuid-1", *, institution: str | None = None, **strings: str) -> Record:
    record = Record()
    if uuid is not None:
        record.set(Field.UUID, Value.identifier(uuid))
    if institution is not None:
        record.set_string(Field.INSTITUTION, institution)
    for name, value in strings.items():
        record.set_string(Field(name.upper()), value)
    return record


def make_mapping(type: JobType = JobType.JSON, *extra: AttributeMapping) -> EntityMapping:
    attributes = (
        AttributeMapping("uuid", "UUID", ValueParser.UUID, required=True),
        AttributeMapping("title", "TITLE", ValueParser.STRING, required=True),
        AttributeMapping("institution", "INSTITUTION"),
        AttributeMapping("keywords", "KEYWORDS", ValueParser.MULTISTRING),
        *extra,
    )
    return EntityMapping(name=f"{type.value.lower()}-objects", type=type, attributes=attributes)


def make_template(
    name: str = "objects",
    type: JobType = JobType.JSON,
    *,
    participant: str = PARTICIPANT,
    mapping: EntityMapping | None = None,
    **kwargs: Any,
) -> JobTemplate:
    return JobTemplate.create(
        name=name,
        participant=participant,
        type=type,
        mapping=mapping or make_mapping(type),
        **kwargs,
    )


def make_institution(name: str = "Museum B", *, participant: str = PARTICIPANT, **kwargs: Any) -> Institution:
    kwargs.setdefault("canton", "BE")
    kwargs.setdefault("display_name", f"{name} (Bern)")
    return Institution.create(name=name, participant=participant, **kwargs)


def write_json_records(path: Path, records: list[dict[str, Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(records), encoding="utf-8")
    return path


SAMPLE_OBJECTS = [
    {"uuid": "a-1", "title": "Vase", "institution": "Museum B", "keywords": "ceramic, blue"},
    {"uuid": "a-2", "title": "Portrait", "institution": "Museum B"},
    {"uuid": "a-3", "title": "Coin", "institution": "Museum A"},
    {"title": "No identity", "institution": "Museum B"},
    {"uuid": "a-5", "institution": "Museum B"},
]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def store() -> Iterator[SqliteEntityStore]:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    store = SqliteEntityStore(conn)
    yield store
    store.close()


@pytest.fixture
def index() -> InMemoryIndexClient:
    return InMemoryIndexClient()


@pytest.fixture
def settings(tmp_path: Path) -> KiarSettings:
    return KiarSettings(
        ingest_path=tmp_path / "ingest",
        database_path=str(tmp_path / "kiar.db"),
        index_path=tmp_path / "index",
        watcher_poll_interval=0.02,
        stop_timeout=2.0,
        sink_batch_size=2,
    )


@pytest.fixture
def context() -> ProcessingContext:
    return ProcessingContext(job_id="job-1", participant=PARTICIPANT, template_name="objects", collection="objects")


@pytest.fixture
def template(store: SqliteEntityStore) -> JobTemplate:
    return store.save_template(make_template())


@pytest.fixture
def institution(store: SqliteEntityStore) -> Institution:
    return store.save_institution(
        make_institution(default_copyright="CC-BY-4.0", default_license=License.CC_BY)
    )


@pytest.fixture
def harvested_job(store: SqliteEntityStore, template: JobTemplate, settings: KiarSettings) -> Job:
    """A HARVESTED job whose input file holds SAMPLE_OBJECTS."""
    job = Job.create(name="objects-1", template_id=template.id, source=JobSource.WATCHER, status=JobStatus.HARVESTED)
    write_json_records(job_path(settings.ingest_path, job, template), SAMPLE_OBJECTS)
    return store.create_job(job)
