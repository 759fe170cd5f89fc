"""
Protocol definitions for the collaborators of the ingestion engine.

The engine never talks to a database or a search index directly; it talks
to these two shapes.  Any object that matches them works, which keeps the
server and the pipeline stages testable with in-memory fakes.

Architecture:
    ::

        protocols.py
        ├── EntityStore   jobs, templates, institutions (source of truth)
        └── IndexClient   full-collection resync: delete-all, add, commit

    Implementations:
        EntityStore  → kiar.core.store.SqliteEntityStore
        IndexClient  → kiar.framework.sinks.file_index.FileIndexClient

Guardrails:
    ❌ DON'T: read a job's status and then write it in two calls
    ✅ DO: use ``transition_job`` (single compare-and-set)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from kiar.core.models.institution import Institution
from kiar.core.models.job import Job, JobStatus
from kiar.core.models.template import JobTemplate

if TYPE_CHECKING:
    from kiar.framework.pipelines.context import ContextSnapshot


@runtime_checkable
class EntityStore(Protocol):
    """Persistent store of jobs, job templates and institutions.

    ``transition_job`` is the only way the engine changes a job's status
    outside of ``finalize_job``: it compares the current status against
    ``allowed`` and sets ``target`` in one indivisible step, returning the
    status the job had before.  When the current status is not allowed it
    raises :class:`~kiar.core.errors.InvalidJobStateError` and changes
    nothing.
    """

    # ── Jobs ─────────────────────────────────────────────────────
    def get_job(self, job_id: str) -> Job | None: ...

    def create_job(self, job: Job) -> Job: ...

    def list_jobs(self, status: JobStatus | None = None, active: bool | None = None) -> list[Job]: ...

    def transition_job(self, job_id: str, allowed: Iterable[JobStatus], target: JobStatus) -> JobStatus: ...

    def finalize_job(self, job_id: str, status: JobStatus, snapshot: ContextSnapshot) -> None: ...

    def interrupt_running_jobs(self) -> int: ...

    # ── Templates ────────────────────────────────────────────────
    def get_template(self, template_id: str) -> JobTemplate | None: ...

    def list_templates(self, start_automatically: bool | None = None) -> list[JobTemplate]: ...

    def save_template(self, template: JobTemplate) -> JobTemplate: ...

    # ── Institutions ─────────────────────────────────────────────
    def list_institutions(self, participant: str | None = None, publish: bool | None = None) -> list[Institution]: ...

    def save_institution(self, institution: Institution) -> Institution: ...


@runtime_checkable
class IndexClient(Protocol):
    """Search index collaborator used by the index sink.

    One job run is one logical unit: ``delete_all`` then any number of
    ``add`` calls then ``commit``.  ``rollback`` discards everything staged
    since the last commit.
    """

    def delete_all(self, collection: str) -> None: ...

    def add(self, collection: str, documents: Sequence[dict[str, Any]]) -> None: ...

    def commit(self, collection: str) -> None: ...

    def rollback(self, collection: str) -> None: ...
