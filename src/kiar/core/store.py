"""SQLite entity store - persistent record of jobs, templates and institutions.

:class:`SqliteEntityStore` implements :class:`~kiar.core.protocols.EntityStore`
on top of a single ``sqlite3`` connection.  It is the single source of truth
for job status.

Architecture:

    .. code-block:: text

        SqliteEntityStore
        ┌───────────────────────────────────────────────────────────┐
        │  JOBS                       TEMPLATES / INSTITUTIONS      │
        │  ────                       ────────────────────────      │
        │  create_job()               get_template()                │
        │  get_job()                  list_templates()              │
        │  list_jobs()                save_template()               │
        │  transition_job()  ◄── compare-and-set                    │
        │  finalize_job()             list_institutions()           │
        │  interrupt_running_jobs()   save_institution()            │
        ├───────────────────────────────────────────────────────────┤
        │  All access is serialised behind one re-entrant lock, so  │
        │  the connection can be shared by the server, the job      │
        │  worker and every watcher thread.                         │
        └───────────────────────────────────────────────────────────┘

Example:
    >>> from kiar.core.store import SqliteEntityStore
    >>> store = SqliteEntityStore.connect(":memory:")
    >>> job = store.create_job(Job.create(name="museum-a-1", template_id=tpl.id))
    >>> store.transition_job(job.id, {JobStatus.CREATED}, JobStatus.SCHEDULED)
    <JobStatus.CREATED: 'CREATED'>
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from kiar.core.errors import InvalidJobStateError, JobNotFoundError, StoreError
from kiar.core.models.institution import Institution, License
from kiar.core.models.job import (
    ACTIVE_STATUSES,
    InvalidTransitionError,
    Job,
    JobLog,
    JobLogContext,
    JobLogLevel,
    JobSource,
    JobStatus,
    utcnow,
    validate_job_transition,
)
from kiar.core.models.template import EntityMapping, JobTemplate, JobType
from kiar.core.schema import create_tables

if TYPE_CHECKING:
    from kiar.framework.pipelines.context import ContextSnapshot

_JOB_COLUMNS = (
    "id, name, template_id, source, status, created_at, changed_at, "
    "created_by, processed, skipped, error"
)
_TEMPLATE_COLUMNS = "id, name, participant, type, start_automatically, collection, description, mapping"
_INSTITUTION_COLUMNS = (
    "id, name, participant, display_name, canton, publish, default_copyright, "
    "default_license, isil, street, zip, city, email, homepage, description"
)


class SqliteEntityStore:
    """Entity store backed by SQLite.

    Args:
        conn: An open ``sqlite3`` connection.  When it is shared across
            threads it must have been opened with ``check_same_thread=False``
            (see :meth:`connect`).
        initialize: Create the tables if they do not exist.
    """

    def __init__(self, conn: sqlite3.Connection, *, initialize: bool = True):
        self._conn = conn
        self._lock = threading.RLock()
        if initialize:
            with self._lock:
                create_tables(self._conn)

    @classmethod
    def connect(cls, database_path: str) -> SqliteEntityStore:
        """Open ``database_path`` for use from several threads."""
        try:
            conn = sqlite3.connect(database_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open entity store at {database_path}", cause=e) from e
        return cls(conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # =========================================================================
    # JOBS
    # =========================================================================

    def create_job(self, job: Job) -> Job:
        """Persist a new job.

        Returns:
            The same job (for chaining)
        """
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                f"""
                INSERT INTO kiar_jobs ({_JOB_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.id,
                    job.name,
                    job.template_id,
                    job.source.value,
                    job.status.value,
                    job.created_at.isoformat(),
                    job.changed_at.isoformat() if job.changed_at else None,
                    job.created_by,
                    job.processed,
                    job.skipped,
                    job.error,
                ),
            )
            self._insert_logs(cursor, job.id, job.logs)
            self._conn.commit()
        return job

    def get_job(self, job_id: str) -> Job | None:
        """Get a job by id, including its persisted log."""
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(f"SELECT {_JOB_COLUMNS} FROM kiar_jobs WHERE id = ?", (job_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            job = self._row_to_job(row)
            cursor.execute(
                """
                SELECT document_id, context, level, description, collection
                FROM kiar_job_logs
                WHERE job_id = ?
                ORDER BY seq ASC
                """,
                (job_id,),
            )
            job.logs = [self._row_to_log(r) for r in cursor.fetchall()]
        return job

    def list_jobs(self, status: JobStatus | None = None, active: bool | None = None) -> list[Job]:
        """List jobs, newest first.

        Args:
            status: Only jobs in this status
            active: ``True`` for active jobs, ``False`` for history, ``None`` for all
        """
        query = f"SELECT {_JOB_COLUMNS} FROM kiar_jobs WHERE 1=1"
        params: list[Any] = []

        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if active is not None:
            placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
            query += f" AND status {'IN' if active else 'NOT IN'} ({placeholders})"
            params.extend(s.value for s in sorted(ACTIVE_STATUSES))

        query += " ORDER BY created_at DESC"

        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_job(row) for row in cursor.fetchall()]

    def transition_job(self, job_id: str, allowed: Iterable[JobStatus], target: JobStatus) -> JobStatus:
        """Move a job to ``target`` if its current status is in ``allowed``.

        Returns:
            The status the job had before the transition

        Raises:
            JobNotFoundError: No job with this id
            InvalidJobStateError: The current status is not in ``allowed``;
                nothing was changed
        """
        allowed = frozenset(allowed)
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute("SELECT status FROM kiar_jobs WHERE id = ?", (job_id,))
            row = cursor.fetchone()
            if row is None:
                raise JobNotFoundError(job_id)
            current = JobStatus(row[0])
            if current not in allowed:
                raise InvalidJobStateError(job_id, current)
            try:
                validate_job_transition(current, target)
            except InvalidTransitionError as e:
                raise InvalidJobStateError(job_id, current, str(e)) from e

            # Only transition if nobody changed the status in the meantime
            cursor.execute(
                """
                UPDATE kiar_jobs
                SET status = ?, changed_at = ?
                WHERE id = ? AND status = ?
                """,
                (target.value, utcnow().isoformat(), job_id, current.value),
            )
            if cursor.rowcount == 0:
                self._conn.rollback()
                raise InvalidJobStateError(job_id, self._current_status(cursor, job_id))
            self._conn.commit()
        return current

    def finalize_job(self, job_id: str, status: JobStatus, snapshot: ContextSnapshot) -> None:
        """Write the terminal status, counters and log of a run.

        The persisted log is replaced by the snapshot's log.
        """
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                UPDATE kiar_jobs
                SET status = ?, changed_at = ?, processed = ?, skipped = ?, error = ?
                WHERE id = ?
                """,
                (
                    status.value,
                    utcnow().isoformat(),
                    snapshot.processed,
                    snapshot.skipped,
                    snapshot.error,
                    job_id,
                ),
            )
            if cursor.rowcount == 0:
                self._conn.rollback()
                raise JobNotFoundError(job_id)
            cursor.execute("DELETE FROM kiar_job_logs WHERE job_id = ?", (job_id,))
            self._insert_logs(cursor, job_id, snapshot.logs)
            self._conn.commit()

    def interrupt_running_jobs(self) -> int:
        """Move every RUNNING or SCHEDULED job to INTERRUPTED. Returns the number moved.

        Called at startup: the job queue lives in memory, so a job left
        SCHEDULED by a previous process would otherwise never run.
        """
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                UPDATE kiar_jobs
                SET status = ?, changed_at = ?
                WHERE status IN (?, ?)
                """,
                (
                    JobStatus.INTERRUPTED.value,
                    utcnow().isoformat(),
                    JobStatus.RUNNING.value,
                    JobStatus.SCHEDULED.value,
                ),
            )
            count = cursor.rowcount
            self._conn.commit()
        return count

    # =========================================================================
    # TEMPLATES
    # =========================================================================

    def get_template(self, template_id: str) -> JobTemplate | None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(f"SELECT {_TEMPLATE_COLUMNS} FROM kiar_job_templates WHERE id = ?", (template_id,))
            row = cursor.fetchone()
        return self._row_to_template(row) if row else None

    def list_templates(self, start_automatically: bool | None = None) -> list[JobTemplate]:
        query = f"SELECT {_TEMPLATE_COLUMNS} FROM kiar_job_templates"
        params: list[Any] = []
        if start_automatically is not None:
            query += " WHERE start_automatically = ?"
            params.append(int(start_automatically))
        query += " ORDER BY participant, name"

        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_template(row) for row in cursor.fetchall()]

    def save_template(self, template: JobTemplate) -> JobTemplate:
        """Insert or replace a template."""
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO kiar_job_templates ({_TEMPLATE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    template.id,
                    template.name,
                    template.participant,
                    template.type.value,
                    int(template.start_automatically),
                    template.collection,
                    template.description,
                    json.dumps(template.mapping.to_dict()),
                ),
            )
            self._conn.commit()
        return template

    # =========================================================================
    # INSTITUTIONS
    # =========================================================================

    def list_institutions(self, participant: str | None = None, publish: bool | None = None) -> list[Institution]:
        query = f"SELECT {_INSTITUTION_COLUMNS} FROM kiar_institutions WHERE 1=1"
        params: list[Any] = []
        if participant is not None:
            query += " AND participant = ?"
            params.append(participant)
        if publish is not None:
            query += " AND publish = ?"
            params.append(int(publish))
        query += " ORDER BY name"

        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_institution(row) for row in cursor.fetchall()]

    def save_institution(self, institution: Institution) -> Institution:
        """Insert or replace an institution."""
        with self._lock:
            self._conn.execute(
                f"""
                INSERT OR REPLACE INTO kiar_institutions ({_INSTITUTION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    institution.id,
                    institution.name,
                    institution.participant,
                    institution.display_name,
                    institution.canton,
                    int(institution.publish),
                    institution.default_copyright,
                    institution.default_license.short if institution.default_license else None,
                    institution.isil,
                    institution.street,
                    institution.zip,
                    institution.city,
                    institution.email,
                    institution.homepage,
                    institution.description,
                ),
            )
            self._conn.commit()
        return institution

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _current_status(cursor, job_id: str) -> JobStatus | None:
        cursor.execute("SELECT status FROM kiar_jobs WHERE id = ?", (job_id,))
        row = cursor.fetchone()
        return JobStatus(row[0]) if row else None

    @staticmethod
    def _insert_logs(cursor, job_id: str, logs: Iterable[JobLog]) -> None:
        cursor.executemany(
            """
            INSERT INTO kiar_job_logs (job_id, document_id, context, level, description, collection)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (job_id, log.document_id, log.context.value, log.level.value, log.description, log.collection)
                for log in logs
            ],
        )

    def _row_to_job(self, row: tuple) -> Job:
        return Job(
            id=row[0],
            name=row[1],
            template_id=row[2],
            source=JobSource(row[3]),
            status=JobStatus(row[4]),
            created_at=datetime.fromisoformat(row[5]),
            changed_at=datetime.fromisoformat(row[6]) if row[6] else None,
            created_by=row[7],
            processed=row[8],
            skipped=row[9],
            error=row[10],
        )

    def _row_to_log(self, row: tuple) -> JobLog:
        return JobLog(
            document_id=row[0],
            context=JobLogContext(row[1]),
            level=JobLogLevel(row[2]),
            description=row[3],
            collection=row[4],
        )

    def _row_to_template(self, row: tuple) -> JobTemplate:
        return JobTemplate(
            id=row[0],
            name=row[1],
            participant=row[2],
            type=JobType(row[3]),
            start_automatically=bool(row[4]),
            collection=row[5],
            description=row[6],
            mapping=EntityMapping.from_dict(json.loads(row[7])),
        )

    def _row_to_institution(self, row: tuple) -> Institution:
        return Institution(
            id=row[0],
            name=row[1],
            participant=row[2],
            display_name=row[3],
            canton=row[4],
            publish=bool(row[5]),
            default_copyright=row[6],
            default_license=License.from_short(row[7]) if row[7] else None,
            isil=row[8],
            street=row[9],
            zip=row[10],
            city=row[11],
            email=row[12],
            homepage=row[13],
            description=row[14],
        )
