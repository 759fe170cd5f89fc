"""Ingester server - schedules jobs and owns the file watchers.

┌──────────────────────────────────────────────────────────────────────────────┐
│  INGESTER SERVER                                                             │
│                                                                              │
│   __init__                                                                   │
│      ├─ store.interrupt_running_jobs()      RUNNING|SCHEDULED → INTERRUPTED  │
│      └─ schedule_watcher() for every template with start_automatically       │
│                                                                              │
│   Watchers (one daemon thread each)         Jobs (one worker thread)         │
│   ┌──────────────────────────┐              ┌───────────────────────────┐    │
│   │ kiar-watcher-1           │── schedule ─►│ ThreadPoolExecutor(1)     │    │
│   │ kiar-watcher-2           │    _job()    │ "kiar-ingester"           │    │
│   │ ...                      │              │  FIFO, one pipeline at a  │    │
│   └──────────────────────────┘              │  time                     │    │
│        _watchers: {template_id: watcher}    └───────────────────────────┘    │
│                                             _jobs: {job_id: (ctx, future)}   │
│                                                                              │
│   Job status flow:                                                           │
│     schedule_job   FAILED|HARVESTED|INTERRUPTED ──CAS──► SCHEDULED           │
│     worker         SCHEDULED ──CAS──► RUNNING ──► INGESTED | FAILED | ABORTED │
│     terminate_job  context.cancel(); active ──CAS──► ABORTED                 │
└──────────────────────────────────────────────────────────────────────────────┘

Both registries are guarded by their own lock and only copies of their keys
leave the server.  A job is registered before the worker can start it and
deregisters itself exactly once, under the same lock, when it ends.
"""

from __future__ import annotations

import itertools
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from kiar.core.errors import (
    InvalidJobStateError,
    JobCancelledError,
    JobNotFoundError,
    SchedulingError,
    TemplateNotFoundError,
)
from kiar.core.models.job import (
    ACTIVE_STATUSES,
    SCHEDULABLE_STATUSES,
    Job,
    JobLogContext,
    JobLogLevel,
    JobStatus,
)
from kiar.core.models.template import JobTemplate
from kiar.core.protocols import EntityStore, IndexClient
from kiar.core.settings import KiarSettings, get_settings
from kiar.framework.logging import get_logger, scoped_context
from kiar.framework.pipelines.context import ContextSnapshot, ProcessingContext
from kiar.framework.pipelines.pipeline import Pipeline
from kiar.ingester import paths
from kiar.ingester.builder import PipelineBuilder, collection_for
from kiar.ingester.watcher import FileWatcher

log = get_logger(__name__)


class IngesterServer:
    """Coordinates watchers and job execution for one process.

    Args:
        store: Entity store (source of truth for job status)
        index_client: Index the sinks publish to
        settings: Engine settings; defaults to :func:`get_settings`
        builder: Pipeline builder; defaults to :class:`PipelineBuilder`
        start_watchers: Start watchers for auto-start templates (off for
            one-shot runs such as ``kiar jobs run``)
        reconcile: Interrupt jobs left RUNNING or SCHEDULED by a previous
            process.  Off when another server may own jobs in the same store.

    Example:
        >>> server = IngesterServer(store, FileIndexClient("index"))
        >>> future = server.schedule_job(job.id)
        >>> future.result()
        <JobStatus.INGESTED: 'INGESTED'>
        >>> server.stop()
    """

    def __init__(
        self,
        store: EntityStore,
        index_client: IndexClient,
        settings: KiarSettings | None = None,
        *,
        builder: PipelineBuilder | None = None,
        start_watchers: bool = True,
        reconcile: bool = True,
    ):
        self.store = store
        self.index_client = index_client
        self.settings = settings or get_settings()
        self.builder = builder or PipelineBuilder(store, index_client, self.settings)

        self._watchers: dict[str, FileWatcher] = {}
        self._watchers_lock = threading.Lock()
        self._watcher_ids = itertools.count(1)

        self._jobs: dict[str, tuple[ProcessingContext, Future[JobStatus]]] = {}
        self._jobs_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kiar-ingester")

        self._running = True
        self._state_lock = threading.Lock()

        self._reconcile(start_watchers, reconcile)

    # ------------------------------------------------------------------ #
    # Startup
    # ------------------------------------------------------------------ #

    def _reconcile(self, start_watchers: bool, reconcile: bool) -> None:
        if reconcile:
            interrupted = self.store.interrupt_running_jobs()
            if interrupted:
                log.warning("server.jobs_interrupted", count=interrupted)

        if start_watchers:
            for template in self.store.list_templates(start_automatically=True):
                self.schedule_watcher(template.id, self.trigger_path(template))

        log.info("server.started", watchers=len(self.active_watchers()), ingest_path=str(self.settings.ingest_path))

    # ------------------------------------------------------------------ #
    # Paths
    # ------------------------------------------------------------------ #

    def trigger_path(self, template: JobTemplate) -> Path:
        """``<ingest_path>/<participant>/<template name>.<suffix>``"""
        return paths.trigger_path(self.settings.ingest_path, template)

    def job_path(self, job: Job, template: JobTemplate) -> Path:
        """``<ingest_path>/<participant>/<job name>.<suffix>``"""
        return paths.job_path(self.settings.ingest_path, job, template)

    # ------------------------------------------------------------------ #
    # Watchers
    # ------------------------------------------------------------------ #

    def schedule_watcher(self, template_id: str, path: Path) -> bool:
        """Start watching ``path`` for a template.

        Returns:
            False if a watcher for the template is already active or the
            server is stopped, True if a new watcher was started
        """
        template = self.store.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

        with self._watchers_lock:
            if not self._running:
                log.warning("watcher.rejected_stopped", template_id=template_id)
                return False
            current = self._watchers.get(template_id)
            if current is not None and current.is_alive and not current.is_cancelled:
                return False

            Path(path).parent.mkdir(parents=True, exist_ok=True)
            watcher = FileWatcher(
                self,
                template,
                Path(path),
                poll_interval=self.settings.watcher_poll_interval,
                name=f"kiar-watcher-{next(self._watcher_ids)}",
            )
            self._watchers[template_id] = watcher
            watcher.start()

        log.info("watcher.scheduled", template_id=template_id, path=str(path))
        return True

    def terminate_watcher(self, template_id: str) -> bool:
        """Stop and deregister the watcher of a template."""
        with self._watchers_lock:
            watcher = self._watchers.pop(template_id, None)
        if watcher is None:
            return False

        watcher.cancel()
        if not watcher.join(self.settings.stop_timeout):
            log.warning("watcher.stop_timeout", template_id=template_id)
        log.info("watcher.terminated", template_id=template_id)
        return True

    def active_watchers(self) -> list[str]:
        with self._watchers_lock:
            return list(self._watchers)

    # ------------------------------------------------------------------ #
    # Jobs
    # ------------------------------------------------------------------ #

    def schedule_job(self, job_id: str) -> Future[JobStatus]:
        """Schedule a job for execution on the job worker.

        The job must be FAILED, HARVESTED or INTERRUPTED.  Its status is set
        to SCHEDULED in the same step the precondition is checked.

        Returns:
            A future resolving to the job's terminal status

        Raises:
            JobNotFoundError: Unknown job
            TemplateNotFoundError: The job's template does not exist
            InvalidJobStateError: The job is in any other status
            SchedulingError: The server is stopped
        """
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        template = self.store.get_template(job.template_id)
        if template is None:
            raise TemplateNotFoundError(job.template_id).with_context(job_id=job_id)
        if job.status not in SCHEDULABLE_STATUSES:
            raise InvalidJobStateError(job_id, job.status)

        pipeline = self.builder.build(job, template)
        context = ProcessingContext(
            job_id=job.id,
            participant=template.participant,
            template_name=template.name,
            collection=collection_for(template),
        )

        with self._jobs_lock:
            if not self._running:
                raise SchedulingError(f"Job {job_id} cannot be scheduled because the server is stopped.")
            self.store.transition_job(job_id, SCHEDULABLE_STATUSES, JobStatus.SCHEDULED)
            future = self._executor.submit(self._execute_job, job, template, pipeline, context)
            self._jobs[job_id] = (context, future)

        log.info("job.scheduled", job_id=job_id, template=template.name)
        return future

    def terminate_job(self, job_id: str) -> bool:
        """Cancel an in-flight job.

        Returns:
            Whether the job was in flight
        """
        with self._jobs_lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                return False
            context, _future = entry
            context.cancel()

        try:
            self.store.transition_job(job_id, ACTIVE_STATUSES, JobStatus.ABORTED)
        except InvalidJobStateError as e:
            log.debug("job.abort_already_terminal", job_id=job_id, status=str(e.status))
        log.info("job.terminated", job_id=job_id)
        return True

    def get_context(self, job_id: str) -> ContextSnapshot | None:
        """Progress of an in-flight job, or None."""
        with self._jobs_lock:
            entry = self._jobs.get(job_id)
        return entry[0].snapshot() if entry is not None else None

    def active_jobs(self) -> list[str]:
        with self._jobs_lock:
            return list(self._jobs)

    def _execute_job(
        self,
        job: Job,
        template: JobTemplate,
        pipeline: Pipeline,
        context: ProcessingContext,
    ) -> JobStatus:
        """Run one job on the worker thread and persist its outcome."""
        with scoped_context(job_id=job.id, participant=template.participant, template=template.name):
            status = self._run_pipeline(job, pipeline, context)

            with self._jobs_lock:
                self._jobs.pop(job.id, None)
                if context.is_cancelled:
                    status = JobStatus.ABORTED

            snapshot = context.snapshot()
            status = self._persist_outcome(job.id, status, snapshot)

            log.info(
                "job.completed",
                status=status.value,
                processed=snapshot.processed,
                skipped=snapshot.skipped,
                error=snapshot.error,
            )
            return status

    def _persist_outcome(self, job_id: str, status: JobStatus, snapshot: ContextSnapshot) -> JobStatus:
        """Write the outcome of a run and return the status actually stored.

        When the full write fails the job is still taken out of
        SCHEDULED/RUNNING, as FAILED (or ABORTED if cancelled).  If even that
        fails, the original error propagates into the job's future.
        """
        try:
            self.store.finalize_job(job_id, status, snapshot)
            return status
        except Exception as e:
            log.exception("job.finalize_failed", status=status.value)
            finalize_error = e

        fallback = JobStatus.ABORTED if status is JobStatus.ABORTED else JobStatus.FAILED
        try:
            self.store.transition_job(job_id, {JobStatus.SCHEDULED, JobStatus.RUNNING}, fallback)
        except InvalidJobStateError as e:
            # Already out of SCHEDULED/RUNNING, e.g. aborted by terminate_job
            return e.status
        except Exception:
            log.exception("job.fallback_failed", status=fallback.value)
            raise finalize_error from None
        return fallback

    def _run_pipeline(self, job: Job, pipeline: Pipeline, context: ProcessingContext) -> JobStatus:
        try:
            context.check_cancelled()
            self.store.transition_job(job.id, {JobStatus.SCHEDULED}, JobStatus.RUNNING)
            log.info("job.running", pipeline=repr(pipeline))
            pipeline.run(context)
            return JobStatus.INGESTED
        except JobCancelledError:
            log.info("job.aborted", processed=context.processed)
            return JobStatus.ABORTED
        except Exception as e:
            if context.is_cancelled:
                log.info("job.aborted", processed=context.processed, reason=str(e))
                return JobStatus.ABORTED
            log.exception("job.failed", error_type=type(e).__name__)
            context.log(
                JobLogLevel.SEVERE,
                f"Job failed: {type(e).__name__}: {e}",
                context=JobLogContext.SYSTEM,
            )
            return JobStatus.FAILED

    # ------------------------------------------------------------------ #
    # Shutdown
    # ------------------------------------------------------------------ #

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self, timeout: float | None = None, *, wait_jobs: bool = False) -> None:
        """Stop all watchers and stop accepting work.

        Waits up to ``timeout`` (default: ``settings.stop_timeout``) for the
        watcher threads.  In-flight and queued jobs are not interrupted; use
        :meth:`terminate_job` to cancel them, and ``wait_jobs=True`` to block
        until the job worker has finished them.
        """
        with self._state_lock:
            if not self._running:
                return
            with self._watchers_lock, self._jobs_lock:
                self._running = False
                watchers = list(self._watchers.items())
                self._watchers.clear()

        for _template_id, watcher in watchers:
            watcher.cancel()

        deadline = time.monotonic() + (self.settings.stop_timeout if timeout is None else timeout)
        for template_id, watcher in watchers:
            if not watcher.join(max(0.0, deadline - time.monotonic())):
                log.warning("watcher.stop_timeout", template_id=template_id)

        log.info("server.stopped", watchers=len(watchers), jobs_in_flight=len(self.active_jobs()))
        self._executor.shutdown(wait=wait_jobs)

    def __enter__(self) -> IngesterServer:
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
