"""Tests for IngesterServer: scheduling, execution, cancellation and shutdown."""

from __future__ import annotations

import sqlite3
import threading

import pytest

from conftest import (
    SAMPLE_OBJECTS,
    BlockingSource,
    make_template,
    wait_for,
    write_json_records,
)
from kiar.core.errors import (
    InvalidJobStateError,
    JobNotFoundError,
    SchedulingError,
    TemplateNotFoundError,
)
from kiar.core.models.job import SCHEDULABLE_STATUSES, Job, JobLogContext, JobLogLevel, JobStatus
from kiar.framework.pipelines.pipeline import Pipeline
from kiar.framework.sinks.index import IndexSink
from kiar.framework.transformers import InstitutionTransformer
from kiar.ingester.server import IngesterServer


class StubBuilder:
    """Builds every job's pipeline around one prepared source."""

    def __init__(self, store, index, source):
        self.store = store
        self.index = index
        self.source = source

    def build(self, job, template):
        stage = InstitutionTransformer(self.source, self.store)
        return Pipeline(IndexSink(stage, self.index, collection=template.name), name=template.name)


@pytest.fixture
def server(store, index, settings):
    srv = IngesterServer(store, index, settings)
    yield srv
    srv.stop(wait_jobs=True)


def _job(store, template, status):
    return store.create_job(Job.create(name=f"objects-{status.value.lower()}", template_id=template.id, status=status))


# ── Startup ──────────────────────────────────────────────────


class TestStartup:
    def test_leftover_jobs_become_interrupted(self, store, index, settings, template):
        running = _job(store, template, JobStatus.RUNNING)
        scheduled = _job(store, template, JobStatus.SCHEDULED)
        harvested = _job(store, template, JobStatus.HARVESTED)

        with IngesterServer(store, index, settings):
            assert store.get_job(running.id).status is JobStatus.INTERRUPTED
            assert store.get_job(scheduled.id).status is JobStatus.INTERRUPTED
            assert store.get_job(harvested.id).status is JobStatus.HARVESTED

    def test_leftover_scheduled_job_can_be_rescheduled(self, store, index, settings, institution, template):
        job = _job(store, template, JobStatus.SCHEDULED)

        with IngesterServer(store, index, settings, start_watchers=False) as srv:
            write_json_records(srv.job_path(job, template), SAMPLE_OBJECTS)
            assert srv.schedule_job(job.id).result(timeout=5) is JobStatus.INGESTED

    def test_reconcile_can_be_disabled(self, store, index, settings, template):
        running = _job(store, template, JobStatus.RUNNING)
        scheduled = _job(store, template, JobStatus.SCHEDULED)

        with IngesterServer(store, index, settings, start_watchers=False, reconcile=False):
            assert store.get_job(running.id).status is JobStatus.RUNNING
            assert store.get_job(scheduled.id).status is JobStatus.SCHEDULED

    def test_second_server_leaves_running_job_alone(self, store, index, settings, institution, harvested_job):
        source = BlockingSource()
        server = IngesterServer(store, index, settings, builder=StubBuilder(store, index, source))
        try:
            future = server.schedule_job(harvested_job.id)
            assert source.started.wait(5.0)

            with IngesterServer(store, index, settings, start_watchers=False, reconcile=False):
                assert store.get_job(harvested_job.id).status is JobStatus.RUNNING

            source.release.set()
            assert future.result(timeout=5) is JobStatus.INGESTED
        finally:
            source.release.set()
            server.stop(wait_jobs=True)

        assert store.get_job(harvested_job.id).status is JobStatus.INGESTED

    def test_watchers_for_auto_start_templates(self, store, index, settings):
        auto = store.save_template(make_template("auto", start_automatically=True))
        store.save_template(make_template("manual"))

        with IngesterServer(store, index, settings) as srv:
            assert srv.active_watchers() == [auto.id]

    def test_watchers_can_be_disabled(self, store, index, settings):
        store.save_template(make_template("auto", start_automatically=True))
        with IngesterServer(store, index, settings, start_watchers=False) as srv:
            assert srv.active_watchers() == []

    def test_paths(self, server, settings, template):
        job = Job.create(name="objects-17", template_id=template.id)
        assert server.trigger_path(template) == settings.ingest_path / "museum-net" / "objects.json"
        assert server.job_path(job, template) == settings.ingest_path / "museum-net" / "objects-17.json"


# ── Scheduling ───────────────────────────────────────────────


class TestScheduleJob:
    def test_harvested_job_is_ingested(self, server, store, index, institution, harvested_job):
        future = server.schedule_job(harvested_job.id)

        assert future.result(timeout=5) is JobStatus.INGESTED
        job = store.get_job(harvested_job.id)
        assert job.status is JobStatus.INGESTED
        assert (job.processed, job.skipped, job.error) == (2, 1, 2)
        assert [d["UUID"] for d in index.committed["objects"]] == ["a-1", "a-2"]

    def test_job_log_is_persisted(self, server, store, institution, harvested_job):
        server.schedule_job(harvested_job.id).result(timeout=5)

        logs = store.get_job(harvested_job.id).logs
        levels = [entry.level for entry in logs]
        assert levels.count(JobLogLevel.WARNING) == 1
        assert levels.count(JobLogLevel.SEVERE) == 1
        assert levels.count(JobLogLevel.ERROR) == 1
        assert any("'Museum A'" in entry.description for entry in logs)

    @pytest.mark.parametrize("status", sorted(SCHEDULABLE_STATUSES))
    def test_schedulable_statuses(self, server, store, settings, institution, template, status):
        job = _job(store, template, status)
        write_json_records(server.job_path(job, template), SAMPLE_OBJECTS)

        assert server.schedule_job(job.id).result(timeout=5) is JobStatus.INGESTED

    @pytest.mark.parametrize(
        "status",
        [s for s in JobStatus if s not in SCHEDULABLE_STATUSES],
    )
    def test_other_statuses_are_rejected_unchanged(self, server, store, template, status):
        job = _job(store, template, status)

        with pytest.raises(InvalidJobStateError) as exc_info:
            server.schedule_job(job.id)

        assert exc_info.value.status is status
        assert store.get_job(job.id).status is status
        assert server.active_jobs() == []

    def test_unknown_job(self, server):
        with pytest.raises(JobNotFoundError):
            server.schedule_job("missing")

    def test_unknown_template(self, server, store):
        job = store.create_job(Job.create(name="x", template_id="gone", status=JobStatus.HARVESTED))
        with pytest.raises(TemplateNotFoundError):
            server.schedule_job(job.id)
        assert store.get_job(job.id).status is JobStatus.HARVESTED

    def test_concurrent_schedule_exactly_one_wins(self, server, store, institution, harvested_job):
        barrier = threading.Barrier(6)
        futures, rejected = [], []
        lock = threading.Lock()

        def attempt():
            barrier.wait()
            try:
                future = server.schedule_job(harvested_job.id)
                with lock:
                    futures.append(future)
            except InvalidJobStateError:
                with lock:
                    rejected.append(True)

        threads = [threading.Thread(target=attempt) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5.0)

        assert len(futures) == 1
        assert len(rejected) == 5
        assert futures[0].result(timeout=5) is JobStatus.INGESTED

    def test_rejected_after_stop(self, server, store, harvested_job):
        server.stop()
        with pytest.raises(SchedulingError):
            server.schedule_job(harvested_job.id)
        assert store.get_job(harvested_job.id).status is JobStatus.HARVESTED


# ── Failure ──────────────────────────────────────────────────


class TestFailure:
    def test_missing_input_fails_the_job(self, server, store, settings, template):
        job = _job(store, template, JobStatus.HARVESTED)

        assert server.schedule_job(job.id).result(timeout=5) is JobStatus.FAILED

        job = store.get_job(job.id)
        assert job.status is JobStatus.FAILED
        (entry,) = job.logs
        assert entry.level is JobLogLevel.SEVERE
        assert entry.context is JobLogContext.SYSTEM
        assert "SourceNotFoundError" in entry.description

    def test_failed_job_can_be_retried(self, server, store, institution, template):
        job = _job(store, template, JobStatus.HARVESTED)
        assert server.schedule_job(job.id).result(timeout=5) is JobStatus.FAILED

        write_json_records(server.job_path(job, template), SAMPLE_OBJECTS)

        assert server.schedule_job(job.id).result(timeout=5) is JobStatus.INGESTED
        job = store.get_job(job.id)
        assert job.processed == 2
        assert all("Job failed" not in entry.description for entry in job.logs)

    def test_finalize_failure_falls_back_to_failed(self, server, store, institution, harvested_job, monkeypatch):
        def finalize_job(job_id, status, snapshot):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(store, "finalize_job", finalize_job)

        assert server.schedule_job(harvested_job.id).result(timeout=5) is JobStatus.FAILED
        assert store.get_job(harvested_job.id).status is JobStatus.FAILED
        assert wait_for(lambda: server.active_jobs() == [])

    def test_finalize_and_fallback_failure_reach_the_future(
        self, server, store, institution, harvested_job, monkeypatch
    ):
        transition_job = store.transition_job

        def finalize_job(job_id, status, snapshot):
            raise sqlite3.OperationalError("disk I/O error")

        def failing_transition(job_id, allowed, target):
            if target is JobStatus.FAILED:
                raise sqlite3.OperationalError("database is locked")
            return transition_job(job_id, allowed, target)

        monkeypatch.setattr(store, "finalize_job", finalize_job)
        monkeypatch.setattr(store, "transition_job", failing_transition)

        future = server.schedule_job(harvested_job.id)

        with pytest.raises(sqlite3.OperationalError, match="disk I/O error"):
            future.result(timeout=5)
        assert wait_for(lambda: server.active_jobs() == [])


# ── Cancellation ─────────────────────────────────────────────


class TestTerminateJob:
    def test_cancel_running_job(self, store, index, settings, institution, harvested_job):
        source = BlockingSource()
        server = IngesterServer(store, index, settings, builder=StubBuilder(store, index, source))
        try:
            future = server.schedule_job(harvested_job.id)
            assert source.started.wait(5.0)
            assert server.active_jobs() == [harvested_job.id]
            assert server.get_context(harvested_job.id).processed == 1

            assert server.terminate_job(harvested_job.id) is True
            source.release.set()

            assert future.result(timeout=5) is JobStatus.ABORTED
        finally:
            source.release.set()
            server.stop(wait_jobs=True)

        assert store.get_job(harvested_job.id).status is JobStatus.ABORTED
        assert index.operations()[-1] == "rollback"
        assert "objects" not in index.committed

    def test_cancel_queued_job(self, store, index, settings, institution, template, harvested_job):
        source = BlockingSource()
        server = IngesterServer(store, index, settings, builder=StubBuilder(store, index, source))
        second = _job(store, template, JobStatus.FAILED)
        try:
            first_future = server.schedule_job(harvested_job.id)
            assert source.started.wait(5.0)
            second_future = server.schedule_job(second.id)
            assert store.get_job(second.id).status is JobStatus.SCHEDULED

            server.terminate_job(second.id)
            assert store.get_job(second.id).status is JobStatus.ABORTED
            source.release.set()

            assert first_future.result(timeout=5) is JobStatus.INGESTED
            assert second_future.result(timeout=5) is JobStatus.ABORTED
        finally:
            source.release.set()
            server.stop(wait_jobs=True)

        assert store.get_job(second.id).status is JobStatus.ABORTED

    def test_terminate_unknown_job(self, server):
        assert server.terminate_job("missing") is False

    def test_registry_is_cleared_after_completion(self, server, institution, harvested_job):
        server.schedule_job(harvested_job.id).result(timeout=5)
        assert wait_for(lambda: server.active_jobs() == [])
        assert server.get_context(harvested_job.id) is None
        assert server.terminate_job(harvested_job.id) is False


# ── Watchers & shutdown ──────────────────────────────────────


class TestWatcherRegistry:
    def test_schedule_watcher_is_idempotent(self, server, template):
        path = server.trigger_path(template)
        assert server.schedule_watcher(template.id, path) is True
        assert server.schedule_watcher(template.id, path) is False
        assert server.active_watchers() == [template.id]
        assert path.parent.is_dir()

    def test_unknown_template(self, server, tmp_path):
        with pytest.raises(TemplateNotFoundError):
            server.schedule_watcher("missing", tmp_path / "x.json")

    def test_terminate_watcher(self, server, template):
        server.schedule_watcher(template.id, server.trigger_path(template))

        assert server.terminate_watcher(template.id) is True
        assert server.active_watchers() == []
        assert server.terminate_watcher(template.id) is False
        assert server.schedule_watcher(template.id, server.trigger_path(template)) is True

    def test_returned_registry_is_a_copy(self, server, template):
        server.schedule_watcher(template.id, server.trigger_path(template))
        server.active_watchers().clear()
        assert server.active_watchers() == [template.id]


class TestStop:
    def test_stop_is_idempotent(self, server, template):
        server.schedule_watcher(template.id, server.trigger_path(template))

        server.stop()
        server.stop()

        assert not server.is_running
        assert server.active_watchers() == []
        assert server.schedule_watcher(template.id, server.trigger_path(template)) is False

    def test_context_manager_stops(self, store, index, settings):
        with IngesterServer(store, index, settings) as srv:
            assert srv.is_running
        assert not srv.is_running
