"""Tests for FileWatcher trigger handling."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import SAMPLE_OBJECTS, wait_for, write_json_records
from kiar.core.models.job import JobSource, JobStatus
from kiar.ingester.server import IngesterServer
from kiar.ingester.watcher import FileWatcher


@pytest.fixture
def fake_server(tmp_path):
    server = MagicMock()
    server.job_path.side_effect = lambda job, template: tmp_path / "jobs" / f"{job.name}.json"
    (tmp_path / "jobs").mkdir()
    return server


@pytest.fixture
def watcher(fake_server, template, tmp_path):
    return FileWatcher(fake_server, template, tmp_path / "objects.json", poll_interval=0.01)


# ── Polling (no thread) ──────────────────────────────────────


class TestPoll:
    def test_missing_file(self, watcher, fake_server):
        assert watcher.poll() is None
        fake_server.schedule_job.assert_not_called()

    def test_file_must_be_stable_for_two_polls(self, watcher, fake_server):
        watcher.path.write_text("[]")

        assert watcher.poll() is None
        job = watcher.poll()

        assert job is not None
        assert job.status is JobStatus.HARVESTED
        assert job.source is JobSource.WATCHER
        assert job.name.startswith("objects-")
        fake_server.store.create_job.assert_called_once_with(job)
        fake_server.schedule_job.assert_called_once_with(job.id)
        assert watcher.trigger_count == 1

    def test_trigger_is_renamed_to_job_file(self, watcher, fake_server, tmp_path):
        watcher.path.write_text('[{"uuid": "a-1"}]')
        watcher.poll()
        job = watcher.poll()

        assert not watcher.path.exists()
        assert (tmp_path / "jobs" / f"{job.name}.json").read_text() == '[{"uuid": "a-1"}]'

    def test_failed_job_creation_restores_trigger_file(self, watcher, fake_server, tmp_path):
        fake_server.store.create_job.side_effect = RuntimeError("store down")
        watcher.path.write_text('[{"uuid": "a-1"}]')
        watcher.poll()

        with pytest.raises(RuntimeError, match="store down"):
            watcher.poll()

        assert watcher.path.read_text() == '[{"uuid": "a-1"}]'
        assert list((tmp_path / "jobs").iterdir()) == []
        fake_server.schedule_job.assert_not_called()
        assert watcher.trigger_count == 0

    def test_growing_file_is_not_consumed(self, watcher, fake_server):
        watcher.path.write_text("[")
        watcher.poll()
        watcher.path.write_text("[{}, {}]")

        assert watcher.poll() is None
        assert watcher.path.exists()
        fake_server.schedule_job.assert_not_called()


# ── Thread lifecycle ─────────────────────────────────────────


class TestLifecycle:
    def test_start_cancel_join(self, watcher):
        watcher.start()
        assert wait_for(lambda: watcher.is_alive)

        watcher.cancel()

        assert watcher.join(timeout=2.0) is True
        assert watcher.is_cancelled
        assert not watcher.is_alive

    def test_thread_name(self, fake_server, template, tmp_path):
        watcher = FileWatcher(fake_server, template, tmp_path / "objects.json", poll_interval=0.01, name="kiar-watcher-7")
        watcher.start()
        try:
            assert watcher._thread.name == "kiar-watcher-7"
            assert watcher._thread.daemon
        finally:
            watcher.cancel()
            watcher.join(2.0)

    def test_errors_do_not_stop_the_loop(self, watcher, fake_server):
        fake_server.schedule_job.side_effect = [RuntimeError("store down"), None]
        watcher.start()
        try:
            watcher.path.write_text("[]")
            assert wait_for(lambda: fake_server.schedule_job.call_count == 1)

            watcher.path.write_text("[]")
            assert wait_for(lambda: fake_server.schedule_job.call_count == 2)
            assert watcher.is_alive
        finally:
            watcher.cancel()
            watcher.join(2.0)


# ── End to end with the server ───────────────────────────────


class TestTriggerToIngest:
    def test_trigger_file_is_ingested(self, store, index, settings, template, institution):
        with IngesterServer(store, index, settings) as server:
            trigger = server.trigger_path(template)
            assert server.schedule_watcher(template.id, trigger)

            write_json_records(trigger, SAMPLE_OBJECTS)

            assert wait_for(lambda: any(j.status is JobStatus.INGESTED for j in store.list_jobs()))

        (job,) = store.list_jobs()
        assert job.source is JobSource.WATCHER
        assert (job.processed, job.skipped, job.error) == (2, 1, 2)
        assert not trigger.exists()
        assert server.job_path(job, template).exists()
        assert [d["UUID"] for d in index.committed["objects"]] == ["a-1", "a-2"]

    def test_every_trigger_creates_a_new_job(self, store, index, settings, template, institution):
        with IngesterServer(store, index, settings) as server:
            trigger = server.trigger_path(template)
            server.schedule_watcher(template.id, trigger)

            write_json_records(trigger, SAMPLE_OBJECTS)
            assert wait_for(lambda: len(store.list_jobs(status=JobStatus.INGESTED)) == 1)
            write_json_records(trigger, SAMPLE_OBJECTS[:2])
            assert wait_for(lambda: len(store.list_jobs(status=JobStatus.INGESTED)) == 2)

        assert len({j.name for j in store.list_jobs()}) == 2
