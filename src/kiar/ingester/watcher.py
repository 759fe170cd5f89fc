"""File watcher - turns trigger files into scheduled jobs.

┌──────────────────────────────────────────────────────────────────────────────┐
│  FILE WATCHER LOOP                                                           │
│                                                                              │
│   start()                                                                    │
│      │                                                                       │
│      ▼                                                                       │
│   ┌──────────────────────────────────────────────────────────────────┐       │
│   │              Daemon Thread "kiar-watcher-N"                       │       │
│   │                                                                  │       │
│   │   while not stop_event.wait(poll_interval):                      │       │
│   │       stat(trigger)                                              │       │
│   │       (size, mtime) unchanged since last poll?                   │       │
│   │           └─► handle_trigger()                                   │       │
│   │                 1. job name  <template>-<millis>                 │       │
│   │                 2. rename trigger → <job name>.<suffix>          │       │
│   │                 3. store.create_job(HARVESTED, WATCHER)          │       │
│   │                    (failure renames the file back)               │       │
│   │                 4. server.schedule_job(job.id)                   │       │
│   └──────────────────────────────────────────────────────────────────┘       │
│                                                                              │
│   cancel() → stop_event.set(); observed only between polls, never in the    │
│   middle of handle_trigger().                                                │
└──────────────────────────────────────────────────────────────────────────────┘

A trigger file is handled only once its size and modification time are
unchanged across two consecutive polls, so files still being uploaded are
not consumed half-written.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING

from kiar.core.models.job import Job, JobSource, JobStatus
from kiar.core.models.template import JobTemplate
from kiar.framework.logging import get_logger, set_context
from kiar.ingester.paths import new_job_name

if TYPE_CHECKING:
    from kiar.ingester.server import IngesterServer

log = get_logger(__name__)

Signature = tuple[int, int]


class FileWatcher:
    """Watches the trigger path of one template.

    Example:
        >>> watcher = FileWatcher(server, template, server.trigger_path(template), poll_interval=1.0)
        >>> watcher.start()
        >>> # ... later ...
        >>> watcher.cancel()
        >>> watcher.join(timeout=5.0)
    """

    def __init__(
        self,
        server: IngesterServer,
        template: JobTemplate,
        path: Path,
        poll_interval: float = 1.0,
        *,
        name: str | None = None,
    ):
        self.server = server
        self.template = template
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.name = name or f"kiar-watcher-{template.id}"

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_seen: Signature | None = None
        self.trigger_count = 0

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        if self._thread is not None:
            log.warning("watcher.already_started", watcher=self.template.id)
            return
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        """Request exit at the next polling boundary."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop to exit. Returns whether it did."""
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.is_alive

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_cancelled(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    def _loop(self) -> None:
        set_context(watcher=self.template.id, participant=self.template.participant, template=self.template.name)
        log.info("watcher.started", path=str(self.path), interval=self.poll_interval)

        while not self._stop_event.wait(self.poll_interval):
            try:
                self.poll()
            except Exception:
                log.exception("watcher.trigger_failed", path=str(self.path))
                self._last_seen = None

        log.info("watcher.stopped", triggers=self.trigger_count)

    def poll(self) -> Job | None:
        """Check the trigger path once; handle it if it is stable."""
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            self._last_seen = None
            return None

        signature = (stat.st_size, stat.st_mtime_ns)
        if signature != self._last_seen:
            self._last_seen = signature
            return None

        self._last_seen = None
        return self.handle_trigger()

    def handle_trigger(self) -> Job:
        """Consume the trigger file and schedule a job for it."""
        job = Job.create(
            name=new_job_name(self.template),
            template_id=self.template.id,
            source=JobSource.WATCHER,
            status=JobStatus.HARVESTED,
        )
        target = self.server.job_path(job, self.template)
        self.path.rename(target)
        try:
            self.server.store.create_job(job)
        except Exception:
            # No job row points at the file; give it back to the trigger path
            target.rename(self.path)
            raise
        log.info("watcher.triggered", job_id=job.id, job_file=str(target))

        self.trigger_count += 1
        self.server.schedule_job(job.id)
        return job

    def __repr__(self) -> str:
        return f"FileWatcher(template={self.template.id!r}, path={str(self.path)!r}, alive={self.is_alive})"
