"""
CLI: ``kiar jobs`` - job management commands.
"""

from __future__ import annotations

import typer

from kiar.cli.utils import console, err_console, fail, load_settings, open_index, open_store, print_json, print_rows
from kiar.core.errors import KiarError

app = typer.Typer(no_args_is_help=True)


def _job_row(job) -> dict:
    return {
        "id": job.id,
        "name": job.name,
        "status": job.status.value,
        "source": job.source.value,
        "processed": job.processed,
        "skipped": job.skipped,
        "error": job.error,
        "changed": job.changed_at.isoformat(timespec="seconds") if job.changed_at else None,
    }


@app.command("list")
def list_jobs(
    active: bool | None = typer.Option(None, "--active/--inactive", help="Only active or only finished jobs"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs, newest first."""
    store = open_store(load_settings(database))
    rows = [_job_row(job) for job in store.list_jobs(active=active)]
    if json_out:
        print_json(rows)
        return
    print_rows(rows, title="Jobs")


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a job and its log entries."""
    store = open_store(load_settings(database))
    job = store.get_job(job_id)
    if job is None:
        fail(f"Job not found: {job_id}")

    if json_out:
        print_json({**_job_row(job), "logs": [entry.to_dict() for entry in job.logs]})
        return

    for key, value in _job_row(job).items():
        console.print(f"  [cyan]{key}[/cyan]: {value}")
    if job.logs:
        print_rows([entry.to_dict() for entry in job.logs], title="Log")


@app.command("create")
def create_job(
    template_id: str = typer.Argument(..., help="Template ID"),
    name: str | None = typer.Option(None, "--name", "-n", help="Job name; defaults to <template>-<millis>"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Create a job for a template.

    The job is HARVESTED when its input file already exists at
    ``<ingest_path>/<participant>/<name>.<suffix>``, CREATED otherwise.
    """
    from kiar.core.models.job import Job, JobSource, JobStatus
    from kiar.ingester.paths import job_path, new_job_name

    settings = load_settings(database)
    store = open_store(settings)
    template = store.get_template(template_id)
    if template is None:
        fail(f"Template not found: {template_id}")

    job = Job.create(name=name or new_job_name(template), template_id=template.id, source=JobSource.WEB)
    path = job_path(settings.ingest_path, job, template)
    if path.is_file():
        job.status = JobStatus.HARVESTED

    store.create_job(job)
    console.print(f"[green]Created[/green] job {job.id} ({job.status.value})")
    console.print(f"  input: {path}")


@app.command("run")
def run_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Seconds to wait before aborting"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Run a FAILED, HARVESTED or INTERRUPTED job in this process and wait for it."""
    from concurrent.futures import TimeoutError as FutureTimeoutError

    from kiar.core.models.job import JobStatus
    from kiar.framework.logging import configure_logging
    from kiar.ingester.server import IngesterServer

    settings = load_settings(database)
    configure_logging(level=settings.log_level, format=settings.log_format)
    store = open_store(settings)

    server = IngesterServer(store, open_index(settings), settings, start_watchers=False, reconcile=False)
    try:
        try:
            future = server.schedule_job(job_id)
        except KiarError as e:
            fail(e)

        try:
            status = future.result(timeout=timeout)
        except FutureTimeoutError:
            server.terminate_job(job_id)
            status = future.result()
            err_console.print(f"[yellow]Timed out after {timeout}s[/yellow]")
    finally:
        server.stop()

    job = store.get_job(job_id)
    colour = "green" if status is JobStatus.INGESTED else "red"
    console.print(
        f"[{colour}]{status.value}[/{colour}] "
        f"processed={job.processed} skipped={job.skipped} error={job.error}"
    )
    if status is not JobStatus.INGESTED:
        raise typer.Exit(code=1)
