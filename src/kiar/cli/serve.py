"""
CLI: ``kiar serve`` - run the ingester server until interrupted.
"""

from __future__ import annotations

import time

import typer

from kiar.cli.utils import console, load_settings, open_index, open_store


def _block_until_interrupted() -> None:
    while True:
        time.sleep(1.0)


def serve(
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite entity store"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_format: str | None = typer.Option(None, "--log-format", help="console or json"),
) -> None:
    """Start the file watchers and the job worker."""
    from kiar.framework.logging import configure_logging
    from kiar.ingester.server import IngesterServer

    settings = load_settings(database)
    configure_logging(level=log_level or settings.log_level, format=log_format or settings.log_format)

    server = IngesterServer(open_store(settings), open_index(settings), settings)
    console.print(
        f"[bold green]kiar ingester running[/bold green] "
        f"(ingest={settings.ingest_path}, watchers={len(server.active_watchers())})"
    )
    try:
        _block_until_interrupted()
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping ingester...[/yellow]")
        for job_id in server.active_jobs():
            server.terminate_job(job_id)
    finally:
        server.stop(wait_jobs=True)
