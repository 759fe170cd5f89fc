"""
CLI utility helpers: output formatting and store/index wiring.
"""

from __future__ import annotations

import json
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from kiar.core.errors import KiarError
from kiar.core.settings import KiarSettings, get_settings
from kiar.core.store import SqliteEntityStore
from kiar.framework.sinks.file_index import FileIndexClient

console = Console()
err_console = Console(stderr=True)


# ── Wiring helpers ───────────────────────────────────────────────────────


def load_settings(database: str | None = None) -> KiarSettings:
    """Settings from the environment, with the ``--database`` override applied."""
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_path": database})
    return settings


def open_store(settings: KiarSettings) -> SqliteEntityStore:
    try:
        return SqliteEntityStore.connect(settings.database_path)
    except KiarError as e:
        fail(e)


def open_index(settings: KiarSettings) -> FileIndexClient:
    return FileIndexClient(settings.index_path)


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: KiarError | str, code: int = 1) -> NoReturn:
    """Print an error and exit."""
    if isinstance(error, KiarError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=code)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_rows(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)
