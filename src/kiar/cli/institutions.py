"""
CLI: ``kiar institutions`` - institution master data.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from kiar.cli.utils import console, fail, load_settings, open_index, open_store, print_rows
from kiar.core.errors import KiarError

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_institutions(
    participant: str | None = typer.Option(None, "--participant", "-p"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """List institutions, optionally of one participant."""
    store = open_store(load_settings(database))
    print_rows(
        [
            {
                "name": i.name,
                "participant": i.participant,
                "canton": i.canton,
                "publish": i.publish,
                "license": i.default_license.short if i.default_license else None,
            }
            for i in store.list_institutions(participant=participant)
        ],
        title="Institutions",
    )


@app.command("import")
def import_institutions(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with one institution or a list"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Create or replace institutions from a JSON file."""
    from kiar.core.models.institution import Institution

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        items = payload if isinstance(payload, list) else [payload]
        institutions = [Institution.from_dict(item) for item in items]
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        fail(f"Invalid institution file {path}: {e}")

    store = open_store(load_settings(database))
    for institution in institutions:
        store.save_institution(institution)
    console.print(f"[green]Saved[/green] {len(institutions)} institution(s)")


@app.command("sync")
def sync(
    collection: str = typer.Option("institutions", "--collection", "-c", help="Index collection to replace"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Replace an index collection with the published institutions."""
    from kiar.framework.sinks.institutions import sync_institutions

    settings = load_settings(database)
    store = open_store(settings)
    try:
        count = sync_institutions(store, open_index(settings), collection)
    except KiarError as e:
        fail(e)
    console.print(f"[green]Synchronised[/green] {count} institution(s) to {collection}")
