"""
CLI: ``kiar templates`` - job template management.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from kiar.cli.utils import console, fail, load_settings, open_store, print_json, print_rows

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_templates(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List job templates."""
    store = open_store(load_settings(database))
    templates = store.list_templates()

    if json_out:
        print_json([t.to_dict() for t in templates])
        return
    print_rows(
        [
            {
                "id": t.id,
                "name": t.name,
                "participant": t.participant,
                "type": t.type.value,
                "auto": t.start_automatically,
                "trigger": t.trigger_file,
            }
            for t in templates
        ],
        title="Templates",
    )


@app.command("import")
def import_templates(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with one template or a list"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Create or replace templates from a JSON file."""
    from kiar.core.models.template import JobTemplate

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        items = payload if isinstance(payload, list) else [payload]
        templates = [JobTemplate.from_dict(item) for item in items]
    except (json.JSONDecodeError, KeyError, ValueError) as e:
        fail(f"Invalid template file {path}: {e}")

    store = open_store(load_settings(database))
    for template in templates:
        store.save_template(template)
        console.print(f"[green]Saved[/green] {template.name} ({template.id})")
