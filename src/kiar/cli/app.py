"""
Root Typer application for the ``kiar`` CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from kiar import __version__

app = Typer(
    name="kiar",
    help="kiar - museum metadata ingestion engine.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kiar {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """kiar CLI - run the ingester, manage jobs and templates."""


# ── Sub-command registration ─────────────────────────────────────────────

from kiar.cli.institutions import app as institutions_app  # noqa: E402
from kiar.cli.jobs import app as jobs_app  # noqa: E402
from kiar.cli.serve import serve  # noqa: E402
from kiar.cli.templates import app as templates_app  # noqa: E402

app.command("serve", help="Run the file watchers and the job worker.")(serve)
app.add_typer(jobs_app, name="jobs", help="Job management.")
app.add_typer(templates_app, name="templates", help="Job template management.")
app.add_typer(institutions_app, name="institutions", help="Institution master data.")
