"""Main CLI application for GitHub Mirror.

Global options pick the database and the log level; the sub-apps hold
the actual commands:

    ghmirror init-db                         create the schema, report journal mode
    ghmirror sync bootstrap acme/widgets -k repo:42
    ghmirror sync resume                     continue workflows a dead process left behind
    ghmirror admin jobs
"""

from pathlib import Path
from typing import Annotated

import typer

from github_mirror import __version__
from github_mirror.cli import admin as admin_cmd
from github_mirror.cli import github as github_cmd
from github_mirror.cli import sync as sync_cmd
from github_mirror.cli.common import (
    OutputFormat,
    OutputFormatOption,
    console,
    print_json,
    run_async_command,
)
from github_mirror.config import Settings, get_settings
from github_mirror.db import create_tables, journal_mode
from github_mirror.logging import setup_logging

app = typer.Typer(
    name="ghmirror",
    help="Mirror GitHub repository state into a local database.",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"ghmirror version {__version__}")
        raise typer.Exit()


def configure_logging(settings: Settings, *, verbose: bool, quiet: bool) -> None:
    """Install the loguru sinks described by ``settings.logging``."""
    log_config = settings.logging
    setup_logging(
        level=settings.log_level,
        verbose=verbose,
        quiet=quiet,
        log_file=Path(log_config.log_file) if log_config.log_file else None,
        rotation=log_config.rotation,
        retention=log_config.retention,
        serialize=log_config.serialize,
    )


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    database_url: Annotated[
        str | None,
        typer.Option(
            "--database-url",
            help="Database to mirror into (overrides DATABASE_URL).",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-error output (WARNING level).",
        ),
    ] = False,
) -> None:
    """GitHub Mirror - durable, rate-limit-aware repository sync."""
    settings = get_settings()
    # The engine is built lazily, so the override lands before any command connects
    if database_url:
        settings.database_url = database_url

    configure_logging(settings, verbose=verbose, quiet=quiet)


@app.command("init-db")
def init_db(output_format: OutputFormatOption = OutputFormat.TEXT) -> None:
    """Create any missing tables in the configured database.

    Examples:
        ghmirror init-db
        ghmirror --database-url sqlite+aiosqlite:///./mirror.db init-db --format json
    """

    async def _init_db() -> tuple[list[str], str | None]:
        tables = await create_tables()
        return tables, await journal_mode()

    tables, mode = run_async_command(_init_db(), error_prefix="Database setup failed")

    if output_format == OutputFormat.JSON:
        print_json({"tables": tables, "journal_mode": mode})
        return
    suffix = f" (journal mode {mode})" if mode else ""
    console.print(f"[green]Database ready[/green]: {len(tables)} tables{suffix}")


app.add_typer(admin_cmd.app, name="admin")
app.add_typer(github_cmd.app, name="github")
app.add_typer(sync_cmd.app, name="sync")


if __name__ == "__main__":
    app()
