"""Read-only diagnostic commands."""

import typer
from rich.table import Table

from github_mirror.admin import health_check, sync_job_status, table_counts
from github_mirror.cli.common import (
    OutputFormat,
    OutputFormatOption,
    console,
    print_json,
    run_async_command,
)
from github_mirror.db import create_tables, get_session

app = typer.Typer(help="Inspect the mirror database")


@app.command("health")
def health(output_format: OutputFormatOption = OutputFormat.TEXT) -> None:
    """Check that the database answers.

    Examples:
        ghmirror admin health
        ghmirror admin health --format json
    """

    async def _health() -> None:
        await create_tables()
        async with get_session() as session:
            status = await health_check(session)

        if output_format == OutputFormat.JSON:
            print_json(status.model_dump())
            return
        console.print("[green]Database OK[/green]")
        if status.table_count == 0:
            console.print("[dim]No repositories mirrored yet[/dim]")

    run_async_command(_health(), error_prefix="Health check failed")


@app.command("counts")
def counts(output_format: OutputFormatOption = OutputFormat.TEXT) -> None:
    """Show row counts for every mirrored table."""

    async def _counts() -> None:
        await create_tables()
        async with get_session() as session:
            result = await table_counts(session)

        if output_format == OutputFormat.JSON:
            print_json(result)
            return
        table = Table(title="Table counts")
        table.add_column("Table", style="cyan")
        table.add_column("Rows", justify="right")
        for name, count in result.items():
            table.add_row(name, str(count))
        console.print(table)

    run_async_command(_counts())


@app.command("jobs")
def jobs(
    output_format: OutputFormatOption = OutputFormat.TEXT,
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum jobs to show"),
) -> None:
    """Show sync job states, most recently updated first."""

    async def _jobs() -> None:
        await create_tables()
        async with get_session() as session:
            result = await sync_job_status(session, limit=limit)

        if output_format == OutputFormat.JSON:
            print_json([job.model_dump(mode="json") for job in result])
            return
        if not result:
            console.print("[dim]No sync jobs[/dim]")
            return

        table = Table(title="Sync jobs")
        table.add_column("Lock key", style="cyan")
        table.add_column("State")
        table.add_column("Attempts", justify="right")
        table.add_column("Type")
        table.add_column("Trigger")
        table.add_column("Last error", max_width=50)
        for job in result:
            table.add_row(
                job.lock_key,
                job.state.value,
                str(job.attempt_count),
                job.job_type,
                job.trigger_reason,
                job.last_error or "",
            )
        console.print(table)

    run_async_command(_jobs())
