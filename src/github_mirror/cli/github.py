"""GitHub API verification commands."""

import typer

from github_mirror.cli.common import console, run_async_command, validate_repo
from github_mirror.github import GitHubAuthenticationError, GitHubClient, GitHubRateLimitError

app = typer.Typer(help="GitHub API commands")


def _format_time_remaining(seconds: int) -> str:
    """Format seconds as human-readable time."""
    if seconds <= 0:
        return "now"
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


@app.command("test")
def test_connection(
    repo: str | None = typer.Option(
        None,
        "--repo",
        "-r",
        help="Also list branches of this repository (owner/name)",
    ),
) -> None:
    """Verify the configured credentials and show the rate limit.

    Examples:
        ghmirror github test
        ghmirror github test --repo acme/widgets
    """
    ref = validate_repo(repo) if repo else None

    async def _test() -> None:
        try:
            async with GitHubClient() as client:
                snapshot = await client.get_rate_limit()
                core = snapshot.get_core()
                if core is not None:
                    console.print(
                        f"Rate limit: {core.remaining}/{core.limit} "
                        f"(resets in {_format_time_remaining(core.seconds_until_reset)})"
                    )
                    if core.remaining < 10:
                        console.print("[yellow]Warning:[/yellow] Low rate limit remaining")

                if ref is not None:
                    branches = await client.list_branches(ref.owner, ref.name)
                    console.print(f"{ref.full_name}: {len(branches)} branch(es)")

            console.print("[green]GitHub API connection verified![/green]")
        except GitHubAuthenticationError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from None
        except GitHubRateLimitError as e:
            console.print(
                f"[red]Error:[/red] Rate limit exceeded, retry in "
                f"{_format_time_remaining(e.retry_after_ms // 1000)}"
            )
            raise typer.Exit(1) from None

    run_async_command(_test())
