"""Common CLI option types and helpers.

Provides:
- `run_async_command`: async execution with unified error handling
- `OutputFormat` and the shared `--format` option
- Repository argument parsing
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from enum import Enum
from typing import Annotated, Any, TypeVar

import typer
from rich.console import Console

from github_mirror.schemas.repository import RepositoryRef

# Shared console instance for CLI output
console = Console()

T = TypeVar("T")


class OutputFormat(str, Enum):
    """Output format for CLI commands."""

    TEXT = "text"
    JSON = "json"


def run_async_command(
    coro: Coroutine[object, object, T],
    *,
    error_prefix: str = "Error",
) -> T:
    """Execute async code from a synchronous CLI command.

    Catches exceptions, prints a short error message and exits with code 1.

    Raises:
        typer.Exit: Re-raised from deliberate exits, or raised with code 1 on error
    """
    try:
        return asyncio.run(coro)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]{error_prefix}:[/red] {e}")
        raise typer.Exit(1) from None


def print_json(data: Any) -> None:
    """Print JSON without rich markup processing."""
    console.print_json(json.dumps(data, default=str))


# Typer requires function calls as default arguments, which triggers B008.
# Annotated aliases keep that in one place.

OutputFormatOption = Annotated[
    OutputFormat,
    typer.Option(
        "--format",
        "-f",
        help="Output format",
    ),
]

RepoArgument = Annotated[
    str,
    typer.Argument(
        help="Repository in owner/name format (e.g., acme/widgets)",
    ),
]


def validate_repo(repo: str) -> RepositoryRef:
    """Parse an owner/name string or exit with an error.

    Raises:
        typer.Exit(1): If the format is invalid
    """
    try:
        return RepositoryRef.from_full_name(repo)
    except ValueError:
        console.print("[red]Error:[/red] Repository must be in owner/name format")
        raise typer.Exit(1) from None
