"""Sync commands: bootstrap, resume and cancel workflows."""

from typing import Any

import typer

from github_mirror.cli.common import (
    OutputFormat,
    OutputFormatOption,
    RepoArgument,
    console,
    print_json,
    run_async_command,
    validate_repo,
)
from github_mirror.db import SyncJobRepository, create_tables, get_session, get_session_factory
from github_mirror.github import GitHubClient
from github_mirror.github.sync import GitHubStepExecutor
from github_mirror.workflow import (
    WorkflowOrchestrator,
    WorkflowResult,
    WorkflowResultKind,
    build_bootstrap_orchestrator,
)

app = typer.Typer(help="Sync repository state from GitHub")

_RESULT_STYLE = {
    WorkflowResultKind.SUCCESS: "green",
    WorkflowResultKind.ERROR: "red",
    WorkflowResultKind.CANCELED: "yellow",
}


def _print_result(workflow_id: str, lock_key: str | None, result: WorkflowResult) -> None:
    style = _RESULT_STYLE[result.kind]
    label = f"[{style}]{result.kind.value}[/{style}]"
    suffix = f" ({lock_key})" if lock_key else ""
    console.print(f"Workflow {workflow_id}{suffix}: {label}")
    if result.error:
        console.print(f"  Error: {result.error}")


async def _lookup_repository_id(client: GitHubClient, owner: str, name: str) -> int:
    resp = await client.use(lambda gh: gh.rest.repos.async_get(owner, name))
    repository_id: int = resp.parsed_data.id
    return repository_id


@app.command("bootstrap")
def bootstrap(
    repo: RepoArgument,
    lock_key: str = typer.Option(..., "--lock-key", "-k", help="Sync job key to report to"),
    repository_id: int | None = typer.Option(
        None,
        "--repository-id",
        help="Upstream repository id (looked up from GitHub when omitted)",
    ),
    output_format: OutputFormatOption = OutputFormat.TEXT,
) -> None:
    """Run the initial sync of a repository to completion.

    Creates the sync job for LOCK_KEY if it does not exist yet.

    Examples:
        ghmirror sync bootstrap acme/widgets --lock-key repo:42
        ghmirror sync bootstrap acme/widgets -k repo:42 --repository-id 42 --format json
    """
    ref = validate_repo(repo)

    async def _bootstrap() -> dict[str, Any]:
        await create_tables()

        async with GitHubClient() as client:
            repo_id = repository_id or await _lookup_repository_id(client, ref.owner, ref.name)

            async with get_session() as session:
                _, created = await SyncJobRepository(session).get_or_create(
                    lock_key, repository_id=repo_id
                )
            if created and output_format == OutputFormat.TEXT:
                console.print(f"[dim]Registered sync job {lock_key}[/dim]")

            orchestrator = build_bootstrap_orchestrator(
                get_session_factory(), GitHubStepExecutor(client)
            )
            workflow_id = await orchestrator.start_bootstrap(repo_id, ref.full_name, lock_key)
            try:
                result = await orchestrator.wait(workflow_id)
            except LookupError:
                # An earlier run left this instance unfinished; continue it here
                result = await orchestrator.run(workflow_id)

        return {
            "workflow_id": workflow_id,
            "lock_key": lock_key,
            "repository_id": repo_id,
            "result": result,
        }

    outcome = run_async_command(_bootstrap(), error_prefix="Bootstrap failed")
    result: WorkflowResult = outcome["result"]

    if output_format == OutputFormat.JSON:
        print_json(
            {
                "workflow_id": outcome["workflow_id"],
                "lock_key": lock_key,
                "repository_id": outcome["repository_id"],
                "result": result.kind.value,
                "error": result.error,
            }
        )
    else:
        _print_result(outcome["workflow_id"], lock_key, result)

    if result.kind is not WorkflowResultKind.SUCCESS:
        raise typer.Exit(1)


@app.command("resume")
def resume(output_format: OutputFormatOption = OutputFormat.TEXT) -> None:
    """Resume workflows left unfinished by an earlier process."""

    async def _resume() -> dict[str, WorkflowResult]:
        await create_tables()
        async with GitHubClient() as client:
            orchestrator = build_bootstrap_orchestrator(
                get_session_factory(), GitHubStepExecutor(client)
            )
            workflow_ids = await orchestrator.resume_incomplete()
            return {wid: await orchestrator.wait(wid) for wid in workflow_ids}

    results = run_async_command(_resume(), error_prefix="Resume failed")

    if output_format == OutputFormat.JSON:
        print_json(
            [
                {"workflow_id": wid, "result": r.kind.value, "error": r.error}
                for wid, r in results.items()
            ]
        )
        return
    if not results:
        console.print("[dim]Nothing to resume[/dim]")
    for workflow_id, result in results.items():
        _print_result(workflow_id, None, result)


@app.command("cancel")
def cancel(workflow_id: str = typer.Argument(..., help="Workflow id to cancel")) -> None:
    """Request cancellation of a running workflow.

    The workflow stops at its next step boundary or backoff wait.
    """

    async def _cancel() -> bool:
        orchestrator = WorkflowOrchestrator(get_session_factory())
        return await orchestrator.cancel(workflow_id)

    if run_async_command(_cancel()):
        console.print(f"Cancellation requested for {workflow_id}")
    else:
        console.print(f"[yellow]Workflow {workflow_id} is unknown or already finished[/yellow]")
        raise typer.Exit(1)
