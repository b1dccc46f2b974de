"""Async GitHub API client wrapper using githubkit.

Every call goes through ``GitHubClient.use``, which authenticates with the
injected token provider and converts failures into this package's
exceptions, separating rate limits (retry after a known delay) from other
API errors.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Literal, TypeVar

from githubkit import GitHub
from githubkit.exception import RequestError, RequestFailed, RequestTimeout
from pydantic import BaseModel, ValidationError

from github_mirror.config import RateLimitConfig, get_settings
from github_mirror.logging import get_logger
from github_mirror.schemas.github_api import (
    GitHubBranch,
    GitHubCheckRun,
    GitHubCommit,
    GitHubIssue,
    GitHubPullRequest,
    GitHubWorkflowJob,
    GitHubWorkflowRun,
)

from .auth import TokenProvider, build_token_provider
from .exceptions import (
    GitHubApiError,
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubMalformedResponseError,
    GitHubRateLimitError,
)
from .rate_limit.backoff import is_rate_limit_response, normalize_headers, parse_retry_after_ms
from .rate_limit.schemas import RateLimitSnapshot

logger = get_logger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

PRState = Literal["open", "closed", "all"]


def _dump(item: Any) -> Any:
    """Turn a githubkit model into plain data; pass dicts through."""
    if isinstance(item, BaseModel):
        return item.model_dump(exclude_unset=True)
    return item


def _response_url(response: Any) -> str:
    request = getattr(response, "raw_request", None)
    url = getattr(request, "url", None)
    return str(url) if url is not None else "unknown"


def _response_message(response: Any, status: int) -> str:
    """Prefer GitHub's JSON ``message`` field, fall back to the status code."""
    raw = getattr(response, "raw_response", None)
    try:
        body = raw.json() if raw is not None else None
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return f"HTTP {status}"


class GitHubClient:
    """Rate-limit-aware async GitHub API client.

    Usage:
        async with GitHubClient(StaticTokenProvider(token)) as client:
            branches = await client.list_branches("acme", "widgets")

    Or for an ad-hoc request:
        resp = await client.use(lambda gh: gh.rest.repos.async_get("acme", "widgets"))
    """

    def __init__(
        self,
        token_provider: TokenProvider | None = None,
        *,
        rate_limit: RateLimitConfig | None = None,
        per_page: int | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token_provider: Source of bearer tokens. Defaults to the strategy
                            configured in settings.
            rate_limit: Rate limit handling config (defaults to settings)
            per_page: Page size for paginated endpoints (defaults to settings)
        """
        settings = get_settings()
        self._token_provider = token_provider or build_token_provider(settings)
        self._rate_limit = rate_limit or settings.rate_limit
        self._per_page = per_page or settings.workflow.per_page
        self._client: GitHub[Any] | None = None
        self._client_token: str | None = None

    async def _github(self) -> GitHub[Any]:
        """Get the githubkit client for the current token.

        Installation tokens rotate, so the underlying client is rebuilt
        whenever the provider hands out a different token.
        """
        token = await self._token_provider.get_token()
        if self._client is None or token != self._client_token:
            # Retries are owned by the workflow engine, not githubkit
            self._client = GitHub(token, auto_retry=False)
            self._client_token = token
        return self._client

    async def close(self) -> None:
        """Drop the underlying client."""
        self._client = None
        self._client_token = None

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Core wrapper
    # -------------------------------------------------------------------------
    async def use(self, fn: Callable[[GitHub[Any]], Awaitable[T]]) -> T:
        """Run ``fn`` against the authenticated githubkit client.

        Args:
            fn: Coroutine function receiving the githubkit client

        Returns:
            Whatever ``fn`` returns

        Raises:
            GitHubRateLimitError: On 429 or an exhausted 403
            GitHubAuthenticationError: On 401 or missing credentials
            GitHubMalformedResponseError: When a payload fails validation
            GitHubApiError: On any other failure (status 0 for network errors)
        """
        try:
            gh = await self._github()
            return await fn(gh)
        except GitHubClientError:
            raise
        except RequestFailed as e:
            raise self._handle_error(e) from e
        except RequestTimeout as e:
            raise GitHubApiError(0, f"Request timed out: {e}", "unknown") from e
        except RequestError as e:
            raise GitHubApiError(0, f"Network error: {e}", "unknown") from e
        except ValidationError as e:
            raise GitHubMalformedResponseError(
                200, f"Unexpected response shape: {e.error_count()} validation error(s)", "unknown"
            ) from e
        except Exception as e:
            raise GitHubApiError(0, str(e) or type(e).__name__, "unknown") from e

    async def _collect(
        self,
        model: type[ModelT],
        request: Callable[..., Any],
        *,
        map_func: Callable[[Any], list[Any]] | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> list[ModelT]:
        """Paginate an endpoint inside ``use`` and validate every item.

        Args:
            model: Schema each item must validate against
            request: Selector returning the githubkit endpoint method
            map_func: Extracts the item list from wrapped responses
            limit: Stop after this many items
            **kwargs: Endpoint parameters

        Returns:
            Validated items in API order
        """

        async def run(gh: GitHub[Any]) -> list[ModelT]:
            items: list[ModelT] = []
            async for item in gh.paginate(request(gh), map_func=map_func, **kwargs):
                items.append(model.model_validate(_dump(item)))
                if limit is not None and len(items) >= limit:
                    break
            return items

        return await self.use(run)

    # -------------------------------------------------------------------------
    # Rate Limit Info
    # -------------------------------------------------------------------------
    async def get_rate_limit(self) -> RateLimitSnapshot:
        """Get current rate limit status for all pools."""

        async def run(gh: GitHub[Any]) -> RateLimitSnapshot:
            resp = await gh.rest.rate_limit.async_get()
            return RateLimitSnapshot.from_api_response(_dump(resp.parsed_data))

        return await self.use(run)

    # -------------------------------------------------------------------------
    # Repository entities
    # -------------------------------------------------------------------------
    async def list_branches(self, owner: str, repo: str) -> list[GitHubBranch]:
        return await self._collect(
            GitHubBranch,
            lambda gh: gh.rest.repos.async_list_branches,
            owner=owner,
            repo=repo,
            per_page=self._per_page,
        )

    async def list_pull_requests(
        self,
        owner: str,
        repo: str,
        *,
        state: PRState = "all",
    ) -> list[GitHubPullRequest]:
        """List pull requests (all pages), most recently updated first."""
        return await self._collect(
            GitHubPullRequest,
            lambda gh: gh.rest.pulls.async_list,
            owner=owner,
            repo=repo,
            state=state,
            sort="updated",
            direction="desc",
            per_page=self._per_page,
        )

    async def list_issues(
        self,
        owner: str,
        repo: str,
        *,
        state: PRState = "all",
    ) -> list[GitHubIssue]:
        """List issues (all pages), excluding pull requests."""
        issues = await self._collect(
            GitHubIssue,
            lambda gh: gh.rest.issues.async_list_for_repo,
            owner=owner,
            repo=repo,
            state=state,
            per_page=self._per_page,
        )
        return [issue for issue in issues if not issue.is_pull_request]

    async def list_commits(self, owner: str, repo: str, *, limit: int = 100) -> list[GitHubCommit]:
        """List the most recent ``limit`` commits on the default branch."""
        return await self._collect(
            GitHubCommit,
            lambda gh: gh.rest.repos.async_list_commits,
            limit=limit,
            owner=owner,
            repo=repo,
            per_page=min(self._per_page, limit),
        )

    async def list_check_runs(self, owner: str, repo: str, ref: str) -> list[GitHubCheckRun]:
        """List check runs for a commit SHA or ref."""
        return await self._collect(
            GitHubCheckRun,
            lambda gh: gh.rest.checks.async_list_for_ref,
            map_func=lambda resp: resp.parsed_data.check_runs,
            owner=owner,
            repo=repo,
            ref=ref,
            per_page=self._per_page,
        )

    async def list_workflow_runs(
        self, owner: str, repo: str, *, limit: int = 20
    ) -> list[GitHubWorkflowRun]:
        """List the most recent ``limit`` workflow runs."""
        return await self._collect(
            GitHubWorkflowRun,
            lambda gh: gh.rest.actions.async_list_workflow_runs_for_repo,
            map_func=lambda resp: resp.parsed_data.workflow_runs,
            limit=limit,
            owner=owner,
            repo=repo,
            per_page=min(self._per_page, limit),
        )

    async def list_workflow_jobs(
        self, owner: str, repo: str, run_id: int
    ) -> list[GitHubWorkflowJob]:
        return await self._collect(
            GitHubWorkflowJob,
            lambda gh: gh.rest.actions.async_list_jobs_for_workflow_run,
            map_func=lambda resp: resp.parsed_data.jobs,
            owner=owner,
            repo=repo,
            run_id=run_id,
            per_page=self._per_page,
        )

    # -------------------------------------------------------------------------
    # Error Handling
    # -------------------------------------------------------------------------
    def _handle_error(self, error: RequestFailed) -> GitHubClientError:
        """Convert a failed githubkit response into our exceptions."""
        response = error.response
        status = response.status_code
        headers = normalize_headers(getattr(response, "headers", None))
        url = _response_url(response)
        message = _response_message(response, status)

        if is_rate_limit_response(status, headers):
            retry_after_ms = parse_retry_after_ms(
                headers, default_ms=self._rate_limit.default_backoff_ms
            )
            logger.warning("Rate limited ({}) on {}, retry in {}ms", status, url, retry_after_ms)
            return GitHubRateLimitError(status, message, url, retry_after_ms)
        if status == 401:
            return GitHubAuthenticationError(message, status=status, url=url)
        return GitHubApiError(status, message, url)
