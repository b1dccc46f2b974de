"""Token providers for authenticating GitHub API requests.

Two strategies share one capability, ``get_token()``:

- ``StaticTokenProvider``: a long-lived personal access token.
- ``InstallationTokenProvider``: short-lived GitHub App installation
  tokens, cached and refreshed shortly before they expire.

``build_token_provider`` picks one from settings; the client receives it
by injection and never branches on the strategy.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from githubkit import AppAuthStrategy, GitHub
from githubkit.exception import RequestFailed

from github_mirror.logging import get_logger

from .exceptions import GitHubAuthenticationError

if TYPE_CHECKING:
    from github_mirror.config import Settings

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@runtime_checkable
class TokenProvider(Protocol):
    """Anything that can hand out a bearer token for the next request."""

    async def get_token(self) -> str: ...


class StaticTokenProvider:
    """Returns the same personal access token for every request."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def get_token(self) -> str:
        if not self._token:
            raise GitHubAuthenticationError(
                "GitHub token required. Set GITHUB_TOKEN environment variable."
            )
        return self._token


class InstallationTokenProvider:
    """Mints and caches GitHub App installation tokens.

    A cached token is reused until ``refresh_margin`` before its expiry.
    Concurrent callers that find the cache stale wait on a single refresh.
    """

    def __init__(
        self,
        app_id: str,
        private_key: str,
        installation_id: int,
        *,
        refresh_margin: timedelta = timedelta(minutes=5),
        app_client: GitHub[Any] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the provider.

        Args:
            app_id: GitHub App ID
            private_key: App private key (PEM)
            installation_id: Installation to mint tokens for
            refresh_margin: Refresh this long before the token expires
            app_client: Pre-built app-authenticated client (for tests)
            clock: Source of the current UTC time
        """
        if not app_id or not private_key:
            raise GitHubAuthenticationError("GitHub App ID and private key are required")
        self._app_id = app_id
        self._private_key = private_key
        self._installation_id = installation_id
        self._refresh_margin = refresh_margin
        self._app_client = app_client
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token: str | None = None
        self._expires_at: datetime | None = None

    @property
    def _github(self) -> GitHub[Any]:
        if self._app_client is None:
            self._app_client = GitHub(AppAuthStrategy(self._app_id, self._private_key))
        return self._app_client

    def _cached_token(self) -> str | None:
        """The cached token, unless missing or inside the refresh margin."""
        if self._token is None or self._expires_at is None:
            return None
        if self._clock() >= self._expires_at - self._refresh_margin:
            return None
        return self._token

    async def get_token(self) -> str:
        token = self._cached_token()
        if token is not None:
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited
            token = self._cached_token()
            if token is None:
                token = await self._refresh()
            return token

    async def _refresh(self) -> str:
        logger.debug("Minting installation token for installation {}", self._installation_id)
        try:
            resp = await self._github.rest.apps.async_create_installation_access_token(
                self._installation_id
            )
        except RequestFailed as e:
            raise GitHubAuthenticationError(
                f"Could not mint installation token ({e.response.status_code})",
                status=e.response.status_code,
            ) from e

        data = resp.parsed_data
        expires_at = data.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        self._token = data.token
        self._expires_at = expires_at
        logger.info("Installation token refreshed, expires at {}", expires_at.isoformat())
        return data.token


def build_token_provider(settings: Settings) -> TokenProvider:
    """Select the token strategy configured in ``settings``.

    Raises:
        GitHubAuthenticationError: If app mode is selected without an installation id
    """
    if settings.github_auth_mode == "app":
        app = settings.github_app
        if app.installation_id is None:
            raise GitHubAuthenticationError("GITHUB_APP__INSTALLATION_ID is required in app mode")
        return InstallationTokenProvider(
            app.app_id,
            app.private_key,
            app.installation_id,
            refresh_margin=timedelta(seconds=app.refresh_margin_seconds),
        )
    return StaticTokenProvider(settings.github_token)
