"""GitHub API client module.

This module provides:
- GitHubClient: Async GitHub API client with rate limit classification
- Token providers: StaticTokenProvider, InstallationTokenProvider
- Rate limit helpers: is_rate_limit_response, parse_retry_after_ms
- Bootstrap step executors: GitHubStepExecutor
"""

from .auth import (
    InstallationTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    build_token_provider,
)
from .client import GitHubClient
from .exceptions import (
    GitHubApiError,
    GitHubAuthenticationError,
    GitHubClientError,
    GitHubMalformedResponseError,
    GitHubRateLimitError,
    GitHubRetryableError,
)
from .rate_limit import (
    RateLimitPool,
    RateLimitSnapshot,
    is_rate_limit_response,
    parse_retry_after_ms,
)

__all__ = [
    # Client
    "GitHubClient",
    # Auth
    "InstallationTokenProvider",
    "StaticTokenProvider",
    "TokenProvider",
    "build_token_provider",
    # Exceptions
    "GitHubApiError",
    "GitHubAuthenticationError",
    "GitHubClientError",
    "GitHubMalformedResponseError",
    "GitHubRateLimitError",
    "GitHubRetryableError",
    # Rate limits
    "RateLimitPool",
    "RateLimitSnapshot",
    "is_rate_limit_response",
    "parse_retry_after_ms",
]
