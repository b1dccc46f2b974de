"""GitHub client exceptions."""


class GitHubClientError(Exception):
    """Base exception for GitHub client errors."""

    pass


class GitHubApiError(GitHubClientError):
    """A GitHub request failed.

    ``status`` is the HTTP status code, or 0 when no response was received
    (network failure, timeout).
    """

    def __init__(self, status: int, message: str, url: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.url = url

    def __str__(self) -> str:
        if self.status:
            return f"GitHub API error ({self.status}) for {self.url}: {self.message}"
        return f"GitHub API error for {self.url}: {self.message}"


class GitHubAuthenticationError(GitHubApiError):
    """Raised when credentials are missing or rejected (401)."""

    def __init__(self, message: str, status: int = 401, url: str = "unknown") -> None:
        super().__init__(status, message, url)

    def __str__(self) -> str:
        return f"GitHub authentication failed: {self.message}"


class GitHubMalformedResponseError(GitHubApiError):
    """Raised when a response payload does not match the expected shape."""

    pass


class GitHubRetryableError(GitHubClientError):
    """Base class for errors the workflow retries without spending its retry budget."""

    pass


class GitHubRateLimitError(GitHubRetryableError):
    """Raised on 429, or 403 with ``X-RateLimit-Remaining: 0``.

    ``retry_after_ms`` is how long to wait before the next request.
    """

    def __init__(self, status: int, message: str, url: str, retry_after_ms: int) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.url = url
        self.retry_after_ms = retry_after_ms

    def __str__(self) -> str:
        return (
            f"GitHub rate limit exceeded ({self.status}) for {self.url}, "
            f"retry after {self.retry_after_ms}ms: {self.message}"
        )
