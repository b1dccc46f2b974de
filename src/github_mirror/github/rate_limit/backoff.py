"""Rate-limit detection and backoff computation for failed GitHub responses.

GitHub signals throttling two ways: ``429 Too Many Requests`` (secondary
limits) and ``403 Forbidden`` with ``X-RateLimit-Remaining: 0`` (primary
limit exhausted). A 403 without that header is a permission problem and
must not be retried as a rate limit.
"""

import math
import time
from collections.abc import Mapping

DEFAULT_BACKOFF_MS = 60_000


def normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    """Lowercase header names so lookups are case-insensitive."""
    if not headers:
        return {}
    return {key.lower(): value for key, value in headers.items()}


def _parse_seconds(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if math.isfinite(seconds) else None


def is_rate_limit_response(status: int, headers: Mapping[str, str] | None) -> bool:
    """Whether a failed response is a rate limit rather than a hard failure.

    Args:
        status: HTTP status code
        headers: Response headers (any case)

    Returns:
        True for 429, or 403 whose ``X-RateLimit-Remaining`` is present and 0
    """
    if status == 429:
        return True
    if status != 403:
        return False
    remaining = normalize_headers(headers).get("x-ratelimit-remaining")
    return remaining is not None and _parse_seconds(remaining) == 0


def parse_retry_after_ms(
    headers: Mapping[str, str] | None,
    *,
    now: float | None = None,
    default_ms: int = DEFAULT_BACKOFF_MS,
) -> int:
    """Compute how long to wait before retrying a rate-limited request.

    Priority:
        1. ``Retry-After`` seconds (fractions allowed, rounded up to the ms),
           when present and positive
        2. ``X-RateLimit-Reset`` epoch seconds minus now, when positive
        3. ``default_ms``

    Args:
        headers: Response headers (any case)
        now: Current epoch seconds (defaults to ``time.time()``)
        default_ms: Fallback when neither header is usable

    Returns:
        Milliseconds to wait
    """
    normalized = normalize_headers(headers)

    retry_after = _parse_seconds(normalized.get("retry-after"))
    if retry_after is not None and retry_after > 0:
        return math.ceil(retry_after * 1000)

    reset_epoch = _parse_seconds(normalized.get("x-ratelimit-reset"))
    if reset_epoch is not None:
        current = time.time() if now is None else now
        wait_ms = math.ceil((reset_epoch - current) * 1000)
        if wait_ms > 0:
            return wait_ms

    return default_ms
