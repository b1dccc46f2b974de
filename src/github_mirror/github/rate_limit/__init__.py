"""Rate limit detection, backoff parsing and quota snapshots."""

from .backoff import (
    DEFAULT_BACKOFF_MS,
    is_rate_limit_response,
    normalize_headers,
    parse_retry_after_ms,
)
from .schemas import PoolRateLimit, RateLimitPool, RateLimitSnapshot

__all__ = [
    "DEFAULT_BACKOFF_MS",
    "PoolRateLimit",
    "RateLimitPool",
    "RateLimitSnapshot",
    "is_rate_limit_response",
    "normalize_headers",
    "parse_retry_after_ms",
]
