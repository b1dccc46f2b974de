"""Pydantic schemas for GitHub API rate limit data.

Built from the GET /rate_limit endpoint and used by diagnostics.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, Field, computed_field


class RateLimitPool(StrEnum):
    """GitHub rate limit resource pools the mirror reports on.

    Each pool has its own separate quota. Every bootstrap call uses 'core'.
    See: https://docs.github.com/en/rest/rate-limit/rate-limit
    """

    CORE = "core"
    SEARCH = "search"
    GRAPHQL = "graphql"


class PoolRateLimit(BaseModel):
    """Quota state for one resource pool."""

    pool: RateLimitPool = Field(description="Resource pool name")
    limit: int = Field(ge=0, description="Maximum requests allowed per hour")
    remaining: int = Field(ge=0, description="Requests remaining in current window")
    used: int = Field(ge=0, description="Requests used in current window")
    reset_at: datetime = Field(description="UTC datetime when limit resets")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_percent(self) -> float:
        """Percentage of rate limit remaining (0.0 to 100.0)."""
        if self.limit == 0:
            return 0.0
        return (self.remaining / self.limit) * 100

    @property
    def seconds_until_reset(self) -> int:
        """Seconds until rate limit resets (0 if already past)."""
        delta = self.reset_at - datetime.now(UTC)
        return max(0, int(delta.total_seconds()))


class RateLimitSnapshot(BaseModel):
    """Point-in-time view of the rate limit pools."""

    timestamp: datetime = Field(description="When this snapshot was taken")
    pools: dict[RateLimitPool, PoolRateLimit] = Field(
        default_factory=dict, description="Rate limits by pool"
    )

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Self:
        """Parse from a GitHub /rate_limit API response.

        Args:
            data: Response dict with a 'resources' key

        Returns:
            RateLimitSnapshot instance (unknown pools are ignored)
        """
        pools: dict[RateLimitPool, PoolRateLimit] = {}
        resources = data.get("resources", {})

        for pool in RateLimitPool:
            r = resources.get(pool.value)
            if r is None:
                continue
            pools[pool] = PoolRateLimit(
                pool=pool,
                limit=r["limit"],
                remaining=r["remaining"],
                used=r["used"],
                reset_at=datetime.fromtimestamp(r["reset"], tz=UTC),
            )

        return cls(timestamp=datetime.now(UTC), pools=pools)

    def get_core(self) -> PoolRateLimit | None:
        """Convenience accessor for the core pool."""
        return self.pools.get(RateLimitPool.CORE)
