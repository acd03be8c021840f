"""
Request options — per-call freshness configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta

from stalewise.cache._codec import Codec, JSON
from stalewise.cache._types import CacheKey

HALF_DAY = timedelta(hours=12)
ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)


def duration(
    *,
    seconds: float | None = None,
    minutes: float | None = None,
    hours: float | None = None,
    days: float | None = None,
    delta: timedelta | None = None,
) -> timedelta:
    """
    Build a non-negative timedelta from keyword parts.

    Example:
        duration(hours=12)
        duration(delta=timedelta(days=7))
    """
    if delta is not None:
        value = delta
    else:
        value = timedelta(
            seconds=seconds or 0,
            minutes=minutes or 0,
            hours=hours or 0,
            days=days or 0,
        )
    if value < timedelta(0):
        raise ValueError(f"TTL must not be negative: {value}")
    return value


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Options — Full Configuration
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheOptions:
    """
    Options for a single get_or_compute call.

    Fluent builder pattern — chain methods to configure.

    Example:
        opts = (
            CacheOptions("undoc-api", f"scenes-{sku}")
            .with_soft_ttl(days=1)
            .with_hard_ttl(days=7)
            .with_negative_ttl(seconds=1)
            .with_allow_stale()
        )

    Note: Not persisted with the entry. Two callers may read the same
    entry through different options and classify it differently.
    """

    topic: str
    key: str
    soft_ttl: timedelta = HALF_DAY
    hard_ttl: timedelta = HALF_DAY
    negative_ttl: timedelta = timedelta(seconds=10)
    allow_stale: bool = False
    codec: Codec = field(default=JSON, compare=False)

    def __post_init__(self) -> None:
        for name in ("soft_ttl", "hard_ttl", "negative_ttl"):
            if getattr(self, name) < timedelta(0):
                raise ValueError(f"{name} must not be negative")

    @property
    def address(self) -> CacheKey:
        return CacheKey(self.topic, self.key)

    def with_key(self, key: str) -> CacheOptions:
        """Same policy, different key within the topic."""
        return replace(self, key=key)

    def with_soft_ttl(self, **parts: float | timedelta | None) -> CacheOptions:
        """
        Set the soft TTL: after it, the entry is stale.

        Example:
            .with_soft_ttl(hours=12)
        """
        return replace(self, soft_ttl=duration(**parts))  # type: ignore[arg-type]

    def with_hard_ttl(self, **parts: float | timedelta | None) -> CacheOptions:
        """
        Set the hard TTL: after it, the entry is never served.

        Example:
            .with_hard_ttl(days=7)
        """
        return replace(self, hard_ttl=duration(**parts))  # type: ignore[arg-type]

    def with_ttl(self, **parts: float | timedelta | None) -> CacheOptions:
        """Set soft and hard TTL to the same value (no stale window)."""
        ttl = duration(**parts)  # type: ignore[arg-type]
        return replace(self, soft_ttl=ttl, hard_ttl=ttl)

    def with_negative_ttl(self, **parts: float | timedelta | None) -> CacheOptions:
        """
        Set how long a failure is remembered and replayed.

        Example:
            .with_negative_ttl(seconds=10)
        """
        return replace(self, negative_ttl=duration(**parts))  # type: ignore[arg-type]

    def with_allow_stale(self, allow: bool = True) -> CacheOptions:
        """Serve stale entries while refreshing them in the background."""
        return replace(self, allow_stale=allow)

    def with_codec(self, codec: Codec) -> CacheOptions:
        """Set payload codec."""
        return replace(self, codec=codec)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "HALF_DAY",
    "ONE_DAY",
    "ONE_WEEK",
    "duration",
    "CacheOptions",
)
