"""
Cache types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from typing import Any


def utcnow() -> datetime:
    """Wall-clock now, timezone-aware UTC."""
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Key — (topic, key) address
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Address of an entry: key is unique within its topic."""

    topic: str
    key: str

    def __str__(self) -> str:
        return f"{self.topic}/{self.key}"


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Entry — Stored State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """
    A stored cache entry.

    Positive entries carry a serialized payload and two expiry tiers,
    soft_expiry <= hard_expiry. Negative entries remember a failure:
    no payload, error message instead, both expiries set to the same instant.

    Note: Entries are only ever replaced wholesale, never patched.
    """

    topic: str
    key: str
    payload: str | None
    created_at: datetime
    soft_expiry: datetime
    hard_expiry: datetime
    is_negative: bool = False
    error: str | None = None

    @property
    def address(self) -> CacheKey:
        return CacheKey(self.topic, self.key)

    def age(self, now: datetime) -> timedelta:
        """Time elapsed since the entry was written (never negative)."""
        return max(now - self.created_at, timedelta(0))

    @classmethod
    def positive(
        cls,
        address: CacheKey,
        payload: str,
        now: datetime,
        soft_ttl: timedelta,
        hard_ttl: timedelta,
    ) -> CacheEntry:
        hard_expiry = now + hard_ttl
        # Почему: upstream callers configure soft > hard; clamp to keep tiers ordered.
        soft_expiry = min(now + soft_ttl, hard_expiry)
        return cls(
            topic=address.topic,
            key=address.key,
            payload=payload,
            created_at=now,
            soft_expiry=soft_expiry,
            hard_expiry=hard_expiry,
        )

    @classmethod
    def negative(
        cls,
        address: CacheKey,
        error: str,
        now: datetime,
        negative_ttl: timedelta,
    ) -> CacheEntry:
        expiry = now + negative_ttl
        return cls(
            topic=address.topic,
            key=address.key,
            payload=None,
            created_at=now,
            soft_expiry=expiry,
            hard_expiry=expiry,
            is_negative=True,
            error=error,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Freshness — Policy Verdict
# ═══════════════════════════════════════════════════════════════════════════════


class Freshness(Enum):
    """
    Classification of an entry for one request.

    ABSENT → compute
    FRESH → serve
    STALE → serve + background refresh (only with allow_stale)
    EXPIRED → compute synchronously
    NEGATIVE_HIT → replay cached failure
    NEGATIVE_EXPIRED → same as ABSENT
    """

    ABSENT = auto()
    FRESH = auto()
    STALE = auto()
    EXPIRED = auto()
    NEGATIVE_HIT = auto()
    NEGATIVE_EXPIRED = auto()

    @property
    def must_compute(self) -> bool:
        return self in (Freshness.ABSENT, Freshness.EXPIRED, Freshness.NEGATIVE_EXPIRED)


# ═══════════════════════════════════════════════════════════════════════════════
# Computation Result Shapes
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class WithTtl[T]:
    """
    Value paired with an explicit time-to-live.

    Overrides the configured soft/hard TTLs entirely: both expiries
    become now + ttl. Use when the remote system dictates expiry.
    """

    value: T
    ttl: timedelta


class Computed:
    """Helpers building the two computation result shapes."""

    @staticmethod
    def value[T](v: T) -> T:
        return v

    @staticmethod
    def with_ttl[T](
        v: T,
        ttl: timedelta | None = None,
        *,
        seconds: float | None = None,
    ) -> WithTtl[T]:
        if ttl is None:
            ttl = timedelta(seconds=seconds or 0)
        return WithTtl(v, ttl)


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Result
# ═══════════════════════════════════════════════════════════════════════════════


class CacheSource(Enum):
    """Where a returned value came from."""

    FRESH = "fresh"  # Within soft TTL
    STALE = "stale"  # Past soft TTL, refresh scheduled
    COMPUTED = "computed"  # This caller ran the computation
    SHARED = "shared"  # Joined another caller's in-flight computation


@dataclass(frozen=True, slots=True)
class CacheResult[T]:
    """Cache operation result with metadata."""

    value: T
    key: CacheKey
    source: CacheSource
    age: timedelta

    @property
    def hit(self) -> bool:
        return self.source in (CacheSource.FRESH, CacheSource.STALE)


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CacheErrorKind(Enum):
    """Cache error kinds."""

    COMPUTATION = auto()  # Wrapped operation failed just now
    NEGATIVE_REPLAY = auto()  # Remembered failure, no new attempt
    STORE = auto()  # Entry store unavailable; never cached
    SERIALIZATION = auto()  # Codec could not encode the value


@dataclass(frozen=True, slots=True)
class CacheError:
    """
    Cache operation error.

    Note: cause holds the original exception / error value when known.
    Replayed failures only carry the remembered message.
    """

    kind: CacheErrorKind
    message: str
    cause: Any | None = None

    @property
    def replayed(self) -> bool:
        return self.kind == CacheErrorKind.NEGATIVE_REPLAY

    def __str__(self) -> str:
        return f"{self.kind.name.lower()}: {self.message}"


# ═══════════════════════════════════════════════════════════════════════════════
# Stats
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Snapshot of service counters."""

    hits_fresh: int = 0
    hits_stale: int = 0
    misses: int = 0
    coalesced: int = 0
    negative_replays: int = 0
    refreshes: int = 0
    failures: int = 0
    in_flight: int = 0

    @property
    def hit_rate(self) -> float:
        hits = self.hits_fresh + self.hits_stale
        total = hits + self.misses + self.coalesced
        return hits / total if total else 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "utcnow",
    "CacheKey",
    "CacheEntry",
    "Freshness",
    "WithTtl",
    "Computed",
    "CacheSource",
    "CacheResult",
    "CacheErrorKind",
    "CacheError",
    "CacheStats",
)
