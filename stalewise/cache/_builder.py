"""
Cache builder — fluent API over CacheService.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from stalewise._types import Lazy
from stalewise.cache._options import CacheOptions
from stalewise.cache._service import CacheService
from stalewise.cache._types import CacheError, CacheResult

# ═══════════════════════════════════════════════════════════════════════════════
# Key / Compute Function Types
# ═══════════════════════════════════════════════════════════════════════════════

type KeyFn[K] = Callable[[K], str]
type ComputeFn[K] = Callable[[K], Awaitable[Any]]


# ═══════════════════════════════════════════════════════════════════════════════
# Cached Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class Cached[K]:
    """
    Fluent builder binding a key function and computation to a topic.

    Type parameters:
        K: Key input type

    Example:
        scenes = (
            C.cached("undoc-api", lambda sku: f"scenes-{sku}", fetch_scenes)
            .policy(lambda o: o.with_soft_ttl(days=1).with_hard_ttl(days=7).with_allow_stale())
            .build(service)
        )
    """

    _topic: str
    _key_fn: KeyFn[K]
    _compute: ComputeFn[K]
    _configure: tuple[Callable[[CacheOptions], CacheOptions], ...]

    def policy(self, configure: Callable[[CacheOptions], CacheOptions]) -> Cached[K]:
        """Add an options transform (applied in order)."""
        return Cached(
            _topic=self._topic,
            _key_fn=self._key_fn,
            _compute=self._compute,
            _configure=(*self._configure, configure),
        )

    def build(self, service: CacheService) -> CachedCall[K]:
        """Bind to a service."""
        base = CacheOptions(topic=self._topic, key="")
        for configure in self._configure:
            base = configure(base)
        return CachedCall(
            service=service,
            base=base,
            key_fn=self._key_fn,
            compute=self._compute,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Cached Call
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True, frozen=True)
class CachedCall[K]:
    """Compiled cached call."""

    service: CacheService
    base: CacheOptions
    key_fn: KeyFn[K]
    compute: ComputeFn[K]

    def options_for(self, arg: K) -> CacheOptions:
        return self.base.with_key(self.key_fn(arg))

    def get(self, arg: K) -> Lazy[CacheResult[Any], CacheError]:
        """Get cached value for arg, computing via compute(arg) when needed."""
        compute = self.compute
        return self.service.get_or_compute(self.options_for(arg), lambda: compute(arg))

    async def invalidate(self, arg: K) -> bool:
        """Evict the entry for arg."""
        return await self.service.invalidate(self.base.topic, self.key_fn(arg))


# ═══════════════════════════════════════════════════════════════════════════════
# cached() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════


def cached[K](
    topic: str,
    key: KeyFn[K],
    compute: ComputeFn[K],
) -> Cached[K]:
    """
    Create cached-call builder.

    Example:
        from stalewise import cache as C

        user = C.cached("users", lambda uid: f"user:{uid}", fetch_user).build(service)
        result = await user.get(42)
    """
    return Cached(
        _topic=topic,
        _key_fn=key,
        _compute=compute,
        _configure=(),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("Cached", "CachedCall", "cached")
