"""
Entry store — durable keyed storage protocol.

EntryStore — stores CacheEntry records addressed by (topic, key).
All methods return Result for explicit error handling.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from kungfu import Result, Ok, Error

from stalewise.cache._types import CacheEntry, CacheKey


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol — Result-based
# ═══════════════════════════════════════════════════════════════════════════════


class EntryStore(Protocol):
    """
    Entry store protocol.

    Contract:
        - exactly one entry per (topic, key); put replaces wholesale
        - reads never observe a partially written entry
        - concurrent puts for one key: last completed write wins

    Example — key/value backend:

        class KVStore:
            async def get(self, topic: str, key: str) -> Result[CacheEntry | None, StoreError]:
                try:
                    raw = await self.db.get(f"{topic}\\0{key}")
                    return Ok(decode_entry(raw) if raw else None)
                except RedisError as e:
                    return Error(StoreError(f"redis unavailable: {e}", e))

            # put / delete / delete_topic follow the same shape
    """

    async def get(self, topic: str, key: str) -> Result[CacheEntry | None, StoreError]:
        """Get entry. Returns Ok(None) if absent."""
        ...

    async def put(self, entry: CacheEntry) -> Result[None, StoreError]:
        """Store entry, replacing any previous one for its (topic, key)."""
        ...

    async def delete(self, topic: str, key: str) -> Result[bool, StoreError]:
        """Delete entry. Returns Ok(True) if existed."""
        ...

    async def delete_topic(self, topic: str) -> Result[int, StoreError]:
        """Delete every entry in topic. Returns count."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Function-based Store Builder
# ═══════════════════════════════════════════════════════════════════════════════

type GetFn = Callable[[str, str], Awaitable[Result[CacheEntry | None, StoreError]]]
type PutFn = Callable[[CacheEntry], Awaitable[Result[None, StoreError]]]
type DeleteFn = Callable[[str, str], Awaitable[Result[bool, StoreError]]]
type DeleteTopicFn = Callable[[str], Awaitable[Result[int, StoreError]]]


@dataclass(frozen=True)
class FunctionalStore:
    """
    Store built from functions.

    Example:
        store = store_from(
            get=repo.load_entry,
            put=repo.save_entry,
            delete=repo.drop_entry,
            delete_topic=repo.drop_topic,
        )
    """

    _get: GetFn
    _put: PutFn
    _delete: DeleteFn
    _delete_topic: DeleteTopicFn

    async def get(self, topic: str, key: str) -> Result[CacheEntry | None, StoreError]:
        return await self._get(topic, key)

    async def put(self, entry: CacheEntry) -> Result[None, StoreError]:
        return await self._put(entry)

    async def delete(self, topic: str, key: str) -> Result[bool, StoreError]:
        return await self._delete(topic, key)

    async def delete_topic(self, topic: str) -> Result[int, StoreError]:
        return await self._delete_topic(topic)


def store_from(
    get: GetFn,
    put: PutFn,
    delete: DeleteFn,
    delete_topic: DeleteTopicFn,
) -> FunctionalStore:
    """Create EntryStore from functions."""
    return FunctionalStore(
        _get=get,
        _put=put,
        _delete=delete,
        _delete_topic=delete_topic,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStore:
    """
    In-memory entry store.

    Note: Only for single-process use / tests.
    Почему: Data does not survive a restart; use SQLAlchemyStore for that.

    Expired entries are kept: freshness is decided by the policy,
    and a stale entry may still be served.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, topic: str, key: str) -> Result[CacheEntry | None, StoreError]:
        async with self._lock:
            return Ok(self._entries.get(CacheKey(topic, key)))

    async def put(self, entry: CacheEntry) -> Result[None, StoreError]:
        async with self._lock:
            self._entries[entry.address] = entry
            return Ok(None)

    async def delete(self, topic: str, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._entries.pop(CacheKey(topic, key), None) is not None)

    async def delete_topic(self, topic: str) -> Result[int, StoreError]:
        async with self._lock:
            doomed = [k for k in self._entries if k.topic == topic]
            for k in doomed:
                del self._entries[k]
            return Ok(len(doomed))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "StoreError",
    "EntryStore",
    "FunctionalStore",
    "store_from",
    "MemoryStore",
)
