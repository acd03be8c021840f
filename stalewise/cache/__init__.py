"""
Cache — stale-while-revalidate coordination with single-flight and negative caching.

    from stalewise import cache as C

    service = C.CacheService(await C.create_sqlalchemy_store("sqlite+aiosqlite:///cache.db"))

    opts = (
        C.CacheOptions("undoc-api", "account-info")
        .with_ttl(hours=12)
        .with_negative_ttl(seconds=10)
    )
    result = await service.get_or_compute(opts, login)

Per request:

    store.get ─► classify ─┬─ FRESH ──────────► value
                           ├─ STALE ──────────► value + detached refresh
                           ├─ NEGATIVE_HIT ───► replayed failure
                           └─ ABSENT/EXPIRED ─► join or start flight
                                                    │
                                                    ▼
                                         compute ─► store.put ─► all waiters
"""

from __future__ import annotations

from stalewise.cache._types import (
    CacheKey,
    CacheEntry,
    Freshness,
    WithTtl,
    Computed,
    CacheSource,
    CacheResult,
    CacheError,
    CacheErrorKind,
    CacheStats,
    utcnow,
)
from stalewise.cache._codec import Codec, JsonCodec, PydanticCodec, JSON
from stalewise.cache._options import (
    CacheOptions,
    duration,
    HALF_DAY,
    ONE_DAY,
    ONE_WEEK,
)
from stalewise.cache._policy import classify
from stalewise.cache._store import (
    EntryStore,
    StoreError,
    FunctionalStore,
    store_from,
    MemoryStore,
)
from stalewise.cache._flight import Flight, SingleFlight
from stalewise.cache._service import CacheService, Clock
from stalewise.cache._builder import cached, Cached, CachedCall
from stalewise.cache._sqlalchemy import (
    CacheEntryTable,
    SQLAlchemyStore,
    create_sqlalchemy_store,
)

__all__ = (
    # Types
    "CacheKey",
    "CacheEntry",
    "Freshness",
    "WithTtl",
    "Computed",
    "CacheSource",
    "CacheResult",
    "CacheError",
    "CacheErrorKind",
    "CacheStats",
    "utcnow",
    # Codecs
    "Codec",
    "JsonCodec",
    "PydanticCodec",
    "JSON",
    # Options & policy
    "CacheOptions",
    "duration",
    "HALF_DAY",
    "ONE_DAY",
    "ONE_WEEK",
    "classify",
    # Store
    "EntryStore",
    "StoreError",
    "FunctionalStore",
    "store_from",
    "MemoryStore",
    "CacheEntryTable",
    "SQLAlchemyStore",
    "create_sqlalchemy_store",
    # Coordination
    "Flight",
    "SingleFlight",
    "CacheService",
    "Clock",
    # Builder
    "cached",
    "Cached",
    "CachedCall",
)
