from datetime import timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from stalewise import cache as C

from _support import T0, ok, err


@pytest.fixture
def url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}"


@pytest.fixture
async def store(url):
    store = await C.create_sqlalchemy_store(url)
    yield store
    await store.dispose()


def _entry(key: str = "account-info", topic: str = "undoc-api") -> C.CacheEntry:
    return C.CacheEntry.positive(
        C.CacheKey(topic, key), '{"token":"abc"}', T0, C.HALF_DAY, C.ONE_WEEK
    )


async def test_round_trip_keeps_utc(store):
    entry = _entry()
    assert ok(await store.put(entry)) is None

    loaded = ok(await store.get("undoc-api", "account-info"))
    assert loaded == entry
    assert loaded.created_at.tzinfo == timezone.utc
    assert loaded.hard_expiry - loaded.created_at == C.ONE_WEEK


async def test_put_replaces_positive_with_negative(store):
    await store.put(_entry())
    negative = C.CacheEntry.negative(C.CacheKey("undoc-api", "account-info"), "boom", T0, timedelta(seconds=10))
    await store.put(negative)

    loaded = ok(await store.get("undoc-api", "account-info"))
    assert loaded.is_negative
    assert loaded.payload is None
    assert loaded.error == "boom"
    assert ok(await store.keys("undoc-api")) == ["account-info"]


async def test_entries_survive_restart(url):
    first = await C.create_sqlalchemy_store(url)
    await first.put(_entry())
    await first.dispose()

    second = await C.create_sqlalchemy_store(url)
    try:
        assert ok(await second.get("undoc-api", "account-info")) == _entry()
    finally:
        await second.dispose()


async def test_delete_and_delete_topic(store):
    await store.put(_entry("a"))
    await store.put(_entry("b"))
    await store.put(_entry("a", topic="other"))

    assert ok(await store.delete("undoc-api", "a")) is True
    assert ok(await store.delete("undoc-api", "a")) is False
    assert ok(await store.delete_topic("undoc-api")) == 1
    assert ok(await store.keys("undoc-api")) == []
    assert ok(await store.keys("other")) == ["a"]


async def test_missing_table_is_store_error(url):
    engine = create_async_engine(url)
    store = C.SQLAlchemyStore(async_sessionmaker(engine, expire_on_commit=False), engine)
    try:
        failure = err(await store.get("undoc-api", "account-info"))
        assert isinstance(failure, C.StoreError)
        assert failure.cause is not None
    finally:
        await store.dispose()


async def test_service_over_sqlalchemy_store(store):
    service = C.CacheService(store)
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        return {"token": "abc"}

    opts = C.CacheOptions("undoc-api", "account-info")
    first = ok(await service.get_or_compute(opts, compute))
    second = ok(await service.get_or_compute(opts, compute))

    assert first.source is C.CacheSource.COMPUTED
    assert second.source is C.CacheSource.FRESH
    assert second.value == {"token": "abc"}
    assert calls == 1
