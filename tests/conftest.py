import pytest

from stalewise import cache as C

from _support import ManualClock


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> C.MemoryStore:
    return C.MemoryStore()


@pytest.fixture
async def service(store, clock):
    svc = C.CacheService(store, clock=clock)
    yield svc
    await svc.aclose(wait=False)


@pytest.fixture
def options() -> C.CacheOptions:
    return C.CacheOptions("undoc-api", "account-info")
