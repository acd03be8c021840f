import asyncio

import pytest

from stalewise import cache as C

ADDRESS = C.CacheKey("undoc-api", "account-info")


def _work(gate: asyncio.Event, value: str = "done"):
    async def work(flight):
        await gate.wait()
        return value

    return work


async def test_start_registers_until_done():
    flights = C.SingleFlight()
    gate = asyncio.Event()
    flight = flights.start(ADDRESS, _work(gate))

    assert flights.current(ADDRESS) is flight
    assert len(flights) == 1

    gate.set()
    assert await flights.wait(flight) == "done"
    assert flights.current(ADDRESS) is None
    assert not flights.is_current(flight)


async def test_double_start_is_rejected():
    flights = C.SingleFlight()
    gate = asyncio.Event()
    flights.start(ADDRESS, _work(gate))

    with pytest.raises(RuntimeError):
        flights.start(ADDRESS, _work(gate))

    gate.set()
    await flights.drain()


async def test_forget_revokes_write_right():
    flights = C.SingleFlight()
    gate = asyncio.Event()
    old = flights.start(ADDRESS, _work(gate, "old"))

    flights.forget(ADDRESS)
    new = flights.start(ADDRESS, _work(gate, "new"))

    assert not flights.is_current(old)
    assert flights.is_current(new)

    gate.set()
    assert await flights.wait(old) == "old"
    # The orphan finishing must not drop its successor's registration.
    assert flights.current(ADDRESS) is new
    assert await flights.wait(new) == "new"


async def test_forget_unregistered_is_noop():
    flights = C.SingleFlight()
    for _ in range(3):
        flights.forget(ADDRESS)

    gate = asyncio.Event()
    flight = flights.start(ADDRESS, _work(gate))
    assert flights.is_current(flight)
    assert len(flights) == 1

    gate.set()
    await flights.drain()
    assert len(flights) == 0


async def test_forget_topic():
    flights = C.SingleFlight()
    gate = asyncio.Event()
    flights.start(ADDRESS, _work(gate))
    flights.start(C.CacheKey("undoc-api", "scenes-H6072"), _work(gate))
    flights.start(C.CacheKey("other", "x"), _work(gate))

    assert flights.forget_topic("undoc-api") == 2
    assert len(flights) == 1

    gate.set()
    await flights.drain()


async def test_failure_reaches_every_waiter():
    flights = C.SingleFlight()

    async def work(flight):
        raise ValueError("nope")

    flight = flights.start(ADDRESS, work)
    results = await asyncio.gather(flights.wait(flight), flights.wait(flight), return_exceptions=True)

    assert all(isinstance(r, ValueError) for r in results)


async def test_drain_cancel():
    flights = C.SingleFlight()
    flight = flights.start(ADDRESS, _work(asyncio.Event()), background=True)
    await asyncio.sleep(0)

    await flights.drain(cancel=True)

    assert flight.task.cancelled()
    assert flights.current(ADDRESS) is None
