"""
Cache service — the coordination layer.

Decides, per (topic, key) request, whether to return a stored value,
recompute synchronously, or serve stale data while refreshing it in the
background. Every computation outcome, success or failure, is written
back to the entry store before any caller sees it.

    service = C.CacheService(await C.create_sqlalchemy_store(url))

    result = await service.get_or_compute(
        C.CacheOptions("undoc-api", "account-info").with_negative_ttl(seconds=10),
        login,
    )
    match result:
        case Ok(hit):
            token = hit.value["token"]
        case Error(err) if err.replayed:
            ...  # failed moments ago, no new attempt was made
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, TYPE_CHECKING

from kungfu import LazyCoroResult, Result, Ok, Error

from stalewise._logging import get_logger
from stalewise._types import Compute, Lazy
from stalewise.cache._flight import Flight, SingleFlight
from stalewise.cache._options import CacheOptions
from stalewise.cache._policy import classify
from stalewise.cache._store import EntryStore, StoreError
from stalewise.cache._types import (
    CacheEntry,
    CacheError,
    CacheErrorKind,
    CacheKey,
    CacheResult,
    CacheSource,
    CacheStats,
    Freshness,
    WithTtl,
    utcnow,
)

if TYPE_CHECKING:
    from stalewise._config import CacheSettings

log = get_logger(__name__)

type Clock = Callable[[], datetime]
type Outcome = Result[CacheResult[Any], CacheError]


def _store_error(err: StoreError) -> CacheError:
    return CacheError(CacheErrorKind.STORE, err.message, err.cause)


def _describe(err: Any) -> str:
    text = str(err)
    if isinstance(err, BaseException):
        return f"{type(err).__name__}: {text}" if text else type(err).__name__
    return text or repr(err)


# ═══════════════════════════════════════════════════════════════════════════════
# Cache Service
# ═══════════════════════════════════════════════════════════════════════════════


class CacheService:
    """
    Process-wide cache coordinator.

    Construct once at startup with an entry store, hand it to every caller,
    close it on shutdown.

    Note: clock returns aware UTC datetimes; tests inject a manual one.
    """

    def __init__(
        self,
        store: EntryStore,
        *,
        clock: Clock | None = None,
        owns_store: bool = False,
    ) -> None:
        self._store = store
        self._clock: Clock = clock or utcnow
        self._owns_store = owns_store
        self._flights: SingleFlight[Outcome] = SingleFlight()
        self._counters: dict[str, int] = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "coalesced": 0,
            "negative_replays": 0,
            "refreshes": 0,
            "failures": 0,
        }

    @classmethod
    async def from_settings(
        cls,
        settings: CacheSettings,
        *,
        clock: Clock | None = None,
        setup_logging: bool = True,
    ) -> CacheService:
        """
        Service over a SQLAlchemy store built from settings; owns the engine.

        Also applies the logging settings unless setup_logging=False.
        """
        if setup_logging:
            settings.configure_logging()

        from stalewise.cache._sqlalchemy import create_sqlalchemy_store

        store = await create_sqlalchemy_store(settings.database_url, echo=settings.database_echo)
        return cls(store, clock=clock, owns_store=True)

    @property
    def store(self) -> EntryStore:
        return self._store

    # ─────────────────────────────────────────────────────────────────────────
    # get_or_compute — sole entry point
    # ─────────────────────────────────────────────────────────────────────────

    def get_or_compute(
        self,
        options: CacheOptions,
        compute: Compute,
    ) -> Lazy[CacheResult[Any], CacheError]:
        """
        Get value for options.topic/options.key, computing it if needed.

        FRESH → stored value
        STALE (allow_stale) → stored value, one background refresh
        ABSENT / EXPIRED / NEGATIVE_EXPIRED → join or start computation
        NEGATIVE_HIT → remembered failure, compute not called
        """

        async def execute() -> Outcome:
            return await self._get_or_compute(options, compute)

        return LazyCoroResult(execute)

    async def _get_or_compute(self, options: CacheOptions, compute: Compute) -> Outcome:
        address = options.address

        match await self._store.get(address.topic, address.key):
            case Error(err):
                log.error("cache.store_failed", op="get", topic=address.topic, key=address.key, error=err.message)
                return Error(_store_error(err))
            case Ok(found):
                entry: CacheEntry | None = found

        now = self._clock()
        state = classify(entry, now, options)

        if entry is not None and not state.must_compute:
            if state == Freshness.NEGATIVE_HIT:
                self._count("negative_replays")
                log.info("cache.negative_replay", topic=address.topic, key=address.key, error=entry.error)
                return Error(
                    CacheError(CacheErrorKind.NEGATIVE_REPLAY, entry.error or "cached failure")
                )

            served = self._serve(entry, now, options, state)
            if served is not None:
                if state == Freshness.STALE:
                    self._schedule_refresh(options, compute)
                return Ok(served)

        return await self._compute_shared(options, compute, state)

    def _serve(
        self,
        entry: CacheEntry,
        now: datetime,
        options: CacheOptions,
        state: Freshness,
    ) -> CacheResult[Any] | None:
        """Decode a servable entry. None when the payload is unreadable (treated as miss)."""
        try:
            value = options.codec.decode(entry.payload or "")
        except Exception as e:
            log.warning(
                "cache.decode_failed",
                topic=entry.topic,
                key=entry.key,
                error=_describe(e),
            )
            return None

        age = entry.age(now)
        if state == Freshness.FRESH:
            self._count("hits_fresh")
            log.debug("cache.hit", topic=entry.topic, key=entry.key, age=age.total_seconds())
            source = CacheSource.FRESH
        else:
            self._count("hits_stale")
            log.info("cache.stale_hit", topic=entry.topic, key=entry.key, age=age.total_seconds())
            source = CacheSource.STALE

        return CacheResult(value=value, key=entry.address, source=source, age=age)

    async def _compute_shared(
        self,
        options: CacheOptions,
        compute: Compute,
        state: Freshness,
    ) -> Outcome:
        address = options.address

        flight = self._flights.current(address)
        if flight is not None:
            self._count("coalesced")
            log.debug(
                "cache.coalesced",
                topic=address.topic,
                key=address.key,
                background=flight.background,
            )
            match await self._flights.wait(flight):
                case Ok(shared):
                    return Ok(replace(shared, source=CacheSource.SHARED))
                case Error(_) as failed:
                    return failed

        self._count("misses")
        log.info("cache.miss", topic=address.topic, key=address.key, state=state.name)

        async def work(f: Flight[Outcome]) -> Outcome:
            return await self._run(f, options, compute, recheck=True)

        flight = self._flights.start(address, work)
        return await self._flights.wait(flight)

    # ─────────────────────────────────────────────────────────────────────────
    # Background refresh
    # ─────────────────────────────────────────────────────────────────────────

    def _schedule_refresh(self, options: CacheOptions, compute: Compute) -> None:
        address = options.address
        if self._flights.current(address) is not None:
            log.debug("cache.refresh_in_flight", topic=address.topic, key=address.key)
            return

        async def work(f: Flight[Outcome]) -> Outcome:
            outcome = await self._run(f, options, compute, recheck=False)
            match outcome:
                case Error(err):
                    # Nobody is waiting on a refresh; the negative entry is the only trace.
                    log.warning(
                        "cache.refresh_failed",
                        topic=address.topic,
                        key=address.key,
                        error=str(err),
                    )
                case Ok(_):
                    pass
            return outcome

        self._count("refreshes")
        log.info("cache.refresh_scheduled", topic=address.topic, key=address.key)
        self._flights.start(address, work, background=True)

    # ─────────────────────────────────────────────────────────────────────────
    # Computation + write-back
    # ─────────────────────────────────────────────────────────────────────────

    async def _run(
        self,
        flight: Flight[Outcome],
        options: CacheOptions,
        compute: Compute,
        *,
        recheck: bool,
    ) -> Outcome:
        address = options.address

        if recheck:
            # A caller that read the store just before the previous flight
            # wrote would otherwise compute a second time.
            match await self._store.get(address.topic, address.key):
                case Error(err):
                    return Error(_store_error(err))
                case Ok(entry):
                    now = self._clock()
                    state = classify(entry, now, options)
                    if entry is not None and state == Freshness.FRESH:
                        served = self._serve(entry, now, options, state)
                        if served is not None:
                            return Ok(served)
                    if entry is not None and state == Freshness.NEGATIVE_HIT:
                        self._count("negative_replays")
                        return Error(
                            CacheError(CacheErrorKind.NEGATIVE_REPLAY, entry.error or "cached failure")
                        )

        try:
            raw = await compute()
        except Exception as e:
            return await self._record_failure(flight, options, CacheErrorKind.COMPUTATION, e)

        match raw:
            case Ok(produced):
                pass
            case Error(err):
                return await self._record_failure(flight, options, CacheErrorKind.COMPUTATION, err)
            case _:
                produced = raw

        if isinstance(produced, WithTtl):
            value, soft_ttl, hard_ttl = produced.value, produced.ttl, produced.ttl
        else:
            value, soft_ttl, hard_ttl = produced, options.soft_ttl, options.hard_ttl

        try:
            payload = options.codec.encode(value)
        except Exception as e:
            return await self._record_failure(flight, options, CacheErrorKind.SERIALIZATION, e)

        entry = CacheEntry.positive(address, payload, self._clock(), soft_ttl, hard_ttl)
        match await self._write(flight, entry):
            case Error(err):
                return Error(err)
            case Ok(_):
                pass

        log.info(
            "cache.computed",
            topic=address.topic,
            key=address.key,
            soft_expiry=entry.soft_expiry.isoformat(),
            hard_expiry=entry.hard_expiry.isoformat(),
            explicit_ttl=isinstance(produced, WithTtl),
        )
        return Ok(CacheResult(value=value, key=address, source=CacheSource.COMPUTED, age=timedelta(0)))

    async def _record_failure(
        self,
        flight: Flight[Outcome],
        options: CacheOptions,
        kind: CacheErrorKind,
        cause: Any,
    ) -> Outcome:
        address = options.address
        message = _describe(cause)
        self._count("failures")
        log.warning("cache.compute_failed", topic=address.topic, key=address.key, error=message)

        entry = CacheEntry.negative(address, message, self._clock(), options.negative_ttl)
        match await self._write(flight, entry):
            case Error(err):
                return Error(err)
            case Ok(_):
                return Error(CacheError(kind, message, cause))

    async def _write(self, flight: Flight[Outcome], entry: CacheEntry) -> Result[None, CacheError]:
        if not self._flights.is_current(flight):
            log.info("cache.write_skipped_invalidated", topic=entry.topic, key=entry.key)
            return Ok(None)

        match await self._store.put(entry):
            case Error(err):
                log.error("cache.store_failed", op="put", topic=entry.topic, key=entry.key, error=err.message)
                return Error(_store_error(err))
            case Ok(_):
                pass

        if not self._flights.is_current(flight):
            # Invalidated while the put was in progress: undo it.
            log.info("cache.write_revoked", topic=entry.topic, key=entry.key)
            match await self._store.delete(entry.topic, entry.key):
                case Error(err):
                    log.error("cache.store_failed", op="delete", topic=entry.topic, key=entry.key, error=err.message)
                    return Error(_store_error(err))
                case Ok(_):
                    pass
        return Ok(None)

    # ─────────────────────────────────────────────────────────────────────────
    # Invalidation
    # ─────────────────────────────────────────────────────────────────────────

    async def invalidate(self, topic: str, key: str) -> bool:
        """
        Evict (topic, key) unconditionally.

        Never fails: store errors are logged. Returns True if an entry existed.
        A computation already running for the key still answers its waiters
        but does not write; the next request recomputes.
        """
        self._flights.forget(CacheKey(topic, key))

        match await self._store.delete(topic, key):
            case Ok(existed):
                log.info("cache.invalidated", topic=topic, key=key, existed=existed)
                return existed
            case Error(err):
                log.error("cache.store_failed", op="delete", topic=topic, key=key, error=err.message)
                return False

    async def invalidate_topic(self, topic: str) -> int:
        """Evict every entry in topic. Returns count removed (0 on store error)."""
        self._flights.forget_topic(topic)

        match await self._store.delete_topic(topic):
            case Ok(count):
                log.info("cache.topic_invalidated", topic=topic, count=count)
                return count
            case Error(err):
                log.error("cache.store_failed", op="delete_topic", topic=topic, error=err.message)
                return 0

    # ─────────────────────────────────────────────────────────────────────────
    # Introspection / lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def peek(self, topic: str, key: str) -> Result[CacheEntry | None, CacheError]:
        """Read stored entry as-is; never computes."""
        match await self._store.get(topic, key):
            case Ok(entry):
                return Ok(entry)
            case Error(err):
                return Error(_store_error(err))

    def in_flight(self, topic: str, key: str) -> bool:
        return self._flights.current(CacheKey(topic, key)) is not None

    def stats(self) -> CacheStats:
        return CacheStats(**self._counters, in_flight=len(self._flights))

    async def aclose(self, *, wait: bool = True) -> None:
        """
        Flush on shutdown.

        wait=True lets detached refreshes finish; wait=False cancels them
        (they will simply be retried on the next miss).
        """
        await self._flights.drain(cancel=not wait)
        if self._owns_store:
            dispose = getattr(self._store, "dispose", None)
            if dispose is not None:
                await dispose()

    def _count(self, name: str) -> None:
        self._counters[name] += 1


__all__ = ("CacheService", "Clock")
