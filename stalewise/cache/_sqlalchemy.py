"""
SQLAlchemy integration — durable entry store.

Usage:
    store = await create_sqlalchemy_store("sqlite+aiosqlite:///cache.db")
    service = C.CacheService(store)

    ...

    await store.dispose()

Or bring your own engine / session factory:

    store = SQLAlchemyStore(async_sessionmaker(engine, expire_on_commit=False))
    await store.create_schema(engine)
"""

from __future__ import annotations

from datetime import datetime, timezone

from kungfu import Result, Ok, Error
from sqlalchemy import Boolean, DateTime, String, Text, delete, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from stalewise.cache._store import StoreError
from stalewise.cache._types import CacheEntry


# ═══════════════════════════════════════════════════════════════════════════════
# Table
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


class CacheEntryTable(Base):
    """
    One row per (topic, key).

    Note: Datetimes are stored naive in UTC.
    Почему: SQLite drops tzinfo; normalize on the way in and out.
    """

    __tablename__ = "stalewise_entries"

    topic: Mapped[str] = mapped_column(String(255), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_negative: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    soft_expiry: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    hard_expiry: Mapped[datetime] = mapped_column(DateTime, nullable=False)


def _to_db(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore:
    """
    Durable entry store over an async SQLAlchemy session factory.

    Each operation runs in its own session and transaction, so a put is
    visible all at once or not at all.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        """
        Args:
            session_factory: SQLAlchemy async session factory
            engine: Owned engine, disposed by dispose() (optional)
        """
        self._session_factory = session_factory
        self._engine = engine

    @staticmethod
    async def create_schema(engine: AsyncEngine) -> None:
        """Create the entries table if missing."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Dispose the owned engine (no-op for borrowed engines)."""
        if self._engine is not None:
            await self._engine.dispose()

    async def get(self, topic: str, key: str) -> Result[CacheEntry | None, StoreError]:
        """Get entry by (topic, key)."""
        try:
            async with self._session_factory() as session:
                row = await session.get(CacheEntryTable, (topic, key))
                if row is None:
                    return Ok(None)
                return Ok(self._to_entry(row))

        except Exception as e:
            return Error(StoreError(f"Failed to get: {e}", e))

    async def put(self, entry: CacheEntry) -> Result[None, StoreError]:
        """Replace entry: delete + insert in one transaction."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(CacheEntryTable).where(
                            CacheEntryTable.topic == entry.topic,
                            CacheEntryTable.key == entry.key,
                        )
                    )
                    session.add(self._to_row(entry))
                return Ok(None)

        except Exception as e:
            return Error(StoreError(f"Failed to put: {e}", e))

    async def delete(self, topic: str, key: str) -> Result[bool, StoreError]:
        """Delete entry."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(CacheEntryTable).where(
                            CacheEntryTable.topic == topic,
                            CacheEntryTable.key == key,
                        )
                    )
                return Ok(result.rowcount > 0)  # type: ignore[attr-defined]

        except Exception as e:
            return Error(StoreError(f"Failed to delete: {e}", e))

    async def delete_topic(self, topic: str) -> Result[int, StoreError]:
        """Delete all entries in topic."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(CacheEntryTable).where(CacheEntryTable.topic == topic)
                    )
                return Ok(result.rowcount or 0)  # type: ignore[attr-defined]

        except Exception as e:
            return Error(StoreError(f"Failed to delete topic: {e}", e))

    async def keys(self, topic: str) -> Result[list[str], StoreError]:
        """List keys stored under topic."""
        try:
            async with self._session_factory() as session:
                rows = await session.execute(
                    select(CacheEntryTable.key)
                    .where(CacheEntryTable.topic == topic)
                    .order_by(CacheEntryTable.key)
                )
                return Ok(list(rows.scalars()))

        except Exception as e:
            return Error(StoreError(f"Failed to list keys: {e}", e))

    @staticmethod
    def _to_row(entry: CacheEntry) -> CacheEntryTable:
        return CacheEntryTable(
            topic=entry.topic,
            key=entry.key,
            payload=entry.payload,
            error=entry.error,
            is_negative=entry.is_negative,
            created_at=_to_db(entry.created_at),
            soft_expiry=_to_db(entry.soft_expiry),
            hard_expiry=_to_db(entry.hard_expiry),
        )

    @staticmethod
    def _to_entry(row: CacheEntryTable) -> CacheEntry:
        return CacheEntry(
            topic=row.topic,
            key=row.key,
            payload=row.payload,
            created_at=_from_db(row.created_at),
            soft_expiry=_from_db(row.soft_expiry),
            hard_expiry=_from_db(row.hard_expiry),
            is_negative=row.is_negative,
            error=row.error,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════════════════════


async def create_sqlalchemy_store(
    url: str = "sqlite+aiosqlite:///stalewise.db",
    *,
    echo: bool = False,
) -> SQLAlchemyStore:
    """Create engine + table and return a store owning the engine."""
    engine = create_async_engine(url, echo=echo)
    await SQLAlchemyStore.create_schema(engine)
    return SQLAlchemyStore(async_sessionmaker(engine, expire_on_commit=False), engine)


__all__ = (
    "Base",
    "CacheEntryTable",
    "SQLAlchemyStore",
    "create_sqlalchemy_store",
)
