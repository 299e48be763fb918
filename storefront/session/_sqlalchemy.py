"""
SQLAlchemy integration — durable client storage.

Usage:

    storage = await SQLAlchemyStorage.connect("sqlite+aiosqlite:///storefront.db")
    session = SessionContext(storage)
    ...
    await storage.dispose()
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Text, select, delete
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from storefront.session._storage import StorageError


# ═══════════════════════════════════════════════════════════════════════════════
# Table
# ═══════════════════════════════════════════════════════════════════════════════

class Base(DeclarativeBase):
    pass


class StorageEntry(Base):
    """One key/value pair of client storage."""

    __tablename__ = "client_storage"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy Storage
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyStorage:
    """
    Storage backed by a SQLAlchemy async engine.

    Example:
        engine = create_async_engine("sqlite+aiosqlite:///storefront.db")
        storage = SQLAlchemyStorage(async_sessionmaker(engine, expire_on_commit=False))
        await storage.create_schema()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    async def connect(cls, url: str) -> "SQLAlchemyStorage":
        """Create engine, session factory and schema from a database URL."""
        engine = create_async_engine(url, echo=False)
        storage = cls(async_sessionmaker(engine, expire_on_commit=False), engine)
        await storage.create_schema()
        return storage

    async def create_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("create_schema() needs the engine; use connect()")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def get(self, key: str) -> Result[str | None, StorageError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(StorageEntry, key)
                return Ok(row.value if row is not None else None)

        except Exception as e:
            return Error(StorageError(f"Failed to get: {e}", e))

    async def set(self, key: str, value: str) -> Result[None, StorageError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(StorageEntry, key)
                if row is None:
                    session.add(StorageEntry(key=key, value=value, updated_at=datetime.now()))
                else:
                    row.value = value
                    row.updated_at = datetime.now()
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(StorageError(f"Failed to set: {e}", e))

    async def delete(self, key: str) -> Result[bool, StorageError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(StorageEntry).where(StorageEntry.key == key)
                )
                await session.commit()
                return Ok(result.rowcount > 0)  # type: ignore[attr-defined]

        except Exception as e:
            return Error(StorageError(f"Failed to delete: {e}", e))

    async def keys(self, prefix: str = "") -> Result[list[str], StorageError]:
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(StorageEntry.key)
                    .where(StorageEntry.key.startswith(prefix, autoescape=True))
                    .order_by(StorageEntry.key)
                )
                result = await session.execute(stmt)
                return Ok(list(result.scalars()))

        except Exception as e:
            return Error(StorageError(f"Failed to list keys: {e}", e))


__all__ = (
    "StorageEntry",
    "SQLAlchemyStorage",
)
