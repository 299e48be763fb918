"""
Idempotency store — typed storage protocol.

All methods return Result for explicit error handling.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Any

from kungfu import Result, Ok, Error

from storefront.idempotency._types import (
    RecordState,
    IdempotencyRecord,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol — Typed, Result-based
# ═══════════════════════════════════════════════════════════════════════════════


class Store[T](Protocol):
    """
    Typed idempotency store protocol.

    Generic over T, the value type of completed records.
    """

    async def get(
        self, key: str
    ) -> Result[IdempotencyRecord[T, Any] | None, StoreError]:
        """Get existing record. Returns Ok(None) if not found or expired."""
        ...

    async def set_pending(
        self,
        key: str,
        ttl: timedelta | None,
    ) -> Result[bool, StoreError]:
        """
        Atomically set pending state.

        Returns Ok(True) if set, Ok(False) if a live record already exists.
        """
        ...

    async def set_completed(
        self,
        key: str,
        value: T,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        ...

    async def set_failed(
        self,
        key: str,
        error: Any,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        ...

    async def delete(self, key: str) -> Result[bool, StoreError]:
        """Delete record. Returns Ok(True) if existed."""
        ...


type StoreAny = Store[Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _StoredRecord[T]:
    """Internal mutable record for MemoryStore."""

    key: str
    state: RecordState
    value: T | None
    error: Any
    created_at: datetime
    expires_at: datetime | None

    def expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def to_record(self) -> IdempotencyRecord[T, Any]:
        return IdempotencyRecord(
            key=self.key,
            state=self.state,
            value=self.value,
            error=self.error,
            created_at=self.created_at,
            expires_at=self.expires_at,
        )


class MemoryStore[T]:
    """
    In-memory idempotency store.

    Note: single process only; records do not survive a restart.
    """

    def __init__(self) -> None:
        self._records: dict[str, _StoredRecord[T]] = {}
        self._lock = asyncio.Lock()

    async def get(
        self, key: str
    ) -> Result[IdempotencyRecord[T, Any] | None, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return Ok(None)
            if record.expired(datetime.now()):
                del self._records[key]
                return Ok(None)
            return Ok(record.to_record())

    async def set_pending(
        self,
        key: str,
        ttl: timedelta | None,
    ) -> Result[bool, StoreError]:
        async with self._lock:
            now = datetime.now()
            existing = self._records.get(key)
            if existing is not None and not existing.expired(now):
                return Ok(False)

            self._records[key] = _StoredRecord(
                key=key,
                state=RecordState.PENDING,
                value=None,
                error=None,
                created_at=now,
                expires_at=now + ttl if ttl else None,
            )
            return Ok(True)

    async def set_completed(
        self,
        key: str,
        value: T,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        return await self._finish(key, RecordState.COMPLETED, value, None, ttl)

    async def set_failed(
        self,
        key: str,
        error: Any,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        return await self._finish(key, RecordState.FAILED, None, error, ttl)

    async def delete(self, key: str) -> Result[bool, StoreError]:
        async with self._lock:
            return Ok(self._records.pop(key, None) is not None)

    async def _finish(
        self,
        key: str,
        state: RecordState,
        value: T | None,
        error: Any,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                return Error(StoreError(f"No pending record for key: {key}"))

            existing.state = state
            existing.value = value
            existing.error = error
            existing.expires_at = datetime.now() + ttl if ttl else None
            return Ok(None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "StoreError",
    "Store",
    "StoreAny",
    "MemoryStore",
)
