"""
Durable client storage — typed key/value protocol.

All methods return Result for explicit error handling. Values are strings;
callers serialize structured data themselves.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from kungfu import Result, Ok


# ═══════════════════════════════════════════════════════════════════════════════
# Storage Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StorageError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Storage Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Storage(Protocol):
    """
    Key/value storage that survives a page reload.

    Holds the session token and per-step checkout drafts.
    """

    async def get(self, key: str) -> Result[str | None, StorageError]:
        """Get value. Returns Ok(None) if not found."""
        ...

    async def set(self, key: str, value: str) -> Result[None, StorageError]:
        ...

    async def delete(self, key: str) -> Result[bool, StorageError]:
        """Delete key. Returns Ok(True) if existed."""
        ...

    async def keys(self, prefix: str = "") -> Result[list[str], StorageError]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Storage — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStorage:
    """
    In-memory storage.

    Note: data does not survive the process; use SQLAlchemyStorage for that.
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Result[str | None, StorageError]:
        async with self._lock:
            return Ok(self._data.get(key))

    async def set(self, key: str, value: str) -> Result[None, StorageError]:
        async with self._lock:
            self._data[key] = value
            return Ok(None)

    async def delete(self, key: str) -> Result[bool, StorageError]:
        async with self._lock:
            return Ok(self._data.pop(key, None) is not None)

    async def keys(self, prefix: str = "") -> Result[list[str], StorageError]:
        async with self._lock:
            return Ok(sorted(k for k in self._data if k.startswith(prefix)))

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents, for assertions."""
        return dict(self._data)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "StorageError",
    "Storage",
    "MemoryStorage",
)
