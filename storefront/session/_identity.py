"""
Session identity — the opaque token that scopes an anonymous cart and
checkout draft.

    session = SessionContext(MemoryStorage())
    identity = await session.identity()      # created lazily, persisted
    headers = session.headers(identity)      # {"x-session-id": token}
    await session.reissue(identity)          # server said the session expired
    await session.retire()                   # order completed
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

import structlog
from kungfu import Ok, Error

from storefront.session._storage import Storage


logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Identity
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SessionIdentity:
    token: str
    created_at: datetime

    def to_json(self) -> str:
        return json.dumps({"token": self.token, "createdAt": self.created_at.isoformat()})

    @classmethod
    def from_json(cls, raw: str) -> SessionIdentity:
        """
        Parse a stored identity.

        Note: a bare token (no JSON) is accepted, so values written by
        older clients are kept rather than replaced.
        """
        try:
            data = json.loads(raw)
        except ValueError:
            return cls(token=raw, created_at=datetime.now())
        if not isinstance(data, dict) or not data.get("token"):
            return cls(token=raw, created_at=datetime.now())
        created = data.get("createdAt")
        return cls(
            token=str(data["token"]),
            created_at=datetime.fromisoformat(created) if created else datetime.now(),
        )


def _new_token() -> str:
    return f"sess_{uuid4().hex}"


# ═══════════════════════════════════════════════════════════════════════════════
# Session Context
# ═══════════════════════════════════════════════════════════════════════════════


class SessionContext:
    """
    Owns the current SessionIdentity.

    Passed explicitly to every store; there is no global session. Storage
    failures are logged and the identity lives on in memory, so a broken
    storage backend never blocks shopping.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        storage_key: str = "cart-session-id",
        header: str = "x-session-id",
        token_factory: Callable[[], str] = _new_token,
    ) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._header = header
        self._token_factory = token_factory
        self._current: SessionIdentity | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> SessionIdentity | None:
        """Identity loaded so far, without touching storage."""
        return self._current

    async def identity(self) -> SessionIdentity:
        """Return the current identity, loading or creating it on first use."""
        if self._current is not None:
            return self._current

        async with self._lock:
            if self._current is not None:
                return self._current

            match await self._storage.get(self._storage_key):
                case Ok(raw) if raw:
                    self._current = SessionIdentity.from_json(raw)
                    logger.debug("session_loaded", token=self._current.token)
                    return self._current
                case Ok(_):
                    pass
                case Error(err):
                    logger.warning("session_load_failed", error=err.message)

            self._current = await self._create()
            return self._current

    async def reissue(self, expired: SessionIdentity | None = None) -> SessionIdentity:
        """
        Replace the identity with a fresh one.

        expired is the identity the server rejected. When another caller
        has already replaced it, the current identity is returned as is,
        so one expiry seen by several requests mints a single token.
        """
        async with self._lock:
            if expired is not None and self._current is not None and self._current.token != expired.token:
                return self._current
            previous = self._current.token if self._current else None
            self._current = await self._create()
            logger.info("session_reissued", previous=previous, token=self._current.token)
            return self._current

    async def retire(self) -> None:
        """Forget the identity; the next access creates a new one."""
        async with self._lock:
            previous = self._current.token if self._current else None
            self._current = None
            match await self._storage.delete(self._storage_key):
                case Error(err):
                    logger.warning("session_retire_failed", error=err.message)
                case Ok(_):
                    logger.info("session_retired", token=previous)

    def headers(self, identity: SessionIdentity) -> dict[str, str]:
        return {self._header: identity.token}

    async def _create(self) -> SessionIdentity:
        identity = SessionIdentity(token=self._token_factory(), created_at=datetime.now())
        match await self._storage.set(self._storage_key, identity.to_json()):
            case Error(err):
                logger.warning("session_persist_failed", error=err.message)
            case Ok(_):
                logger.info("session_created", token=identity.token)
        return identity


__all__ = (
    "SessionIdentity",
    "SessionContext",
)
