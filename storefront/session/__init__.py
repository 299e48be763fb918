"""
Session — identity and durable client storage.

    from storefront import session as SS

    storage = SS.MemoryStorage()
    ctx = SS.SessionContext(storage)
    identity = await ctx.identity()
"""

from storefront.session._storage import (
    Storage,
    StorageError,
    MemoryStorage,
)
from storefront.session._identity import (
    SessionIdentity,
    SessionContext,
)
from storefront.session._sqlalchemy import (
    StorageEntry,
    SQLAlchemyStorage,
)

__all__ = (
    "Storage",
    "StorageError",
    "MemoryStorage",
    "SessionIdentity",
    "SessionContext",
    "StorageEntry",
    "SQLAlchemyStorage",
)
