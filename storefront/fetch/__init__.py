"""
Fetch — request cache with TTL, in-flight dedup and retry.

    from storefront import fetch as F

    cache = F.FetchCache(F.FetchPolicy().with_ttl(minutes=5))
    result = await cache.get("cart:sess_1", load_cart)
    cache.invalidate("cart:sess_1")
"""

from storefront.fetch._types import (
    EntryState,
    CacheEntry,
)
from storefront.fetch._policy import (
    FetchPolicy,
    is_transient,
    never,
)
from storefront.fetch._cache import (
    Fetcher,
    FetchCache,
)

__all__ = (
    "EntryState",
    "CacheEntry",
    "FetchPolicy",
    "is_transient",
    "never",
    "Fetcher",
    "FetchCache",
)
