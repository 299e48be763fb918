"""
storefront — cart and checkout consistency engine for storefront clients.

    from storefront import Storefront, StorefrontConfig

    from storefront import cart as CT        # Optimistic cart store
    from storefront import checkout as CO    # Checkout session, validation, steps
    from storefront import order as OR       # Exactly-once order creation
    from storefront import fetch as F        # Request cache with dedup and retry
    from storefront import saga as S         # Steps with compensation
    from storefront import idempotency as I  # At-most-once execution per key
"""

from storefront import cart
from storefront import checkout
from storefront import order
from storefront import fetch
from storefront import saga
from storefront import idempotency
from storefront import session
from storefront import transport
from storefront.client import Storefront
from storefront.config import StorefrontConfig
from storefront.notify import Notice, Notifier, Level
from storefront.scope import ViewScope
from storefront.logging import configure_logging
from storefront._types import (
    Lazy,
    Pure,
    Fallible,
    LCR,
    money,
)

__version__ = "0.1.0"

__all__ = (
    "cart",
    "checkout",
    "order",
    "fetch",
    "saga",
    "idempotency",
    "session",
    "transport",
    "Storefront",
    "StorefrontConfig",
    "Notice",
    "Notifier",
    "Level",
    "ViewScope",
    "configure_logging",
    "Lazy",
    "Pure",
    "Fallible",
    "LCR",
    "money",
)
