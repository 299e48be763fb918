"""
Cart — optimistic client reflection of the server cart.

    from storefront import cart as CT

    store = CT.CartStore(session, transport, cache, notifier)
    await store.fetch_cart()
    await store.add_item("prod_1", "var_1", 2)
"""

from storefront.cart._types import (
    MAX_ITEM_QUANTITY,
    CartItem,
    CartSummary,
    Cart,
    CartItemPayload,
    CartSummaryPayload,
    CartPayload,
    AddItemRequest,
    UpdateItemRequest,
)
from storefront.cart._mutation import (
    MutationState,
    Mutation,
)
from storefront.cart._locks import KeyedMutex
from storefront.cart._store import (
    CartStore,
    parse_cart,
)

__all__ = (
    "MAX_ITEM_QUANTITY",
    "CartItem",
    "CartSummary",
    "Cart",
    "CartItemPayload",
    "CartSummaryPayload",
    "CartPayload",
    "AddItemRequest",
    "UpdateItemRequest",
    "MutationState",
    "Mutation",
    "KeyedMutex",
    "CartStore",
    "parse_cart",
)
