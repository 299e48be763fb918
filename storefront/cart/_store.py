"""
CartStore — optimistic client reflection of the server cart.

    store = CartStore(session, transport, cache, notifier)
    await store.fetch_cart()
    match await store.update_item(item_id, 3):
        case Ok(cart): ...            # server-confirmed cart
        case Error(err): ...          # view already rolled back

Every mutation:
    1. validates locally (no network on bad input)
    2. applies an optimistic patch to the view        (saga step, undo = roll back)
    3. dispatches the request, serialized per item    (saga step)
    4. on success replaces the view with the server's cart
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from decimal import Decimal
from functools import reduce
from typing import Any

import pydantic
import structlog
from kungfu import Result, Ok, Error
from combinators import lift as L

from storefront import saga as S
from storefront.errors import (
    StorefrontError,
    ValidationError,
    ConflictError,
    NotFoundError,
    SessionExpired,
    ServerError,
)
from storefront.fetch import FetchCache, FetchPolicy, is_transient
from storefront.notify import Notifier
from storefront.session import SessionContext, SessionIdentity
from storefront.transport import HttpTransport
from storefront.cart._types import (
    MAX_ITEM_QUANTITY,
    Cart,
    CartItem,
    CartPayload,
    AddItemRequest,
    UpdateItemRequest,
)
from storefront.cart._mutation import Mutation
from storefront.cart._locks import KeyedMutex


logger = structlog.get_logger(__name__)

type CartResult = Result[Cart, StorefrontError]


# ═══════════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════════


async def parse_cart(body: Any) -> CartResult:
    return await L.catching(
        lambda: CartPayload.model_validate(body).to_domain(),
        on_error=lambda e: ServerError(f"Malformed cart response: {e}", payload=body),
    )


def _session_reset(error: StorefrontError) -> bool:
    return isinstance(error, SessionExpired)


def _needs_reconcile(error: StorefrontError) -> bool:
    return isinstance(error, (ConflictError, NotFoundError))


def _never_sent(error: Any) -> bool:
    return is_transient(error) and not getattr(error, "request_sent", True)


# ═══════════════════════════════════════════════════════════════════════════════
# CartStore
# ═══════════════════════════════════════════════════════════════════════════════


class CartStore:
    """
    Holds the server-confirmed cart plus the optimistic mutations in flight.

    The view is the confirmed cart with every pending mutation's patch
    re-applied in order. A failed mutation is dropped and the view rebuilt,
    so with nothing else in flight it equals the snapshot taken when the
    mutation started.

    Note: mutations run in their own tasks; cancelling the caller does not
    cancel the request or its reconciliation.
    """

    def __init__(
        self,
        session: SessionContext,
        transport: HttpTransport,
        cache: FetchCache,
        notifier: Notifier | None = None,
        *,
        read_policy: FetchPolicy | None = None,
    ) -> None:
        self._session = session
        self._transport = transport
        self._cache = cache
        self._notifier = notifier or Notifier()
        self._read_policy = read_policy or cache.policy
        self._write_policy = self._read_policy.with_dedupe(False)
        self._add_policy = self._write_policy.with_retry_on(_never_sent)

        self._confirmed = Cart.empty()
        self._view = Cart.empty()
        self._pending: list[Mutation[Cart]] = []
        self._last: Mutation[Cart] | None = None
        self._epoch = 0
        self._locks = KeyedMutex()
        self._tasks: set[asyncio.Task[Any]] = set()

    # ───────────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def cart(self) -> Cart:
        """Current view: confirmed cart + pending optimistic patches."""
        return self._view

    @property
    def confirmed(self) -> Cart:
        return self._confirmed

    @property
    def pending_mutations(self) -> tuple[Mutation[Cart], ...]:
        return tuple(self._pending)

    @property
    def last_mutation(self) -> Mutation[Cart] | None:
        """Most recently settled mutation (COMMITTED or ROLLED_BACK)."""
        return self._last

    @property
    def item_count(self) -> int:
        return self._view.summary.item_count

    @property
    def subtotal(self) -> Decimal:
        return self._view.summary.subtotal

    @property
    def total(self) -> Decimal:
        return self._view.summary.total

    def find_item(self, product_id: str, variant_id: str) -> CartItem | None:
        return self._view.find_variant(product_id, variant_id)

    def is_in_cart(self, product_id: str, variant_id: str) -> bool:
        return self.find_item(product_id, variant_id) is not None

    def cache_key(self, identity: SessionIdentity) -> str:
        return f"cart:{identity.token}"

    # ───────────────────────────────────────────────────────────────────────────
    # Read
    # ───────────────────────────────────────────────────────────────────────────

    async def fetch_cart(self, *, force: bool = False) -> CartResult:
        """
        Load the cart through the cache.

        A SessionExpired answer reissues the identity and loads once more.
        """
        identity = await self._session.identity()
        result = await self._fetch(force=force)
        match result:
            case Error(SessionExpired()):
                await self._session.reissue(identity)
                return await self._fetch(force=True)
        return result

    async def _fetch(self, *, force: bool) -> CartResult:
        identity = await self._session.identity()
        key = self.cache_key(identity)
        if force:
            self._cache.invalidate(key)

        epoch = self._epoch
        result = await self._cache.get(key, lambda: self._load(identity), self._read_policy)
        match result:
            case Ok(cart) if epoch == self._epoch:
                self._confirm(cart)
            case Ok(_):
                # A mutation settled while we were loading; its cart is newer.
                return Ok(self._view)
        return result

    async def _load(self, identity: SessionIdentity) -> CartResult:
        match await self._transport.get("/cart", headers=self._session.headers(identity)):
            case Ok(body):
                return await parse_cart(body)
            case Error(err):
                return Error(err)

    # ───────────────────────────────────────────────────────────────────────────
    # Mutations
    # ───────────────────────────────────────────────────────────────────────────

    async def add_item(
        self,
        product_id: str,
        variant_id: str,
        quantity: int = 1,
        *,
        unit_price: Decimal | None = None,
        name: str | None = None,
    ) -> CartResult:
        """
        Add quantity of a variant; merges into an existing line.

        unit_price/name only shape the optimistic placeholder line shown
        until the server answers for a variant not yet in the cart.
        """
        try:
            request = AddItemRequest(product_id=product_id, variant_id=variant_id, quantity=quantity)
        except pydantic.ValidationError as e:
            return self._reject("Error adding to cart", ValidationError.from_pydantic(e))

        existing = self._view.find_variant(product_id, variant_id)
        if existing is not None:
            wanted = existing.quantity + quantity
            if wanted > existing.max_allowed_quantity:
                available = max(existing.max_allowed_quantity - existing.quantity, 0)
                return self._reject("Error adding to cart", ValidationError(
                    f"Cannot add {quantity} more items. Only {available} additional items available",
                    field="quantity",
                ))
            key = f"item:{existing.id}"
        else:
            key = f"variant:{product_id}:{variant_id}"

        placeholder = CartItem(
            id=f"pending:{product_id}:{variant_id}",
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            unit_price=unit_price if unit_price is not None else Decimal("0.00"),
            line_total=(unit_price or Decimal("0.00")) * quantity,
            name=name,
        )

        def patch(cart: Cart) -> Cart:
            item = cart.find_variant(product_id, variant_id)
            if item is None:
                return cart.with_item(placeholder)
            return cart.with_item(item.with_quantity(item.quantity + quantity))

        def announce(cart: Cart) -> None:
            item = cart.find_variant(product_id, variant_id)
            label = (item.name if item else None) or name or "Item"
            self._notifier.success("Added to cart!", f"{label} has been added to your cart.")

        return await self._mutate(
            kind="add",
            key=key,
            patch=patch,
            send=lambda identity: self._transport.post(
                "/cart/items",
                request.model_dump(mode="json", by_alias=True),
                headers=self._session.headers(identity),
            ),
            policy=self._add_policy,
            on_success=announce,
            error_title="Error adding to cart",
        )

    async def update_item(self, item_id: str, quantity: int) -> CartResult:
        """Set a line's quantity. 0 removes the line."""
        try:
            request = UpdateItemRequest(quantity=quantity)
        except pydantic.ValidationError as e:
            return self._reject("Error updating cart", ValidationError.from_pydantic(e))

        item = self._view.find(item_id)
        if item is None:
            return self._reject("Error updating cart", NotFoundError("Cart item not found"))
        if quantity > item.max_allowed_quantity:
            return self._reject("Error updating cart", ValidationError(
                f"Only {item.max_allowed_quantity} items available in stock",
                field="quantity",
            ))

        def announce(cart: Cart) -> None:
            if quantity == 0:
                self._notifier.success("Item removed", "Item has been removed from your cart.")
            else:
                self._notifier.success("Cart updated", "Item quantity has been updated.")

        return await self._mutate(
            kind="update",
            key=f"item:{item_id}",
            patch=lambda cart: cart.with_quantity(item_id, quantity),
            send=lambda identity: self._transport.put(
                f"/cart/items/{item_id}",
                request.model_dump(mode="json", by_alias=True),
                headers=self._session.headers(identity),
            ),
            policy=self._write_policy,
            on_success=announce,
            error_title="Error updating cart",
        )

    async def remove_item(self, item_id: str) -> CartResult:
        if self._view.find(item_id) is None:
            return self._reject("Error removing item", NotFoundError("Cart item not found"))

        return await self._mutate(
            kind="remove",
            key=f"item:{item_id}",
            patch=lambda cart: cart.without(item_id),
            send=lambda identity: self._transport.delete(
                f"/cart/items/{item_id}",
                headers=self._session.headers(identity),
            ),
            policy=self._write_policy,
            on_success=lambda cart: self._notifier.success(
                "Item removed", "Item has been removed from your cart."
            ),
            error_title="Error removing item",
        )

    async def clear(self) -> CartResult:
        return await self._mutate(
            kind="clear",
            key="cart",
            patch=lambda cart: Cart.empty(),
            send=lambda identity: self._transport.delete(
                "/cart",
                headers=self._session.headers(identity),
            ),
            policy=self._write_policy,
            on_success=lambda cart: self._notifier.success(
                "Cart cleared", "All items have been removed from your cart."
            ),
            error_title="Error clearing cart",
        )

    def reset(self) -> None:
        """Drop all local state (after an order completes or the session ends)."""
        if (identity := self._session.current) is not None:
            self._cache.forget(self.cache_key(identity))
        self._pending.clear()
        self._confirmed = Cart.empty()
        self._view = Cart.empty()
        self._epoch += 1

    async def drain(self) -> None:
        """Wait for every dispatched mutation to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ───────────────────────────────────────────────────────────────────────────
    # Mutation machinery
    # ───────────────────────────────────────────────────────────────────────────

    async def _mutate(
        self,
        *,
        kind: str,
        key: str,
        patch: Callable[[Cart], Cart],
        send: Callable[[SessionIdentity], Coroutine[Any, Any, Result[Any, StorefrontError]]],
        policy: FetchPolicy,
        on_success: Callable[[Cart], None],
        error_title: str,
    ) -> CartResult:
        identity = await self._session.identity()
        mutation = Mutation(kind=kind, key=key, snapshot=self._view, patch=patch)

        saga = S.local(
            lambda: self._apply(mutation),
            undo=self._discard,
            name=f"{kind}:patch",
        ).then(lambda m: S.step(
            L.wrap_async(lambda: self._dispatch(m, identity, send, policy)),
            name=f"{kind}:dispatch",
        ))

        async def run() -> CartResult:
            match await S.run_chain(saga):
                case Ok(done):
                    logger.info("cart_mutation_committed", kind=kind, key=key)
                    on_success(done.value)
                    return Ok(done.value)
                case Error(failed):
                    error = failed.error
                    self._last = mutation.roll_back(error)
                    logger.info(
                        "cart_mutation_rolled_back",
                        kind=kind,
                        key=key,
                        error=error.message,
                        status=error.status,
                    )
                    await self._recover(error, identity)
                    self._notifier.error(error_title, error)
                    return Error(error)

        return await asyncio.shield(self._spawn(run()))

    async def _dispatch(
        self,
        mutation: Mutation[Cart],
        identity: SessionIdentity,
        send: Callable[[SessionIdentity], Coroutine[Any, Any, Result[Any, StorefrontError]]],
        policy: FetchPolicy,
    ) -> CartResult:
        async with self._locks.hold(mutation.key):
            result = await self._cache.execute(
                f"{self.cache_key(identity)}:{mutation.key}",
                lambda: send(identity),
                policy,
            )
            match result:
                case Error(err):
                    return Error(err)
                case Ok(body) if CartPayload.is_cart(body):
                    parsed = await parse_cart(body)
                case Ok(_):
                    parsed = await self._load(identity)

            match parsed:
                case Ok(cart):
                    self._settle(mutation, cart, identity)
                case Error(err):
                    logger.warning("cart_reload_failed", key=mutation.key, error=err.message)
                    self._settle_unseen(mutation, identity)
            return Ok(self._view)

    def _apply(self, mutation: Mutation[Cart]) -> Mutation[Cart]:
        self._pending.append(mutation)
        self._view = mutation.patch(self._view)
        return mutation

    def _discard(self, mutation: Mutation[Cart]) -> None:
        if mutation in self._pending:
            self._pending.remove(mutation)
        self._rebuild()

    def _settle(self, mutation: Mutation[Cart], cart: Cart, identity: SessionIdentity) -> None:
        if mutation in self._pending:
            self._pending.remove(mutation)
        self._last = mutation.commit()
        self._cache.put(self.cache_key(identity), cart)
        self._confirm(cart)

    def _settle_unseen(self, mutation: Mutation[Cart], identity: SessionIdentity) -> None:
        # Accepted, but the resulting cart is unknown: show the last confirmed
        # cart and reload in the background.
        if mutation in self._pending:
            self._pending.remove(mutation)
        self._last = mutation.commit()
        self._cache.invalidate(self.cache_key(identity))
        self._rebuild()
        self._spawn(self._fetch(force=True))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _confirm(self, cart: Cart) -> None:
        self._confirmed = cart
        self._epoch += 1
        self._rebuild()

    def _rebuild(self) -> None:
        self._view = reduce(lambda cart, m: m.patch(cart), self._pending, self._confirmed)

    async def _recover(self, error: StorefrontError, identity: SessionIdentity) -> None:
        if _session_reset(error):
            await self._session.reissue(identity)
            await self._fetch(force=True)
        elif _needs_reconcile(error):
            await self._fetch(force=True)

    def _reject(self, title: str, error: StorefrontError) -> CartResult:
        logger.info("cart_mutation_rejected", error=error.message)
        self._notifier.error(title, error)
        return Error(error)


__all__ = (
    "MAX_ITEM_QUANTITY",
    "CartStore",
    "parse_cart",
)
