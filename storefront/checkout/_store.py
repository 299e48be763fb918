"""
CheckoutSessionStore — optimistic client reflection of the server checkout
session.

    store = CheckoutSessionStore(session, transport, cache, drafts, notifier)
    await store.get_or_create()                          # GET, or POST on 404
    await store.update({"customerEmail": "jane@example.com"}, step=CheckoutStep.SHIPPING)
    methods = await store.shipping_methods(address, cart.items)

update() follows the cart's mutation protocol: validate locally, patch the
view, PUT through the cache, then replace the view with the server's session.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Mapping, Sequence
from decimal import Decimal
from functools import reduce
from typing import Any

import pydantic
import structlog
from kungfu import Result, Ok, Error
from combinators import lift as L

from storefront import saga as S
from storefront._types import money
from storefront.cart import CartItem, KeyedMutex, Mutation
from storefront.errors import (
    StorefrontError,
    ValidationError,
    ConflictError,
    NotFoundError,
    SessionExpired,
    ServerError,
)
from storefront.fetch import FetchCache, FetchPolicy
from storefront.notify import Notifier
from storefront.session import SessionContext, SessionIdentity
from storefront.transport import HttpTransport
from storefront.checkout._types import (
    Address,
    CheckoutSession,
    CheckoutStep,
    ShippingMethod,
    TaxQuote,
    Totals,
)
from storefront.checkout._schema import (
    AddressModel,
    CheckoutSessionModel,
    SessionPatch,
    ShippingMethodModel,
    ShippingQuoteRequest,
    TaxQuoteModel,
    TaxRequest,
)
from storefront.checkout._drafts import FormDrafts


logger = structlog.get_logger(__name__)

type SessionResult = Result[CheckoutSession, StorefrontError]

_methods = pydantic.TypeAdapter(list[ShippingMethodModel])


# ═══════════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════════


async def parse_session(body: Any) -> SessionResult:
    return await L.catching(
        lambda: CheckoutSessionModel.model_validate(body).to_domain(),
        on_error=lambda e: ServerError(f"Malformed checkout session: {e}", payload=body),
    )


async def parse_shipping_methods(body: Any) -> Result[tuple[ShippingMethod, ...], StorefrontError]:
    if isinstance(body, dict):
        body = body.get("methods", body.get("shippingMethods", body))
    return await L.catching(
        lambda: tuple(m.to_domain() for m in _methods.validate_python(body)),
        on_error=lambda e: ServerError(f"Malformed shipping methods: {e}", payload=body),
    )


async def parse_tax(body: Any) -> Result[TaxQuote, StorefrontError]:
    return await L.catching(
        lambda: TaxQuoteModel.model_validate(body).to_domain(),
        on_error=lambda e: ServerError(f"Malformed tax response: {e}", payload=body),
    )


def _as_address(address: Address | AddressModel | Mapping[str, Any]) -> AddressModel:
    match address:
        case AddressModel():
            return address
        case Address():
            return AddressModel.from_domain(address)
        case _:
            return AddressModel.model_validate(address)


def _item_line(item: CartItem) -> dict[str, Any]:
    return {
        "productId": item.product_id,
        "variantId": item.variant_id,
        "quantity": item.quantity,
        "price": str(item.unit_price),
    }


def _items_fingerprint(lines: Sequence[dict[str, Any]]) -> str:
    return ",".join(sorted(f"{l['variantId']}x{l['quantity']}@{l['price']}" for l in lines)) or "empty"


# ═══════════════════════════════════════════════════════════════════════════════
# CheckoutSessionStore
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutSessionStore:
    """
    Holds the server-confirmed checkout session plus pending updates.

    Step completion is tracked locally as well and only ever grows: server
    answers are unioned with it, and every update sends it back so the
    server can persist it.
    """

    def __init__(
        self,
        session: SessionContext,
        transport: HttpTransport,
        cache: FetchCache,
        drafts: FormDrafts,
        notifier: Notifier | None = None,
        *,
        read_policy: FetchPolicy | None = None,
    ) -> None:
        self._session = session
        self._transport = transport
        self._cache = cache
        self._drafts = drafts
        self._notifier = notifier or Notifier()
        self._read_policy = read_policy or cache.policy
        self._write_policy = self._read_policy.with_dedupe(False)

        self._confirmed: CheckoutSession | None = None
        self._view: CheckoutSession | None = None
        self._completed: frozenset[CheckoutStep] = frozenset()
        self._pending: list[Mutation[CheckoutSession]] = []
        self._last: Mutation[CheckoutSession] | None = None
        self._epoch = 0
        self._locks = KeyedMutex()
        self._tasks: set[asyncio.Task[Any]] = set()

    # ───────────────────────────────────────────────────────────────────────────
    # Queries
    # ───────────────────────────────────────────────────────────────────────────

    @property
    def session(self) -> CheckoutSession | None:
        """Current view: confirmed session + pending optimistic patches."""
        return self._view

    @property
    def confirmed(self) -> CheckoutSession | None:
        return self._confirmed

    @property
    def totals(self) -> Totals:
        return self._view.totals if self._view is not None else Totals()

    @property
    def drafts(self) -> FormDrafts:
        return self._drafts

    @property
    def pending_mutations(self) -> tuple[Mutation[CheckoutSession], ...]:
        return tuple(self._pending)

    @property
    def last_mutation(self) -> Mutation[CheckoutSession] | None:
        return self._last

    @property
    def completed_steps(self) -> frozenset[CheckoutStep]:
        return self._completed

    def is_step_completed(self, step: CheckoutStep) -> bool:
        return step in self._completed

    def cache_key(self, session_id: str) -> str:
        return f"checkout:{session_id}"

    # ───────────────────────────────────────────────────────────────────────────
    # Bootstrap
    # ───────────────────────────────────────────────────────────────────────────

    async def get_or_create(
        self,
        session_id: str | None = None,
        *,
        force: bool = False,
    ) -> SessionResult:
        """
        Load the checkout session, creating it on the server when unknown.

        session_id defaults to the current SessionIdentity token. Concurrent
        callers share one GET (and at most one POST).
        """
        identity = await self._session.identity()
        sid = session_id or identity.token
        key = self.cache_key(sid)
        if force:
            self._cache.invalidate(key)

        epoch = self._epoch
        result = await self._cache.get(key, lambda: self._bootstrap(sid, identity), self._read_policy)
        match result:
            case Ok(checkout) if epoch == self._epoch:
                self._confirm(checkout)
                return Ok(self._view)
            case Ok(_):
                return Ok(self._view)
            case Error(SessionExpired() as err):
                await self._session.reissue(identity)
                self.reset()
                self._notifier.error("Session expired", err)
            case Error(err):
                self._notifier.error("Failed to load checkout", err)
        return result

    async def _bootstrap(self, sid: str, identity: SessionIdentity) -> SessionResult:
        match await self._load(sid, identity):
            case Error(NotFoundError()):
                pass
            case other:
                return other

        logger.info("checkout_session_creating", session_id=sid)
        created = await self._transport.post(
            f"/checkout/session/{sid}",
            {"sessionId": sid},
            headers=self._session.headers(identity),
        )
        match created:
            case Ok(body):
                return await parse_session(body)
            case Error(ConflictError()):
                # Created by someone else between our GET and POST.
                return await self._load(sid, identity)
            case Error(err):
                return Error(err)

    async def _load(self, sid: str, identity: SessionIdentity) -> SessionResult:
        match await self._transport.get(f"/checkout/session/{sid}", headers=self._session.headers(identity)):
            case Ok(body):
                return await parse_session(body)
            case Error(err):
                return Error(err)

    # ───────────────────────────────────────────────────────────────────────────
    # Updates
    # ───────────────────────────────────────────────────────────────────────────

    async def update(
        self,
        patch: SessionPatch | Mapping[str, Any],
        step: CheckoutStep | None = None,
    ) -> SessionResult:
        """
        Validate and apply a partial update.

        Invalid input is rejected without a network call. With step given,
        the patch is also saved as that step's form draft.
        """
        try:
            validated = patch if isinstance(patch, SessionPatch) else SessionPatch.model_validate(patch)
        except pydantic.ValidationError as e:
            return self._reject("Please check your details", ValidationError.from_pydantic(e))

        if self._view is None:
            match await self.get_or_create():
                case Error(err):
                    return Error(err)
                case Ok(_):
                    pass

        if step is not None:
            await self._drafts.save(step, validated.to_wire())

        return await self._mutate(
            kind="update",
            key="session",
            patch=validated.apply,
            body=validated.to_wire,
            error_title="Failed to save checkout",
        )

    def mark_step_completed(self, step: CheckoutStep) -> CheckoutSession | None:
        """
        Record a completed step locally; the next update() persists it.

        Idempotent. Never calls the network.
        """
        if step in self._completed:
            return self._view
        self._completed = self._completed | {step}
        logger.info("checkout_step_completed", step=step.value)
        if self._confirmed is not None:
            self._confirmed = self._confirmed.with_step_completed(step)
        self._rebuild()
        return self._view

    async def _mutate(
        self,
        *,
        kind: str,
        key: str,
        patch: Callable[[CheckoutSession], CheckoutSession],
        body: Callable[[], dict[str, Any]],
        error_title: str,
    ) -> SessionResult:
        if self._view is None:
            return Error(NotFoundError("Checkout session is not loaded"))
        identity = await self._session.identity()
        sid = self._view.id
        mutation = Mutation(kind=kind, key=key, snapshot=self._view, patch=patch)

        saga = S.local(
            lambda: self._apply(mutation),
            undo=self._discard,
            name=f"checkout_{kind}:patch",
        ).then(lambda m: S.step(
            L.wrap_async(lambda: self._dispatch(m, sid, identity, body)),
            name=f"checkout_{kind}:dispatch",
        ))

        async def run() -> SessionResult:
            match await S.run_chain(saga):
                case Ok(done):
                    logger.info("checkout_mutation_committed", kind=kind, session_id=sid)
                    return Ok(done.value)
                case Error(failed):
                    error = failed.error
                    self._last = mutation.roll_back(error)
                    logger.info(
                        "checkout_mutation_rolled_back",
                        kind=kind,
                        session_id=sid,
                        error=error.message,
                        status=error.status,
                    )
                    await self._recover(sid, identity, error)
                    self._notifier.error(error_title, error)
                    return Error(error)

        return await asyncio.shield(self._spawn(run()))

    async def _dispatch(
        self,
        mutation: Mutation[CheckoutSession],
        sid: str,
        identity: SessionIdentity,
        body: Callable[[], dict[str, Any]],
    ) -> SessionResult:
        async with self._locks.hold(mutation.key):

            async def send() -> Result[Any, StorefrontError]:
                payload = {
                    **body(),
                    "stepCompletion": sorted(s.value for s in self._completed),
                }
                return await self._transport.put(
                    f"/checkout/session/{sid}",
                    payload,
                    headers=self._session.headers(identity),
                )

            result = await self._cache.execute(f"{self.cache_key(sid)}:{mutation.key}", send, self._write_policy)
            match result:
                case Error(err):
                    return Error(err)
                case Ok(response) if CheckoutSessionModel.is_session(response):
                    parsed = await parse_session(response)
                case Ok(_):
                    parsed = await self._load(sid, identity)

            match parsed:
                case Ok(checkout):
                    self._settle(mutation, checkout)
                case Error(err):
                    logger.warning("checkout_reload_failed", session_id=sid, error=err.message)
                    self._settle_unseen(mutation, sid)
            return Ok(self._view)

    def _apply(self, mutation: Mutation[CheckoutSession]) -> Mutation[CheckoutSession]:
        self._pending.append(mutation)
        self._view = mutation.patch(self._view)
        return mutation

    def _discard(self, mutation: Mutation[CheckoutSession]) -> None:
        if mutation in self._pending:
            self._pending.remove(mutation)
        self._rebuild()

    def _settle(self, mutation: Mutation[CheckoutSession], checkout: CheckoutSession) -> None:
        if mutation in self._pending:
            self._pending.remove(mutation)
        self._last = mutation.commit()
        self._confirm(checkout)
        self._cache.put(self.cache_key(checkout.id), self._confirmed)

    def _settle_unseen(self, mutation: Mutation[CheckoutSession], sid: str) -> None:
        # Accepted, but the resulting session is unknown: show the last
        # confirmed session and reload in the background.
        if mutation in self._pending:
            self._pending.remove(mutation)
        self._last = mutation.commit()
        self._cache.invalidate(self.cache_key(sid))
        self._rebuild()
        self._spawn(self.get_or_create(sid, force=True))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _confirm(self, checkout: CheckoutSession) -> None:
        checkout = checkout.with_completion(self._completed)
        self._completed = checkout.step_completion
        self._confirmed = checkout
        self._epoch += 1
        self._rebuild()

    def _rebuild(self) -> None:
        if self._confirmed is None:
            self._view = None
            return
        self._view = reduce(lambda s, m: m.patch(s), self._pending, self._confirmed)

    async def _recover(self, sid: str, identity: SessionIdentity, error: StorefrontError) -> None:
        if isinstance(error, SessionExpired):
            await self._session.reissue(identity)
            self.reset()
        elif isinstance(error, (ConflictError, NotFoundError)):
            await self.get_or_create(sid, force=True)

    def _reject(self, title: str, error: StorefrontError) -> SessionResult:
        logger.info("checkout_update_rejected", error=error.message, field=getattr(error, "field", None))
        self._notifier.error(title, error)
        return Error(error)

    # ───────────────────────────────────────────────────────────────────────────
    # Lookups
    # ───────────────────────────────────────────────────────────────────────────

    async def shipping_methods(
        self,
        address: Address | AddressModel | Mapping[str, Any],
        items: Sequence[CartItem] = (),
    ) -> Result[tuple[ShippingMethod, ...], StorefrontError]:
        """Available shipping methods for an address and the items being shipped."""
        try:
            model = _as_address(address)
        except pydantic.ValidationError as e:
            return self._reject_lookup("Invalid address", ValidationError.from_pydantic(e))

        identity = await self._session.identity()
        request = ShippingQuoteRequest(address=model, items=[_item_line(i) for i in items])
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)

        async def fetch() -> Result[tuple[ShippingMethod, ...], StorefrontError]:
            match await self._transport.post(
                "/checkout/shipping-methods", body, headers=self._session.headers(identity)
            ):
                case Ok(response):
                    return await parse_shipping_methods(response)
                case Error(err):
                    return Error(err)

        key = (
            f"checkout:shipping:{model.country}:{model.state}:{model.postal_code}:"
            f"{_items_fingerprint(request.items)}"
        )
        result = await self._cache.get(key, fetch, self._read_policy)
        if isinstance(result, Error):
            self._notifier.error("Failed to load shipping methods", result.error)
        return result

    async def calculate_tax(
        self,
        address: Address | AddressModel | Mapping[str, Any],
        amount: Decimal | float | str,
    ) -> Result[TaxQuote, StorefrontError]:
        """Tax for an amount shipped to an address, cached per (address, amount)."""
        try:
            model = _as_address(address)
            request = TaxRequest(address=model, amount=money(amount))
        except pydantic.ValidationError as e:
            return self._reject_lookup("Invalid address", ValidationError.from_pydantic(e))

        identity = await self._session.identity()
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        key = f"checkout:tax:{model.country}:{model.state}:{model.postal_code}:{request.amount}"

        async def fetch() -> Result[TaxQuote, StorefrontError]:
            match await self._transport.post(
                "/checkout/calculate-tax", body, headers=self._session.headers(identity)
            ):
                case Ok(response):
                    return await parse_tax(response)
                case Error(err):
                    return Error(err)

        result = await self._cache.get(key, fetch, self._read_policy)
        if isinstance(result, Error):
            self._notifier.error("Failed to calculate tax", result.error)
        return result

    def _reject_lookup(self, title: str, error: StorefrontError) -> Result[Any, StorefrontError]:
        self._notifier.error(title, error)
        return Error(error)

    # ───────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ───────────────────────────────────────────────────────────────────────────

    async def discard(self, *, notify: bool = True) -> Result[None, StorefrontError]:
        """DELETE the server session and drop local state."""
        identity = await self._session.identity()
        sid = self._view.id if self._view is not None else identity.token
        result = await self._transport.delete(
            f"/checkout/session/{sid}",
            headers=self._session.headers(identity),
        )
        match result:
            case Ok(_) | Error(NotFoundError()):
                logger.info("checkout_session_discarded", session_id=sid)
                self.reset()
                return Ok(None)
            case Error(err):
                logger.warning("checkout_discard_failed", session_id=sid, error=err.message)
                if notify:
                    self._notifier.error("Failed to discard checkout", err)
                return Error(err)

    def reset(self) -> None:
        """Drop all local state, including completed steps."""
        if self._confirmed is not None:
            self._cache.forget(self.cache_key(self._confirmed.id))
        self._cache.invalidate_pattern("checkout:shipping:*")
        self._cache.invalidate_pattern("checkout:tax:*")
        self._pending.clear()
        self._confirmed = None
        self._view = None
        self._completed = frozenset()
        self._epoch += 1

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = (
    "CheckoutSessionStore",
    "parse_session",
    "parse_shipping_methods",
    "parse_tax",
)
