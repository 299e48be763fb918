"""
OrderCreation — pay, then record the order, at most once per checkout session.

    orders = OrderCreation(session, transport, gateway, cart_store, checkout_store, notifier)
    match await orders.create_order(session_id, "pm_123"):
        case Ok(order): order.order_number
        case Error(PaymentDeclined() as e): ...     # resubmit payment
        case Error(PartialFailure() as e): ...      # paid, contact support

    confirm payment (gateway, key payment:{session_id})
        └─then─▶ POST /checkout/create-order   (never retried)

Both steps run inside an idempotency executor keyed order:{session_id}: a
second call while the first runs waits for its outcome, and a completed
order or a PartialFailure is answered from the record instead of paying again.
"""

from __future__ import annotations

from decimal import Decimal

import httpx
import pydantic
import structlog
from kungfu import Result, Ok, Error
from combinators import lift as L

from storefront import idempotency as I
from storefront import saga as S
from storefront.cart import CartStore
from storefront.checkout import CheckoutSessionStore, CreateOrderRequest
from storefront.errors import (
    StorefrontError,
    ValidationError,
    ConflictError,
    SessionExpired,
    ServerError,
    TransientNetworkError,
    TerminalPaymentError,
    PaymentDeclined,
    IdempotencyViolationRisk,
    PartialFailure,
)
from storefront.notify import Notifier
from storefront.session import SessionContext
from storefront.transport import HttpTransport
from storefront.order._types import (
    Order,
    OrderAttemptState,
    OrderPayload,
    PaymentConfirmation,
)
from storefront.order._gateway import PaymentGateway, payment_key


logger = structlog.get_logger(__name__)

type OrderResult = Result[Order, StorefrontError]

SUPPORT_MESSAGE = (
    "Your payment was received but we could not record your order. "
    "Please contact support before trying again."
)


def order_key(request: CreateOrderRequest) -> str:
    return f"order:{request.session_id}"


def default_policy() -> I.Policy:
    return (
        I.Policy()
        .with_ttl(hours=24)
        .with_on_pending(I.WAIT)
        .with_wait_timeout(seconds=120)
        .with_store_failed(when=lambda e: isinstance(e, PartialFailure))
    )


def _payment_error(exc: Exception) -> StorefrontError:
    match exc:
        case StorefrontError():
            return exc
        case httpx.TimeoutException() | TimeoutError():
            return TransientNetworkError(
                "The payment provider did not respond. Please try again.",
                timed_out=True,
            )
        case httpx.TransportError() | ConnectionError():
            return TransientNetworkError("Could not reach the payment provider. Please try again.")
        case _:
            return ServerError("Your payment could not be processed. Please try again.")


def _from_idempotency(error: I.IdempotencyError) -> StorefrontError:
    match error.kind:
        case I.IdempotencyErrorKind.EXECUTION if isinstance(error.original_error, StorefrontError):
            return error.original_error
        case I.IdempotencyErrorKind.TIMEOUT:
            return IdempotencyViolationRisk(
                "Your order is still being processed. Check your email before trying again."
            )
        case I.IdempotencyErrorKind.CONFLICT | I.IdempotencyErrorKind.ABANDONED:
            return ConflictError(error.message)
        case _:
            return ServerError(error.message)


def _state_for(error: StorefrontError) -> OrderAttemptState:
    match error:
        case TerminalPaymentError():
            return OrderAttemptState.DECLINED
        case SessionExpired():
            return OrderAttemptState.EXPIRED
        case IdempotencyViolationRisk():
            return OrderAttemptState.NEEDS_SUPPORT
        case _:
            return OrderAttemptState.IDLE


class OrderCreation:
    def __init__(
        self,
        session: SessionContext,
        transport: HttpTransport,
        gateway: PaymentGateway,
        cart: CartStore,
        checkout: CheckoutSessionStore,
        notifier: Notifier | None = None,
        *,
        store: I.StoreAny | None = None,
        policy: I.Policy | None = None,
    ) -> None:
        self._session = session
        self._transport = transport
        self._gateway = gateway
        self._cart = cart
        self._checkout = checkout
        self._notifier = notifier or Notifier()
        self._state = OrderAttemptState.IDLE
        self._last_order: Order | None = None
        self._executor = (
            I.idempotent(self._attempt)
            .key(order_key)
            .store(store if store is not None else I.MemoryStore())
            .policy(policy or default_policy())
            .build()
        )

    @property
    def state(self) -> OrderAttemptState:
        return self._state

    @property
    def last_order(self) -> Order | None:
        return self._last_order

    async def create_order(
        self,
        session_id: str,
        payment_method_id: str,
        save_payment_method: bool = False,
    ) -> OrderResult:
        try:
            request = CreateOrderRequest(
                session_id=session_id,
                payment_method_id=payment_method_id,
                save_payment_method=save_payment_method,
            )
        except pydantic.ValidationError as e:
            error = ValidationError.from_pydantic(e)
            self._notifier.error("Failed to place order", error)
            return Error(error)

        match await self._executor.run(request):
            case Ok(outcome):
                order = outcome.value
                self._state = OrderAttemptState.COMPLETED
                self._last_order = order
                if outcome.from_cache:
                    logger.info("order_replayed", session_id=session_id, order_number=order.order_number)
                else:
                    await self._finish(order)
                return Ok(order)
            case Error(failure):
                error = _from_idempotency(failure)
                self._state = _state_for(error)
                logger.warning(
                    "order_failed",
                    session_id=session_id,
                    state=self._state.value,
                    error=error.message,
                    replayed=failure.from_cache,
                )
                self._notifier.error("Failed to place order", error)
                return Error(error)

    async def forget(self, session_id: str) -> bool:
        """Drop the idempotency record (after support resolved a NEEDS_SUPPORT order)."""
        self._state = OrderAttemptState.IDLE
        match await self._executor.store.delete(f"order:{session_id}"):
            case Ok(deleted):
                return deleted
            case Error(err):
                logger.warning("order_forget_failed", session_id=session_id, error=err.message)
                return False

    # ───────────────────────────────────────────────────────────────────────────
    # One attempt
    # ───────────────────────────────────────────────────────────────────────────

    async def _attempt(self, request: CreateOrderRequest) -> OrderResult:
        match await self._checkout.get_or_create(request.session_id):
            case Error(err):
                return Error(err)
            case Ok(checkout):
                amount = checkout.totals.total

        if amount <= 0:
            return Error(ValidationError("Your cart is empty", field="total"))

        saga = S.from_async(
            lambda: self._pay(request, amount),
            on_error=_payment_error,
            name="payment",
        ).then(lambda payment: S.step(
            L.wrap_async(lambda: self._submit(request, payment)),
            name="create_order",
        ))

        match await S.run_chain(saga):
            case Ok(done):
                return Ok(done.value)
            case Error(failed):
                return Error(failed.error)

    async def _pay(self, request: CreateOrderRequest, amount: Decimal) -> PaymentConfirmation:
        self._state = OrderAttemptState.PAYING
        logger.info("payment_confirming", session_id=request.session_id, amount=str(amount))
        payment = await self._gateway.confirm_payment(
            request.payment_method_id,
            amount,
            idempotency_key=payment_key(request.session_id),
            save_payment_method=request.save_payment_method,
        )
        if not payment.succeeded:
            raise PaymentDeclined(f"Payment {payment.status}", decline_code=payment.status)
        return payment

    async def _submit(self, request: CreateOrderRequest, payment: PaymentConfirmation) -> OrderResult:
        self._state = OrderAttemptState.SUBMITTING
        identity = await self._session.identity()
        body = request.model_copy(update={"payment_id": payment.id}).model_dump(mode="json", by_alias=True)
        response = await self._transport.post(
            "/checkout/create-order",
            body,
            headers=self._session.headers(identity),
        )
        match response:
            case Ok(payload):
                try:
                    order = OrderPayload.model_validate(payload).to_domain(request.session_id, payment.id)
                except pydantic.ValidationError as e:
                    cause: StorefrontError = ServerError(f"Malformed order response: {e}", payload=payload)
                else:
                    logger.info("order_created", session_id=request.session_id, order_number=order.order_number)
                    return Ok(order)
            case Error(err):
                cause = err

        logger.error(
            "order_record_failed",
            session_id=request.session_id,
            payment_id=payment.id,
            error=cause.message,
        )
        return Error(PartialFailure(SUPPORT_MESSAGE, status=cause.status, payment_id=payment.id, cause=cause))

    async def _finish(self, order: Order) -> None:
        self._cart.reset()
        await self._checkout.discard(notify=False)
        self._checkout.reset()
        await self._checkout.drafts.clear()
        await self._session.retire()
        self._notifier.success(
            "Order placed successfully!",
            f"Your order #{order.order_number} has been confirmed.",
        )


__all__ = (
    "SUPPORT_MESSAGE",
    "OrderCreation",
    "order_key",
    "default_policy",
)
