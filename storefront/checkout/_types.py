"""
Checkout types — domain values.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from storefront._types import ZERO


# ═══════════════════════════════════════════════════════════════════════════════
# Steps
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutStep(Enum):
    """Stages of the checkout flow, in order. CONFIRMATION is terminal."""

    CART = "cart"
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self)

    @property
    def next(self) -> CheckoutStep | None:
        i = self.index + 1
        return STEP_ORDER[i] if i < len(STEP_ORDER) else None

    @property
    def previous(self) -> CheckoutStep | None:
        return STEP_ORDER[self.index - 1] if self.index > 0 else None


STEP_ORDER: tuple[CheckoutStep, ...] = (
    CheckoutStep.CART,
    CheckoutStep.SHIPPING,
    CheckoutStep.PAYMENT,
    CheckoutStep.CONFIRMATION,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Addresses / Methods
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Address:
    first_name: str
    last_name: str
    address1: str
    city: str
    state: str
    postal_code: str
    country: str
    company: str | None = None
    address2: str | None = None
    phone: str | None = None

    def lines(self) -> list[str]:
        """Printable lines, the way confirmation screens show an address."""
        candidates = [
            self.company,
            f"{self.first_name} {self.last_name}",
            self.address1,
            self.address2,
            f"{self.city}, {self.state} {self.postal_code}",
            self.country,
            self.phone,
        ]
        return [line for line in candidates if line]


@dataclass(frozen=True, slots=True)
class BillingAddress:
    same_as_shipping: bool = True
    address: Address | None = None

    def resolve(self, shipping: Address | None) -> Address | None:
        return shipping if self.same_as_shipping else self.address


@dataclass(frozen=True, slots=True)
class ShippingMethod:
    id: str
    name: str
    price: Decimal
    description: str = ""
    estimated_days: str = ""
    is_default: bool = False


@dataclass(frozen=True, slots=True)
class PaymentMethodSelection:
    type: str
    payment_method_id: str | None = None
    save_payment_method: bool = False


@dataclass(frozen=True, slots=True)
class TaxQuote:
    rate: Decimal
    amount: Decimal


# ═══════════════════════════════════════════════════════════════════════════════
# Totals / Session
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Totals:
    """Server-computed; total == subtotal + shipping + tax - discount."""

    subtotal: Decimal = ZERO
    shipping: Decimal = ZERO
    tax: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO

    @property
    def is_consistent(self) -> bool:
        return self.total == self.subtotal + self.shipping + self.tax - self.discount


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    """
    Client reflection of the server-persisted checkout draft.

    id is the SessionIdentity token. step_completion only ever grows.
    """

    id: str
    customer_email: str | None = None
    shipping_address: Address | None = None
    billing_address: BillingAddress | None = None
    shipping_method: ShippingMethod | None = None
    payment_method: PaymentMethodSelection | None = None
    order_notes: str | None = None
    terms_accepted: bool = False
    totals: Totals = Totals()
    step_completion: frozenset[CheckoutStep] = frozenset()

    @classmethod
    def new(cls, session_id: str) -> CheckoutSession:
        return cls(id=session_id)

    def is_step_completed(self, step: CheckoutStep) -> bool:
        return step in self.step_completion

    def with_step_completed(self, step: CheckoutStep) -> CheckoutSession:
        if step in self.step_completion:
            return self
        return replace(self, step_completion=self.step_completion | {step})

    def with_completion(self, steps: frozenset[CheckoutStep]) -> CheckoutSession:
        """Union, never shrink: a stale server answer cannot un-complete a step."""
        merged = self.step_completion | steps
        return self if merged == self.step_completion else replace(self, step_completion=merged)


__all__ = (
    "CheckoutStep",
    "STEP_ORDER",
    "Address",
    "BillingAddress",
    "ShippingMethod",
    "PaymentMethodSelection",
    "TaxQuote",
    "Totals",
    "CheckoutSession",
)
