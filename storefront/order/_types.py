"""
Order types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from storefront._types import ZERO, money


class OrderAttemptState(Enum):
    """
    Where the current create_order attempt stands.

    IDLE ─▶ PAYING ─▶ SUBMITTING ─▶ COMPLETED
              │           └──────▶ NEEDS_SUPPORT  (paid, no order record)
              ├──────────────────▶ DECLINED       (user may resubmit payment)
              └──────────────────▶ EXPIRED        (restart from the cart)
    """

    IDLE = "idle"
    PAYING = "paying"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    DECLINED = "declined"
    EXPIRED = "expired"
    NEEDS_SUPPORT = "needs_support"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderAttemptState.COMPLETED, OrderAttemptState.NEEDS_SUPPORT)


@dataclass(frozen=True, slots=True)
class PaymentConfirmation:
    """What the payment gateway reports for a confirmed payment."""

    id: str
    status: str
    amount: Decimal

    @property
    def succeeded(self) -> bool:
        return self.status in ("succeeded", "captured", "paid")


@dataclass(frozen=True, slots=True)
class Order:
    """Created exactly once per checkout session id. Immutable."""

    id: str
    order_number: str
    status: str
    total: Decimal
    session_id: str
    payment_id: str | None = None
    created_at: datetime | None = None


class OrderPayload(BaseModel):
    """Accepts {"order": {...}} and the bare order object."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    order_number: str
    status: str = "pending"
    total: Decimal = ZERO
    payment_id: str | None = None
    created_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("order"), dict):
            return data["order"]
        return data

    def to_domain(self, session_id: str, payment_id: str | None) -> Order:
        return Order(
            id=self.id,
            order_number=self.order_number,
            status=self.status,
            total=money(self.total),
            session_id=session_id,
            payment_id=self.payment_id or payment_id,
            created_at=self.created_at,
        )


__all__ = (
    "OrderAttemptState",
    "PaymentConfirmation",
    "Order",
    "OrderPayload",
)
