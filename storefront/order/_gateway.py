"""
Payment gateway seam.

The engine never talks to a payment provider directly; an adapter around the
provider's SDK implements PaymentGateway. The idempotency key is derived from
the checkout session, so a repeated confirmation never charges twice.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from storefront.order._types import PaymentConfirmation


class PaymentGateway(Protocol):
    async def confirm_payment(
        self,
        payment_method_id: str,
        amount: Decimal,
        *,
        idempotency_key: str,
        save_payment_method: bool = False,
    ) -> PaymentConfirmation:
        """
        Confirm and capture a payment.

        Raise PaymentDeclined when the provider refuses the payment. Any
        other exception is reported as an outage, not a decline.
        """
        ...


def payment_key(session_id: str) -> str:
    return f"payment:{session_id}"


__all__ = (
    "PaymentGateway",
    "payment_key",
)
