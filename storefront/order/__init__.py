"""
Order — payment confirmation and exactly-once order creation.
"""

from storefront.order._types import (
    OrderAttemptState,
    PaymentConfirmation,
    Order,
    OrderPayload,
)
from storefront.order._gateway import (
    PaymentGateway,
    payment_key,
)
from storefront.order._create import (
    SUPPORT_MESSAGE,
    OrderCreation,
    order_key,
    default_policy,
)

__all__ = (
    "OrderAttemptState",
    "PaymentConfirmation",
    "Order",
    "OrderPayload",
    "PaymentGateway",
    "payment_key",
    "SUPPORT_MESSAGE",
    "OrderCreation",
    "order_key",
    "default_policy",
)
