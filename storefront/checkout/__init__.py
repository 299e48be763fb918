"""
Checkout — session draft, form validation and step gating.

    from storefront import checkout as CO

    store = CO.CheckoutSessionStore(session, transport, cache, CO.FormDrafts(storage))
    await store.get_or_create()
    await store.update({"customerEmail": "jane@example.com"}, step=CO.CheckoutStep.SHIPPING)

    steps = CO.CheckoutStepMachine(store)
    steps.next_step()
"""

from storefront.checkout._types import (
    CheckoutStep,
    STEP_ORDER,
    Address,
    BillingAddress,
    ShippingMethod,
    PaymentMethodSelection,
    TaxQuote,
    Totals,
    CheckoutSession,
)
from storefront.checkout._schema import (
    COUNTRIES,
    PAYMENT_TYPES,
    format_postal_code,
    AddressModel,
    BillingAddressModel,
    ShippingMethodModel,
    PaymentMethodModel,
    TotalsModel,
    TaxQuoteModel,
    CheckoutSessionModel,
    SessionPatch,
    CreateOrderRequest,
)
from storefront.checkout._drafts import (
    DRAFT_PREFIX,
    draft_key,
    FormDrafts,
)
from storefront.checkout._store import (
    CheckoutSessionStore,
    parse_session,
)
from storefront.checkout._steps import CheckoutStepMachine

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
    "COUNTRIES",
    "PAYMENT_TYPES",
    "format_postal_code",
    "AddressModel",
    "BillingAddressModel",
    "ShippingMethodModel",
    "PaymentMethodModel",
    "TotalsModel",
    "TaxQuoteModel",
    "CheckoutSessionModel",
    "SessionPatch",
    "CreateOrderRequest",
    "DRAFT_PREFIX",
    "draft_key",
    "FormDrafts",
    "CheckoutSessionStore",
    "parse_session",
    "CheckoutStepMachine",
)
