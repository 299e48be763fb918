"""
Checkout schemas — wire payloads and form validation.

Validation runs before any network call:

    patch = SessionPatch.model_validate({"customerEmail": "jane@example.com"})
    patch = SessionPatch.model_validate({"shippingAddress": {...}})   # raises on bad postal code

Response payloads convert to domain values with to_domain().
"""

from __future__ import annotations

import re
from dataclasses import replace
from decimal import Decimal
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from storefront._types import ZERO, money
from storefront.checkout._types import (
    Address,
    BillingAddress,
    CheckoutSession,
    CheckoutStep,
    PaymentMethodSelection,
    ShippingMethod,
    TaxQuote,
    Totals,
)


COUNTRIES = ("US", "CA", "GB", "AU", "DE", "FR", "JP")
PAYMENT_TYPES = ("card", "paypal", "apple_pay", "google_pay")

POSTAL_PATTERNS: dict[str, re.Pattern[str]] = {
    "US": re.compile(r"^\d{5}(-\d{4})?$"),
    "CA": re.compile(r"^[A-Za-z]\d[A-Za-z] \d[A-Za-z]\d$"),
    "GB": re.compile(r"^[A-Z]{1,2}\d[A-Z\d]? \d[A-Z]{2}$", re.IGNORECASE),
}
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]{10,}$")


def format_postal_code(code: str, country: str) -> str:
    """
    Normalize a postal code the way the address form displays it.

    Example:
        format_postal_code("k1a0b1", "CA")     # "K1A 0B1"
        format_postal_code("123456789", "US")  # "12345-6789"
    """
    match country:
        case "CA":
            compact = re.sub(r"\s+", "", code).upper()
            return f"{compact[:3]} {compact[3:]}" if len(compact) == 6 else compact
        case "US":
            digits = re.sub(r"\D", "", code)
            return f"{digits[:5]}-{digits[5:]}" if len(digits) == 9 else code.strip()
        case "GB":
            return code.strip().upper()
        case _:
            return code.strip()


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ═══════════════════════════════════════════════════════════════════════════════
# Addresses
# ═══════════════════════════════════════════════════════════════════════════════


class AddressModel(_Model):
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    company: str | None = Field(default=None, max_length=100)
    address1: str = Field(min_length=1, max_length=100)
    address2: str | None = Field(default=None, max_length=100)
    city: str = Field(min_length=1, max_length=50)
    state: str = Field(min_length=1, max_length=50)
    postal_code: str = Field(min_length=1, max_length=20)
    country: str
    phone: str | None = None

    @field_validator("country")
    @classmethod
    def _known_country(cls, value: str) -> str:
        if value not in COUNTRIES:
            raise PydanticCustomError("country", "Please select a valid country")
        return value

    @field_validator("phone")
    @classmethod
    def _phone_format(cls, value: str | None) -> str | None:
        if value in (None, ""):
            return None
        if not PHONE_PATTERN.match(value):
            raise PydanticCustomError("phone", "Please enter a valid phone number")
        return value

    @model_validator(mode="after")
    def _postal_matches_country(self) -> AddressModel:
        pattern = POSTAL_PATTERNS.get(self.country)
        if pattern is not None and not pattern.match(self.postal_code):
            raise PydanticCustomError(
                "postal_code",
                "Please enter a valid postal/ZIP code for the selected country",
            )
        return self

    def to_domain(self) -> Address:
        return Address(
            first_name=self.first_name,
            last_name=self.last_name,
            company=self.company or None,
            address1=self.address1,
            address2=self.address2 or None,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
            phone=self.phone,
        )

    @classmethod
    def from_domain(cls, address: Address) -> AddressModel:
        return cls(
            first_name=address.first_name,
            last_name=address.last_name,
            company=address.company,
            address1=address.address1,
            address2=address.address2,
            city=address.city,
            state=address.state,
            postal_code=address.postal_code,
            country=address.country,
            phone=address.phone,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BillingAddressModel(_Model):
    """
    Either {"sameAsShipping": true} or a full address with
    {"sameAsShipping": false, ...address fields}.
    """

    same_as_shipping: bool = True
    address: AddressModel | None = None

    @model_validator(mode="before")
    @classmethod
    def _nest(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "address" in data:
            return data
        same = data.get("sameAsShipping", data.get("same_as_shipping", True))
        if same:
            return {"sameAsShipping": True}
        fields = {k: v for k, v in data.items() if k not in ("sameAsShipping", "same_as_shipping")}
        return {"sameAsShipping": False, "address": fields or None}

    @model_validator(mode="after")
    def _address_required(self) -> BillingAddressModel:
        if not self.same_as_shipping and self.address is None:
            raise PydanticCustomError("billing", "Billing address is required")
        return self

    def to_domain(self) -> BillingAddress:
        if self.same_as_shipping or self.address is None:
            return BillingAddress(same_as_shipping=True)
        return BillingAddress(same_as_shipping=False, address=self.address.to_domain())

    @classmethod
    def from_domain(cls, billing: BillingAddress) -> BillingAddressModel:
        if billing.same_as_shipping or billing.address is None:
            return cls(same_as_shipping=True)
        return cls(same_as_shipping=False, address=AddressModel.from_domain(billing.address))

    def to_wire(self) -> dict[str, Any]:
        if self.same_as_shipping or self.address is None:
            return {"sameAsShipping": True}
        return {"sameAsShipping": False, **self.address.to_wire()}


# ═══════════════════════════════════════════════════════════════════════════════
# Methods
# ═══════════════════════════════════════════════════════════════════════════════


class ShippingMethodModel(_Model):
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    price: Decimal = ZERO
    estimated_days: str = ""
    is_default: bool = False

    @field_validator("estimated_days", mode="before")
    @classmethod
    def _days_as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def to_domain(self) -> ShippingMethod:
        return ShippingMethod(
            id=self.id,
            name=self.name,
            description=self.description,
            price=money(self.price),
            estimated_days=self.estimated_days,
            is_default=self.is_default,
        )

    @classmethod
    def from_domain(cls, method: ShippingMethod) -> ShippingMethodModel:
        return cls(
            id=method.id,
            name=method.name,
            description=method.description,
            price=method.price,
            estimated_days=method.estimated_days,
            is_default=method.is_default,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PaymentMethodModel(_Model):
    type: str
    payment_method_id: str | None = None
    save_payment_method: bool = False

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        if value not in PAYMENT_TYPES:
            raise PydanticCustomError("payment_type", "Please select a payment method")
        return value

    def to_domain(self) -> PaymentMethodSelection:
        return PaymentMethodSelection(
            type=self.type,
            payment_method_id=self.payment_method_id,
            save_payment_method=self.save_payment_method,
        )

    @classmethod
    def from_domain(cls, method: PaymentMethodSelection) -> PaymentMethodModel:
        return cls(
            type=method.type,
            payment_method_id=method.payment_method_id,
            save_payment_method=method.save_payment_method,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TotalsModel(_Model):
    subtotal: Decimal = ZERO
    shipping: Decimal = ZERO
    tax: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO

    def to_domain(self) -> Totals:
        return Totals(
            subtotal=money(self.subtotal),
            shipping=money(self.shipping),
            tax=money(self.tax),
            discount=money(self.discount),
            total=money(self.total),
        )


class TaxQuoteModel(_Model):
    """Accepts {"tax": 8.75, "rate": 0.0875} and {"tax": {"amount", "rate"}}."""

    amount: Decimal = ZERO
    rate: Decimal = Decimal(0)

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        tax = data.get("tax")
        if isinstance(tax, dict):
            return tax
        if tax is not None:
            return {"amount": tax, "rate": data.get("rate", 0)}
        return data

    def to_domain(self) -> TaxQuote:
        return TaxQuote(rate=Decimal(self.rate), amount=money(self.amount))


# ═══════════════════════════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════════════════════════


def _steps(values: list[str]) -> frozenset[CheckoutStep]:
    known = {s.value: s for s in CheckoutStep}
    return frozenset(known[v] for v in values if v in known)


class CheckoutSessionModel(_Model):
    """Server representation. Extra fields (timestamps, expiry) are ignored."""

    id: str
    customer_email: str | None = None
    shipping_address: AddressModel | None = None
    billing_address: BillingAddressModel | None = None
    shipping_method: ShippingMethodModel | None = None
    payment_method: PaymentMethodModel | None = None
    order_notes: str | None = None
    terms_accepted: bool = False
    totals: TotalsModel = Field(default_factory=TotalsModel)
    step_completion: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("session"), dict):
            return data["session"]
        return data

    @field_validator("step_completion", mode="before")
    @classmethod
    def _completion_list(cls, value: Any) -> Any:
        # Stored either as a list of steps or as {"shipping": true, ...}.
        if isinstance(value, dict):
            return [k for k, done in value.items() if done]
        return value or []

    def to_domain(self) -> CheckoutSession:
        return CheckoutSession(
            id=self.id,
            customer_email=self.customer_email,
            shipping_address=self.shipping_address.to_domain() if self.shipping_address else None,
            billing_address=self.billing_address.to_domain() if self.billing_address else None,
            shipping_method=self.shipping_method.to_domain() if self.shipping_method else None,
            payment_method=self.payment_method.to_domain() if self.payment_method else None,
            order_notes=self.order_notes,
            terms_accepted=self.terms_accepted,
            totals=self.totals.to_domain(),
            step_completion=_steps(self.step_completion),
        )

    @classmethod
    def is_session(cls, body: Any) -> bool:
        if not isinstance(body, dict):
            return False
        inner = body.get("session", body)
        return isinstance(inner, dict) and isinstance(inner.get("id"), str)


class SessionPatch(_Model):
    """
    Partial update of a checkout session. Unknown fields are rejected.

    Only the fields the caller set are sent and merged.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    customer_email: EmailStr | None = None
    shipping_address: AddressModel | None = None
    billing_address: BillingAddressModel | None = None
    shipping_method: ShippingMethodModel | None = None
    payment_method: PaymentMethodModel | None = None
    order_notes: str | None = None
    terms_accepted: bool | None = None

    @field_validator("customer_email", mode="before")
    @classmethod
    def _email_length(cls, value: Any) -> Any:
        if isinstance(value, str) and len(value) > 100:
            raise PydanticCustomError("email", "Email must be less than 100 characters")
        return value

    @field_validator("order_notes")
    @classmethod
    def _notes_length(cls, value: str | None) -> str | None:
        if value is not None and len(value) > 500:
            raise PydanticCustomError("order_notes", "Order notes must be less than 500 characters")
        return value

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set

    def apply(self, session: CheckoutSession) -> CheckoutSession:
        """Merge the set fields into a session; totals stay server-owned."""
        changes: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name == "terms_accepted":
                value = bool(value)
            changes[name] = value.to_domain() if isinstance(value, _Model) else value
        return replace(session, **changes) if changes else session

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            alias = to_camel(name)
            if value is None:
                body[alias] = None
            elif hasattr(value, "to_wire"):
                body[alias] = value.to_wire()
            else:
                body[alias] = value
        return body


class ShippingQuoteRequest(_Model):
    address: AddressModel
    items: list[dict[str, Any]] = Field(default_factory=list)


class TaxRequest(_Model):
    address: AddressModel
    amount: Decimal = Field(ge=0)


class CreateOrderRequest(_Model):
    session_id: str = Field(min_length=1)
    payment_method_id: str = Field(min_length=1)
    save_payment_method: bool = False
    payment_id: str | None = None


__all__ = (
    "COUNTRIES",
    "PAYMENT_TYPES",
    "POSTAL_PATTERNS",
    "format_postal_code",
    "AddressModel",
    "BillingAddressModel",
    "ShippingMethodModel",
    "PaymentMethodModel",
    "TotalsModel",
    "TaxQuoteModel",
    "CheckoutSessionModel",
    "SessionPatch",
    "ShippingQuoteRequest",
    "TaxRequest",
    "CreateOrderRequest",
)
