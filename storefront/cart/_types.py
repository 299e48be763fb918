"""
Cart types — domain values and their wire payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from storefront._types import ZERO, money


MAX_ITEM_QUANTITY = 50


# ═══════════════════════════════════════════════════════════════════════════════
# Domain
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartItem:
    """
    One cart line.

    max_allowed_quantity = min(50, available_stock), as reported by the server.
    """

    id: str
    product_id: str
    variant_id: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    available_stock: int = 0
    max_allowed_quantity: int = MAX_ITEM_QUANTITY
    name: str | None = None

    def with_quantity(self, quantity: int) -> CartItem:
        return replace(
            self,
            quantity=quantity,
            line_total=(self.unit_price * quantity).quantize(Decimal("0.01")),
        )

    def matches(self, product_id: str, variant_id: str) -> bool:
        return self.product_id == product_id and self.variant_id == variant_id


@dataclass(frozen=True, slots=True)
class CartSummary:
    item_count: int = 0
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    shipping: Decimal = ZERO
    total: Decimal = ZERO

    @classmethod
    def of(cls, items: tuple[CartItem, ...]) -> CartSummary:
        """Summary derived from items alone (no tax or shipping)."""
        subtotal = sum((i.line_total for i in items), ZERO)
        return cls(
            item_count=sum(i.quantity for i in items),
            subtotal=subtotal,
            total=subtotal,
        )


@dataclass(frozen=True, slots=True)
class Cart:
    """
    Client view of the server cart.

    Note: summary is server-authoritative. Optimistic patches only touch
    item quantities, line totals and summary.item_count, so subtotal may
    lag until the server answers.
    """

    items: tuple[CartItem, ...] = ()
    summary: CartSummary = CartSummary()

    @classmethod
    def empty(cls) -> Cart:
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items)

    @property
    def lines_total(self) -> Decimal:
        return sum((i.line_total for i in self.items), ZERO)

    def find(self, item_id: str) -> CartItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def find_variant(self, product_id: str, variant_id: str) -> CartItem | None:
        return next((i for i in self.items if i.matches(product_id, variant_id)), None)

    def with_items(self, items: tuple[CartItem, ...]) -> Cart:
        count = sum(i.quantity for i in items)
        return replace(self, items=items, summary=replace(self.summary, item_count=count))

    def with_item(self, item: CartItem) -> Cart:
        """Replace the line with the same id, or append it."""
        if self.find(item.id) is None:
            return self.with_items((*self.items, item))
        return self.with_items(tuple(item if i.id == item.id else i for i in self.items))

    def with_quantity(self, item_id: str, quantity: int) -> Cart:
        """Set a line's quantity; 0 removes it. Unknown ids are ignored."""
        item = self.find(item_id)
        if item is None:
            return self
        if quantity <= 0:
            return self.without(item_id)
        return self.with_item(item.with_quantity(quantity))

    def without(self, item_id: str) -> Cart:
        return self.with_items(tuple(i for i in self.items if i.id != item_id))


# ═══════════════════════════════════════════════════════════════════════════════
# Wire Payloads
# ═══════════════════════════════════════════════════════════════════════════════


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CartItemPayload(_Payload):
    """
    Accepts the flat shape ({productId, variantId, unitPrice, lineTotal}) and
    the nested one ({product: {id, name}, variant: {id, name}, price, total}).
    """

    id: str
    product_id: str
    variant_id: str
    quantity: int = Field(ge=0)
    unit_price: Decimal
    line_total: Decimal | None = None
    available_stock: int = 0
    max_quantity: int | None = None
    name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("product"), dict):
            return data
        product = data["product"]
        variant = data.get("variant") or {}
        flat = dict(data)
        flat.setdefault("productId", product.get("id"))
        flat.setdefault("variantId", variant.get("id"))
        flat.setdefault("unitPrice", data.get("price"))
        flat.setdefault("lineTotal", data.get("total"))
        if "name" not in flat:
            parts = [p for p in (product.get("name"), variant.get("name")) if p]
            flat["name"] = " - ".join(parts) or None
        return flat

    def to_domain(self) -> CartItem:
        unit_price = money(self.unit_price)
        if self.max_quantity is not None:
            max_allowed = self.max_quantity
        elif self.available_stock > 0:
            max_allowed = min(MAX_ITEM_QUANTITY, self.available_stock)
        else:
            max_allowed = MAX_ITEM_QUANTITY
        return CartItem(
            id=self.id,
            product_id=self.product_id,
            variant_id=self.variant_id,
            quantity=self.quantity,
            unit_price=unit_price,
            line_total=(
                money(self.line_total)
                if self.line_total is not None
                else money(unit_price * self.quantity)
            ),
            available_stock=self.available_stock,
            max_allowed_quantity=max_allowed,
            name=self.name,
        )


class CartSummaryPayload(_Payload):
    item_count: int = 0
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    shipping: Decimal = ZERO
    total: Decimal = ZERO

    def to_domain(self) -> CartSummary:
        return CartSummary(
            item_count=self.item_count,
            subtotal=money(self.subtotal),
            tax=money(self.tax),
            shipping=money(self.shipping),
            total=money(self.total),
        )


class CartPayload(_Payload):
    items: list[CartItemPayload] = Field(default_factory=list)
    summary: CartSummaryPayload | None = None

    def to_domain(self) -> Cart:
        items = tuple(i.to_domain() for i in self.items)
        summary = self.summary.to_domain() if self.summary else CartSummary.of(items)
        return Cart(items=items, summary=summary)

    @classmethod
    def is_cart(cls, body: Any) -> bool:
        """True when a response body carries a full cart."""
        return isinstance(body, dict) and isinstance(body.get("items"), list)


class AddItemRequest(_Payload):
    product_id: str = Field(min_length=1)
    variant_id: str = Field(min_length=1)
    quantity: int = Field(ge=1, le=MAX_ITEM_QUANTITY)


class UpdateItemRequest(_Payload):
    quantity: int = Field(ge=0, le=MAX_ITEM_QUANTITY)


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
)
