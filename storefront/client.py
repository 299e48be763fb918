"""
Storefront — one shopper's cart and checkout, wired together.

    async with await Storefront.open(StorefrontConfig.from_env(), gateway) as shop:
        await shop.cart.add_item("prod_1", "var_1", 2)
        await shop.checkout_session()
        await shop.checkout.update({"customerEmail": "jane@example.com"})
        match await shop.place_order("pm_123"):
            case Ok(order): print(order.order_number)
            case Error(e): print(e.message)

Every piece of state (session identity, request cache, stores) belongs to the
Storefront instance; two instances never share anything.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from kungfu import Result, Ok, Error

from storefront.cart import CartStore
from storefront.checkout import (
    Address,
    AddressModel,
    CheckoutSession,
    CheckoutSessionStore,
    CheckoutStepMachine,
    FormDrafts,
    ShippingMethod,
)
from storefront.config import StorefrontConfig
from storefront.errors import StorefrontError
from storefront.fetch import FetchCache, FetchPolicy
from storefront.notify import Notifier
from storefront.order import Order, OrderCreation, PaymentGateway
from storefront.session import MemoryStorage, SessionContext, SQLAlchemyStorage, Storage
from storefront.transport import HttpTransport


logger = structlog.get_logger(__name__)


def fetch_policy(config: StorefrontConfig) -> FetchPolicy:
    return FetchPolicy(
        ttl=config.cache_ttl,
        max_retries=config.max_retries,
        backoff_initial=config.backoff_initial,
        backoff_max=config.backoff_max,
    )


class Storefront:
    def __init__(
        self,
        config: StorefrontConfig,
        gateway: PaymentGateway,
        transport: HttpTransport | None = None,
        storage: Storage | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.config = config
        self.notifier = notifier or Notifier()
        self.storage = storage if storage is not None else MemoryStorage()
        self.transport = transport or HttpTransport.from_config(config)
        self._owns_transport = transport is None
        self._owned_storage: SQLAlchemyStorage | None = None

        self.cache = FetchCache(fetch_policy(config))
        self.session = SessionContext(
            self.storage,
            storage_key=config.session_storage_key,
            header=config.session_header,
        )
        self.cart = CartStore(self.session, self.transport, self.cache, self.notifier)
        self.checkout = CheckoutSessionStore(
            self.session,
            self.transport,
            self.cache,
            FormDrafts(self.storage),
            self.notifier,
        )
        self.steps = CheckoutStepMachine(self.checkout)
        self.orders = OrderCreation(
            self.session,
            self.transport,
            gateway,
            self.cart,
            self.checkout,
            self.notifier,
        )

    @classmethod
    async def open(
        cls,
        config: StorefrontConfig,
        gateway: PaymentGateway,
        **kwargs: Any,
    ) -> Storefront:
        """
        Build a Storefront, connecting durable storage when config.storage_url is set.

        Example:
            shop = await Storefront.open(config.with_storage_url("sqlite+aiosqlite:///shop.db"), gateway)
        """
        owned: SQLAlchemyStorage | None = None
        if kwargs.get("storage") is None and config.storage_url:
            owned = await SQLAlchemyStorage.connect(config.storage_url)
            kwargs["storage"] = owned
        shop = cls(config, gateway, **kwargs)
        shop._owned_storage = owned
        return shop

    async def checkout_session(self) -> Result[CheckoutSession, StorefrontError]:
        """Load or create the checkout session for the current identity."""
        return await self.checkout.get_or_create()

    async def shipping_methods(
        self,
        address: Address | AddressModel | Mapping[str, Any],
    ) -> Result[tuple[ShippingMethod, ...], StorefrontError]:
        return await self.checkout.shipping_methods(address, self.cart.cart.items)

    async def place_order(
        self,
        payment_method_id: str,
        save_payment_method: bool = False,
    ) -> Result[Order, StorefrontError]:
        """Create the order for the current checkout session."""
        match await self.checkout_session():
            case Error(err):
                return Error(err)
            case Ok(checkout):
                session_id = checkout.id

        await self.cart.drain()
        await self.checkout.drain()
        result = await self.orders.create_order(session_id, payment_method_id, save_payment_method)
        if isinstance(result, Ok):
            self.steps.finish()
        return result

    async def drain(self) -> None:
        await self.cart.drain()
        await self.checkout.drain()

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_transport:
            await self.transport.aclose()
        if self._owned_storage is not None:
            await self._owned_storage.dispose()
        logger.debug("storefront_closed")

    async def __aenter__(self) -> Storefront:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = (
    "Storefront",
    "fetch_policy",
)
