from __future__ import annotations

from collections.abc import AsyncIterator
from itertools import count

import httpx
import pytest
from fastapi import FastAPI

from storefront.cart import CartStore
from storefront.checkout import CheckoutSessionStore, CheckoutStepMachine, FormDrafts
from storefront.config import StorefrontConfig
from storefront.client import Storefront
from storefront.fetch import FetchCache, FetchPolicy
from storefront.notify import Notice, Notifier
from storefront.order import OrderCreation
from storefront.session import MemoryStorage, SessionContext
from storefront.transport import HttpTransport

from tests.fakes import FakeGateway, FakeShop, create_app


@pytest.fixture
def shop() -> FakeShop:
    shop = FakeShop()
    shop.add_product("prod_1", "var_1", "Tour Tee", "25.00", stock=10)
    shop.add_product("prod_2", "var_2", "Hoodie", "45.00", stock=5)
    return shop


@pytest.fixture
def app(shop: FakeShop) -> FastAPI:
    return create_app(shop)


@pytest.fixture
async def transport(app: FastAPI) -> AsyncIterator[HttpTransport]:
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://shop.test")
    yield HttpTransport(client)
    await client.aclose()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def session(storage: MemoryStorage) -> SessionContext:
    tokens = count(1)
    return SessionContext(storage, token_factory=lambda: f"sess_{next(tokens)}")


@pytest.fixture
def cache() -> FetchCache:
    return FetchCache(FetchPolicy().with_backoff(0))


@pytest.fixture
def notices() -> list[Notice]:
    return []


@pytest.fixture
def notifier(notices: list[Notice]) -> Notifier:
    notifier = Notifier()
    notifier.subscribe(notices.append)
    return notifier


@pytest.fixture
def cart_store(
    session: SessionContext,
    transport: HttpTransport,
    cache: FetchCache,
    notifier: Notifier,
) -> CartStore:
    return CartStore(session, transport, cache, notifier)


@pytest.fixture
def checkout_store(
    session: SessionContext,
    transport: HttpTransport,
    cache: FetchCache,
    storage: MemoryStorage,
    notifier: Notifier,
) -> CheckoutSessionStore:
    return CheckoutSessionStore(session, transport, cache, FormDrafts(storage), notifier)


@pytest.fixture
def steps(checkout_store: CheckoutSessionStore) -> CheckoutStepMachine:
    return CheckoutStepMachine(checkout_store)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def orders(
    session: SessionContext,
    transport: HttpTransport,
    gateway: FakeGateway,
    cart_store: CartStore,
    checkout_store: CheckoutSessionStore,
    notifier: Notifier,
) -> OrderCreation:
    return OrderCreation(session, transport, gateway, cart_store, checkout_store, notifier)


@pytest.fixture
async def storefront(
    transport: HttpTransport,
    gateway: FakeGateway,
    storage: MemoryStorage,
    notifier: Notifier,
) -> AsyncIterator[Storefront]:
    config = StorefrontConfig().with_backoff(0)
    async with Storefront(config, gateway, transport=transport, storage=storage, notifier=notifier) as shop:
        yield shop
