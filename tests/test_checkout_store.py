import asyncio
from decimal import Decimal

from kungfu import Ok, Error

from storefront.cart import CartStore, MutationState
from storefront.checkout import CheckoutSessionStore, CheckoutStep, draft_key
from storefront.errors import NotFoundError, ValidationError
from storefront.notify import Level
from storefront.session import MemoryStorage

from tests.fakes import FakeShop, SHIPPING_ADDRESS, eventually


EXPRESS = {
    "id": "express",
    "name": "Express Shipping",
    "price": "12.99",
    "estimatedDays": "2-3",
}


class TestGetOrCreate:
    async def test_unknown_session_is_created(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        result = await checkout_store.get_or_create("s-123")

        checkout = result.unwrap()
        assert checkout.id == "s-123"
        assert checkout.customer_email is None
        assert checkout.shipping_address is None
        assert checkout.step_completion == frozenset()
        assert checkout.totals.total == Decimal("0.00")
        assert shop.calls["GET /checkout/session"] == 1
        assert shop.calls["POST /checkout/session"] == 1
        assert shop.bodies["POST /checkout/session"] == [{"sessionId": "s-123"}]

    async def test_existing_session_is_loaded(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        shop.sessions["s-9"] = {"customerEmail": "sam@shopper.io", "stepCompletion": ["cart"]}

        checkout = (await checkout_store.get_or_create("s-9")).unwrap()

        assert checkout.customer_email == "sam@shopper.io"
        assert checkout.is_step_completed(CheckoutStep.CART)
        assert shop.calls["POST /checkout/session"] == 0

    async def test_defaults_to_identity_token(self, checkout_store: CheckoutSessionStore):
        checkout = (await checkout_store.get_or_create()).unwrap()

        assert checkout.id == "sess_1"

    async def test_concurrent_bootstrap_creates_once(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        gate = shop.hold("GET /checkout/session")
        tasks = [asyncio.create_task(checkout_store.get_or_create("s-1")) for _ in range(4)]
        await eventually(lambda: shop.calls["GET /checkout/session"] == 1)
        gate.set()

        results = await asyncio.gather(*tasks)

        assert {r.unwrap().id for r in results} == {"s-1"}
        assert shop.calls["GET /checkout/session"] == 1
        assert shop.calls["POST /checkout/session"] == 1

    async def test_failure_is_notified(self, checkout_store: CheckoutSessionStore, shop: FakeShop, notices):
        shop.fail("GET /checkout/session", 500)

        result = await checkout_store.get_or_create("s-1")

        assert isinstance(result, Error)
        assert notices[-1].title == "Failed to load checkout"
        assert notices[-1].level == Level.ERROR


class TestValidation:
    async def test_invalid_email_never_reaches_server(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()

        result = await checkout_store.update({"customerEmail": "not-an-email"})

        error = result.unwrap_err()
        assert isinstance(error, ValidationError)
        assert error.field == "customerEmail"
        assert shop.calls["PUT /checkout/session"] == 0

    async def test_postal_code_must_match_country(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()

        result = await checkout_store.update({"shippingAddress": {**SHIPPING_ADDRESS, "postalCode": "ABC"}})

        error = result.unwrap_err()
        assert error.message == "Please enter a valid postal/ZIP code for the selected country"
        assert shop.calls["PUT /checkout/session"] == 0

    async def test_bad_phone(self, checkout_store: CheckoutSessionStore):
        await checkout_store.get_or_create()

        result = await checkout_store.update({"shippingAddress": {**SHIPPING_ADDRESS, "phone": "123"}})

        assert result.unwrap_err().message == "Please enter a valid phone number"

    async def test_unknown_country(self, checkout_store: CheckoutSessionStore):
        await checkout_store.get_or_create()

        result = await checkout_store.update({"shippingAddress": {**SHIPPING_ADDRESS, "country": "ZZ"}})

        assert result.unwrap_err().message == "Please select a valid country"

    async def test_unknown_field(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()

        result = await checkout_store.update({"couponCode": "FREE"})

        assert isinstance(result.unwrap_err(), ValidationError)
        assert shop.calls["PUT /checkout/session"] == 0


class TestUpdate:
    async def test_update_replaced_by_server_response(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()

        checkout = (await checkout_store.update({"customerEmail": "jane@shopper.io"})).unwrap()

        assert checkout.customer_email == "jane@shopper.io"
        assert shop.sessions["sess_1"]["customerEmail"] == "jane@shopper.io"
        assert shop.bodies["PUT /checkout/session"][-1] == {
            "customerEmail": "jane@shopper.io",
            "stepCompletion": [],
        }

    async def test_update_loads_session_first(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        result = await checkout_store.update({"orderNotes": "Leave at the door"})

        assert result.unwrap().order_notes == "Leave at the door"
        assert shop.calls["POST /checkout/session"] == 1

    async def test_optimistic_merge_then_rollback(self, checkout_store: CheckoutSessionStore, shop: FakeShop, notices):
        await checkout_store.get_or_create()
        await checkout_store.update({"customerEmail": "jane@shopper.io"})
        gate = shop.hold("PUT /checkout/session")
        shop.fail("PUT /checkout/session", 500)

        task = asyncio.create_task(checkout_store.update({"customerEmail": "sam@shopper.io"}))
        await eventually(lambda: shop.calls["PUT /checkout/session"] == 2)
        assert checkout_store.session.customer_email == "sam@shopper.io"
        assert checkout_store.confirmed.customer_email == "jane@shopper.io"

        gate.set()
        result = await task

        assert isinstance(result, Error)
        assert checkout_store.session.customer_email == "jane@shopper.io"
        assert notices[-1].title == "Failed to save checkout"

    async def test_server_recomputes_totals(
        self,
        checkout_store: CheckoutSessionStore,
        cart_store: CartStore,
    ):
        await cart_store.fetch_cart()
        await cart_store.add_item("prod_1", "var_1", 2)
        await checkout_store.get_or_create()

        checkout = (await checkout_store.update({
            "shippingAddress": SHIPPING_ADDRESS,
            "billingAddress": {"sameAsShipping": True},
            "shippingMethod": EXPRESS,
        })).unwrap()

        assert checkout.totals.subtotal == Decimal("50.00")
        assert checkout.totals.shipping == Decimal("12.99")
        assert checkout.totals.tax == Decimal("4.38")
        assert checkout.totals.total == Decimal("67.37")
        assert checkout.totals.is_consistent
        assert checkout.billing_address.same_as_shipping
        assert checkout.shipping_address.city == "San Francisco"

    async def test_separate_billing_address(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()
        billing = {**SHIPPING_ADDRESS, "city": "Oakland", "postalCode": "94607", "sameAsShipping": False}

        checkout = (await checkout_store.update({"billingAddress": billing})).unwrap()

        assert not checkout.billing_address.same_as_shipping
        assert checkout.billing_address.address.city == "Oakland"
        assert shop.sessions["sess_1"]["billingAddress"]["sameAsShipping"] is False

    async def test_reload_failure_is_not_confirmed_locally(
        self,
        checkout_store: CheckoutSessionStore,
        shop: FakeShop,
    ):
        await checkout_store.get_or_create()
        reads = shop.calls["GET /checkout/session"]
        shop.bare.add("PUT /checkout/session")
        shop.fail("GET /checkout/session", 500)

        result = await checkout_store.update({"customerEmail": "jane@shopper.io"})

        assert isinstance(result, Ok)
        assert checkout_store.pending_mutations == ()
        assert checkout_store.last_mutation.state == MutationState.COMMITTED

        await checkout_store.drain()

        assert shop.calls["GET /checkout/session"] == reads + 2
        assert checkout_store.confirmed.customer_email == "jane@shopper.io"

    async def test_deleted_server_session_is_recreated(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()
        del shop.sessions["sess_1"]

        result = await checkout_store.update({"orderNotes": "hi"})

        assert isinstance(result.unwrap_err(), NotFoundError)
        assert "sess_1" in shop.sessions
        assert checkout_store.session.id == "sess_1"


class TestStepCompletion:
    async def test_completion_is_sent_with_updates(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()

        checkout_store.mark_step_completed(CheckoutStep.CART)
        await checkout_store.update({"termsAccepted": True})

        assert shop.bodies["PUT /checkout/session"][-1]["stepCompletion"] == ["cart"]
        assert checkout_store.session.terms_accepted is True

    async def test_completion_never_shrinks(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()
        checkout_store.mark_step_completed(CheckoutStep.SHIPPING)

        shop.sessions["sess_1"]["stepCompletion"] = []
        checkout = (await checkout_store.get_or_create(force=True)).unwrap()

        assert checkout.is_step_completed(CheckoutStep.SHIPPING)
        assert checkout_store.is_step_completed(CheckoutStep.SHIPPING)

    async def test_marking_is_local_only(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()
        before = dict(shop.calls)

        checkout_store.mark_step_completed(CheckoutStep.CART)
        checkout_store.mark_step_completed(CheckoutStep.CART)

        assert dict(shop.calls) == before
        assert checkout_store.completed_steps == frozenset({CheckoutStep.CART})


class TestDrafts:
    async def test_update_with_step_saves_draft(
        self,
        checkout_store: CheckoutSessionStore,
        storage: MemoryStorage,
    ):
        await checkout_store.get_or_create()

        await checkout_store.update({"shippingAddress": SHIPPING_ADDRESS}, step=CheckoutStep.SHIPPING)

        draft = await checkout_store.drafts.load(CheckoutStep.SHIPPING)
        assert draft["shippingAddress"]["postalCode"] == "94105"
        assert draft_key(CheckoutStep.SHIPPING) in storage.snapshot()

    async def test_invalid_patch_saves_no_draft(self, checkout_store: CheckoutSessionStore):
        await checkout_store.get_or_create()

        await checkout_store.update({"customerEmail": "nope"}, step=CheckoutStep.SHIPPING)

        assert await checkout_store.drafts.load(CheckoutStep.SHIPPING) == {}


class TestLookups:
    async def test_shipping_methods_cached_per_address(
        self,
        checkout_store: CheckoutSessionStore,
        shop: FakeShop,
    ):
        methods = (await checkout_store.shipping_methods(SHIPPING_ADDRESS)).unwrap()
        await checkout_store.shipping_methods(SHIPPING_ADDRESS)

        assert [m.id for m in methods] == ["standard", "express", "overnight"]
        assert methods[0].is_default
        assert methods[2].estimated_days == "1"
        assert shop.calls["POST /checkout/shipping-methods"] == 1

        await checkout_store.shipping_methods({**SHIPPING_ADDRESS, "postalCode": "10001", "state": "NY"})
        assert shop.calls["POST /checkout/shipping-methods"] == 2

    async def test_free_standard_shipping_over_fifty(
        self,
        checkout_store: CheckoutSessionStore,
        cart_store: CartStore,
    ):
        await cart_store.fetch_cart()
        cart = (await cart_store.add_item("prod_1", "var_1", 2)).unwrap()

        methods = (await checkout_store.shipping_methods(SHIPPING_ADDRESS, cart.items)).unwrap()

        assert methods[0].price == Decimal("0.00")

    async def test_shipping_methods_follow_the_cart(
        self,
        checkout_store: CheckoutSessionStore,
        cart_store: CartStore,
        shop: FakeShop,
    ):
        empty = (await checkout_store.shipping_methods(SHIPPING_ADDRESS)).unwrap()
        await cart_store.fetch_cart()
        cart = (await cart_store.add_item("prod_1", "var_1", 2)).unwrap()

        filled = (await checkout_store.shipping_methods(SHIPPING_ADDRESS, cart.items)).unwrap()

        assert empty[0].price == Decimal("5.99")
        assert filled[0].price == Decimal("0.00")
        assert shop.calls["POST /checkout/shipping-methods"] == 2

    async def test_shipping_methods_follow_the_country(
        self,
        checkout_store: CheckoutSessionStore,
        shop: FakeShop,
    ):
        await checkout_store.shipping_methods(SHIPPING_ADDRESS)
        abroad = (await checkout_store.shipping_methods({
            **SHIPPING_ADDRESS,
            "country": "DE",
        })).unwrap()

        assert abroad[0].price == Decimal("25.00")
        assert shop.calls["POST /checkout/shipping-methods"] == 2

    async def test_calculate_tax(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        quote = (await checkout_store.calculate_tax(SHIPPING_ADDRESS, Decimal("50.00"))).unwrap()
        again = (await checkout_store.calculate_tax(SHIPPING_ADDRESS, "50")).unwrap()

        assert quote.amount == Decimal("4.38")
        assert quote.rate == Decimal("0.0875")
        assert again == quote
        assert shop.calls["POST /checkout/calculate-tax"] == 1

        await checkout_store.calculate_tax(SHIPPING_ADDRESS, Decimal("60.00"))
        assert shop.calls["POST /checkout/calculate-tax"] == 2

    async def test_invalid_address_rejected_locally(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        result = await checkout_store.calculate_tax({**SHIPPING_ADDRESS, "postalCode": "x"}, 10)

        assert isinstance(result.unwrap_err(), ValidationError)
        assert shop.calls["POST /checkout/calculate-tax"] == 0


class TestLifecycle:
    async def test_discard_deletes_server_session(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()
        checkout_store.mark_step_completed(CheckoutStep.CART)

        result = await checkout_store.discard()

        assert isinstance(result, Ok)
        assert "sess_1" not in shop.sessions
        assert checkout_store.session is None
        assert checkout_store.completed_steps == frozenset()

    async def test_get_after_reset_goes_to_server(self, checkout_store: CheckoutSessionStore, shop: FakeShop):
        await checkout_store.get_or_create()
        checkout_store.reset()

        await checkout_store.get_or_create()

        assert shop.calls["GET /checkout/session"] == 2
