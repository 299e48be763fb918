import asyncio

import pytest

from storefront.cart import CartStore
from storefront.notify import Notice, Notifier
from storefront.scope import ScopeClosed, ViewScope

from tests.fakes import FakeShop, eventually


class TestDebounce:
    async def test_only_last_call_runs(self):
        seen: list[str] = []
        scope = ViewScope()
        search = scope.debounce(seen.append, delay=0.02)

        for query in ("9", "94", "941", "94105"):
            search(query)
        await asyncio.sleep(0.05)

        assert seen == ["94105"]
        assert scope.pending_timers == 0

    async def test_coroutines_are_dispatched(self):
        seen: list[int] = []
        scope = ViewScope()

        async def save(value: int):
            seen.append(value)

        scope.debounce(save, delay=0.01)(7)
        await asyncio.sleep(0.03)
        await scope.wait()

        assert seen == [7]

    async def test_close_cancels_pending_call(self):
        seen: list[str] = []
        scope = ViewScope()
        search = scope.debounce(seen.append, delay=0.02)

        search("94105")
        scope.close()
        await asyncio.sleep(0.04)

        assert seen == []
        with pytest.raises(ScopeClosed):
            search("10001")


class TestThrottle:
    async def test_leading_and_trailing(self):
        seen: list[int] = []
        scope = ViewScope()
        bump = scope.throttle(seen.append, delay=0.03)

        bump(1)
        bump(2)
        bump(3)
        assert seen == [1]

        await asyncio.sleep(0.05)
        assert seen == [1, 3]
        scope.close()

    async def test_failing_callback_is_contained(self):
        scope = ViewScope()

        def broken(_):
            raise RuntimeError("render failed")

        scope.throttle(broken, delay=0.01)(1)
        scope.close()


class TestSubscriptions:
    async def test_no_notices_after_close(self):
        notifier = Notifier()
        seen: list[Notice] = []
        with ViewScope() as scope:
            scope.subscribe(notifier, seen.append)
            notifier.success("Added to cart", "Tour Tee has been added to your cart.")

        notifier.success("Cart updated", "Item quantity has been updated.")

        assert [n.title for n in seen] == ["Added to cart"]
        assert notifier.listener_count == 0


class TestDispatch:
    async def test_close_does_not_cancel_mutations(
        self,
        cart_store: CartStore,
        shop: FakeShop,
    ):
        gate = shop.hold("POST /cart/items")
        scope = ViewScope("product-page")

        task = scope.dispatch(cart_store.add_item("prod_1", "var_1", 1))
        await eventually(lambda: shop.calls["POST /cart/items"] == 1)
        scope.close()
        gate.set()

        assert (await task).unwrap().item_count == 1
        assert cart_store.confirmed.item_count == 1
