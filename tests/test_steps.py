import pytest
from kungfu import Ok, Error

from storefront.checkout import CheckoutSessionStore, CheckoutStep, CheckoutStepMachine, STEP_ORDER
from storefront.errors import ValidationError

from tests.fakes import FakeShop


class TestGating:
    def test_starts_at_cart(self, steps: CheckoutStepMachine):
        assert steps.current_step == CheckoutStep.CART
        assert steps.accessible_steps() == (CheckoutStep.CART,)

    def test_successor_of_completed_step_unlocks(self, steps: CheckoutStepMachine):
        assert not steps.can_access_step(CheckoutStep.SHIPPING)

        steps.complete_step(CheckoutStep.CART)

        assert steps.can_access_step(CheckoutStep.SHIPPING)
        assert not steps.can_access_step(CheckoutStep.PAYMENT)

    def test_cannot_skip_ahead(self, steps: CheckoutStepMachine):
        steps.complete_step(CheckoutStep.CART)

        result = steps.go_to(CheckoutStep.PAYMENT)

        assert isinstance(result.unwrap_err(), ValidationError)
        assert steps.current_step == CheckoutStep.CART

    def test_complete_is_idempotent(self, steps: CheckoutStepMachine):
        first = steps.complete_step(CheckoutStep.CART)
        second = steps.complete_step(CheckoutStep.CART)

        assert first == second == frozenset({CheckoutStep.CART})

    def test_accessible_steps_only_grow(self, steps: CheckoutStepMachine):
        seen: list[set[CheckoutStep]] = []
        for step in STEP_ORDER[:-1]:
            steps.complete_step(step)
            seen.append(set(steps.accessible_steps()))
            steps.go_to(step)

        for earlier, later in zip(seen, seen[1:]):
            assert earlier <= later

    def test_can_go_back_to_completed_step(self, steps: CheckoutStepMachine):
        steps.next_step()
        steps.next_step()

        assert steps.current_step == CheckoutStep.PAYMENT
        assert steps.go_to(CheckoutStep.CART) == Ok(CheckoutStep.CART)
        assert steps.can_access_step(CheckoutStep.PAYMENT)


class TestProgress:
    def test_next_step_walks_the_flow(self, steps: CheckoutStepMachine):
        visited = [steps.current_step]
        for _ in range(3):
            visited.append(steps.next_step().unwrap())

        assert tuple(visited) == STEP_ORDER
        assert steps.is_finished
        assert steps.completed_steps == frozenset(STEP_ORDER[:-1])

    def test_confirmation_is_terminal(self, steps: CheckoutStepMachine):
        for _ in range(3):
            steps.next_step()

        assert steps.accessible_steps() == (CheckoutStep.CONFIRMATION,)
        assert isinstance(steps.go_to(CheckoutStep.CART), Error)
        assert steps.next_step() == Ok(CheckoutStep.CONFIRMATION)

    def test_finish_then_reset(self, steps: CheckoutStepMachine):
        steps.finish()
        assert steps.is_finished

        steps.reset()
        assert steps.current_step == CheckoutStep.CART


class TestPersistence:
    async def test_completion_survives_reload(
        self,
        checkout_store: CheckoutSessionStore,
        shop: FakeShop,
    ):
        await checkout_store.get_or_create()
        steps = CheckoutStepMachine(checkout_store)
        steps.next_step()
        await checkout_store.update({"orderNotes": "gift"})

        checkout_store.reset()
        await checkout_store.get_or_create()
        reloaded = CheckoutStepMachine(checkout_store)

        assert reloaded.can_access_step(CheckoutStep.SHIPPING)
        assert shop.sessions["sess_1"]["stepCompletion"] == ["cart"]

    async def test_no_network_calls(self, steps: CheckoutStepMachine, shop: FakeShop):
        steps.next_step()
        steps.go_to(CheckoutStep.CART)
        steps.can_access_step(CheckoutStep.PAYMENT)

        assert sum(shop.calls.values()) == 0


@pytest.mark.parametrize(
    ("completed", "step", "expected"),
    [
        ((), CheckoutStep.CART, True),
        ((), CheckoutStep.SHIPPING, False),
        ((CheckoutStep.CART,), CheckoutStep.SHIPPING, True),
        ((CheckoutStep.CART,), CheckoutStep.CONFIRMATION, False),
        ((CheckoutStep.CART, CheckoutStep.SHIPPING), CheckoutStep.PAYMENT, True),
        ((CheckoutStep.CART, CheckoutStep.SHIPPING, CheckoutStep.PAYMENT), CheckoutStep.CONFIRMATION, True),
    ],
)
def test_access_table(steps: CheckoutStepMachine, completed, step, expected):
    for s in completed:
        steps.complete_step(s)

    assert steps.can_access_step(step) is expected
