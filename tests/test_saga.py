from kungfu import Ok, Error, LazyCoroResult
from combinators import lift as L

from storefront import saga as S
from storefront.saga._run import run_compensators


def fails(error):
    async def run():
        return Error(error)
    return LazyCoroResult(run)


class TestLocal:
    async def test_local_then_success_keeps_patch(self):
        state = {"qty": 1}

        def apply():
            state["qty"] = 3
            return 1

        saga = S.local(apply, undo=lambda old: state.update(qty=old)).then(
            lambda _: S.step(L.pure("confirmed"), name="dispatch")
        )
        result = (await S.run_chain(saga)).unwrap()

        assert result.value == "confirmed"
        assert result.steps_executed == 2
        assert result.compensators_recorded == 1
        assert state == {"qty": 3}

    async def test_failed_dispatch_rolls_back(self):
        state = {"qty": 1}

        def apply():
            state["qty"] = 3
            return 1

        saga = S.local(apply, undo=lambda old: state.update(qty=old)).then(
            lambda _: S.step(fails("Only 2 items available in stock"), name="dispatch")
        )
        failed = (await S.run_chain(saga)).unwrap_err()

        assert failed.error == "Only 2 items available in stock"
        assert failed.step_failed == 2
        assert failed.compensators_run == 1
        assert failed.rollback_complete
        assert state == {"qty": 1}


class TestFromAsync:
    async def test_exception_becomes_error(self):
        async def charge():
            raise RuntimeError("card declined")

        failed = (await S.run(S.from_async(charge, on_error=str))).unwrap_err()

        assert failed.error == "card declined"
        assert failed.compensators_run == 0

    async def test_value_is_passed_to_next_step(self):
        async def charge():
            return "pi_1"

        saga = S.from_async(charge, on_error=str).then(
            lambda payment: S.step(L.pure(f"order for {payment}"))
        )

        assert (await S.run_chain(saga)).unwrap().value == "order for pi_1"


class TestCompensators:
    async def test_failing_compensator_is_counted(self):
        undone: list[str] = []

        async def broken(_):
            raise RuntimeError("undo failed")

        async def record(value):
            undone.append(value)

        ran, failed = await run_compensators([("first", "a", record), ("second", "b", broken)])

        assert (ran, failed) == (1, 1)
        assert undone == ["a"]

    async def test_single_step_failure_runs_nothing(self):
        undone: list[str] = []

        async def record(value):
            undone.append(value)

        result = await S.run(S.step(fails("boom"), compensate=record))

        assert result.unwrap_err().error == "boom"
        assert undone == []
