# Test file for nested, revertible transactions

import asyncio
import pytest
from campack.core.exceptions import TransactError
from campack.core.transact import Transact, TransactEnabled


class Counter(TransactEnabled):
    """Minimal holder of revertible state"""

    _holder = "Counter"

    def __init__(self, transact):
        self._transact = transact
        self.values = []

    def _get_managed_state(self):
        return list(self.values)

    async def _set_managed_state(self, state, declined):
        if state is not None:
            self.values = state


@pytest.mark.asyncio
async def test_begin_same_caller_twice_fails():
    """Test that a caller holds at most one transaction per holder"""
    transact = Transact()
    assert transact.begin("tester", "holder", {})
    with pytest.raises(TransactError):
        transact.begin("tester", "holder", {})
    # Another holder is fine
    assert transact.begin("tester", "other", {})


@pytest.mark.asyncio
async def test_state_is_deep_copied():
    """Test that plain states are captured as deep copies"""
    transact = Transact()
    state = {"items": [1]}
    transact.begin("tester", "holder", state)
    state["items"].append(2)

    saved = await transact.end("tester", "holder", decline=True)
    assert saved == {"items": [1]}


@pytest.mark.asyncio
async def test_callable_state_is_invoked():
    """Test that a callable state is called and its result kept as is"""
    transact = Transact()
    snapshot = [1, 2]
    transact.begin("tester", "holder", lambda: snapshot)
    assert transact.snapshots("holder") == [snapshot]
    assert transact.snapshots("holder")[0] is snapshot


@pytest.mark.asyncio
async def test_commit_runs_commit_callbacks_only():
    """Test that commit callbacks run on commit and decline callbacks are dropped"""
    transact = Transact()
    calls = []

    async def on_commit():
        calls.append("commit-async")

    transact.begin("tester", "holder", None)
    await transact.after_commit("holder", lambda: calls.append("commit"))
    await transact.after_commit("holder", on_commit)
    await transact.after_decline("holder", lambda: calls.append("decline"))

    assert await transact.end("tester", "holder") is None
    assert calls == ["commit", "commit-async"]
    assert not transact.has_transact("tester", "holder")


@pytest.mark.asyncio
async def test_decline_runs_decline_callbacks_only():
    """Test that decline callbacks run on decline and the state is returned"""
    transact = Transact()
    calls = []

    transact.begin("tester", "holder", [1])
    await transact.after_commit("holder", lambda: calls.append("commit"))
    await transact.after_decline("holder", lambda: calls.append("decline"))

    assert await transact.end("tester", "holder", decline=True) == [1]
    assert calls == ["decline"]


@pytest.mark.asyncio
async def test_callbacks_without_transaction():
    """Test that commit callbacks run right away and decline callbacks are dropped"""
    transact = Transact()
    calls = []
    await transact.after_commit("holder", lambda: calls.append("commit"))
    await transact.after_decline("holder", lambda: calls.append("decline"))
    assert calls == ["commit"]


@pytest.mark.asyncio
async def test_end_without_transaction_is_noop():
    """Test ending a transaction that was never begun"""
    transact = Transact()
    assert await transact.end("nobody", "holder") is None


@pytest.mark.asyncio
async def test_outer_end_waits_for_inner_end():
    """Test that ends apply in reverse order of begins whoever asks first"""
    transact = Transact()
    order = []

    transact.begin("outer", "holder", None)
    transact.begin("inner", "holder", None)
    await transact.after_commit("holder", lambda: order.append("inner"))

    outer_end = asyncio.create_task(transact.end("outer", "holder"))
    for _ in range(5):
        await asyncio.sleep(0)
    assert not outer_end.done()
    assert transact.has_transact("outer", "holder")

    await transact.end("inner", "holder")
    order.append("inner-ended")
    await outer_end
    order.append("outer-ended")

    assert order == ["inner", "inner-ended", "outer-ended"]
    assert transact.snapshots("holder") == []


@pytest.mark.asyncio
async def test_begin_is_rejected_while_ending():
    """Test that no transaction begins while an end is in progress"""
    transact = Transact()
    transact.begin("outer", "holder", None)
    transact.begin("inner", "holder", None)

    outer_end = asyncio.create_task(transact.end("outer", "holder"))
    await asyncio.sleep(0)
    assert transact.blocked
    assert transact.begin("late", "holder", None) is False
    assert not transact.has_transact("late", "holder")

    await transact.end("inner", "holder")
    await outer_end
    assert not transact.blocked
    assert transact.begin("late", "holder", None)


@pytest.mark.asyncio
async def test_transact_enabled_decline_restores_state():
    """Test the holder mixin"""
    counter = Counter(Transact())
    counter.values = [1]

    assert counter.begin_transact("tester")
    assert counter.has_transact("tester")
    counter.values.append(2)
    await counter.end_transact("tester", decline=True)
    assert counter.values == [1]

    counter.begin_transact("tester")
    counter.values.append(3)
    await counter.end_transact("tester")
    assert counter.values == [1, 3]


@pytest.mark.asyncio
async def test_failing_decline_callback_still_restores_state():
    """Test that a decline callback error does not lose the rollback"""
    transact = Transact()
    counter = Counter(transact)
    counter.values = [1]

    counter.begin_transact("tester")
    counter.values.append(2)

    def broken():
        raise RuntimeError("broken callback")

    await counter.after_transact_decline(broken)
    with pytest.raises(RuntimeError):
        await counter.end_transact("tester", decline=True)

    assert counter.values == [1]
    assert not counter.has_transact("tester")
    assert transact.begin("tester", "Counter", None)
