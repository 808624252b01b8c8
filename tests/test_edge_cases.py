"""Edge case tests for the drain.

These tests poke at the places where handlers misbehave or the chain is
swapped out from under a walk in progress.
"""

import asyncio

import pytest

from chainbridge.core.chain import ChainStore, DrainState
from chainbridge.core.engine import ChainLimitError, Engine
from chainbridge.core.step import Step


def holder(pending: list):
    def handler(payload, next):
        pending.append(next)

    return handler


def recorder(calls: list, name: str, result=None):
    def handler(payload, next):
        calls.append((name, payload))
        next(result)

    return handler


# =============================================================================
# Chain store
# =============================================================================


class TestChainStore:
    def test_live_reads_see_appended_steps(self):
        store = ChainStore()
        store.append(Step(event="a.one"))

        assert store.get(1) is None
        store.append(Step(event="a.two"))

        assert store.get(1).event == "a.two"

    def test_clear_and_replace_bump_epoch(self):
        store = ChainStore()
        assert store.epoch == 0

        store.clear()
        store.replace([Step(event="a.one")])

        assert store.epoch == 2
        assert len(store) == 1

    def test_append_does_not_bump_epoch(self):
        store = ChainStore()
        assert store.append(Step(event="a.one")) == 1
        assert store.epoch == 0

    def test_negative_index_is_past_the_end(self):
        store = ChainStore()
        store.append(Step(event="a.one"))

        assert store.get(-1) is None


# =============================================================================
# Mid-drain replacement (epoch policy)
# =============================================================================


class TestStaleContinuations:
    def test_continuation_after_clear_is_ignored(self):
        engine = Engine()
        pending = []
        calls = []
        engine.on("old.hold", holder(pending))
        engine.on("old.rest", recorder(calls, "old.rest"))

        engine.enqueue("old.hold").enqueue("old.rest")
        engine.clear()
        pending[0]({"late": True})

        assert calls == []
        assert engine.is_idle
        assert engine.get_stats().stale_continuations == 1

    def test_stale_walk_does_not_read_new_batch_at_old_index(self):
        engine = Engine()
        old_pending = []
        new_pending = []
        calls = []
        engine.on("old.hold", holder(old_pending))
        engine.on("new.hold", holder(new_pending))
        engine.on("new.second", recorder(calls, "new.second"))

        engine.enqueue("old.hold")
        engine.batch([{"event": "new.hold"}, {"event": "new.second"}])

        # The old walk would otherwise jump to index 1 of the new batch.
        old_pending[0]({"stale": True})
        assert calls == []
        assert engine.state is DrainState.DRAINING

        new_pending[0]({"fresh": True})
        assert calls == [("new.second", {"prev": {"fresh": True}})]
        assert engine.is_idle

    def test_handler_clearing_then_continuing_inline_abandons_walk(self):
        engine = Engine()
        calls = []

        def resetting(payload, next):
            engine.clear()
            next()

        engine.on("step.reset", resetting)
        engine.on("step.after", recorder(calls, "after"))

        engine.enqueue("step.reset")
        engine.enqueue("step.after")

        assert calls == [("after", {"prev": {}})]
        assert engine.is_idle

    def test_handler_replacing_chain_inline_runs_new_batch(self):
        engine = Engine()
        calls = []

        def replan(payload, next):
            engine.batch([{"event": "plan.b", "props": {"n": 1}}])
            next({"ignored": True})

        engine.on("plan.a", replan)
        engine.on("plan.b", recorder(calls, "b"))
        engine.on("plan.c", recorder(calls, "c"))

        engine.batch([{"event": "plan.a"}, {"event": "plan.c"}])

        assert calls == [("b", {"n": 1, "prev": {}})]
        assert engine.is_idle

    def test_continuation_after_drain_completed_is_stale(self):
        engine = Engine()
        pending = []
        engine.on("step.hold", holder(pending))

        engine.enqueue("step.hold")
        engine.clear()
        engine.enqueue("nobody.listens")
        pending[0]()

        assert engine.is_idle
        assert engine.get_stats().stale_continuations == 1


# =============================================================================
# Continuation misuse
# =============================================================================


class TestReusedContinuation:
    def test_second_call_is_ignored(self):
        engine = Engine()
        calls = []

        def twice(payload, next):
            next({"n": 1})
            next({"n": 2})

        engine.on("step.twice", twice)
        engine.on("step.after", recorder(calls, "after"))

        engine.batch([{"event": "step.twice"}, {"event": "step.after"}, {"event": "step.after"}])

        assert calls == [("after", {"prev": {"n": 1}}), ("after", {"prev": {}})]
        assert engine.get_stats().reused_continuations == 1

    def test_late_second_call_does_not_skip_steps(self):
        engine = Engine()
        pending = []
        calls = []
        engine.on("step.hold", holder(pending))
        engine.on("step.after", recorder(calls, "after"))

        engine.enqueue("step.hold").enqueue("step.hold").enqueue("step.after")
        first = pending[0]
        first()
        first()

        assert calls == []
        assert len(pending) == 2
        pending[1]()
        assert len(calls) == 1

    def test_non_mapping_result_rejected(self):
        engine = Engine()
        engine.on("step.bad", lambda payload, next: next(["not", "a", "mapping"]))

        with pytest.raises(TypeError, match="mapping"):
            engine.enqueue("step.bad")


# =============================================================================
# Multiple handlers for one event
# =============================================================================


class TestFanOut:
    def test_every_handler_receives_the_step(self):
        engine = Engine()
        calls = []
        engine.on("todo.add", recorder(calls, "list"))
        engine.on("todo.add", lambda payload, next: calls.append(("log", payload)))

        engine.enqueue("todo.add", {"title": "Plan"})

        assert calls == [
            ("list", {"title": "Plan", "prev": {}}),
            ("log", {"title": "Plan", "prev": {}}),
        ]

    def test_first_continuation_call_wins(self):
        engine = Engine()
        calls = []
        engine.on("todo.add", recorder([], "first", {"from": "first"}))
        engine.on("todo.add", recorder([], "second", {"from": "second"}))
        engine.on("todo.next", recorder(calls, "next"))

        engine.batch([{"event": "todo.add"}, {"event": "todo.next"}])

        assert calls == [("next", {"prev": {"from": "first"}})]
        assert engine.get_stats().reused_continuations == 1

    def test_handlers_get_independent_payload_copies(self):
        engine = Engine()
        seen = []

        def mutating(payload, next):
            payload["title"] = "changed"

        engine.on("todo.add", mutating)
        engine.on("todo.add", recorder(seen, "reader"))

        engine.enqueue("todo.add", {"title": "Plan"})

        assert seen == [("reader", {"title": "Plan", "prev": {}})]

    def test_handlers_get_independent_prev(self):
        engine = Engine()
        seen = []

        def mutating(payload, next):
            payload["prev"]["n"] = 99

        def reader(payload, next):
            seen.append(payload["prev"]["n"])
            next()

        engine.on("a.one", recorder([], "one", {"n": 1}))
        engine.on("a.two", mutating)
        engine.on("a.two", reader)

        engine.batch([{"event": "a.one"}, {"event": "a.two"}])

        assert seen == [1]

    def test_nested_payload_mutation_leaves_stored_step_intact(self):
        engine = Engine()
        pending = []

        def appending(payload, next):
            payload["items"].append("x")
            pending.append(next)

        engine.on("list.add", appending)
        engine.enqueue("list.add", {"items": []})

        assert engine.steps()[0].payload == {"items": []}

    def test_caller_mutation_after_enqueue_leaves_stored_step_intact(self):
        engine = Engine()
        engine.on("list.add", holder([]))
        payload = {"items": []}

        engine.enqueue("list.add", payload)
        payload["items"].append("x")

        assert engine.steps()[0].payload == {"items": []}

    def test_large_payload_is_dispatched(self):
        engine = Engine()
        seen = []
        engine.on("big.step", recorder(seen, "big"))

        engine.enqueue("big.step", {"blob": "x" * 1_100_000})

        assert len(seen[0][1]["blob"]) == 1_100_000

    def test_handler_unregistering_during_dispatch(self):
        engine = Engine()
        calls = []
        removers = []

        def once(payload, next):
            calls.append("once")
            removers[0]()
            next()

        removers.append(engine.on("step.tick", once))
        engine.on("step.tick", lambda payload, next: calls.append("always"))

        engine.batch([{"event": "step.tick"}, {"event": "step.tick"}])

        assert calls == ["once", "always", "always"]


# =============================================================================
# Stalls and limits
# =============================================================================


class TestStall:
    def test_silent_handler_stalls_chain(self):
        engine = Engine()
        calls = []
        engine.on("step.silent", lambda payload, next: None)
        engine.on("step.after", recorder(calls, "after"))

        engine.enqueue("step.silent")
        for _ in range(5):
            engine.enqueue("step.after")

        assert calls == []
        assert engine.state is DrainState.DRAINING
        assert engine.pending == 6
        assert engine.get_stats().drains_started == 1

    async def test_wait_idle_times_out_on_stalled_chain(self):
        engine = Engine()
        engine.on("step.silent", lambda payload, next: None)
        engine.enqueue("step.silent")

        with pytest.raises(TimeoutError):
            await engine.wait_idle(timeout=0.05)

        assert engine._idle_waiters == []

    async def test_wait_idle_returns_immediately_when_idle(self):
        await asyncio.wait_for(Engine().wait_idle(), timeout=1)

    async def test_clear_wakes_waiters(self):
        engine = Engine()
        engine.on("step.silent", lambda payload, next: None)
        engine.enqueue("step.silent")

        waiter = asyncio.ensure_future(engine.wait_idle())
        await asyncio.sleep(0)
        engine.clear()

        await asyncio.wait_for(waiter, timeout=1)


class TestMaxSteps:
    def test_exceeding_max_steps_raises_and_resets(self):
        engine = Engine(max_steps=3)

        def loop_forever(payload, next):
            engine.enqueue("step.loop")
            next()

        engine.on("step.loop", loop_forever)

        with pytest.raises(ChainLimitError) as exc_info:
            engine.enqueue("step.loop")

        assert exc_info.value.max_steps == 3
        assert isinstance(exc_info.value, RuntimeError)
        assert engine.is_idle
        assert engine.pending == 0

    def test_limit_is_per_drain(self):
        engine = Engine(max_steps=2)
        engine.on("step.a", recorder([], "a"))

        for _ in range(5):
            engine.batch([{"event": "step.a"}, {"event": "step.a"}])

        assert engine.get_stats().drains_completed == 5
