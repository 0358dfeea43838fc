"""Tests for the event registry, interceptors, and dispatcher."""

import logging

import pytest

from refrax import (
    Event,
    HandlerFailure,
    Interceptor,
    ReentrantDispatch,
    Store,
    UnknownEvent,
    log_events,
    tap,
)


def _counter_store(**kwargs):
    store = Store(**kwargs)
    store.reg_event("initialize", lambda state, _: {"count": 0})
    store.reg_event("inc", lambda state, n: {**state, "count": state["count"] + (n or 1)})
    store.initialize()
    return store


class TestDispatch:
    def test_handler_gets_state_and_payload(self):
        store = _counter_store()
        store.dispatch("inc", 5)
        assert store.db == {"count": 5}

    def test_dispatch_returns_none(self):
        store = _counter_store()
        assert store.dispatch("inc") is None

    def test_event_descriptor(self):
        store = _counter_store()
        store.dispatch(Event("inc", 3))
        assert store.db["count"] == 3

    def test_last_registration_wins(self):
        store = _counter_store()
        store.reg_event("inc", lambda state, n: {**state, "count": state["count"] + 100})
        store.dispatch("inc")
        assert store.db["count"] == 100

    def test_decorator_form(self):
        store = _counter_store()

        @store.reg_event("reset")
        def reset(state, _):
            return {**state, "count": 0}

        store.dispatch("inc", 4)
        store.dispatch("reset")
        assert store.db["count"] == 0
        assert reset(store.db, None) == {"count": 0}


class TestErrors:
    def test_unknown_event(self, caplog):
        store = _counter_store()
        before = store.db
        with caplog.at_level(logging.ERROR, logger="refrax.events"):
            with pytest.raises(UnknownEvent) as info:
                store.dispatch("nope", 1)
        assert info.value.event_id == "nope"
        assert store.db == before
        assert store.db is before
        assert "No handler registered" in caplog.text

    def test_handler_failure_leaves_state(self):
        store = _counter_store()
        store.dispatch("inc", 2)
        before = store.db
        version = store.version

        def boom(state, payload):
            raise ValueError("bad payload")

        store.reg_event("boom", boom)
        with pytest.raises(HandlerFailure) as info:
            store.dispatch("boom", {"x": 1})
        assert isinstance(info.value.__cause__, ValueError)
        assert info.value.event == Event("boom", {"x": 1})
        assert store.db is before
        assert store.version == version

    def test_handler_returning_none_fails(self):
        store = _counter_store()
        store.reg_event("forgot-return", lambda state, _: None)
        with pytest.raises(HandlerFailure):
            store.dispatch("forgot-return")
        assert store.db == {"count": 0}

    def test_store_usable_after_failure(self):
        store = _counter_store()
        with pytest.raises(UnknownEvent):
            store.dispatch("nope")
        store.dispatch("inc")
        assert store.db["count"] == 1


class TestInterceptors:
    def test_registration_order_both_phases(self):
        store = _counter_store()
        log = []

        def make(name):
            return Interceptor(
                name,
                before=lambda ev: log.append(("before", name)),
                after=lambda old, ev: log.append(("after", name)),
            )

        store.reg_event(
            "add", lambda state, n: {**state, "count": state["count"] + n}, [make("a"), make("b")]
        )
        store.dispatch("add", 1)
        assert log == [("before", "a"), ("before", "b"), ("after", "a"), ("after", "b")]

    def test_after_sees_old_state_and_event(self):
        store = _counter_store()
        seen = []
        store.reg_event(
            "add",
            lambda state, n: {**state, "count": state["count"] + n},
            [tap(lambda old, ev: seen.append((old, ev, store.db)))],
        )
        store.dispatch("add", 2)
        assert seen == [({"count": 0}, Event("add", 2), {"count": 2})]

    def test_before_runs_before_handler(self):
        store = _counter_store()
        log = []
        store.reg_event(
            "add",
            lambda state, n: log.append("handler") or {**state, "count": n},
            [Interceptor("spy", before=lambda ev: log.append("before"))],
        )
        store.dispatch("add", 1)
        assert log == ["before", "handler"]

    def test_after_skipped_on_failure(self):
        store = _counter_store()
        log = []

        def boom(state, payload):
            raise RuntimeError("x")

        store.reg_event("boom", boom, [tap(lambda old, ev: log.append("after"))])
        with pytest.raises(HandlerFailure):
            store.dispatch("boom")
        assert log == []

    def test_hook_errors_do_not_change_control_flow(self, caplog):
        store = _counter_store()

        def broken(ev):
            raise RuntimeError("hook broke")

        store.reg_event(
            "add",
            lambda state, n: {**state, "count": state["count"] + n},
            [Interceptor("broken", before=broken)],
        )
        with caplog.at_level(logging.ERROR, logger="refrax.events"):
            store.dispatch("add", 3)
        assert store.db["count"] == 3
        assert "Interceptor 'broken' before-hook failed" in caplog.text

    def test_log_events(self, caplog):
        store = _counter_store()
        store.reg_event("add", lambda state, n: {**state, "count": n}, [log_events()])
        with caplog.at_level(logging.DEBUG, logger="refrax.events"):
            store.dispatch("add", 7)
        assert "Handling 'add' payload=7" in caplog.text
        assert "Handled 'add'" in caplog.text


class TestReentrancy:
    def test_queue_runs_after_commit(self):
        store = _counter_store()
        seen = []

        def outer(state, _):
            store.dispatch("inc", 10)
            seen.append(store.db["count"])  # not yet applied
            return {**state, "count": state["count"] + 1}

        store.reg_event("outer", outer)
        store.dispatch("outer")
        assert seen == [0]
        assert store.db["count"] == 11

    def test_queued_events_keep_call_order(self):
        store = _counter_store()
        store.reg_event("push", lambda state, v: {**state, "log": state.get("log", ()) + (v,)})

        def fan_out(state, _):
            store.dispatch("push", "a")
            store.dispatch("push", "b")
            return state

        store.reg_event("fan-out", fan_out)
        store.dispatch("fan-out")
        assert store.db["log"] == ("a", "b")

    def test_failed_event_discards_its_queue(self, caplog):
        store = _counter_store()

        def outer(state, _):
            store.dispatch("inc", 10)
            raise RuntimeError("outer failed")

        store.reg_event("outer", outer)
        with caplog.at_level(logging.WARNING, logger="refrax.events"):
            with pytest.raises(HandlerFailure):
                store.dispatch("outer")
        assert store.db["count"] == 0
        assert "Discarding 1 queued event(s)" in caplog.text
        store.dispatch("inc")
        assert store.db["count"] == 1

    def test_reject_policy(self):
        store = _counter_store(reentrant="reject")

        def outer(state, _):
            store.dispatch("inc")
            return state

        store.reg_event("outer", outer)
        with pytest.raises(HandlerFailure) as info:
            store.dispatch("outer")
        assert isinstance(info.value.__cause__, ReentrantDispatch)
        assert store.db["count"] == 0

    def test_bad_policy(self):
        with pytest.raises(ValueError):
            Store(reentrant="interleave")
