"""Tests for Store — wiring, surfaces, thread marshaling."""

import random
import threading

from refrax import INITIALIZE, Query, Store, assoc_in


def _handlers():
    return {
        INITIALIZE: lambda _, __: {"n": 0, "log": ()},
        "add": lambda s, k: {**s, "n": s["n"] + k},
        "mul": lambda s, k: {**s, "n": s["n"] * k},
        "note": lambda s, v: {**s, "log": s["log"] + (v,)},
    }


def _store(**kwargs):
    store = Store(**kwargs)
    for event_id, handler in _handlers().items():
        store.reg_event(event_id, handler)
    store.reg_sub("n", path=("n",))
    store.initialize()
    return store


class TestInitialize:
    def test_reads_undefined_before_initialize(self):
        store = Store()
        assert store.db is None
        assert store.version == 0

    def test_initialize_seeds_state(self):
        store = _store()
        assert store.db == {"n": 0, "log": ()}
        assert store.version == 1

    def test_root_before_initialize_reads_none(self):
        store = Store()
        store.reg_sub("n", path=("n",))
        assert store.query("n") is None


class TestDeterminism:
    def test_final_state_is_left_fold(self):
        rng = random.Random(1234)
        handlers = _handlers()
        for _ in range(20):
            events = [
                (rng.choice(["add", "mul", "note"]), rng.randint(-3, 3))
                for _ in range(rng.randint(0, 15))
            ]
            store = _store()
            expected = handlers[INITIALIZE](None, None)
            for event_id, payload in events:
                store.dispatch(event_id, payload)
                expected = handlers[event_id](expected, payload)
            assert store.db == expected

    def test_subscriptions_match_state_after_each_dispatch(self):
        store = _store()
        sub = store.subscribe("n")
        for k in (1, 2, 3):
            store.dispatch("add", k)
            assert sub.get() == store.db["n"]


class TestSubscribeSurface:
    def test_subscribe_with_args(self):
        store = _store()
        store.reg_sub("scaled", lambda n, k: n * k, inputs=["n"])
        store.dispatch("add", 4)
        assert store.subscribe("scaled", 3).get() == 12
        assert store.graph.is_live(Query("scaled", (3,)))

    def test_query_uses_live_entry(self):
        store = _store()
        calls = []
        store.reg_sub("n+1", lambda n: calls.append(n) or n + 1, inputs=["n"])
        store.subscribe("n+1")
        assert store.query("n+1") == 1
        assert calls == [0]

    def test_value_property(self):
        store = _store()
        assert store.subscribe("n").value == 0

    def test_redefining_sub_rerenders(self):
        store = _store()
        log = []
        store.reg_sub("label", lambda n: f"n={n}", inputs=["n"])
        store.mount(log.append, "label")
        store.reg_sub("label", lambda n: f"value {n}", inputs=["n"])
        assert log == ["n=0", "value 0"]


class TestSchedulerMarshal:
    def test_same_thread_is_direct(self):
        calls = []
        store = _store(scheduler=lambda fn: (calls.append(fn), fn()))
        store.dispatch("add", 1)
        assert calls == []
        assert store.db["n"] == 1

    def test_background_thread_marshals(self):
        calls = []
        store = _store()
        store.set_scheduler(lambda fn: (calls.append(fn), fn()))
        done = threading.Event()

        def bg():
            store.dispatch("add", 5)
            done.set()

        threading.Thread(target=bg).start()
        assert done.wait(timeout=2)
        assert len(calls) == 1
        assert store.db["n"] == 5

    def test_deferred_scheduler(self):
        pending = []
        store = _store()
        store.set_scheduler(pending.append)
        t = threading.Thread(target=lambda: store.dispatch("add", 2))
        t.start()
        t.join(timeout=2)
        assert store.db["n"] == 0  # not run until the UI thread drains
        for fn in pending:
            fn()
        assert store.db["n"] == 2

    def test_clear_scheduler(self):
        store = _store()
        store.set_scheduler(lambda fn: None)
        store.set_scheduler(None)
        t = threading.Thread(target=lambda: store.dispatch("add", 3))
        t.start()
        t.join(timeout=2)
        assert store.db["n"] == 3


class TestSnapshotIsolation:
    def test_old_snapshots_unchanged(self):
        store = _store()
        store.reg_event("put", lambda s, kv: assoc_in(s, ("items", kv[0]), kv[1]))
        store.dispatch("put", ("x", 1))
        before = store.db
        store.dispatch("put", ("y", 2))
        assert before["items"] == {"x": 1}
        assert store.db["items"] == {"x": 1, "y": 2}
