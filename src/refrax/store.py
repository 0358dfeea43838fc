"""Store — the engine in one object: state, events, subscriptions, renders.

A Store owns an AppDb, an event registry and dispatcher, a subscription
graph, and a render scheduler, and wires them so that every commit
invalidates the graph before dispatch() returns.

Usage:
    store = Store()
    store.reg_event("initialize", lambda state, _: {"count": 0})
    store.reg_event("inc", lambda state, n: {**state, "count": state["count"] + n})
    store.reg_sub("count", path=("count",))

    store.initialize()
    counter = store.subscribe("count")
    store.dispatch("inc", 2)
    counter.get()  # 2

Thread safety: call set_scheduler() once from the UI thread. After that,
a dispatch() from any other thread is handed to the scheduler instead of
running inline. UI-thread dispatches stay synchronous.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Hashable, Iterable

from refrax._anchor import Arena, Query
from refrax.db import AppDb
from refrax.events import Dispatcher, EventRegistry, Handler
from refrax.interceptor import Event, Interceptor
from refrax.reaction import Reaction, RenderScheduler
from refrax.subs import Subscription, SubscriptionGraph

INITIALIZE = "initialize"


class Store:
    """Single state tree updated by named events, read through subscriptions."""

    def __init__(
        self,
        *,
        reentrant: str = "queue",
        scheduler: Callable[[Callable[[], None]], Any] | None = None,
    ) -> None:
        self._db = AppDb()
        self._arena = Arena()
        self._events = EventRegistry()
        self._graph = SubscriptionGraph(self._db, self._arena)
        self._renders = RenderScheduler(self._graph)
        self._dispatcher = Dispatcher(
            self._events, self._db, batch=self._renders.batch, reentrant=reentrant
        )
        self._db.watch(self._on_commit)
        self._scheduler = None
        self._scheduler_thread = None
        if scheduler is not None:
            self.set_scheduler(scheduler)

    # --- Configuration ---

    def set_scheduler(self, scheduler: Callable[[Callable[[], None]], Any] | None) -> None:
        """Marshal off-thread dispatches through scheduler.

        Call from the UI thread:
            store.set_scheduler(app.call_from_thread)
        Pass None to go back to direct dispatch.
        """
        self._scheduler = scheduler
        self._scheduler_thread = threading.current_thread() if scheduler is not None else None

    # --- Registration ---

    def reg_event(
        self,
        event_id: Hashable,
        handler: Handler | None = None,
        interceptors: Iterable[Interceptor] = (),
    ):
        """Register a handler. Usable directly or as a decorator.

        Usage:
            @store.reg_event("inc")
            def inc(state, n):
                return {**state, "count": state["count"] + n}
        """
        if handler is None:

            def decorator(fn: Handler) -> Handler:
                self._events.register(event_id, fn, interceptors)
                return fn

            return decorator
        self._events.register(event_id, handler, interceptors)
        return handler

    def reg_sub(
        self,
        sub_id: Hashable,
        compute: Callable[..., Any] | None = None,
        *,
        path=None,
        inputs=None,
        equal: Callable[[Any, Any], bool] | None = None,
    ):
        """Register a root (path=...) or derived (inputs=..., compute) subscription.

        Usable as a decorator for derived subscriptions:
            @store.reg_sub("done-count", inputs=["tasks"])
            def done_count(tasks):
                return sum(1 for t in tasks.values() if t["done"])
        """
        if compute is None and path is None:

            def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
                self._register_sub(sub_id, path=None, inputs=inputs, compute=fn, equal=equal)
                return fn

            return decorator
        self._register_sub(sub_id, path=path, inputs=inputs, compute=compute, equal=equal)
        return compute

    def _register_sub(self, sub_id, **definition) -> None:
        stale = self._graph.register(sub_id, **definition)
        self._renders.invalidate(stale)

    # --- Dispatch surface ---

    def dispatch(self, event_id: Hashable | Event, payload: Any = None) -> None:
        """Handle an event. Fire-and-forget: results show up in the next state."""
        if self._scheduler is not None and threading.current_thread() != self._scheduler_thread:
            self._scheduler(lambda: self._dispatcher.dispatch(event_id, payload))
        else:
            self._dispatcher.dispatch(event_id, payload)

    def initialize(self, payload: Any = None) -> None:
        """Seed the state by dispatching the initialize event."""
        self.dispatch(INITIALIZE, payload)

    def transaction(self):
        """Batch every dispatch inside the block into one render pass."""
        return self._renders.transaction()

    # --- Subscribe surface ---

    def subscribe(self, sub_id: Hashable, *args: Any) -> Subscription:
        """Live, read-only handle on a derived value. dispose() when done."""
        return self._graph.subscribe(Query(sub_id, args))

    def query(self, sub_id: Hashable, *args: Any) -> Any:
        """One-shot read. Uses live cache entries, creates none."""
        return self._graph.peek(Query(sub_id, args))

    def mount(self, render: Callable[..., None], *queries: Any, fire_immediately: bool = True) -> Reaction:
        """Bind a component's render function to one or more queries.

        Each query is a Query(sub_id, args) or a bare sub_id.
        """
        return self._renders.mount(render, *queries, fire_immediately=fire_immediately)

    # --- Introspection ---

    @property
    def db(self) -> Any:
        """Current state snapshot."""
        return self._db.read()

    @property
    def version(self) -> int:
        return self._db.version

    @property
    def graph(self) -> SubscriptionGraph:
        return self._graph

    @property
    def events(self) -> EventRegistry:
        return self._events

    def pending_renders(self) -> int:
        return self._renders.pending_count()

    def dispose(self) -> None:
        """Unmount every component and tear down every subscription.

        Registrations and state are kept.
        """
        self._renders.clear()
        self._graph.clear()

    def _on_commit(self, old_state: Any, new_state: Any) -> None:
        self._renders.invalidate(self._graph.on_commit(old_state, new_state))
