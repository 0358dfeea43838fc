"""Event registry and dispatcher — the only way state changes.

A handler is a pure function (state, payload) -> new state registered under
one event id. dispatch() looks the handler up, runs the interceptors'
before-hooks, computes the next state, commits it, then runs the
after-hooks. A handler that raises leaves the state exactly as it was.

Dispatch is synchronous and never interleaved: a dispatch issued while
another event is being handled is either queued behind it or rejected.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Callable, Hashable, Iterable

from refrax._tracking import Batch
from refrax.db import AppDb
from refrax.errors import HandlerFailure, ReentrantDispatch, UnknownEvent
from refrax.interceptor import Event, Interceptor

logger = logging.getLogger("refrax.events")

Handler = Callable[[Any, Any], Any]

REENTRANT_POLICIES = ("queue", "reject")


class EventRegistry:
    """Maps event ids to (handler, interceptors). Last registration wins."""

    def __init__(self) -> None:
        self._handlers: dict[Hashable, tuple[Handler, tuple[Interceptor, ...]]] = {}

    def register(
        self,
        event_id: Hashable,
        handler: Handler,
        interceptors: Iterable[Interceptor] = (),
    ) -> None:
        if event_id in self._handlers:
            logger.debug("Overwriting handler for %r", event_id)
        self._handlers[event_id] = (handler, tuple(interceptors))

    def unregister(self, event_id: Hashable) -> None:
        self._handlers.pop(event_id, None)

    def registered(self, event_id: Hashable) -> bool:
        return event_id in self._handlers

    def lookup(self, event_id: Hashable) -> tuple[Handler, tuple[Interceptor, ...]]:
        try:
            return self._handlers[event_id]
        except KeyError:
            logger.error("No handler registered for event %r", event_id)
            raise UnknownEvent(event_id) from None

    def snapshot(self) -> dict[Hashable, tuple[Handler, tuple[Interceptor, ...]]]:
        """Copy of the current registrations, for restore()."""
        return dict(self._handlers)

    def restore(self, handlers: dict[Hashable, tuple[Handler, tuple[Interceptor, ...]]]) -> None:
        """Replace every registration with a snapshot()."""
        self._handlers = dict(handlers)

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)


class Dispatcher:
    """Runs events against an AppDb, one at a time, in call order."""

    def __init__(
        self,
        registry: EventRegistry,
        db: AppDb,
        *,
        batch: Batch | None = None,
        reentrant: str = "queue",
    ) -> None:
        if reentrant not in REENTRANT_POLICIES:
            raise ValueError(f"reentrant must be one of {REENTRANT_POLICIES}, got {reentrant!r}")
        self._registry = registry
        self._db = db
        self._batch = batch
        self._reentrant = reentrant
        self._queue: deque[Event] = deque()
        self._dispatching = False

    @property
    def dispatching(self) -> bool:
        return self._dispatching

    def dispatch(self, event_id: Hashable | Event, payload: Any = None) -> None:
        """Handle one event, then anything it queued. Returns nothing."""
        if isinstance(event_id, Event):
            event = event_id
        else:
            event = Event(event_id, payload)

        if self._dispatching:
            if self._reentrant == "reject":
                raise ReentrantDispatch(
                    f"dispatch({event.id!r}) called while another event is being handled"
                )
            logger.debug("Queued %r behind the event in progress", event.id)
            self._queue.append(event)
            return

        self._dispatching = True
        if self._batch is not None:
            self._batch.begin()
        try:
            current = event
            while True:
                try:
                    self._process(current)
                except Exception:
                    self._discard_queue(current)
                    raise
                if not self._queue:
                    break
                current = self._queue.popleft()
        finally:
            self._dispatching = False
            if self._batch is not None:
                self._batch.end()

    def _process(self, event: Event) -> None:
        handler, interceptors = self._registry.lookup(event.id)

        for interceptor in interceptors:
            if interceptor.before is not None:
                self._run_hook(interceptor, "before", interceptor.before, event)

        old_state = self._db.read()
        try:
            new_state = handler(old_state, event.payload)
            if new_state is None:
                raise TypeError(f"handler for {event.id!r} returned None instead of a state")
        except Exception as exc:
            logger.error("Handler for %r failed: %r", event.id, exc)
            raise HandlerFailure(event, exc) from exc

        self._db.commit(new_state)

        for interceptor in interceptors:
            if interceptor.after is not None:
                self._run_hook(interceptor, "after", interceptor.after, old_state, event)

    @staticmethod
    def _run_hook(interceptor: Interceptor, phase: str, hook: Callable, *args: Any) -> None:
        try:
            hook(*args)
        except Exception:
            logger.exception("Interceptor %r %s-hook failed", interceptor.id, phase)

    def _discard_queue(self, failed: Event) -> None:
        if self._queue:
            logger.warning(
                "Discarding %d queued event(s) after %r failed", len(self._queue), failed.id
            )
            self._queue.clear()
