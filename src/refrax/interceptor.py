"""Interceptors — observer hooks around event handling.

An interceptor has an optional before(event) hook and an optional
after(old_state, event) hook. Both phases run in registration order.
Hooks only observe: they cannot veto an event or replace the state, and an
exception raised by a hook is logged and otherwise ignored.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, NamedTuple


class Event(NamedTuple):
    """An event descriptor: (id, payload). Consumed once by the dispatcher."""

    id: Hashable
    payload: Any = None


BeforeHook = Callable[[Event], None]
AfterHook = Callable[[Any, Event], None]


class Interceptor(NamedTuple):
    id: str
    before: BeforeHook | None = None
    after: AfterHook | None = None


def tap(fn: AfterHook, id: str = "tap") -> Interceptor:
    """After-only interceptor calling fn(old_state, event).

    Usage:
        seen = []
        store.reg_event("inc", inc, [tap(lambda old, ev: seen.append(ev.id))])
    """
    return Interceptor(id, after=fn)


def log_events(logger: logging.Logger | None = None, level: int = logging.DEBUG) -> Interceptor:
    """Interceptor that logs each event as it starts and once it has committed."""
    log = logger or logging.getLogger("refrax.events")

    def _before(event: Event) -> None:
        log.log(level, "Handling %r payload=%r", event.id, event.payload)

    def _after(old_state: Any, event: Event) -> None:
        log.log(level, "Handled %r", event.id)

    return Interceptor("log-events", before=_before, after=_after)
