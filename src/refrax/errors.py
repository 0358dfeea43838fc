"""Error kinds raised by the engine.

Every error is local to the operation that raised it. The store keeps its
last committed state and stays usable afterwards.
"""

from __future__ import annotations


class RefraxError(Exception):
    """Base class for all engine errors."""


class UnknownEvent(RefraxError, LookupError):
    """dispatch() named an event id with no registered handler."""

    def __init__(self, event_id) -> None:
        super().__init__(f"no handler registered for event {event_id!r}")
        self.event_id = event_id


class HandlerFailure(RefraxError):
    """A handler raised while computing the next state. State is unchanged."""

    def __init__(self, event, cause: BaseException) -> None:
        super().__init__(f"handler for {event.id!r} failed: {cause!r}")
        self.event = event
        self.cause = cause


class ReentrantDispatch(RefraxError):
    """dispatch() was called from inside a handler with the reject policy."""


class InvalidPayload(RefraxError, ValueError):
    """A handler rejected the shape of its payload."""


class UnknownSubscription(RefraxError, LookupError):
    """A query named a subscription id that was never registered."""

    def __init__(self, sub_id) -> None:
        super().__init__(f"no subscription registered for {sub_id!r}")
        self.sub_id = sub_id


class CyclicSubscription(RefraxError):
    """A subscription's parent chain leads back to itself."""

    def __init__(self, chain: tuple) -> None:
        path = " -> ".join(repr(q) for q in chain)
        super().__init__(f"cyclic subscription: {path}")
        self.chain = chain


class StaleReadAfterTeardown(RefraxError):
    """A disposed subscription handle was read."""
