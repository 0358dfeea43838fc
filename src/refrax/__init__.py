"""refrax: event-driven state store with cached, derived subscriptions."""

from importlib.metadata import version as _version

__version__ = _version("refrax")

from refrax._anchor import Query
from refrax.db import AppDb
from refrax.errors import (
    CyclicSubscription,
    HandlerFailure,
    InvalidPayload,
    ReentrantDispatch,
    RefraxError,
    StaleReadAfterTeardown,
    UnknownEvent,
    UnknownSubscription,
)
from refrax.events import Dispatcher, EventRegistry
from refrax.interceptor import Event, Interceptor, log_events, tap
from refrax.path import assoc_in, dissoc_in, get_in, update_in
from refrax.reaction import Reaction, RenderScheduler
from refrax.store import INITIALIZE, Store
from refrax.subs import Subscription, SubscriptionGraph
from refrax.watch import watch, WatchHandle
# hot_reload, tasks and textual NOT auto-imported; opt-in only

__all__ = [
    "Store",
    "INITIALIZE",
    "Query",
    "Event",
    "Interceptor",
    "log_events",
    "tap",
    "Subscription",
    "SubscriptionGraph",
    "Reaction",
    "RenderScheduler",
    "AppDb",
    "EventRegistry",
    "Dispatcher",
    "get_in",
    "assoc_in",
    "update_in",
    "dissoc_in",
    "watch",
    "WatchHandle",
    "RefraxError",
    "UnknownEvent",
    "HandlerFailure",
    "ReentrantDispatch",
    "InvalidPayload",
    "UnknownSubscription",
    "CyclicSubscription",
    "StaleReadAfterTeardown",
]
