"""watch() — run blocking work in a managed daemon thread, then dispatch.

Handlers and subscriptions never block. Slow work (an HTTP call, a file
read) runs here instead, and its outcome re-enters the store only as a new
top-level dispatch of on_success (payload: the result) or on_failure
(payload: the exception). With store.set_scheduler() in place, that
dispatch is marshaled onto the UI thread.

The engine never cancels work. A completion that arrives after the UI has
moved on still dispatches and applies to whatever the current state is.
"""

from __future__ import annotations

import logging
from threading import Thread
from typing import Any, Callable, Hashable

logger = logging.getLogger("refrax.watch")


class WatchHandle:
    """Disposable handle for a managed daemon thread."""

    __slots__ = ("_disposed", "_thread")

    def __init__(self):
        self._disposed = False
        self._thread: Thread | None = None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Signal the work to stop and skip its completion dispatch.

        Check .disposed in long-running loops.
        """
        self._disposed = True

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread. Returns True once it has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()


def watch(
    store,
    work: Callable[[], Any],
    *,
    on_success: Hashable | None = None,
    on_failure: Hashable | None = None,
) -> WatchHandle:
    """Run work in a daemon thread; dispatch its result or error. Returns WatchHandle.

    Usage:
        store.set_scheduler(app.call_from_thread)

        handle = watch(
            store,
            api.fetch_tasks,
            on_success="fetch-tasks-success",
            on_failure="fetch-tasks-failure",
        )
    """
    handle = WatchHandle()

    def _complete(event_id: Hashable | None, payload: Any) -> None:
        if event_id is None or handle.disposed:
            return
        try:
            store.dispatch(event_id, payload)
        except Exception:
            logger.exception("Completion dispatch %r failed", event_id)

    def _run() -> None:
        try:
            result = work()
        except Exception as exc:
            if on_failure is None:
                logger.exception("Background work failed with no failure event")
                return
            _complete(on_failure, exc)
            return
        _complete(on_success, result)

    thread = Thread(target=_run, daemon=True)
    handle._thread = thread
    thread.start()
    return handle
