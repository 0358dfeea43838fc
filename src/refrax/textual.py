"""Textual binding for refrax. Opt-in; requires textual.

A component mounted through this module is an ordinary store reaction:
it re-renders after a commit only when one of its subscription values
changed identity. On top of that, every render here

- is skipped while the app is not running or is inside pause(), when the
  widget tree may be half-replaced;
- ignores NoMatches, raised when the widget it targets is gone;
- runs on the app's thread, handed over with call_from_thread when the
  commit happened elsewhere.

connect() points the store's dispatch scheduler at the same app, so events
from background work (watch()) commit on the UI thread too.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

# id(app) values currently inside pause(); keyed by id so tests can run several apps.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Skip renders for app while its widgets are being swapped out."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Can renders touch app's widgets right now?"""
    return app.is_running and id(app) not in _paused_apps


def connect(app, store) -> None:
    """Run off-thread dispatches on app's thread. Call from that thread, e.g. on_mount()."""
    store.set_scheduler(app.call_from_thread)


def mount(app, store, render, *queries, fire_immediately=True):
    """Mount render on store for queries, rendering into app's widgets.

    Returns the Reaction; dispose() it when the screen goes away.

    Usage:
        def show_tasks(tasks):
            app.query_one("#tasks", ListView).clear()
            ...

        mount(app, store, show_tasks, Query("visible-tasks"))
    """
    ui_thread = threading.get_ident()

    def _render_when_safe(*values):
        if not is_safe(app):
            return
        if threading.get_ident() == ui_thread:
            _render(*values)
        else:
            app.call_from_thread(_render, *values)

    def _render(*values):
        try:
            render(*values)
        except NoMatches:
            pass  # target widget already removed

    return store.mount(_render_when_safe, *queries, fire_immediately=fire_immediately)
