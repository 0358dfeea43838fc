"""State container — the single owner of the application state value.

The state is replaced wholesale on every commit, never edited in place.
A reader holding an older snapshot keeps a valid, unchanging view of it.
"""

from __future__ import annotations

from typing import Any, Callable

CommitListener = Callable[[Any, Any], None]


class AppDb:
    """Holds one state value. read() is O(1); commit() replaces it atomically."""

    __slots__ = ("_value", "_version", "_listeners")

    def __init__(self, value: Any = None) -> None:
        self._value = value
        self._version = 0
        self._listeners: list[CommitListener] = []

    @property
    def version(self) -> int:
        """Number of commits so far."""
        return self._version

    def read(self) -> Any:
        """Current snapshot. None until the initialize event has committed."""
        return self._value

    def commit(self, value: Any) -> None:
        """Replace the state, then notify listeners with (old, new) before returning."""
        old = self._value
        self._value = value
        self._version += 1
        for listener in list(self._listeners):
            listener(old, value)

    def watch(self, listener: CommitListener) -> Callable[[], None]:
        """Register a commit listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def _unwatch() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass  # already removed

        return _unwatch

    def __repr__(self) -> str:
        return f"AppDb(version={self._version})"
