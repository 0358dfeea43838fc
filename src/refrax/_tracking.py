"""Batching and evaluation-chain tracking — the bookkeeping under the engine.

Batching: a dispatch (or a `with store.transaction()`) accumulates the nodes
it invalidated and flushes them once when the outermost scope exits, so one
dispatch produces at most one render pass.

Chains: while a node is being constructed, its query sits on the chain.
Meeting a query that is already on the chain means the graph has a cycle.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Hashable, Iterable

from refrax.errors import CyclicSubscription


class Batch:
    """Nested batching scope with a pending set flushed by the outermost exit."""

    __slots__ = ("_depth", "_pending", "_flushing", "_flush")

    def __init__(self, flush: Callable[[list], None]) -> None:
        self._depth = 0
        self._pending: dict[Hashable, None] = {}  # insertion-ordered set
        self._flushing = False
        self._flush = flush

    @property
    def active(self) -> bool:
        return self._depth > 0 or self._flushing

    def begin(self) -> None:
        """Enter a batching scope. Nested batches are supported."""
        self._depth += 1

    def end(self) -> None:
        """Exit a batching scope. The outermost exit flushes pending items."""
        self._depth -= 1
        if self._depth == 0:
            self._drain()

    def schedule(self, items: Iterable[Hashable]) -> None:
        """Add items to the pending set; flush now when no batch is open."""
        for item in items:
            self._pending[item] = None
        if not self.active:
            self._drain()

    def _drain(self) -> None:
        """Flush until nothing is pending. Items scheduled mid-flush join the loop."""
        if self._flushing:
            return
        self._flushing = True
        try:
            while self._pending:
                # Snapshot and clear; renders may dispatch and schedule more.
                batch = list(self._pending)
                self._pending.clear()
                self._flush(batch)
        finally:
            self._flushing = False

    def pending_count(self) -> int:
        """Number of items waiting to flush. Useful for testing."""
        return len(self._pending)

    def discard(self) -> None:
        self._pending.clear()


class Chain:
    """Stack of queries currently under construction."""

    __slots__ = ("_stack",)

    def __init__(self) -> None:
        self._stack: list = []

    @contextmanager
    def enter(self, query):
        """Push query for the duration of the block; raise if already present."""
        if query in self._stack:
            start = self._stack.index(query)
            raise CyclicSubscription(tuple(self._stack[start:]) + (query,))
        self._stack.append(query)
        try:
            yield
        finally:
            self._stack.pop()
