"""Reactions — UI components bound to subscription nodes.

A Reaction holds one subscription per node it reads and a render function.
After a commit, the scheduler looks at the stale nodes that have mounted
components, pulls their values, and re-renders each component whose
values differ by identity from what it last rendered with. Because the
graph keeps the old object when a recomputed value is equal, "identity
changed" means "value changed".

Renders are batched: one dispatch (or one `with store.transaction()`)
produces at most one render per component.
"""

from __future__ import annotations

import itertools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterable

from refrax._anchor import Query
from refrax._tracking import Batch
from refrax.subs import Subscription, SubscriptionGraph

logger = logging.getLogger("refrax.reaction")

Render = Callable[..., None]


class Reaction:
    """A mounted component. render(*values) runs when any of its values change."""

    __slots__ = ("_scheduler", "_subs", "_render", "_last", "_seq", "_disposed")

    def __init__(
        self,
        scheduler: RenderScheduler,
        subs: tuple[Subscription, ...],
        render: Render,
        seq: int,
    ) -> None:
        self._scheduler = scheduler
        self._subs = subs
        self._render = render
        self._last: tuple = ()
        self._seq = seq
        self._disposed = False

    @property
    def queries(self) -> tuple[Query, ...]:
        return tuple(s.query for s in self._subs)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def values(self) -> tuple:
        """Current values of every node this reaction reads."""
        return tuple(s.get() for s in self._subs)

    def dispose(self) -> None:
        """Unmount. Releases every subscription this reaction holds."""
        if not self._disposed:
            self._disposed = True
            self._scheduler._unmount(self)

    def __repr__(self) -> str:
        name = getattr(self._render, "__name__", "render")
        state = "disposed" if self._disposed else "mounted"
        return f"Reaction({name}, {list(self.queries)}, {state})"


class RenderScheduler:
    """Tracks which components read which nodes and re-renders them in batches."""

    def __init__(self, graph: SubscriptionGraph) -> None:
        self._graph = graph
        self._mounted: dict[Query, list[Reaction]] = {}
        self._batch = Batch(self._flush)
        self._seq = itertools.count()

    @property
    def batch(self) -> Batch:
        return self._batch

    def mount(self, render: Render, *queries: Any, fire_immediately: bool = True) -> Reaction:
        """Bind render to one or more nodes. Renders once now unless told not to."""
        subs: list[Subscription] = []
        try:
            for query in queries:
                subs.append(self._graph.subscribe(Query.of(query)))
        except Exception:
            for sub in subs:
                sub.dispose()
            raise

        reaction = Reaction(self, tuple(subs), render, next(self._seq))
        for sub in subs:
            self._mounted.setdefault(sub.query, []).append(reaction)
        try:
            reaction._last = reaction.values()
            if fire_immediately:
                render(*reaction._last)
        except Exception:
            reaction.dispose()
            raise
        return reaction

    def invalidate(self, queries: Iterable[Query]) -> None:
        """Note stale nodes. Renders happen when the current batch closes."""
        self._batch.schedule(q for q in queries if q in self._mounted)

    @contextmanager
    def transaction(self):
        """Batch every dispatch inside the block into one render pass.

        Usage:
            with scheduler.transaction():
                store.dispatch("a")
                store.dispatch("b")
                # components render here, once
        """
        self._batch.begin()
        try:
            yield
        finally:
            self._batch.end()

    def pending_count(self) -> int:
        """Number of stale nodes waiting for the render pass. Useful for testing."""
        return self._batch.pending_count()

    def clear(self) -> None:
        """Unmount everything without touching the graph."""
        for reactions in self._mounted.values():
            for reaction in reactions:
                reaction._disposed = True
        self._mounted.clear()
        self._batch.discard()

    def mounted_count(self) -> int:
        return len({id(r) for rs in self._mounted.values() for r in rs})

    def _flush(self, queries: list[Query]) -> None:
        affected: dict[Reaction, None] = {}
        for query in queries:
            for reaction in self._mounted.get(query, ()):
                affected[reaction] = None

        failure: Exception | None = None
        for reaction in sorted(affected, key=lambda r: r._seq):
            if reaction._disposed:
                continue
            try:
                values = reaction.values()
                if _same(values, reaction._last):
                    continue
                reaction._last = values
                logger.debug("Rendering %r", reaction)
                reaction._render(*values)
            except Exception as exc:
                # The rest of the pass still renders; the first error is raised after.
                logger.exception("Render of %r failed", reaction)
                if failure is None:
                    failure = exc
        if failure is not None:
            raise failure

    def _unmount(self, reaction: Reaction) -> None:
        for sub in reaction._subs:
            mounted = self._mounted.get(sub.query)
            if mounted is not None:
                if reaction in mounted:
                    mounted.remove(reaction)
                if not mounted:
                    del self._mounted[sub.query]
            sub.dispose()


def _same(a: tuple, b: tuple) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b))
