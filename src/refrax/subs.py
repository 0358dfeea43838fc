"""Subscription graph — named, cached derivations over the state tree.

Two kinds of node:
- root: reads a path out of the current state.
- derived: a pure function of the outputs of its parent nodes.

Evaluation is pull-based and memoized. A commit marks the affected nodes
stale; nothing recomputes until a stale node is read again, so nodes with
no consumer never run. A recomputed output that equals the previous one
keeps the previous object, which lets downstream nodes and renders skip
work by identity.

Nodes only exist while something consumes them. subscribe() creates the
cache entry (and, recursively, its parents'); disposing the last consumer
tears it down again.

All cached data lives in the Arena (_anchor) — this module is behavior only.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, Iterable

from refrax._anchor import UNSET, Arena, CacheEntry, NodeDef, Query
from refrax._tracking import Chain
from refrax.db import AppDb
from refrax.errors import (
    CyclicSubscription,
    StaleReadAfterTeardown,
    UnknownSubscription,
)
from refrax.path import get_in

logger = logging.getLogger("refrax.subs")


class Subscription:
    """A consumer's live, read-only handle on one node.

    get() always returns the current derived value. After dispose(), any
    read raises StaleReadAfterTeardown.
    """

    __slots__ = ("_graph", "_query", "_disposed")

    def __init__(self, graph: SubscriptionGraph, query: Query) -> None:
        self._graph = graph
        self._query = query
        self._disposed = False

    @property
    def query(self) -> Query:
        return self._query

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get(self) -> Any:
        """Current value of the node. Recomputes if stale."""
        if self._disposed:
            raise StaleReadAfterTeardown(f"read of {self._query!r} after dispose()")
        return self._graph.value(self._query)

    @property
    def value(self) -> Any:
        return self.get()

    def dispose(self) -> None:
        """Give up this consumer slot. Idempotent."""
        if not self._disposed:
            self._disposed = True
            self._graph._release(self._query)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "live"
        return f"Subscription({self._query!r}, {state})"


class SubscriptionGraph:
    """Definitions, live cache entries, and the evaluation algorithm."""

    def __init__(self, db: AppDb, arena: Arena | None = None) -> None:
        self._db = db
        self._arena = arena if arena is not None else Arena()
        self._chain = Chain()

    # --- Registration ---

    def register(
        self,
        sub_id: Hashable,
        *,
        path=None,
        inputs=None,
        compute: Callable[..., Any] | None = None,
        equal: Callable[[Any, Any], bool] | None = None,
    ) -> set[Query]:
        """Define sub_id. Returns the queries that went stale as a result.

        Exactly one of path (root node) or compute (derived node) is required.
        Redefining an id rebuilds its live entries against the new definition.
        """
        if (path is None) == (compute is None):
            raise ValueError(f"subscription {sub_id!r} needs exactly one of path or compute")
        if path is not None and inputs is not None:
            raise ValueError(f"root subscription {sub_id!r} cannot declare inputs")

        node = NodeDef(sub_id, path=path, inputs=inputs, compute=compute, equal=equal)
        previous = self._arena.definitions.get(sub_id)
        if previous is not None:
            logger.debug("Overwriting subscription %r", sub_id)
        self._arena.definitions[sub_id] = node

        stale: set[Query] = set()
        rebound: list[CacheEntry] = []
        try:
            for entry in self._arena.live_for(sub_id):
                stale |= self._rebind(entry, node)
                rebound.append(entry)
        except Exception:
            # Put back what was there; the old definition was acyclic.
            if previous is None:
                del self._arena.definitions[sub_id]
            else:
                self._arena.definitions[sub_id] = previous
                for entry in rebound:
                    self._rebind(entry, previous)
            raise
        return stale

    def unregister(self, sub_id: Hashable) -> None:
        """Forget a definition. Live entries keep running until disposed."""
        self._arena.definitions.pop(sub_id, None)

    def registered(self, sub_id: Hashable) -> bool:
        return sub_id in self._arena.definitions

    def snapshot(self) -> dict[Hashable, NodeDef]:
        """Copy of the current definitions, for restore()."""
        return dict(self._arena.definitions)

    def restore(self, definitions: dict[Hashable, NodeDef]) -> set[Query]:
        """Put back a snapshot() and rebuild live entries that were redefined since.

        Returns the queries that went stale.
        """
        self._arena.definitions.clear()
        self._arena.definitions.update(definitions)
        stale: set[Query] = set()
        for entry in list(self._arena.entries.values()):
            if self._arena.entries.get(entry.query) is not entry:
                continue  # torn down by an earlier rebind
            node = definitions.get(entry.query.id)
            if node is not None and node is not entry.node:
                stale |= self._rebind(entry, node)
        return stale

    # --- Consumers ---

    def subscribe(self, query: Query) -> Subscription:
        """Add a consumer to query, creating and evaluating its entry if needed."""
        query = Query.of(query)
        self._acquire(query)
        return Subscription(self, query)

    def value(self, query: Query) -> Any:
        """Memoized value of a live node."""
        entry = self._arena.entries.get(Query.of(query))
        if entry is None:
            raise StaleReadAfterTeardown(f"{query!r} has no live consumers")
        return self._value(entry)

    def peek(self, query: Query) -> Any:
        """One-shot value for any query. Creates no cache entries."""
        query = Query.of(query)
        entry = self._arena.entries.get(query)
        if entry is not None:
            return self._value(entry)
        with self._chain.enter(query):
            node = self._definition(query.id)
            if node.is_root:
                return get_in(self._db.read(), node.resolve_path(query.args))
            inputs = tuple(self.peek(p) for p in node.resolve_inputs(query.args))
            return node.compute(*inputs, *query.args)

    # --- Commit handling ---

    def on_commit(self, old_state: Any, new_state: Any) -> set[Query]:
        """Refresh live roots against new_state; mark their dependants stale.

        Roots whose value is unchanged (by their comparator) leave the
        graph alone. A root whose comparator raises is left stale, so the
        error resurfaces when that root is next read. Returns every query
        that changed or went stale.
        """
        if old_state is new_state:
            return set()
        changed = []
        for entry in list(self._arena.entries.values()):
            if not entry.node.is_root or entry.stale:
                continue
            new = get_in(new_state, entry.node.resolve_path(entry.query.args))
            try:
                same = new is entry.value or entry.node.equal(entry.value, new)
            except Exception:
                logger.exception("Comparator for %r failed; re-reading on next access", entry.query)
                entry.stale = True
                changed.append(entry.query)
                continue
            if same:
                continue
            entry.value = new
            entry.runs += 1
            changed.append(entry.query)
        return self._propagate(changed)

    # --- Diagnostics ---

    def is_live(self, query: Query) -> bool:
        return Query.of(query) in self._arena.entries

    def consumer_count(self, query: Query) -> int:
        entry = self._arena.entries.get(Query.of(query))
        return entry.consumers if entry is not None else 0

    def recompute_count(self, query: Query) -> int:
        """How many times a live node computed a new output."""
        entry = self._arena.entries.get(Query.of(query))
        return entry.runs if entry is not None else 0

    def live_queries(self) -> list[Query]:
        return list(self._arena.entries)

    def clear(self) -> None:
        """Tear down every live entry. Outstanding handles become unreadable."""
        for entry in self._arena.entries.values():
            entry.torn_down = True
            entry.value = UNSET
        self._arena.entries.clear()

    # --- Internals ---

    def _definition(self, sub_id: Hashable) -> NodeDef:
        node = self._arena.definitions.get(sub_id)
        if node is None:
            raise UnknownSubscription(sub_id)
        return node

    def _acquire(self, query: Query, child: Query | None = None) -> CacheEntry:
        """Count one more consumer of query, constructing it on first use."""
        with self._chain.enter(query):
            entry = self._arena.entries.get(query)
            if entry is not None:
                entry.consumers += 1
            else:
                entry = self._construct(query)
        if child is not None:
            entry.children.add(child)
        return entry

    def _construct(self, query: Query) -> CacheEntry:
        node = self._definition(query.id)
        parents = node.resolve_inputs(query.args)
        acquired: list[Query] = []
        try:
            for parent in parents:
                self._acquire(parent, child=query)
                acquired.append(parent)
        except Exception:
            self._release_all(acquired, query)
            raise

        entry = CacheEntry(query, node, parents)
        self._arena.entries[query] = entry
        try:
            self._value(entry)
        except Exception:
            del self._arena.entries[query]
            entry.torn_down = True
            self._release_all(acquired, query)
            raise
        logger.debug("Created %r", query)
        return entry

    def _release(self, query: Query) -> None:
        """Drop one consumer; tear down and release parents at zero."""
        entry = self._arena.entries.get(query)
        if entry is None:
            return
        entry.consumers -= 1
        if entry.consumers > 0:
            return
        del self._arena.entries[query]
        entry.torn_down = True
        entry.value = UNSET
        logger.debug("Tore down %r", query)
        self._release_all(entry.parents, query)

    def _release_all(self, parents: Iterable[Query], child: Query) -> None:
        for parent in parents:
            parent_entry = self._arena.entries.get(parent)
            if parent_entry is not None:
                parent_entry.children.discard(child)
            self._release(parent)

    def _rebind(self, entry: CacheEntry, node: NodeDef) -> set[Query]:
        """Point a live entry at a new definition and invalidate it."""
        query = entry.query
        parents = node.resolve_inputs(query.args)
        for parent in parents:
            path = self._path_to(parent, query, set())
            if path is not None:
                raise CyclicSubscription((query,) + path)
        acquired: list[Query] = []
        with self._chain.enter(query):
            try:
                for parent in parents:
                    self._acquire(parent, child=query)
                    acquired.append(parent)
            except Exception:
                self._release_all(acquired, query)
                raise
        old_parents = entry.parents
        entry.node = node
        entry.parents = parents
        self._release_all(old_parents, query)
        # A parent shared by both sets lost its link above.
        for parent in parents:
            self._arena.entries[parent].children.add(query)
        entry.inputs = UNSET
        entry.stale = True
        return {query} | self._propagate([query])

    def _path_to(self, query: Query, target: Query, seen: set[Query]) -> tuple[Query, ...] | None:
        """Ancestor path from query up to target, or None.

        Follows both the current definitions and the live parent links, so
        a path through a node nobody has subscribed to yet is still found.
        """
        if query == target:
            return (query,)
        if query in seen:
            return None
        seen.add(query)
        parents: dict[Query, None] = {}
        entry = self._arena.entries.get(query)
        if entry is not None:
            parents.update(dict.fromkeys(entry.parents))
        node = self._arena.definitions.get(query.id)
        if node is not None:
            parents.update(dict.fromkeys(node.resolve_inputs(query.args)))
        for parent in parents:
            path = self._path_to(parent, target, seen)
            if path is not None:
                return (query,) + path
        return None

    def _propagate(self, changed: Iterable[Query]) -> set[Query]:
        """Mark every transitive dependant of changed stale. Set-based, no recompute."""
        stale = set(changed)
        frontier = list(stale)
        while frontier:
            entry = self._arena.entries.get(frontier.pop())
            if entry is None:
                continue
            for child in entry.children:
                child_entry = self._arena.entries.get(child)
                if child_entry is None or child_entry.stale:
                    continue
                child_entry.stale = True
                stale.add(child)
                frontier.append(child)
        return stale

    def _value(self, entry: CacheEntry) -> Any:
        if not entry.stale:
            return entry.value
        node = entry.node
        args = entry.query.args
        if node.is_root:
            new = get_in(self._db.read(), node.resolve_path(args))
            entry.runs += 1
            self._store(entry, new)
            return entry.value

        inputs = tuple(self._value(self._arena.entries[p]) for p in entry.parents)
        if entry.inputs is not UNSET and _same(inputs, entry.inputs):
            # Parents refreshed to the very same objects: nothing to do.
            entry.stale = False
            return entry.value

        new = node.compute(*inputs, *args)
        entry.runs += 1
        entry.inputs = inputs
        self._store(entry, new)
        return entry.value

    @staticmethod
    def _store(entry: CacheEntry, new: Any) -> None:
        if entry.value is UNSET or not entry.node.equal(entry.value, new):
            entry.value = new
        entry.stale = False


def _same(a: tuple, b: tuple) -> bool:
    return len(a) == len(b) and all(x is y for x, y in zip(a, b))
