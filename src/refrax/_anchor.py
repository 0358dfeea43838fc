"""Arena — plain data structures that hold all subscription state.

Subscription definitions and cache entries live here, keyed by identifier.
Separating data from behavior means the graph logic in subs.py can be
redefined (hot reload) while the cached values and consumer counts persist.
Teardown is explicit reference counting, not garbage collection.
"""

from __future__ import annotations

from typing import Any, Callable, Hashable, NamedTuple

UNSET = object()


def structural_equal(old: Any, new: Any) -> bool:
    """Default comparator: identity first, then ==."""
    return old is new or old == new


class Query(NamedTuple):
    """Node identity: a subscription id plus its argument values."""

    id: Hashable
    args: tuple = ()

    @classmethod
    def of(cls, ref: Any) -> Query:
        """Normalize a Query or a bare subscription id."""
        if isinstance(ref, Query):
            return ref
        return cls(ref, ())

    def __repr__(self) -> str:
        ident = getattr(self.id, "value", self.id)
        if not self.args:
            return f"<{ident}>"
        return f"<{ident} {' '.join(map(repr, self.args))}>"


class NodeDef:
    """How to compute one subscription id. Shared by every Query with that id."""

    __slots__ = ("sub_id", "path", "inputs", "compute", "equal")

    def __init__(
        self,
        sub_id: Hashable,
        *,
        path=None,
        inputs=None,
        compute: Callable[..., Any] | None = None,
        equal: Callable[[Any, Any], bool] | None = None,
    ) -> None:
        self.sub_id = sub_id
        self.path = path
        self.inputs = inputs
        self.compute = compute
        self.equal = equal or structural_equal

    @property
    def is_root(self) -> bool:
        return self.path is not None

    def resolve_path(self, args: tuple) -> tuple:
        return tuple(self.path(*args)) if callable(self.path) else tuple(self.path)

    def resolve_inputs(self, args: tuple) -> tuple[Query, ...]:
        if self.path is not None:
            return ()
        refs = self.inputs(*args) if callable(self.inputs) else (self.inputs or ())
        return tuple(map(Query.of, refs))

    def __repr__(self) -> str:
        kind = "root" if self.is_root else "derived"
        return f"NodeDef({self.sub_id!r}, {kind})"


class CacheEntry:
    """Live state of one node: last output, inputs signature, consumers."""

    __slots__ = (
        "query",
        "node",
        "parents",
        "children",
        "consumers",
        "inputs",
        "value",
        "stale",
        "runs",
        "torn_down",
    )

    def __init__(self, query: Query, node: NodeDef, parents: tuple[Query, ...]) -> None:
        self.query = query
        self.node = node
        self.parents = parents
        self.children: set[Query] = set()
        self.consumers = 1
        self.inputs: tuple | object = UNSET
        self.value: Any = UNSET
        self.stale = True
        self.runs = 0
        self.torn_down = False

    def __repr__(self) -> str:
        state = "stale" if self.stale else f"cached={self.value!r}"
        return f"CacheEntry({self.query!r}, consumers={self.consumers}, {state})"


class Arena:
    """Definitions and live entries, keyed by id and by Query respectively."""

    __slots__ = ("definitions", "entries")

    def __init__(self) -> None:
        self.definitions: dict[Hashable, NodeDef] = {}
        self.entries: dict[Query, CacheEntry] = {}

    def live_for(self, sub_id: Hashable) -> list[CacheEntry]:
        return [e for q, e in self.entries.items() if q.id == sub_id]
