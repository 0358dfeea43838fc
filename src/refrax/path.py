"""Path helpers — read and update a state tree without mutating it.

Updates copy only the containers along the path. Every branch off the path
is shared with the previous version, so subscriptions rooted elsewhere see
the very same objects and are not invalidated.

Usage:
    state = {"tasks": {1: {"title": "Buy milk"}}}
    get_in(state, ("tasks", 1, "title"))            # "Buy milk"
    new = assoc_in(state, ("tasks", 1, "done"), True)
    state["tasks"][1]                               # unchanged
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Callable, Hashable

Path = tuple[Hashable, ...]

_MISSING = object()


def _lookup(node: Any, key: Hashable, default: Any) -> Any:
    if isinstance(node, Mapping):
        return node.get(key, default)
    if isinstance(node, Sequence) and not isinstance(node, (str, bytes)):
        if isinstance(key, int) and -len(node) <= key < len(node):
            return node[key]
    return default


def get_in(tree: Any, path: Path, default: Any = None) -> Any:
    """Value at path, or default when any step is missing."""
    node = tree
    for key in path:
        node = _lookup(node, key, _MISSING)
        if node is _MISSING:
            return default
    return node


def _replace(node: Any, key: Hashable, value: Any) -> Any:
    """Shallow copy of node with key set to value."""
    if node is None:
        return {key: value}
    if isinstance(node, Mapping):
        copy = dict(node)
        copy[key] = value
        return copy
    if isinstance(node, (list, tuple)) and isinstance(key, int):
        items = list(node)
        if key == len(items):
            items.append(value)
        else:
            items[key] = value
        return type(node)(items)
    raise TypeError(f"cannot set {key!r} on {type(node).__name__}")


def assoc_in(tree: Any, path: Path, value: Any) -> Any:
    """New tree with value at path. Missing intermediate mappings are created."""
    if not path:
        return value
    key, rest = path[0], path[1:]
    child = _lookup(tree, key, None) if tree is not None else None
    new_child = assoc_in(child, rest, value)
    if child is new_child and tree is not None and _lookup(tree, key, _MISSING) is new_child:
        return tree
    return _replace(tree, key, new_child)


def update_in(tree: Any, path: Path, fn: Callable[..., Any], *args: Any) -> Any:
    """New tree with fn(current, *args) at path."""
    return assoc_in(tree, path, fn(get_in(tree, path), *args))


def dissoc_in(tree: Any, path: Path) -> Any:
    """New tree with the last key of path removed. Missing paths are a no-op."""
    if not path:
        raise ValueError("dissoc_in needs a non-empty path")
    *parents, key = path
    container = get_in(tree, tuple(parents), _MISSING)
    if container is _MISSING or _lookup(container, key, _MISSING) is _MISSING:
        return tree
    if isinstance(container, Mapping):
        trimmed = {k: v for k, v in container.items() if k != key}
    else:
        items = list(container)
        del items[key]
        trimmed = type(container)(items)
    return assoc_in(tree, tuple(parents), trimmed)
