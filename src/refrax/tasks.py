"""Task manager — the reference application built on the engine.

Task fields beyond id, title and status are opaque: they ride along in the
payload and are stored as given. Handlers tolerate payloads that refer to
tasks which no longer exist (a late API completion, a double click) by
leaving the state unchanged.

Usage:
    store = Store()
    tasks.register(store)
    store.initialize()
    store.dispatch(TaskEvent.CREATE, "Buy milk")
    store.query(TaskSub.ALL_TASKS)  # ({"id": 1, "title": "Buy milk", "status": "pending"},)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from refrax.errors import InvalidPayload
from refrax.interceptor import Interceptor
from refrax.path import assoc_in, dissoc_in, get_in, update_in
from refrax.watch import WatchHandle, watch

PENDING = "pending"
COMPLETED = "completed"
FILTERS = ("all", PENDING, COMPLETED)


class TaskEvent(str, Enum):
    INITIALIZE = "initialize"
    CREATE = "task-create"
    UPDATE = "task-update"
    TOGGLE_COMPLETE = "task-toggle-complete"
    DELETE = "task-delete"
    CLEAR_COMPLETED = "tasks-clear-completed"
    SET_FILTER = "set-filter"
    NAVIGATE = "navigate"
    FETCH = "fetch-tasks"
    FETCH_SUCCESS = "fetch-tasks-success"
    FETCH_FAILURE = "fetch-tasks-failure"


class TaskSub(str, Enum):
    TASKS = "tasks"
    ORDER = "task-order"
    FILTER = "filter"
    ROUTE = "route"
    LOADING = "loading"
    ERROR = "error"
    TASK = "task"
    ALL_TASKS = "all-tasks"
    VISIBLE_TASKS = "visible-tasks"
    TASK_COUNTS = "task-counts"


def default_state() -> dict[str, Any]:
    return {
        "tasks": {},
        "order": (),
        "next-id": 1,
        "filter": "all",
        "route": {"name": "tasks", "params": {}},
        "loading": False,
        "error": None,
    }


# ─── Payload checks ──────────────────────────────────────────────────────────


def _task_fields(payload: Any) -> dict[str, Any]:
    """A new task's fields from a title string or a mapping with a title."""
    fields = {"title": payload} if isinstance(payload, str) else payload
    if not isinstance(fields, Mapping):
        raise InvalidPayload(f"expected a title or a mapping, got {type(payload).__name__}")
    title = fields.get("title")
    if not isinstance(title, str) or not title.strip():
        raise InvalidPayload("a task needs a non-empty title")
    status = fields.get("status", PENDING)
    if status not in (PENDING, COMPLETED):
        raise InvalidPayload(f"unknown status {status!r}")
    return {**fields, "title": title.strip(), "status": status}


# ─── Handlers ────────────────────────────────────────────────────────────────


def initialize(state, payload):
    return default_state()


def create_task(state, payload):
    fields = _task_fields(payload)
    task_id = state["next-id"]
    task = {**fields, "id": task_id}
    state = assoc_in(state, ("tasks", task_id), task)
    state = assoc_in(state, ("order",), state["order"] + (task_id,))
    return assoc_in(state, ("next-id",), task_id + 1)


def update_task(state, payload):
    if not isinstance(payload, Mapping) or "id" not in payload:
        raise InvalidPayload("task-update needs a mapping with an id")
    task_id = payload["id"]
    task = get_in(state, ("tasks", task_id))
    if task is None:
        return state
    changes = {k: v for k, v in payload.items() if k != "id"}
    if "status" in changes and changes["status"] not in (PENDING, COMPLETED):
        raise InvalidPayload(f"unknown status {changes['status']!r}")
    if "title" in changes:
        changes["title"] = _task_fields({"title": changes["title"]})["title"]
    return assoc_in(state, ("tasks", task_id), {**task, **changes})


def toggle_complete(state, task_id):
    task = get_in(state, ("tasks", task_id))
    if task is None:
        return state
    status = PENDING if task["status"] == COMPLETED else COMPLETED
    return assoc_in(state, ("tasks", task_id, "status"), status)


def delete_task(state, task_id):
    if get_in(state, ("tasks", task_id)) is None:
        return state
    state = dissoc_in(state, ("tasks", task_id))
    return update_in(state, ("order",), lambda order: tuple(i for i in order if i != task_id))


def clear_completed(state, payload):
    done = {i for i, t in state["tasks"].items() if t["status"] == COMPLETED}
    if not done:
        return state
    state = assoc_in(
        state, ("tasks",), {i: t for i, t in state["tasks"].items() if i not in done}
    )
    return update_in(state, ("order",), lambda order: tuple(i for i in order if i not in done))


def set_filter(state, name):
    if name not in FILTERS:
        raise InvalidPayload(f"filter must be one of {FILTERS}, got {name!r}")
    return assoc_in(state, ("filter",), name)


def navigate(state, payload):
    """Router hook: one event per route change."""
    if isinstance(payload, str):
        route = {"name": payload, "params": {}}
    elif isinstance(payload, Mapping) and isinstance(payload.get("name"), str):
        route = {"name": payload["name"], "params": dict(payload.get("params") or {})}
    else:
        raise InvalidPayload("navigate needs a route name or {'name': ..., 'params': ...}")
    return assoc_in(state, ("route",), route)


def fetch_started(state, payload):
    state = assoc_in(state, ("loading",), True)
    return assoc_in(state, ("error",), None)


def fetch_succeeded(state, payload):
    if not isinstance(payload, Iterable) or isinstance(payload, (str, Mapping)):
        raise InvalidPayload("fetch-tasks-success needs a sequence of tasks")
    tasks: dict[Any, dict] = {}
    order = []
    for item in payload:
        if not isinstance(item, Mapping) or "id" not in item:
            raise InvalidPayload("every fetched task needs an id")
        task = {**_task_fields(item), "id": item["id"]}
        tasks[task["id"]] = task
        order.append(task["id"])
    numeric = [i for i in order if isinstance(i, int)]
    next_id = max([state["next-id"] - 1, *numeric]) + 1
    return {
        **state,
        "tasks": tasks,
        "order": tuple(order),
        "next-id": next_id,
        "loading": False,
        "error": None,
    }


def fetch_failed(state, error):
    state = assoc_in(state, ("loading",), False)
    return assoc_in(state, ("error",), str(error))


HANDLERS = {
    TaskEvent.INITIALIZE: initialize,
    TaskEvent.CREATE: create_task,
    TaskEvent.UPDATE: update_task,
    TaskEvent.TOGGLE_COMPLETE: toggle_complete,
    TaskEvent.DELETE: delete_task,
    TaskEvent.CLEAR_COMPLETED: clear_completed,
    TaskEvent.SET_FILTER: set_filter,
    TaskEvent.NAVIGATE: navigate,
    TaskEvent.FETCH: fetch_started,
    TaskEvent.FETCH_SUCCESS: fetch_succeeded,
    TaskEvent.FETCH_FAILURE: fetch_failed,
}


# ─── Subscriptions ───────────────────────────────────────────────────────────


def all_tasks(tasks, order):
    return tuple(tasks[i] for i in order if i in tasks)


def visible_tasks(tasks, name):
    if name == "all":
        return tasks
    return tuple(t for t in tasks if t["status"] == name)


def task_counts(tasks):
    completed = sum(1 for t in tasks if t["status"] == COMPLETED)
    return {"total": len(tasks), PENDING: len(tasks) - completed, COMPLETED: completed}


def register(store, interceptors: Iterable[Interceptor] = ()) -> None:
    """Install every task handler and subscription on store."""
    interceptors = tuple(interceptors)
    for event_id, handler in HANDLERS.items():
        store.reg_event(event_id, handler, interceptors)

    store.reg_sub(TaskSub.TASKS, path=("tasks",))
    store.reg_sub(TaskSub.ORDER, path=("order",))
    store.reg_sub(TaskSub.FILTER, path=("filter",))
    store.reg_sub(TaskSub.ROUTE, path=("route",))
    store.reg_sub(TaskSub.LOADING, path=("loading",))
    store.reg_sub(TaskSub.ERROR, path=("error",))
    store.reg_sub(TaskSub.TASK, path=lambda task_id: ("tasks", task_id))
    store.reg_sub(TaskSub.ALL_TASKS, all_tasks, inputs=[TaskSub.TASKS, TaskSub.ORDER])
    store.reg_sub(
        TaskSub.VISIBLE_TASKS, visible_tasks, inputs=[TaskSub.ALL_TASKS, TaskSub.FILTER]
    )
    store.reg_sub(TaskSub.TASK_COUNTS, task_counts, inputs=[TaskSub.ALL_TASKS])


# ─── API layer ───────────────────────────────────────────────────────────────


class MockApi:
    """In-memory stand-in for the task HTTP API."""

    def __init__(self, tasks: Iterable[Mapping] = (), *, error: Exception | None = None) -> None:
        self._tasks = [dict(t) for t in tasks]
        self._error = error

    def fetch_tasks(self) -> list[dict]:
        if self._error is not None:
            raise self._error
        return [dict(t) for t in self._tasks]


def fetch_tasks(store, api) -> WatchHandle:
    """Mark loading, then load tasks from api in the background."""
    store.dispatch(TaskEvent.FETCH)
    return watch(
        store,
        api.fetch_tasks,
        on_success=TaskEvent.FETCH_SUCCESS,
        on_failure=TaskEvent.FETCH_FAILURE,
    )
