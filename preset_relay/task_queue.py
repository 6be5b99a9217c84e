"""
TaskQueue - sorted-insertion priority queue of deferred work.

A task is {action, params, priority}. The queue only decides the ORDER in
which actions start; it does no I/O, never suspends and does not catch
anything an action raises.

Pop direction (easy to get backwards):
- ascending:  stored smallest-first, pops from the tail
- descending: stored largest-first, pops from the head
- unordered:  stored in push order, pops from the tail (LIFO)

Both ordered modes therefore release the largest remaining priority first.
Among equal priorities, ordered modes pop in insertion (FIFO) order.
"""

import bisect
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from numbers import Real
from typing import Any, Callable, Iterable, Optional, Sequence

from preset_relay.errors import ConfigurationError, InvalidTaskError

logger = logging.getLogger(__name__)


@dataclass
class Task:
    """
    Unit of deferred work.

    No identity beyond its position in the queue; duplicate priorities
    are fine.
    """
    action: Callable[..., Any]
    params: Sequence[Any] = ()
    priority: float = 0


def _is_priority(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return not math.isnan(value)


def _coerce_task(item: Any) -> Task:
    """Accept a Task or a {action, params, priority} mapping."""
    if isinstance(item, Task):
        task = item
    elif isinstance(item, Mapping):
        if "priority" not in item:
            raise InvalidTaskError("Task must have a numeric 'priority'")
        task = Task(
            action=item.get("action"),
            params=item.get("params") or (),
            priority=item["priority"],
        )
    else:
        raise InvalidTaskError(
            f"Task must be a Task or mapping, got {type(item).__name__}"
        )

    if not _is_priority(task.priority):
        raise InvalidTaskError(
            f"Task priority must be a number, got {task.priority!r}"
        )
    return task


class TaskQueue:
    """
    Priority queue with three modes: ascending, descending or unordered.

    Usage:
        queue = TaskQueue(descending=True, ascending=False)
        queue.push(Task(action=fn, params=(1, 2), priority=5))
        result = queue.pop_exec()
    """

    def __init__(
        self,
        tasks: Optional[Iterable[Any]] = None,
        ascending: bool = True,
        descending: bool = False,
    ):
        """
        Args:
            tasks: Initial tasks (Task objects or mappings)
            ascending: Keep tasks sorted smallest-first
            descending: Keep tasks sorted largest-first

        Raises:
            ConfigurationError: if both ascending and descending are set
            InvalidTaskError: if any initial task lacks a numeric priority
        """
        if ascending and descending:
            raise ConfigurationError(
                "A queue cannot be sorted in both ascending and descending order."
            )
        self.ascending = bool(ascending)
        self.descending = bool(descending)

        initial = [_coerce_task(t) for t in (tasks or [])]
        if self.ascending:
            # Reverse first so earlier ties end up nearer the tail
            initial = sorted(reversed(initial), key=lambda t: t.priority)
        elif self.descending:
            initial = sorted(initial, key=lambda t: t.priority, reverse=True)
        self._tasks: list[Task] = initial

    @property
    def mode(self) -> str:
        if self.ascending:
            return "ascending"
        if self.descending:
            return "descending"
        return "unordered"

    def __len__(self) -> int:
        return len(self._tasks)

    def push(self, item: Any) -> None:
        """
        Insert a task, keeping sort order.

        Ordered modes binary-search the insertion point. Ascending inserts in
        front of an equal-priority run and descending behind it, so ties pop
        first-in first-out in both modes.

        Raises:
            InvalidTaskError: if the task has no numeric priority
        """
        task = _coerce_task(item)

        if self.ascending:
            index = bisect.bisect_left(
                self._tasks, task.priority, key=lambda t: t.priority
            )
        elif self.descending:
            # bisect needs ascending keys; negate for the descending store
            index = bisect.bisect_right(
                self._tasks, -task.priority, key=lambda t: -t.priority
            )
        else:
            self._tasks.append(task)
            return

        self._tasks.insert(index, task)

    def peek(self) -> Optional[Task]:
        """Return the task pop() would return, without removing it."""
        if not self._tasks:
            return None
        if self.descending:
            return self._tasks[0]
        return self._tasks[-1]

    def pop(self) -> Optional[Task]:
        """Remove and return the next task, or None if the queue is empty."""
        if not self._tasks:
            return None
        if self.descending:
            return self._tasks.pop(0)
        return self._tasks.pop()

    def clear(self) -> None:
        self._tasks = []

    def exec(self, task: Any) -> Any:
        """
        Invoke task.action(*task.params) and return its result.

        Whatever the action raises propagates unchanged. If the action is a
        coroutine function the coroutine is returned for the caller to await.

        Raises:
            InvalidTaskError: if task is missing or its action is not callable
        """
        if task is None:
            raise InvalidTaskError("Cannot execute an invalid task.")
        if isinstance(task, Mapping):
            action = task.get("action")
            params = task.get("params") or ()
        elif isinstance(task, Task):
            action = task.action
            params = task.params or ()
        else:
            raise InvalidTaskError("Cannot execute an invalid task.")

        if not callable(action):
            raise InvalidTaskError("Task action must be callable.")

        return action(*params)

    def pop_exec(self) -> Any:
        """Pop the next task and execute it. Returns None if the queue was empty."""
        task = self.pop()
        if task is None:
            return None
        logger.debug(f"Executing task with priority {task.priority} ({self.mode})")
        return self.exec(task)
