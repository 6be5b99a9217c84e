"""
TaskRunner - drives a TaskQueue.

The queue only prescribes start order. This runner is the concurrency
policy on top of it: it pops tasks in queue order, keeps up to
max_concurrent of them in flight, awaits the ones that return awaitables,
and reports each finished task as a TaskOutcome.

Design principles:
- Start order follows the queue; completion order does not
- Action failures become error outcomes; the runner keeps draining
- Stop is graceful: nothing new starts, in-flight tasks finish
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Literal, Optional

from preset_relay.errors import ConfigurationError
from preset_relay.task_queue import Task, TaskQueue

logger = logging.getLogger(__name__)


@dataclass
class TaskOutcome:
    """Result of running one queued task."""
    priority: float
    status: Literal["success", "error"]
    duration_ms: int
    result: Any = None
    error: Optional[BaseException] = None


class TaskRunner:
    """
    Execute queued tasks with bounded concurrency.

    Usage:
        runner = TaskRunner(queue, max_concurrent=2)
        async for outcome in runner.run():
            handle(outcome)
    """

    def __init__(self, queue: TaskQueue, max_concurrent: int = 1):
        if max_concurrent < 1:
            raise ConfigurationError(
                f"max_concurrent must be at least 1, got {max_concurrent}"
            )
        self.queue = queue
        self.max_concurrent = max_concurrent
        self._should_stop = False

    def request_stop(self) -> None:
        """Stop starting new tasks; in-flight tasks still finish."""
        self._should_stop = True

    def clear_stop(self) -> None:
        """Clear stop flag for new run."""
        self._should_stop = False

    async def run(self) -> AsyncGenerator[TaskOutcome, None]:
        """
        Drain the queue.

        Yields:
            TaskOutcome for each finished task, in completion order

        If the consumer stops iterating early, in-flight tasks are cancelled.
        """
        self.clear_stop()
        active: set[asyncio.Task] = set()

        try:
            while True:
                while not self._should_stop and len(active) < self.max_concurrent:
                    task = self.queue.pop()
                    if task is None:
                        break
                    active.add(asyncio.create_task(self._run_one(task)))

                if not active:
                    break

                done, active = await asyncio.wait(
                    active, return_when=asyncio.FIRST_COMPLETED
                )
                for finished in done:
                    yield finished.result()
        finally:
            if active:
                logger.info(f"Runner closed, cancelling {len(active)} in-flight tasks")
                for pending in active:
                    pending.cancel()
                await asyncio.gather(*active, return_exceptions=True)

        if self._should_stop and len(self.queue):
            logger.info(f"Stop requested, {len(self.queue)} tasks left in queue")

    async def run_all(self) -> list[TaskOutcome]:
        """Drain the queue and collect every outcome."""
        return [outcome async for outcome in self.run()]

    async def _run_one(self, task: Task) -> TaskOutcome:
        start_time = time.perf_counter()
        try:
            result = self.queue.exec(task)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            logger.warning(f"Task with priority {task.priority} failed: {e}")
            return TaskOutcome(
                priority=task.priority,
                status="error",
                duration_ms=duration_ms,
                error=e,
            )

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        return TaskOutcome(
            priority=task.priority,
            status="success",
            duration_ms=duration_ms,
            result=result,
        )
