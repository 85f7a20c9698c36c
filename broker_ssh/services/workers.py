"""Bounded worker pools for channel opening and command execution.

Each pool runs at most ``max_workers`` tasks concurrently and lets at most
``max_queue`` further tasks wait for a worker. A submission beyond that is
rejected immediately with ``CapacityExceeded`` instead of queuing without
bound.
"""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from broker_ssh.errors import CapacityExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedWorkerPool:
    """Fixed-capacity task executor with a fail-fast queue."""

    def __init__(self, name: str, max_workers: int, max_queue: int) -> None:
        """Initialize pool.

        Args:
            name: Pool name, used as task name prefix and in log messages
            max_workers: Maximum tasks running at once (must be > 0)
            max_queue: Maximum tasks waiting for a worker (must be >= 0)

        Raises:
            ValueError: If limits are out of range
        """
        if max_workers <= 0:
            raise ValueError(f"max_workers must be > 0, got {max_workers}")
        if max_queue < 0:
            raise ValueError(f"max_queue must be >= 0, got {max_queue}")

        self.name = name
        self.max_workers = max_workers
        self.max_queue = max_queue
        self._workers = asyncio.Semaphore(max_workers)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._active = 0
        self._counter = itertools.count(1)
        self._shutdown = False

        logger.info(
            "Worker pool %s initialized (workers=%d, queue=%d)",
            name,
            max_workers,
            max_queue,
        )

    @property
    def capacity(self) -> int:
        """Total tasks the pool accepts at once (running plus queued)."""
        return self.max_workers + self.max_queue

    @property
    def active(self) -> int:
        """Number of tasks currently holding a worker."""
        return self._active

    @property
    def queued(self) -> int:
        """Number of submitted tasks still waiting for a worker."""
        return len(self._tasks) - self._active

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(
        self, func: Callable[..., Awaitable[T]], *args: Any
    ) -> "asyncio.Task[T]":
        """Schedule ``func(*args)`` on the pool.

        The coroutine is only created once the submission is accepted.

        Returns:
            Task resolving to the coroutine's result

        Raises:
            CapacityExceeded: If the pool is full or shut down
        """
        if self._shutdown:
            raise CapacityExceeded(f"Worker pool {self.name} is shut down")
        if len(self._tasks) >= self.capacity:
            raise CapacityExceeded(
                f"Worker pool {self.name} is full "
                f"({self.max_workers} workers, {self.max_queue} queued)"
            )

        task = asyncio.create_task(
            self._run(func, args),
            name=f"{self.name}-{next(self._counter)}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, func: Callable[..., Awaitable[T]], args: tuple[Any, ...]) -> T:
        async with self._workers:
            self._active += 1
            try:
                return await func(*args)
            finally:
                self._active -= 1

    async def shutdown(self, grace: float = 5.0) -> None:
        """Stop accepting work, wait for in-flight tasks, then cancel stragglers.

        Args:
            grace: Seconds to wait for in-flight tasks before cancelling them
        """
        self._shutdown = True
        if not self._tasks:
            logger.debug("Worker pool %s shut down (idle)", self.name)
            return

        pending_tasks = set(self._tasks)
        logger.info(
            "Shutting down worker pool %s (%d task(s) in flight, grace=%.1fs)",
            self.name,
            len(pending_tasks),
            grace,
        )
        _, pending = await asyncio.wait(pending_tasks, timeout=grace)
        if pending:
            logger.warning(
                "Cancelling %d task(s) still running in worker pool %s",
                len(pending),
                self.name,
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
