"""Bounded worker pool for concurrent task execution."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from escalator.schemas import ExecutionResult, TaskDescription

logger = logging.getLogger(__name__)


class TaskHandle:
    """Caller's view of a submitted task: await its result or cancel it."""

    def __init__(self, task: TaskDescription):
        self.task = task
        self._cancel_requested = False
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Request cancellation; honoured at the task's next suspension boundary."""
        if not self._future.done():
            self._cancel_requested = True

    def done(self) -> bool:
        return self._future.done()

    async def result(self) -> ExecutionResult:
        """Wait for the terminal result."""
        return await asyncio.shield(self._future)


Job = Callable[[TaskHandle], Awaitable[ExecutionResult]]


class WorkerPool:
    """Fixed number of worker coroutines draining a FIFO task queue.

    Up to `size` tasks are in flight at once, interleaving on the event loop
    whenever one of them awaits a capability. An
    unexpected exception in one task is logged and delivered to that task's
    handle, and the worker moves on.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError("size must be at least 1")
        self.size = size
        self._queue: asyncio.Queue[Optional[tuple[TaskHandle, Job]]] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"escalator-worker-{i}")
            for i in range(self.size)
        ]
        logger.debug(f"Started {self.size} workers")

    def submit(self, task: TaskDescription, job: Job) -> TaskHandle:
        """Queue a task; job is awaited by a worker with the task's handle."""
        if not self._workers:
            raise RuntimeError("WorkerPool is not running; call start() first")
        handle = TaskHandle(task)
        self._queue.put_nowait((handle, job))
        return handle

    async def shutdown(self) -> None:
        """Finish queued tasks, then stop the workers."""
        if not self._workers:
            return
        for _ in self._workers:
            self._queue.put_nowait(None)
        await asyncio.gather(*self._workers)
        self._workers = []
        logger.debug("Worker pool stopped")

    async def _worker(self, worker_id: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                handle, job = item
                try:
                    result = await job(handle)
                except Exception as e:
                    logger.exception(f"Worker {worker_id}: task crashed: {e}")
                    if not handle.done():
                        handle._future.set_exception(e)
                else:
                    if not handle.done():
                        handle._future.set_result(result)
            finally:
                self._queue.task_done()
