"""Utilities for supervising background asyncio work.

Fire-and-forget side effects (notification fan-out, push delivery, view-count
refreshes, search logging) are submitted to a :class:`TaskQueue` instead of
being launched as loose tasks. The request path never awaits them, but every
submission returns a future so callers (mostly tests) can observe completion.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from functools import partial
from typing import Awaitable, Callable, Optional, Any, Set

logger = logging.getLogger(__name__)

# Track tasks so they are not garbage collected before finishing.
_background_tasks: Set[asyncio.Task[Any]] = set()

JobFactory = Callable[[], Awaitable[Any]]


def spawn(coro: Awaitable[Any], *, name: Optional[str] = None,
          on_error: Optional[Callable[[BaseException], None]] = None) -> asyncio.Task[Any]:
    """Create and supervise a background task.

    Args:
        coro: Awaitable coroutine to run in the background.
        name: Optional name for the task.
        on_error: Optional callback invoked if the task raises.
    """
    task = asyncio.create_task(coro, name=name)  # type: ignore[arg-type]
    _background_tasks.add(task)

    def _finished(t: asyncio.Task[Any]) -> None:
        _background_tasks.discard(t)
        try:
            t.result()
        except asyncio.CancelledError:
            logger.debug("Background task %s cancelled", name or t)
        except Exception as exc:  # noqa: BLE001
            if on_error:
                try:
                    on_error(exc)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in on_error callback for task %s", name or t)
            logger.exception("Background task %s failed", name or t, exc_info=exc)

    task.add_done_callback(_finished)
    return task


async def run_sync(func: Callable[..., Any], *args: Any, loop: Optional[asyncio.AbstractEventLoop] = None,
                   executor: Optional[Executor] = None, **kwargs: Any) -> Any:
    """Execute blocking code in the default executor and await the result."""
    event_loop = loop or asyncio.get_running_loop()
    bound = partial(func, *args, **kwargs)
    return await event_loop.run_in_executor(executor, bound)


class QueueFullError(RuntimeError):
    pass


def _consume_exception(fut: asyncio.Future) -> None:
    # The queue already logged the failure; keep asyncio from warning that
    # the exception was never retrieved when nobody awaits the future.
    if not fut.cancelled():
        fut.exception()


class TaskQueue:
    """Bounded work channel drained by a fixed pool of worker tasks.

    Workers are started lazily on the first submission so the queue can be
    created at import time and bound to whichever loop is running.
    """

    def __init__(self, workers: int = 4, maxsize: int = 1000) -> None:
        self._worker_count = max(1, workers)
        self._maxsize = maxsize
        self._queue: asyncio.Queue | None = None
        self._workers: list[asyncio.Task[Any]] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    def _ensure_started(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._queue is None or self._loop is not loop:
            self._loop = loop
            queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
            self._queue = queue
            self._workers = [
                spawn(self._worker(queue), name=f"petflix-worker-{i}")
                for i in range(self._worker_count)
            ]
            logger.debug("TaskQueue started %d workers", self._worker_count)
        return self._queue

    def submit(self, factory: JobFactory, *, name: str = "job") -> asyncio.Future:
        """Enqueue ``factory`` without waiting for it.

        ``factory`` is called by a worker and must return an awaitable. The
        returned future resolves with the job's result or exception.
        """
        queue = self._ensure_started()
        fut: asyncio.Future = self._loop.create_future()
        fut.add_done_callback(_consume_exception)
        try:
            queue.put_nowait((name, factory, fut))
        except asyncio.QueueFull:
            logger.warning("Background queue full; dropping job %s", name)
            fut.set_exception(QueueFullError(f"queue full, dropped {name}"))
        return fut

    async def _worker(self, queue: asyncio.Queue) -> None:
        while True:
            name, factory, fut = await queue.get()
            try:
                result = await factory()
            except asyncio.CancelledError:
                if not fut.done():
                    fut.cancel()
                queue.task_done()
                raise
            except Exception as exc:  # noqa: BLE001
                logger.exception("Background job %s failed", name)
                if not fut.done():
                    fut.set_exception(exc)
            else:
                if not fut.done():
                    fut.set_result(result)
            queue.task_done()

    async def join(self) -> None:
        """Wait until every submitted job, including ones they submit, is done."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._queue = None
        self._loop = None


__all__ = ["spawn", "run_sync", "TaskQueue", "QueueFullError"]
