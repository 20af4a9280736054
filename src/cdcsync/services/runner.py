"""
TaskRunner: supervised background execution for sync batches.

Each submitted batch becomes one asyncio.Task keyed by its task id. A
semaphore bounds how many batches run at once, and every batch gets a
CancellationToken it checks between provisioning steps.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from cdcsync.errors import TaskCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Set once by TaskRunner.cancel(); polled by the running batch."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TaskCancelledError("Task was cancelled")


Work = Callable[[CancellationToken], Awaitable[None]]


class TaskRunner:
    def __init__(self, max_concurrency: int = 4):
        """
        Args:
            max_concurrency: Max batches executing at the same time. Further
                batches wait for a free slot; their task rows stay "running".
        """
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Dict[int, asyncio.Task] = {}
        self._tokens: Dict[int, CancellationToken] = {}

    def start(self, task_id: int, work: Work) -> asyncio.Task:
        """Schedule `work(token)` for task_id. Must be called from a running loop."""
        token = CancellationToken()
        self._tokens[task_id] = token

        async def _guarded() -> None:
            async with self._semaphore:
                await work(token)

        task = asyncio.get_running_loop().create_task(
            _guarded(), name=f"sync-task-{task_id}"
        )
        self._tasks[task_id] = task
        task.add_done_callback(lambda t: self._finished(task_id, t))
        return task

    def _finished(self, task_id: int, task: asyncio.Task) -> None:
        self._tasks.pop(task_id, None)
        self._tokens.pop(task_id, None)
        if task.cancelled():
            logger.warning("Sync task %s was interrupted", task_id)
        elif task.exception() is not None:
            logger.error(
                "Sync task %s crashed: %s", task_id, task.exception(),
                exc_info=task.exception(),
            )

    def token(self, task_id: int) -> Optional[CancellationToken]:
        return self._tokens.get(task_id)

    def cancel(self, task_id: int) -> bool:
        """Signal the batch to stop at its next step. False if it is not running."""
        token = self._tokens.get(task_id)
        if token is None:
            return False
        token.cancel()
        return True

    def is_cancelled(self, task_id: int) -> bool:
        token = self._tokens.get(task_id)
        return token is not None and token.cancelled

    def is_running(self, task_id: int) -> bool:
        return task_id in self._tasks

    def running(self) -> List[int]:
        return sorted(self._tasks)

    async def wait(self, task_id: int) -> None:
        """Wait for a task's batch to finish (no-op if already done)."""
        task = self._tasks.get(task_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every token and wait for all batches to wind down."""
        for token in self._tokens.values():
            token.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
