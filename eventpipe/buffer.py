import asyncio

from eventpipe.consts import DEFAULT_BUFFER_SIZE
from eventpipe.errors import BufferFull
from eventpipe.utils import logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any, Awaitable, Callable, Optional, Set, TypeVar

    T = TypeVar("T")


class AsyncBuffer:
    """
    Bounded registry of in-flight tasks.

    `add` refuses new work once `limit` tasks are pending. Tasks leave the
    registry as soon as they settle, whether they succeeded or failed.
    """

    def __init__(self, limit: int = DEFAULT_BUFFER_SIZE) -> None:
        self.limit = limit
        # Strong references so pending tasks are not garbage collected
        self._active_tasks: "Set[asyncio.Task[Any]]" = set()

    def __len__(self) -> int:
        return len(self._active_tasks)

    def is_ready(self) -> bool:
        return len(self) < self.limit

    def add(self, task_factory: "Callable[[], Awaitable[T]]") -> "asyncio.Task[T]":
        """
        Schedules the awaitable returned by `task_factory` and tracks it.

        Raises `BufferFull` without calling the factory when the buffer is
        at capacity.
        """
        if not self.is_ready():
            raise BufferFull(self.limit)

        task = asyncio.ensure_future(task_factory())
        self._active_tasks.add(task)
        task.add_done_callback(self._on_task_complete)
        return task

    def _on_task_complete(self, task: "asyncio.Task[Any]") -> None:
        self._active_tasks.discard(task)

    async def drain(self, timeout: "Optional[float]" = None) -> bool:
        """
        Waits for every pending task to settle.

        Returns `True` when the buffer is empty in time and `False` if
        `timeout` seconds pass first. Pending tasks are never cancelled.
        """
        pending = set(self._active_tasks)
        if not pending:
            return True
        if timeout is not None and timeout <= 0:
            return False

        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.debug("%d task(s) pending after drain", len(still_pending))
            return False
        return True
