"""
fibril runtime model: the cooperative scheduler collaborator.

fibril does not schedule anything itself. It needs a small set of answers
from whatever runs the tasks on a carrier thread:

- schedule(): Run a coroutine factory without blocking the caller
- current(): Identity of the task executing right now
- is_alive() / is_blocking(): Liveness and "cannot suspend" queries
- wait(): Suspend the caller on a latch, with an optional timeout
- kill(): Forced termination, where supported

AsyncioScheduler answers them for an asyncio event loop. The ambient
scheduler is installed per thread, because a loop and its tasks never leave
the thread that runs them.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import threading
import weakref
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Coroutine, Iterator
from typing import Any, TypeVar

from fibril.errors import KillUnsupportedError
from fibril.latch import CompletionLatch
from fibril.state import StateRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================================
# Scheduler Protocol
# ============================================================================


class Scheduler(ABC):
    """Cooperative scheduler for one carrier thread.

    Each scheduler owns the StateRegistry for the tasks it runs, so task
    state never leaks across carriers.
    """

    supports_kill: bool = False

    def __init__(self) -> None:
        self.registry = StateRegistry()

    @abstractmethod
    def schedule(self, fn: Callable[[], Coroutine[Any, Any, Any]]) -> Any:
        """Run the coroutine produced by ``fn`` without blocking the caller.

        Returns:
            The identity of the new task.
        """

    @abstractmethod
    def current(self) -> Any | None:
        """Identity of the task executing right now, or None outside any task."""

    @abstractmethod
    def is_alive(self, identity: Any) -> bool:
        ...

    @abstractmethod
    def is_blocking(self, identity: Any | None) -> bool:
        """True when ``identity`` is a context that cannot suspend."""

    @abstractmethod
    async def wait(self, latch: CompletionLatch, timeout: float | None) -> bool:
        """Suspend the caller until ``latch`` fires or ``timeout`` elapses.

        Returns:
            True if the latch fired, False on timeout.
        """

    def kill(self, identity: Any) -> None:
        raise KillUnsupportedError(f"{type(self).__name__} cannot terminate tasks")


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop.

    Tasks are started eagerly by default: the body runs synchronously up to
    its first suspension point before ``schedule`` returns, the way a
    fiber scheduler resumes a freshly scheduled fiber. Pass
    ``eager_start=False`` to defer the body to the next loop iteration.

    Blocking contexts are code running outside any task (loop callbacks) and
    tasks inside a ``with scheduler.blocking():`` section.

    Example:
        scheduler = AsyncioScheduler(asyncio.get_running_loop())
        with scheduler_installed(scheduler):
            handle = start(fetch, url)
            body = await handle.value()
    """

    supports_kill = True

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        *,
        eager_start: bool = True,
    ) -> None:
        super().__init__()
        self._loop = loop
        self.eager_start = eager_start
        # asyncio only keeps weak references to tasks
        self._tasks: set[asyncio.Task[Any]] = set()
        self._blocking: weakref.WeakSet[asyncio.Task[Any]] = weakref.WeakSet()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, fn: Callable[[], Coroutine[Any, Any, Any]]) -> asyncio.Task[Any]:
        task: asyncio.Task[Any] = asyncio.Task(fn(), loop=self.loop, eager_start=self.eager_start)
        if not task.done():
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return task

    def current(self) -> asyncio.Task[Any] | None:
        return asyncio.current_task(self.loop)

    def is_alive(self, identity: Any) -> bool:
        return not identity.done()

    def is_blocking(self, identity: Any | None) -> bool:
        return identity is None or identity in self._blocking

    @contextlib.contextmanager
    def blocking(self) -> Iterator[None]:
        """Mark the current task as unable to suspend for the block's duration."""
        task = self.current()
        if task is None or task in self._blocking:
            yield
            return
        self._blocking.add(task)
        try:
            yield
        finally:
            self._blocking.discard(task)

    async def wait(self, latch: CompletionLatch, timeout: float | None) -> bool:
        if timeout is None:
            await latch.wait()
            return True
        try:
            await asyncio.wait_for(latch.wait(), max(timeout, 0.0))
        except TimeoutError:
            return latch.fired
        return True

    def kill(self, identity: Any) -> None:
        identity.cancel()

    @property
    def pending(self) -> int:
        """Number of tasks scheduled here that have not finished."""
        return len(self._tasks)


# ============================================================================
# Ambient scheduler (one per thread)
# ============================================================================


_local = threading.local()


def get_scheduler() -> Scheduler | None:
    return getattr(_local, "scheduler", None)


def set_scheduler(scheduler: Scheduler | None) -> Scheduler | None:
    """Install ``scheduler`` for the calling thread and return the previous one."""
    previous = get_scheduler()
    _local.scheduler = scheduler
    return previous


@contextlib.contextmanager
def scheduler_installed(scheduler: Scheduler) -> Iterator[Scheduler]:
    previous = set_scheduler(scheduler)
    try:
        yield scheduler
    finally:
        set_scheduler(previous)


def run(main: Callable[..., Awaitable[T] | T], *args: Any, **kwargs: Any) -> T:
    """Run ``main`` on a fresh event loop with an AsyncioScheduler installed.

    Args:
        main: Coroutine function (or plain callable) to run as the root task
        *args: Positional arguments for ``main``
        **kwargs: Keyword arguments for ``main``

    Returns:
        Whatever ``main`` returns
    """

    async def _root() -> T:
        scheduler = AsyncioScheduler(asyncio.get_running_loop())
        with scheduler_installed(scheduler):
            result = main(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            if scheduler.pending:
                logger.debug(
                    "run() finished with %d task(s) still pending, %d tracked",
                    scheduler.pending,
                    len(scheduler.registry),
                )
            return result

    return asyncio.run(_root())


__all__ = [
    "AsyncioScheduler",
    "Scheduler",
    "get_scheduler",
    "run",
    "scheduler_installed",
    "set_scheduler",
]
