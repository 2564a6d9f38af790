"""Thread-like handles for cooperatively scheduled tasks.

``start`` schedules a callable as a task and returns a TaskHandle right away.
The handle offers the lifecycle operations of a thread:

    handle = start(download, url)
    await handle.join(5.0)       # handle, or None on timeout
    body = await handle.value()  # result, or ExceptionalCompletionError
    handle.status()              # "run" | "sleep" | False | None
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any, Generic, Literal, TypeVar

from fibril import utils
from fibril.errors import (
    ArgumentMissingError,
    CannotJoinBlockingTargetError,
    CannotJoinFromBlockingContextError,
    CannotJoinSelfError,
    ExceptionalCompletionError,
    KillUnsupportedError,
    NoSchedulerInstalledError,
    TaskNotStartedError,
)
from fibril.result import Err, Ok, Result
from fibril.runtime import Scheduler, get_scheduler
from fibril.state import CompletionRecord, StateRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Status = Literal["run", "sleep", False] | None


async def _execute(
    registry: StateRegistry,
    scheduler: Scheduler,
    fn: Callable[..., Any],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    created_at: str | None,
) -> None:
    record = registry.ensure(scheduler.current(), created_at=created_at)
    record.mark_started()
    outcome: Result[Any] | None = None
    try:
        value = fn(*args, **kwargs)
        if inspect.isawaitable(value):
            value = await value
        outcome = Ok(value)
    except asyncio.CancelledError as exc:
        outcome = Err(exc)
        raise
    except Exception as exc:
        outcome = Err(exc)
    finally:
        record.complete(outcome)
        logger.debug("Task %s finished: %r", getattr(fn, "__qualname__", fn), outcome)


class TaskHandle(Generic[T]):
    """Thread-like view of one cooperatively scheduled task.

    Handles compare equal when they refer to the same underlying task. A
    handle keeps its task alive; the task's completion record lives in the
    scheduler's registry for as long as the task does.
    """

    def __init__(self, identity: Any, scheduler: Scheduler) -> None:
        self._identity = identity
        self._scheduler = scheduler

    @classmethod
    def start(cls, fn: Callable[..., Any] | None = None, /, *args: Any, **kwargs: Any) -> TaskHandle[Any]:
        return start(fn, *args, **kwargs)

    @property
    def identity(self) -> Any:
        return self._identity

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def _record(self) -> CompletionRecord | None:
        return self._scheduler.registry.get(self._identity)

    async def join(self, limit: float | timedelta | None = None) -> TaskHandle[T] | None:
        """Wait until the task completes.

        Args:
            limit: Seconds (or a timedelta) to wait; None waits indefinitely

        Returns:
            This handle, or None if ``limit`` elapsed first. The task keeps
            running after a timeout.

        Raises:
            CannotJoinSelfError: The caller is the task itself
            CannotJoinFromBlockingContextError: The caller cannot suspend
            CannotJoinBlockingTargetError: The task cannot suspend
            NoSchedulerInstalledError: No scheduler on the calling thread
            TaskNotStartedError: The task body has not begun executing
        """
        record = self._record
        if record is not None and record.completed:
            return self

        scheduler = self._scheduler
        caller = scheduler.current()
        if caller is self._identity:
            raise CannotJoinSelfError("Cannot join self")
        if scheduler.is_blocking(caller):
            raise CannotJoinFromBlockingContextError("Cannot join when calling task is blocking")
        if scheduler.is_blocking(self._identity):
            raise CannotJoinBlockingTargetError("Cannot join when called task is blocking")
        if get_scheduler() is None:
            raise NoSchedulerInstalledError("Cannot join without a scheduler installed")
        if record is None or not record.started:
            raise TaskNotStartedError("Cannot join unstarted task")

        if isinstance(limit, timedelta):
            limit = limit.total_seconds()
        if await scheduler.wait(record.latch, limit):
            return self
        logger.debug("join(%s) on %r timed out", limit, self)
        return None

    async def value(self) -> T:
        """Wait for the task and return its result.

        Raises:
            ExceptionalCompletionError: The body raised; the original
                exception is its ``cause``
        """
        await self.join()
        record = self._record
        if record is None:
            raise TaskNotStartedError("Cannot read the value of an unstarted task")
        record.observed = True
        failure = record.failure
        if failure is not None:
            raise ExceptionalCompletionError(failure) from failure
        return record.result

    def status(self) -> Status:
        """Mimic ``Thread`` status.

        ``"run"`` is only returned for the task that is asking about itself.
        ``"sleep"`` is returned for any other live task. Finished tasks give
        ``None`` when they failed and ``False`` otherwise. There is no
        aborting state: kill takes effect without an observable window.
        """
        record = self._record
        if record is not None and record.killed:
            return None
        if self._scheduler.current() is self._identity:
            return "run"
        if self._scheduler.is_alive(self._identity):
            return "sleep"
        if record is not None and record.failure is not None:
            return None
        return False

    def is_stopped(self) -> bool:
        """True if sleeping or finished."""
        return self.status() != "run"

    def is_alive(self) -> bool:
        record = self._record
        if record is not None and record.killed:
            return False
        return self._scheduler.is_alive(self._identity)

    def kill(self) -> TaskHandle[T]:
        """Terminate the task immediately.

        From the moment this returns the handle reports the task as dead
        (``status()`` is ``None``, ``is_alive()`` is False), even while the
        scheduler is still unwinding it. A task whose body never started is
        completed on the spot with the cancellation as its failure. Killing a
        finished task does nothing.
        """
        scheduler = self._scheduler
        if not scheduler.supports_kill:
            raise KillUnsupportedError(f"{type(scheduler).__name__} cannot terminate tasks")
        record = self._record
        if not scheduler.is_alive(self._identity) or (record is not None and record.completed):
            return self
        scheduler.kill(self._identity)
        if record is None:
            record = self._scheduler.registry.ensure(self._identity)
        record.killed = True
        if not record.started:
            record.abort(asyncio.CancelledError())
        logger.debug("Killed %r", self)
        return self

    # Thread has the same aliases
    terminate = kill
    exit = kill

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TaskHandle):
            return NotImplemented
        return self._identity is other._identity

    def __hash__(self) -> int:
        return id(self._identity)

    def __repr__(self) -> str:
        record = self._record
        where = f" created_at={record.created_at}" if record is not None and record.created_at else ""
        name = self._identity.get_name() if hasattr(self._identity, "get_name") else hex(id(self._identity))
        return f"<TaskHandle {name} status={self.status()!r}{where}>"


def start(fn: Callable[..., Any] | None = None, /, *args: Any, **kwargs: Any) -> TaskHandle[Any]:
    """Schedule ``fn(*args, **kwargs)`` as a task and return its handle.

    ``fn`` may be a coroutine function or a plain callable. The caller never
    blocks; exceptions raised by ``fn`` are captured and surface from
    ``TaskHandle.value``.

    Raises:
        ArgumentMissingError: ``fn`` is missing or not callable
        NoSchedulerInstalledError: No scheduler on the calling thread
    """
    if fn is None:
        raise ArgumentMissingError("No callable given")
    if not callable(fn):
        raise ArgumentMissingError(f"start() needs a callable, got {type(fn).__name__}")
    scheduler = get_scheduler()
    if scheduler is None:
        raise NoSchedulerInstalledError("Cannot start a task without a scheduler installed")

    created_at = utils.capture_creation_site() if utils.DEBUG_TASKS else None
    registry = scheduler.registry

    def wrapper() -> Any:
        return _execute(registry, scheduler, fn, args, kwargs, created_at)

    identity = scheduler.schedule(wrapper)
    registry.ensure(identity, created_at=created_at)
    logger.debug("Started %s as %r", getattr(fn, "__qualname__", fn), identity)
    return TaskHandle(identity, scheduler)


def current() -> TaskHandle[Any] | None:
    """Handle for the task executing right now, or None outside any task."""
    scheduler = get_scheduler()
    if scheduler is None:
        raise NoSchedulerInstalledError("Cannot look up the current task without a scheduler installed")
    identity = scheduler.current()
    if identity is None:
        return None
    return TaskHandle(identity, scheduler)


__all__ = ["Status", "TaskHandle", "current", "start"]
