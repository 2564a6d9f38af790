"""
fibril - Thread-like lifecycle for cooperatively scheduled tasks.

Start a task without blocking, join it with an optional timeout, read its
value (or its wrapped failure) any number of times, and ask for its status,
the way you would with a thread.

Example:
    >>> import asyncio
    >>> import fibril
    >>>
    >>> async def fetch(n):
    ...     await asyncio.sleep(0.1)
    ...     return n
    >>>
    >>> async def main():
    ...     a = fibril.start(fetch, 3)
    ...     b = fibril.start(fetch, 4)
    ...     return await a.value() + await b.value()
    >>>
    >>> fibril.run(main)
    7
"""

from fibril.errors import (
    ArgumentMissingError,
    CannotJoinBlockingTargetError,
    CannotJoinFromBlockingContextError,
    CannotJoinSelfError,
    ExceptionalCompletionError,
    FibrilError,
    JoinError,
    KillUnsupportedError,
    NoSchedulerInstalledError,
    RecordStateError,
    TaskNotStartedError,
)
from fibril.latch import CompletionLatch
from fibril.result import Err, Ok, Result
from fibril.runtime import (
    AsyncioScheduler,
    Scheduler,
    get_scheduler,
    run,
    scheduler_installed,
    set_scheduler,
)
from fibril.state import CompletionRecord, StateRegistry
from fibril.task import Status, TaskHandle, current, start

__version__ = "0.1.0"

__all__ = [
    # Task handles
    "TaskHandle",
    "Status",
    "start",
    "current",
    # Scheduler
    "Scheduler",
    "AsyncioScheduler",
    "get_scheduler",
    "set_scheduler",
    "scheduler_installed",
    "run",
    # State
    "CompletionRecord",
    "StateRegistry",
    "CompletionLatch",
    "Result",
    "Ok",
    "Err",
    # Errors
    "FibrilError",
    "ArgumentMissingError",
    "NoSchedulerInstalledError",
    "JoinError",
    "CannotJoinSelfError",
    "CannotJoinFromBlockingContextError",
    "CannotJoinBlockingTargetError",
    "TaskNotStartedError",
    "ExceptionalCompletionError",
    "KillUnsupportedError",
    "RecordStateError",
    "__version__",
]
