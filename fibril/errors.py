"""fibril error types."""

from __future__ import annotations

from dataclasses import dataclass


class FibrilError(Exception):
    """Base class for every error raised by fibril itself."""


class ArgumentMissingError(FibrilError, TypeError):
    """Raised when ``start`` is called without a callable."""


class NoSchedulerInstalledError(FibrilError):
    """Raised when no cooperative scheduler is installed on the calling thread.

    Install one with ``set_scheduler`` / ``scheduler_installed``, or run the
    entry point through ``fibril.run``.
    """


class JoinError(FibrilError):
    """Base class for ``join`` precondition failures."""


class CannotJoinSelfError(JoinError):
    """Raised when a task tries to join itself."""


class CannotJoinFromBlockingContextError(JoinError):
    """Raised when ``join`` is called from a context that cannot suspend."""


class CannotJoinBlockingTargetError(JoinError):
    """Raised when the joined task is itself a blocking context."""


class TaskNotStartedError(JoinError):
    """Raised when joining a task whose body has not begun executing."""


class KillUnsupportedError(FibrilError, NotImplementedError):
    """Raised when the installed scheduler has no forced-termination primitive."""


class RecordStateError(FibrilError):
    """Raised when a completion record is driven through an invalid transition."""


@dataclass(eq=False)
class ExceptionalCompletionError(FibrilError):
    """Wrapper for an exception raised inside a task body.

    Raised by ``TaskHandle.value`` so callers see one error type regardless of
    what the body raised. The original exception stays reachable through
    ``cause`` (and ``__cause__``).

    Attributes:
        original: The exception the task body raised
    """
    original: BaseException

    def __post_init__(self) -> None:
        super().__init__(self.original)

    @property
    def cause(self) -> BaseException:
        return self.original

    def __str__(self) -> str:
        return str(self.original)

    def __repr__(self) -> str:
        return f"ExceptionalCompletionError({self.original!r})"


__all__ = [
    "ArgumentMissingError",
    "CannotJoinBlockingTargetError",
    "CannotJoinFromBlockingContextError",
    "CannotJoinSelfError",
    "ExceptionalCompletionError",
    "FibrilError",
    "JoinError",
    "KillUnsupportedError",
    "NoSchedulerInstalledError",
    "RecordStateError",
    "TaskNotStartedError",
]
