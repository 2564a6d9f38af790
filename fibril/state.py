"""Per-task completion records and the per-carrier registry that owns them."""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any

from fibril import utils
from fibril.errors import RecordStateError
from fibril.latch import CompletionLatch
from fibril.result import Err, Result

logger = logging.getLogger(__name__)

# Attributes that may still change once a record has completed
_MUTABLE_AFTER_COMPLETION = frozenset({"observed"})


@dataclass(eq=False)
class CompletionRecord:
    """Lifecycle state of one task.

    Transitions are ``NOT_STARTED -> STARTED -> COMPLETED`` and never reverse.
    Once ``completed`` is set the record is frozen; only ``observed`` may
    still be flipped by ``TaskHandle.value``.

    Attributes:
        started: The wrapped callable has begun executing
        completed: The outcome is stored and the latch has fired
        outcome: ``Ok(result)`` or ``Err(failure)``; ``None`` until completed,
            and still ``None`` if the body exited through a non-``Exception``
            ``BaseException`` other than cancellation
        observed: ``value()`` has surfaced the outcome at least once
        killed: ``TaskHandle.kill`` terminated the task; observers treat it as
            dead even before the scheduler finishes unwinding it
        created_at: Where the task was started (debug mode only)
        latch: Fired when ``completed`` becomes true
    """
    started: bool = False
    completed: bool = False
    outcome: Result[Any] | None = None
    observed: bool = False
    killed: bool = False
    created_at: str | None = None
    latch: CompletionLatch = field(default_factory=CompletionLatch, repr=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("completed") and name not in _MUTABLE_AFTER_COMPLETION:
            raise RecordStateError(f"Completion record is immutable once completed (tried to set {name!r})")
        super().__setattr__(name, value)

    @property
    def result(self) -> Any:
        if self.outcome is None:
            return None
        return self.outcome.ok()

    @property
    def failure(self) -> BaseException | None:
        if self.outcome is None:
            return None
        return self.outcome.err()

    def mark_started(self) -> None:
        if self.started:
            raise RecordStateError("Task body already started")
        self.started = True

    def complete(self, outcome: Result[Any] | None) -> None:
        if not self.started:
            raise RecordStateError("Cannot complete a task that never started")
        if self.completed:
            raise RecordStateError("Task already completed")
        self.outcome = outcome
        self.completed = True
        self.latch.fire()

    def abort(self, error: BaseException) -> None:
        """Complete a record whose body will never run."""
        if not self.started:
            self.started = True
        self.complete(Err(error))


class StateRegistry:
    """Maps task identities to their completion records for one carrier.

    Identities are not kept alive by the registry: each entry is removed by a
    ``weakref.finalize`` hook on its identity. A registry belongs to exactly
    one scheduler, hence one event loop and one thread, so it takes no locks.
    """

    def __init__(self) -> None:
        self._records: dict[int, CompletionRecord] = {}
        self._finalizers: dict[int, weakref.finalize] = {}

    def get(self, identity: Any) -> CompletionRecord | None:
        if identity is None:
            return None
        return self._records.get(id(identity))

    def ensure(self, identity: Any, *, created_at: str | None = None) -> CompletionRecord:
        """Return the record for ``identity``, creating it on first lookup."""
        key = id(identity)
        record = self._records.get(key)
        if record is not None:
            return record
        record = CompletionRecord(created_at=created_at)
        self._records[key] = record
        self._finalizers[key] = weakref.finalize(identity, self._drop, key)
        return record

    def _drop(self, key: int) -> None:
        self._finalizers.pop(key, None)
        record = self._records.pop(key, None)
        if record is None:
            return
        failure = record.failure
        if failure is None or record.observed or isinstance(failure, asyncio.CancelledError):
            return
        if utils.WARN_UNOBSERVED:
            where = f" (started at {record.created_at})" if record.created_at else ""
            logger.warning(
                "Task failure was never retrieved%s: %r. Call `await handle.value()` to surface it.",
                where,
                failure,
            )

    # Introspection: how many tasks this carrier still tracks

    def __contains__(self, identity: Any) -> bool:
        return id(identity) in self._records

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["CompletionRecord", "StateRegistry"]
