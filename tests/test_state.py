"""Tests for completion records, the state registry and the completion latch."""

from __future__ import annotations

import asyncio
import gc
import logging

import pytest

from fibril import CompletionLatch, CompletionRecord, Err, Ok, RecordStateError, StateRegistry, utils


class Identity:
    """Stand-in for a task identity: any weak-referenceable object works."""


# =============================================================================
# CompletionRecord
# =============================================================================


class TestCompletionRecord:
    def test_initial_state(self) -> None:
        record = CompletionRecord()
        assert record.started is False
        assert record.completed is False
        assert record.outcome is None
        assert record.result is None
        assert record.failure is None
        assert record.latch.fired is False

    def test_success_transition(self) -> None:
        record = CompletionRecord()
        record.mark_started()
        record.complete(Ok(3))
        assert record.completed is True
        assert record.result == 3
        assert record.failure is None
        assert record.latch.fired is True

    def test_failure_transition(self) -> None:
        error = ValueError("boom")
        record = CompletionRecord()
        record.mark_started()
        record.complete(Err(error))
        assert record.failure is error
        assert record.result is None

    def test_cannot_complete_before_start(self) -> None:
        record = CompletionRecord()
        with pytest.raises(RecordStateError):
            record.complete(Ok(1))

    def test_cannot_start_twice(self) -> None:
        record = CompletionRecord()
        record.mark_started()
        with pytest.raises(RecordStateError):
            record.mark_started()

    def test_cannot_complete_twice(self) -> None:
        record = CompletionRecord()
        record.mark_started()
        record.complete(Ok(1))
        with pytest.raises(RecordStateError):
            record.complete(Ok(2))
        assert record.result == 1

    def test_immutable_once_completed(self) -> None:
        record = CompletionRecord()
        record.mark_started()
        record.complete(Ok(1))
        with pytest.raises(RecordStateError):
            record.outcome = Ok(2)
        with pytest.raises(RecordStateError):
            record.started = False

        record.observed = True
        assert record.observed is True

    def test_abort_unstarted(self) -> None:
        record = CompletionRecord()
        record.abort(asyncio.CancelledError())
        assert record.started is True
        assert record.completed is True
        assert isinstance(record.failure, asyncio.CancelledError)


# =============================================================================
# Result
# =============================================================================


class TestResult:
    def test_accessors(self) -> None:
        error = KeyError("k")
        assert Ok(2).ok() == 2
        assert Ok(2).err() is None
        assert Err(error).ok() is None
        assert Err(error).err() is error

    def test_record_reads_through_accessors(self) -> None:
        record = CompletionRecord()
        record.mark_started()
        record.complete(Ok(None))
        assert record.result is None
        assert record.failure is None
        assert record.completed is True


# =============================================================================
# StateRegistry
# =============================================================================


def _complete_with(record: CompletionRecord, error: BaseException) -> None:
    record.mark_started()
    record.complete(Err(error))


class TestStateRegistry:
    def test_ensure_creates_once(self) -> None:
        registry = StateRegistry()
        ident = Identity()
        first = registry.ensure(ident)
        assert registry.ensure(ident) is first
        assert registry.get(ident) is first
        assert ident in registry
        assert len(registry) == 1

    def test_get_missing(self) -> None:
        registry = StateRegistry()
        assert registry.get(Identity()) is None
        assert registry.get(None) is None

    def test_entries_dropped_with_identity(self) -> None:
        registry = StateRegistry()
        idents = [Identity() for _ in range(100)]
        for ident in idents:
            registry.ensure(ident)
        assert len(registry) == 100

        del ident
        idents.clear()
        gc.collect()
        assert len(registry) == 0

    def test_registry_does_not_keep_identity_alive(self) -> None:
        import weakref

        registry = StateRegistry()
        ident = Identity()
        registry.ensure(ident)
        ref = weakref.ref(ident)
        del ident
        gc.collect()
        assert ref() is None

    def test_unobserved_failure_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING, logger="fibril.state")
        registry = StateRegistry()
        ident = Identity()
        _complete_with(registry.ensure(ident, created_at="app.py:3 in main"), ValueError("boom"))

        del ident
        gc.collect()

        messages = [r.getMessage() for r in caplog.records]
        assert any("never retrieved" in m and "boom" in m for m in messages)
        assert any("app.py:3 in main" in m for m in messages)

    def test_observed_failure_does_not_warn(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING, logger="fibril.state")
        registry = StateRegistry()
        ident = Identity()
        record = registry.ensure(ident)
        _complete_with(record, ValueError("boom"))
        record.observed = True

        del ident, record
        gc.collect()
        assert not caplog.records

    def test_cancelled_task_does_not_warn(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING, logger="fibril.state")
        registry = StateRegistry()
        ident = Identity()
        registry.ensure(ident).abort(asyncio.CancelledError())

        del ident
        gc.collect()
        assert not caplog.records

    def test_warning_can_be_disabled(
        self, caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(utils, "WARN_UNOBSERVED", False)
        caplog.set_level(logging.WARNING, logger="fibril.state")
        registry = StateRegistry()
        ident = Identity()
        _complete_with(registry.ensure(ident), ValueError("boom"))

        del ident
        gc.collect()
        assert not caplog.records


# =============================================================================
# CompletionLatch
# =============================================================================


class TestCompletionLatch:
    def test_fires_once(self) -> None:
        latch = CompletionLatch()
        latch.fire()
        assert latch.fired
        with pytest.raises(RuntimeError, match="already fired"):
            latch.fire()

    @pytest.mark.asyncio
    async def test_wait_after_fire_returns_repeatedly(self) -> None:
        latch = CompletionLatch()
        latch.fire()
        for _ in range(3):
            await asyncio.wait_for(latch.wait(), 0.1)

    @pytest.mark.asyncio
    async def test_waiters_released_on_fire(self) -> None:
        latch = CompletionLatch()
        released: list[int] = []

        async def waiter(n: int) -> None:
            await latch.wait()
            released.append(n)

        waiters = [asyncio.create_task(waiter(n)) for n in range(3)]
        await asyncio.sleep(0)
        assert released == []

        latch.fire()
        await asyncio.gather(*waiters)
        assert sorted(released) == [0, 1, 2]
