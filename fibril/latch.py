"""One-shot completion latch.

A CompletionLatch is fired exactly once, by the task that owns it, after the
task's outcome has been stored. Any number of other tasks may wait on it,
before or after it fires.
"""

from __future__ import annotations

import asyncio


class CompletionLatch:
    """Signal that is set once and can be awaited any number of times.

    Firing is synchronous so it can happen from a ``finally`` block or from
    ``TaskHandle.kill`` without awaiting. Waiting suspends only the calling
    task; the carrier keeps running other tasks.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self) -> None:
        if self._event.is_set():
            raise RuntimeError("CompletionLatch already fired")
        self._event.set()

    async def wait(self) -> None:
        if self._event.is_set():
            return
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CompletionLatch(fired={self.fired})"


__all__ = ["CompletionLatch"]
