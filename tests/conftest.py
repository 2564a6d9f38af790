"""
Pytest configuration for fibril tests.

Provides a scheduler fixture bound to the test's running event loop and
installed on the test thread for the duration of the test.
"""

import asyncio
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from fibril import AsyncioScheduler, scheduler_installed, set_scheduler


@pytest_asyncio.fixture
async def scheduler() -> AsyncIterator[AsyncioScheduler]:
    scheduler = AsyncioScheduler(asyncio.get_running_loop())
    with scheduler_installed(scheduler):
        yield scheduler


@pytest_asyncio.fixture
async def lazy_scheduler() -> AsyncIterator[AsyncioScheduler]:
    """Scheduler that defers task bodies to the next loop iteration."""
    scheduler = AsyncioScheduler(asyncio.get_running_loop(), eager_start=False)
    with scheduler_installed(scheduler):
        yield scheduler


@pytest.fixture(autouse=True)
def _no_leftover_scheduler():
    yield
    set_scheduler(None)
