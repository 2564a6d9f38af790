"""Thread-like handles over asyncio tasks.

Run with: python examples/01_thread_like_tasks.py
"""

import asyncio
import time

import fibril


async def fetch(name: str, delay: float) -> str:
    await asyncio.sleep(delay)
    return f"{name} after {delay}s"


async def explode() -> None:
    await asyncio.sleep(0.05)
    raise RuntimeError("boom")


async def main() -> None:
    started = time.monotonic()
    a = fibril.start(fetch, "a", 0.1)
    b = fibril.start(fetch, "b", 0.1)
    print(a.status(), b.status())  # sleep sleep
    print(await a.value(), "|", await b.value())
    print(f"both joined in {time.monotonic() - started:.2f}s")

    slow = fibril.start(fetch, "slow", 1.0)
    print("join(0.1) ->", await slow.join(0.1))  # None, still running
    slow.kill()

    failing = fibril.start(explode)
    await failing.join()
    print("status after failure ->", failing.status())  # None
    try:
        await failing.value()
    except fibril.ExceptionalCompletionError as exc:
        print("value() raised, cause:", repr(exc.cause))


if __name__ == "__main__":
    fibril.run(main)
