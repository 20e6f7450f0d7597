"""Minimum-latency gate.

Keeps a loading state on screen for at least ``floor_ms`` so fast responses
don't make the table skeleton flicker. Only success is stretched; failures
propagate as soon as they happen.
"""
from __future__ import annotations
import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


async def min_latency(awaitable: Awaitable[T], floor_ms: float) -> T:
    """Await ``awaitable`` and return its value no earlier than ``floor_ms``
    after this call started.

    Args:
        awaitable: Coroutine, task or future to wait for
        floor_ms: Minimum observable duration in milliseconds (0 disables)

    Returns:
        The awaited value

    Raises:
        Whatever ``awaitable`` raises, without added delay
    """
    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await awaitable
    remaining = floor_ms / 1000.0 - (loop.time() - started)
    if remaining > 0:
        await asyncio.sleep(remaining)
    return result


__all__ = ["min_latency"]
