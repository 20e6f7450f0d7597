"""Trailing-edge debounce on top of the asyncio event loop.

Every :meth:`Debouncer.push` restarts the delay window; only the latest value
is delivered once the input has been quiet for ``delay_ms``. A zero delay
still defers delivery by one loop iteration so callers observe the same
ordering in both cases.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSET = object()


class Debouncer(Generic[T]):
    """Collapse bursts of values into a single downstream emission.

    Example:
        debouncer = Debouncer(250, lambda text: controller.apply_search(text))
        debouncer.push("l")
        debouncer.push("la")
        debouncer.push("laptop")   # only "laptop" is emitted, 250ms later
    """

    def __init__(
        self,
        delay_ms: int,
        callback: Callable[[T], Any],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self._delay_ms = delay_ms
        self._callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.Handle] = None
        self._pending: Any = _UNSET
        self._closed = False

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    @property
    def pending(self) -> bool:
        """True while a value is waiting for the quiet period to elapse."""
        return self._handle is not None

    def push(self, value: T) -> None:
        """Record a new value and restart the delay window."""
        if self._closed:
            logger.debug("Debouncer closed, dropping value")
            return
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        if self._handle is not None:
            self._handle.cancel()
        self._pending = value
        if self._delay_ms == 0:
            self._handle = loop.call_soon(self._fire)
        else:
            self._handle = loop.call_later(self._delay_ms / 1000.0, self._fire)

    def flush(self) -> None:
        """Deliver the pending value now, if any."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def take(self) -> Optional[T]:
        """Remove and return the pending value without emitting it."""
        if self._handle is None:
            return None
        value = self._pending
        self.cancel()
        return None if value is _UNSET else value

    def cancel(self) -> None:
        """Drop the pending value without emitting it."""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending = _UNSET

    def close(self) -> None:
        """Cancel pending work; no emission can happen after this."""
        self.cancel()
        self._closed = True

    def _fire(self) -> None:
        self._handle = None
        value, self._pending = self._pending, _UNSET
        if value is _UNSET or self._closed:
            return
        self._callback(value)


async def debounce_stream(source, delay_ms: int):
    """Yield the values of an async iterator, debounced.

    A value is yielded once ``delay_ms`` passes without a newer one; the last
    pending value is flushed when the source is exhausted.
    """
    queue: asyncio.Queue = asyncio.Queue()
    done = object()
    debouncer: Debouncer[Any] = Debouncer(delay_ms, queue.put_nowait)

    async def pump():
        try:
            async for item in source:
                debouncer.push(item)
        finally:
            debouncer.flush()
            queue.put_nowait(done)

    task = asyncio.ensure_future(pump())
    try:
        while True:
            item = await queue.get()
            if item is done:
                break
            yield item
    finally:
        debouncer.close()
        if not task.done():
            task.cancel()


__all__ = ["Debouncer", "debounce_stream"]
