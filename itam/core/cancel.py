"""Request cancellation for list fetches.

Each controller owns one :class:`RequestCanceller`. Starting a request hands
out a fresh :class:`FetchHandle` and aborts the previous one, so at most one
live handle exists at any time. Aborting is cooperative with the transport:
callbacks registered on the handle's :class:`AbortSignal` (closing the HTTP
session, cancelling the awaiting future) run immediately.
"""
from __future__ import annotations
import itertools
import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class AbortSignal:
    """One-shot abort flag with callbacks.

    Callbacks may be registered from the event loop and triggered from any
    thread; each runs exactly once. Registering on an already aborted signal
    runs the callback straight away.
    """

    def __init__(self):
        self._aborted = False
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def aborted(self) -> bool:
        return self._aborted

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._aborted:
                self._callbacks.append(callback)
                return
        callback()

    def abort(self) -> None:
        with self._lock:
            if self._aborted:
                return
            self._aborted = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:  # a failing transport hook must not block the others
                logger.warning(f"Abort callback failed: {e}")


class FetchHandle:
    """Cancellation token bound to exactly one outstanding request."""

    _ids = itertools.count(1)

    def __init__(self):
        self.request_id = next(self._ids)
        self.signal = AbortSignal()

    @property
    def cancelled(self) -> bool:
        return self.signal.aborted

    def cancel(self) -> None:
        self.signal.abort()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"<FetchHandle #{self.request_id} {state}>"


class RequestCanceller:
    """Hands out fetch handles, superseding the previous one."""

    def __init__(self):
        self._current: Optional[FetchHandle] = None

    @property
    def current(self) -> Optional[FetchHandle]:
        return self._current

    def start_request(self) -> FetchHandle:
        """Abort the in-flight request (if any) and return a new handle."""
        previous = self._current
        handle = FetchHandle()
        self._current = handle
        if previous is not None and not previous.cancelled:
            logger.debug(f"Superseding request #{previous.request_id} with #{handle.request_id}")
            previous.cancel()
        return handle

    def is_cancelled(self, handle: FetchHandle) -> bool:
        """True once ``handle`` was aborted or superseded."""
        return handle.cancelled or handle is not self._current

    def finish(self, handle: FetchHandle) -> None:
        """Release ``handle`` after its result was committed or dropped."""
        if handle is self._current:
            self._current = None

    def cancel_all(self) -> None:
        """Abort the live handle; used on controller teardown."""
        if self._current is not None:
            self._current.cancel()
            self._current = None


__all__ = ["AbortSignal", "FetchHandle", "RequestCanceller"]
