"""Glue between Qt widgets and list controllers living on an asyncio loop.

Controllers are single-threaded: every call into one must happen on the
loop thread that owns it. :class:`ControllerBridge` forwards widget intents
onto that loop and re-emits controller state and notifications as Qt
signals. Signals emitted from the loop thread reach slots of GUI-thread
objects as queued calls, so slots always run in the GUI thread.
"""
from __future__ import annotations
import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Mapping, Optional

from PySide6.QtCore import QObject, Signal

from ..core import ControllerState, Notification, PaginatedQueryController
from ..errors import ItamError

logger = logging.getLogger(__name__)


class LoopThread:
    """Runs an asyncio event loop in a daemon worker thread."""

    def __init__(self, name: str = "itam-loop"):
        self._loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> LoopThread:
        if not self._thread.is_alive():
            self._thread.start()
            self._ready.wait()
        return self

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        finally:
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            self._loop.close()
            logger.debug("Event loop thread finished")

    def submit(self, coro) -> concurrent.futures.Future:
        """Schedule a coroutine on the loop; returns a thread-safe future."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def call(self, fn: Callable[..., Any], *args: Any) -> None:
        """Run a plain callable on the loop thread."""
        self._loop.call_soon_threadsafe(fn, *args)

    def stop(self, timeout: float = 2.0) -> None:
        if not self._thread.is_alive():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)


class ControllerBridge(QObject):
    """Qt face of one :class:`PaginatedQueryController`.

    Signals:
        stateChanged: ControllerState after every commit
        notified: (level, message) for success/error/warning toasts
        mutationFinished: (kind, outcome) once a mutation settles; outcome is
            None when it failed or was refused
    """

    stateChanged = Signal(object)
    notified = Signal(str, str)
    mutationFinished = Signal(str, object)

    def __init__(self, controller: PaginatedQueryController, loop_thread: LoopThread, parent=None):
        super().__init__(parent)
        self.controller = controller
        self.loop_thread = loop_thread
        self._unsubscribe = [
            controller.subscribe(self._on_state),
            controller.on_notification(self._on_notification),
        ]

    @property
    def resource(self):
        return self.controller.resource

    @property
    def state(self) -> ControllerState:
        return self.controller.state

    def _on_state(self, state: ControllerState) -> None:
        self.stateChanged.emit(state)

    def _on_notification(self, notification: Notification) -> None:
        self.notified.emit(notification.level, notification.message)

    # ---------------- query intents -----------------

    def set_search(self, text: str) -> None:
        self.loop_thread.call(self.controller.set_search, text)

    def set_filter(self, key: str, value: Any) -> None:
        self.loop_thread.call(self._set_filter, key, value)

    def _set_filter(self, key: str, value: Any) -> None:
        try:
            self.controller.set_filter(key, value)
        except ItamError as e:
            logger.warning(f"[{self.resource.name}] filter {key}: {e.message}")
            self.notified.emit("error", e.message)

    def go_to_page(self, page: int) -> None:
        self.loop_thread.call(self.controller.go_to_page, page)

    def next_page(self) -> None:
        self.loop_thread.call(self.controller.next_page)

    def previous_page(self) -> None:
        self.loop_thread.call(self.controller.previous_page)

    def refresh(self) -> concurrent.futures.Future:
        return self.loop_thread.submit(self.controller.refresh())

    # ---------------- mutations -----------------

    def _submit_mutation(self, kind: str, coro) -> concurrent.futures.Future:
        future = self.loop_thread.submit(coro)

        def done(f: concurrent.futures.Future) -> None:
            outcome = None if f.cancelled() or f.exception() is not None else f.result()
            if not f.cancelled() and f.exception() is not None:
                logger.error(f"[{self.resource.name}] {kind} crashed: {f.exception()}")
            self.mutationFinished.emit(kind, outcome)

        future.add_done_callback(done)
        return future

    def create(self, payload: Mapping[str, Any], notify: Optional[bool] = None) -> concurrent.futures.Future:
        return self._submit_mutation("create", self.controller.create(payload, notify=notify))

    def update(self, record_id: Any, payload: Mapping[str, Any]) -> concurrent.futures.Future:
        return self._submit_mutation("update", self.controller.update(record_id, payload))

    def delete(self, record_id: Any) -> concurrent.futures.Future:
        return self._submit_mutation("delete", self.controller.delete(record_id))

    def run_action(self, action: str, record_id: Any = None, payload: Optional[Mapping[str, Any]] = None,
                   notify: Optional[bool] = None) -> concurrent.futures.Future:
        return self._submit_mutation(
            "action", self.controller.run_action(action, record_id, payload, notify=notify)
        )

    # ---------------- teardown -----------------

    def close(self, timeout: float = 2.0) -> None:
        """Detach from the controller and close it on its loop."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        if not self.loop_thread.running:
            self.controller.close()
            return
        future = self.loop_thread.submit(self.controller.aclose())
        try:
            future.result(timeout)
        except concurrent.futures.TimeoutError:
            logger.warning(f"[{self.resource.name}] controller did not close within {timeout}s")


__all__ = ["LoopThread", "ControllerBridge"]
