"""PaginatedQueryController - one instance per list view.

Owns the QueryState of a record page and keeps a rendered page of results in
sync with the backend:

    user input -> Debouncer -> QueryState -> fetch cycle -> ControllerState -> listeners

Fetch cycle:
    1. take a fresh FetchHandle (aborting the previous request)
    2. loading = True
    3. build the canonical query string
    4. call the backend with the handle's abort signal
    5. stretch success to the minimum-latency floor
    6. commit items/total/page count - only if the handle is still current
    7. on failure: cancellation is a no-op; anything else sets last_error,
       keeps the previous result and emits an error notification

Mutations (create/update/delete/action) run under a single busy key and
reconcile the list afterwards: update merges the server record in place,
everything else re-runs the fetch cycle.

All methods must be called from the event loop thread that owns the
controller.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Set

from ..errors import FetchError, RequestCancelled, ValidationError
from ..resources.base import ACTION, CREATE, DELETE, UPDATE, ResourceSpec
from ..services.notify_prefs import NotificationPreferences
from .cancel import AbortSignal, RequestCanceller
from .debounce import Debouncer
from .latency import min_latency
from .query import QueryState, build_query
from .state import ControllerState, ErrorInfo, ListResult, Notification, Phase, Record

logger = logging.getLogger(__name__)

StateListener = Callable[[ControllerState], None]
NotificationListener = Callable[[Notification], None]


class RecordBackend(Protocol):
    """What the controller needs from the transport (see RestClient)."""

    async def list_page(self, resource: ResourceSpec, query_string: str, page_size: int,
                        signal: AbortSignal) -> ListResult: ...

    async def create(self, resource: ResourceSpec, payload: Mapping[str, Any],
                     signal: AbortSignal) -> Record: ...

    async def update(self, resource: ResourceSpec, record_id: Any, payload: Mapping[str, Any],
                     signal: AbortSignal) -> Record: ...

    async def delete(self, resource: ResourceSpec, record_id: Any, signal: AbortSignal) -> None: ...

    async def action(self, resource: ResourceSpec, record_id: Any, action: str,
                     payload: Mapping[str, Any], signal: AbortSignal) -> Any: ...


class PaginatedQueryController:
    """Filtered, paginated view of one backend collection.

    Args:
        resource: Collection descriptor (path, filters, validation)
        backend: Transport implementing :class:`RecordBackend`
        session: SessionContext; its notification preferences decide the
            ``notify`` flag on mutations
        page_size: Rows per page (resource override wins)
        debounce_ms: Quiet period for search text
        min_latency_ms: Loading floor (resource override wins)
        filters: Initial filter values on top of the resource defaults

    Raises:
        ValidationError: for a nested resource that was never bound to a parent
    """

    def __init__(
        self,
        resource: ResourceSpec,
        backend: RecordBackend,
        session=None,
        page_size: int = 10,
        debounce_ms: int = 250,
        min_latency_ms: int = 300,
        filters: Optional[Mapping[str, Any]] = None,
    ):
        if not resource.bound:
            raise ValidationError(f"{resource.title} needs a {resource.parent} id", "parent")
        self.resource = resource
        self.backend = backend
        self.session = session
        self.min_latency_ms = resource.min_latency_ms if resource.min_latency_ms is not None else min_latency_ms
        initial = resource.default_filters()
        initial.update(filters or {})
        self._state = ControllerState(
            query=QueryState.initial(
                page_size=resource.page_size or page_size,
                filters=initial,
                filter_order=resource.filter_order,
            )
        )
        self._canceller = RequestCanceller()
        self._debouncer: Debouncer[str] = Debouncer(debounce_ms, self._apply_search)
        self._listeners: List[StateListener] = []
        self._notification_listeners: List[NotificationListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._mutation_signal: Optional[AbortSignal] = None
        self._closed = False

    # ---------------- observation -----------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; it is called with the current state right away.

        Returns:
            Function that unsubscribes the listener
        """
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def on_notification(self, listener: NotificationListener) -> Callable[[], None]:
        self._notification_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._notification_listeners:
                self._notification_listeners.remove(listener)
        return unsubscribe

    def _commit(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    def _emit(self, level: str, message: str) -> None:
        notification = Notification(level, message)
        for listener in list(self._notification_listeners):
            listener(notification)

    # ---------------- query state -----------------

    def set_query_state(self, **changes: Any) -> None:
        """Apply a partial QueryState change coming from the view.

        ``raw_search_text`` goes through the debouncer; ``filters`` is merged
        into the current filter set; every other field applies immediately.
        A fetch is scheduled whenever the effective request changes.
        """
        if self._closed:
            return
        raw = changes.pop("raw_search_text", None)
        if raw is not None:
            self._commit(query=replace(self._state.query, raw_search_text=raw))
            self._debouncer.push(raw)
        if changes:
            self._apply(**changes)

    def set_search(self, text: str) -> None:
        """Forward a keystroke-level search value (debounced)."""
        self.set_query_state(raw_search_text=text)

    def set_filter(self, key: str, value: Any) -> None:
        """Set one declared filter, coercing CLI/GUI input."""
        spec = self.resource.filter_spec(key)
        self.set_query_state(filters={key: spec.coerce(value)})

    def go_to_page(self, page: int) -> None:
        page = max(1, min(int(page), self._state.page_count))
        self.set_query_state(page=page)

    def next_page(self) -> None:
        self.go_to_page(self._state.query.page + 1)

    def previous_page(self) -> None:
        self.go_to_page(self._state.query.page - 1)

    def _apply_search(self, raw: str) -> None:
        self._apply(search_text=raw.strip())

    def _apply(self, fetch: bool = True, **changes: Any) -> None:
        current = self._state.query
        if "filters" in changes:
            merged = current.filter_dict
            merged.update(changes["filters"] or {})
            changes["filters"] = merged
        updated = current.evolve(**changes)
        if updated == current:
            return
        self._commit(query=updated)
        if fetch and build_query(updated) != build_query(current):
            self._schedule_fetch()

    def _schedule_fetch(self) -> None:
        task = asyncio.ensure_future(self._safe_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ---------------- fetch cycle -----------------

    async def refresh(self) -> Optional[ListResult]:
        """Re-fetch now, applying any search text still waiting on the debouncer."""
        pending = self._debouncer.take()
        if pending is not None:
            self._apply(fetch=False, search_text=pending.strip())
        return await self._safe_run()

    load = refresh

    async def run(self, query: Optional[QueryState] = None) -> Optional[ListResult]:
        """Run one fetch cycle.

        Args:
            query: Query to fetch; becomes the controller's query. Defaults
                to the current one.

        Returns:
            The committed ListResult, or None when this fetch was superseded

        Raises:
            FetchError: backend or network failure (already recorded in
                ``last_error`` and notified)
        """
        if self._closed:
            return None
        if query is not None and query != self._state.query:
            self._commit(query=query)
        query = self._state.query
        handle = self._canceller.start_request()
        self._commit(loading=True, phase=Phase.FETCHING)
        query_string = build_query(query)
        logger.debug(f"[{self.resource.name}] fetch #{handle.request_id}: {query_string}")
        try:
            result = await min_latency(
                self.backend.list_page(self.resource, query_string, query.page_size, handle.signal),
                self.min_latency_ms,
            )
        except RequestCancelled:
            logger.debug(f"[{self.resource.name}] fetch #{handle.request_id} cancelled")
            return None
        except FetchError as exc:
            if self._canceller.is_cancelled(handle):
                return None
            self._canceller.finish(handle)
            logger.warning(f"[{self.resource.name}] failed to load: {exc.message}")
            self._commit(loading=False, last_error=ErrorInfo.from_exception(exc), phase=Phase.ERRORED)
            self._emit("error", exc.message)
            raise
        if self._canceller.is_cancelled(handle):
            logger.debug(f"[{self.resource.name}] dropping stale result of fetch #{handle.request_id}")
            return None
        self._canceller.finish(handle)
        self._commit(result=result, last_error=None, loading=False, phase=Phase.COMMITTED)
        logger.debug(
            f"[{self.resource.name}] committed {len(result.items)} of {result.total} "
            f"(page {query.page}/{result.page_count})"
        )
        return result

    async def _safe_run(self, query: Optional[QueryState] = None) -> Optional[ListResult]:
        try:
            return await self.run(query)
        except FetchError:
            return None  # recorded in last_error and notified by run()

    # ---------------- mutations -----------------

    async def mutate(
        self,
        kind: str,
        payload: Optional[Mapping[str, Any]] = None,
        record_id: Any = None,
        action: Optional[str] = None,
        notify: Optional[bool] = None,
    ) -> Optional[Any]:
        """Create, update, delete or call an action, then reconcile the list.

        Args:
            kind: ``create`` | ``update`` | ``delete`` | ``action``
            payload: Request body (ignored for delete)
            record_id: Target row for update/delete/record actions
            action: Action name for ``kind='action'``
            notify: Per-request e-mail choice for mutations that send mail

        Returns:
            The created/merged record, the removed record, or the action
            response (``{}`` when empty). None when validation or the
            request failed, or another mutation is still running.
        """
        if self._closed:
            return None
        if self._state.busy_key is not None:
            self._emit("warning", f"Please wait, '{self._state.busy_key}' is still in progress.")
            return None
        try:
            prepared = self._prepare_mutation(kind, payload or {}, record_id, action, notify)
        except ValidationError as exc:
            self._commit(last_error=ErrorInfo.from_exception(exc))
            self._emit("error", exc.message)
            return None

        signal = AbortSignal()
        self._mutation_signal = signal
        self._commit(busy_key=self._busy_key(kind, record_id, action))
        try:
            if kind == CREATE:
                outcome = await self._create(prepared, signal)
            elif kind == UPDATE:
                outcome = await self._update(record_id, prepared, signal)
            elif kind == DELETE:
                outcome = await self._delete(record_id, signal)
            else:
                outcome = await self._action(record_id, action or "", prepared, signal)
        except RequestCancelled:
            return None
        except FetchError as exc:
            logger.warning(f"[{self.resource.name}] {kind} failed: {exc.message}")
            self._commit(last_error=ErrorInfo.from_exception(exc))
            self._emit("error", exc.message)
            return None
        finally:
            if self._mutation_signal is signal:
                self._mutation_signal = None
            if not self._closed:
                self._commit(busy_key=None)
        return outcome

    async def create(self, payload: Mapping[str, Any], notify: Optional[bool] = None):
        return await self.mutate(CREATE, payload, notify=notify)

    async def update(self, record_id: Any, payload: Mapping[str, Any]):
        return await self.mutate(UPDATE, payload, record_id=record_id)

    async def delete(self, record_id: Any):
        return await self.mutate(DELETE, record_id=record_id)

    async def run_action(self, action: str, record_id: Any = None, payload: Optional[Mapping[str, Any]] = None,
                         notify: Optional[bool] = None):
        return await self.mutate(ACTION, payload, record_id=record_id, action=action, notify=notify)

    def _prepare_mutation(
        self,
        kind: str,
        payload: Mapping[str, Any],
        record_id: Any,
        action: Optional[str],
        notify: Optional[bool],
    ) -> Dict[str, Any]:
        prepared = self.resource.prepare(payload)
        if kind == ACTION:
            if not action:
                raise ValidationError("Action name is required.", "action")
            spec = self.resource.action(action)
            if not spec.collection and record_id in (None, ""):
                raise ValidationError(f"A record id is required for '{action}'.", "id")
            spec.validate(prepared)
        else:
            if kind in (UPDATE, DELETE) and record_id in (None, ""):
                raise ValidationError(f"A record id is required to {kind}.", "id")
            self.resource.validate(kind, prepared)
        if self.resource.wants_notify(kind, action):
            prefs = self.session.notifications if self.session is not None else NotificationPreferences()
            prepared = prefs.apply(self.resource.name, prepared, notify)
        return prepared

    @staticmethod
    def _busy_key(kind: str, record_id: Any, action: Optional[str]) -> str:
        if kind == CREATE:
            return CREATE
        if kind == ACTION:
            return f"{action}:{record_id}" if record_id not in (None, "") else str(action)
        return str(record_id)

    def _index_of(self, record_id: Any) -> int:
        for i, item in enumerate(self._state.items):
            if str(self.resource.record_id(item)) == str(record_id):
                return i
        return -1

    async def _create(self, payload: Dict[str, Any], signal: AbortSignal) -> Record:
        record = await self.backend.create(self.resource, payload, signal)
        logger.info(f"[{self.resource.name}] created {self.resource.describe(record or payload)}")
        self._emit("success", f"{self.resource.title}: record created")
        # the new row may land on any page under the current filters
        self._apply(fetch=False, page=1)
        await self._safe_run()
        return record

    async def _update(self, record_id: Any, payload: Dict[str, Any], signal: AbortSignal) -> Record:
        record = await self.backend.update(self.resource, record_id, payload, signal)
        merged = dict(record)
        index = self._index_of(record_id)
        if index >= 0 and self._state.result is not None:
            merged = {**self._state.items[index], **record}
            self._commit(result=self._state.result.replace_item(index, merged))
        logger.info(f"[{self.resource.name}] updated #{record_id}")
        self._emit("success", f"{self.resource.title}: record updated")
        return merged

    async def _delete(self, record_id: Any, signal: AbortSignal) -> Record:
        await self.backend.delete(self.resource, record_id, signal)
        index = self._index_of(record_id)
        removed: Record = {}
        was_last_on_page = False
        if index >= 0 and self._state.result is not None:
            removed = dict(self._state.items[index])
            was_last_on_page = len(self._state.items) == 1
            self._commit(result=self._state.result.without_index(index))
        logger.info(f"[{self.resource.name}] deleted #{record_id}")
        self._emit("success", f"{self.resource.title}: record deleted")
        page = self._state.query.page
        if was_last_on_page and page > 1:
            self._apply(fetch=False, page=page - 1)
        # local removal leaves total and page count stale
        await self._safe_run()
        return removed

    async def _action(self, record_id: Any, action: str, payload: Dict[str, Any], signal: AbortSignal) -> Any:
        body = await self.backend.action(self.resource, record_id, action, payload, signal)
        label = self.resource.action(action).label or action
        logger.info(f"[{self.resource.name}] {action} #{record_id}")
        self._emit("success", f"{label}: done")
        await self._safe_run()
        return body if body is not None else {}

    # ---------------- teardown -----------------

    def close(self) -> None:
        """Cancel timers, the in-flight fetch and any running mutation."""
        if self._closed:
            return
        self._closed = True
        self._debouncer.close()
        self._canceller.cancel_all()
        if self._mutation_signal is not None:
            self._mutation_signal.abort()
        for task in list(self._tasks):
            task.cancel()
        self._listeners.clear()
        self._notification_listeners.clear()
        logger.debug(f"[{self.resource.name}] controller closed")

    async def aclose(self) -> None:
        """Close and wait for scheduled fetch tasks to unwind."""
        tasks = list(self._tasks)
        self.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> PaginatedQueryController:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["PaginatedQueryController", "RecordBackend"]
