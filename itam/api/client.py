"""REST client for the IT asset backend.

Handles all HTTP requests to the ``/api`` endpoints. Blocking ``requests``
calls run in the default executor so the event loop stays responsive; every
async call takes an :class:`~itam.core.cancel.AbortSignal`. Aborting closes
the per-request HTTP session (tearing down the socket) and cancels the
awaiting future, which surfaces as :class:`~itam.errors.RequestCancelled`.
"""

from __future__ import annotations
import asyncio
import functools
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_random_exponential

from ..core.cancel import AbortSignal
from ..core.state import ListResult, Record
from ..errors import BackendError, RateLimited, RequestCancelled, TransportError
from ..resources.base import ResourceSpec

logger = logging.getLogger(__name__)

MAX_RETRY_AFTER = 30


class RestClient:
    """Backend API client.

    Provides the async record operations used by list controllers plus
    blocking JSON helpers for auth and settings documents.
    """

    def __init__(
        self,
        base_url: str,
        session=None,
        timeout: float = 30,
        max_attempts: int = 3,
        backoff_max: float = 10.0,
    ):
        """Initialize client.

        Args:
            base_url: Backend origin, e.g. ``http://localhost:4000``
            session: SessionContext providing the bearer token (read only)
            timeout: Per-request timeout in seconds
            max_attempts: Attempts for GET requests on transport errors
            backoff_max: Upper bound of the random exponential back-off
        """
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_max = backoff_max

    def _headers(self) -> Dict[str, str]:
        """Build request headers, adding the bearer token when logged in."""
        headers = {"Accept": "application/json"}
        if self.session is not None:
            headers.update(self.session.authorization_header())
        return headers

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return self.base_url + (path if path.startswith("/") else "/" + path)

    def _send(
        self,
        http: requests.Session,
        method: str,
        path: str,
        params: Any = None,
        json: Any = None,
    ) -> Any:
        """Execute one HTTP request and decode the JSON answer.

        Raises:
            RateLimited: on HTTP 429 after sleeping ``Retry-After``
            BackendError: on any other non-2xx status
            TransportError: when the request never completed
        """
        url = self._url(path)
        try:
            r = http.request(method, url, headers=self._headers(), params=params, json=json, timeout=self.timeout)
        except requests.Timeout as e:
            raise TransportError(f"Request to {path} timed out") from e
        except requests.RequestException as e:
            logger.debug(f"{method} {url} failed: {e}")
            raise TransportError() from e

        if r.status_code == 429:
            try:
                ra = int(r.headers.get("Retry-After", "1"))
            except ValueError:
                ra = 1
            time.sleep(min(max(ra, 0), MAX_RETRY_AFTER))
            raise RateLimited("Rate limited by backend")

        body: Any = {}
        if r.content:
            try:
                body = r.json()
            except ValueError:
                body = {}
        if not r.ok:
            raise BackendError.from_response(r.status_code, body)
        return body

    def request(
        self,
        method: str,
        path: str,
        params: Any = None,
        json: Any = None,
        signal: Optional[AbortSignal] = None,
    ) -> Any:
        """Blocking request with retry (GET only) and abort support."""
        method = method.upper()
        http = requests.Session()
        if signal is not None:
            signal.add_callback(http.close)
        try:
            if method != "GET":
                return self._send(http, method, path, params, json)
            retrying = Retrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_random_exponential(multiplier=0.5, max=self.backoff_max),
                retry=retry_if_exception(
                    lambda e: isinstance(e, TransportError) and not (signal is not None and signal.aborted)
                ),
                reraise=True,
            )
            for attempt in retrying:
                with attempt:
                    return self._send(http, method, path, params, json)
        except Exception:
            # A closed session fails in assorted ways; abort trumps them all
            if signal is not None and signal.aborted:
                raise RequestCancelled() from None
            raise
        finally:
            http.close()

    async def _run(
        self,
        signal: Optional[AbortSignal],
        method: str,
        path: str,
        params: Any = None,
        json: Any = None,
    ) -> Any:
        if signal is not None and signal.aborted:
            raise RequestCancelled()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, functools.partial(self.request, method, path, params, json, signal))
        if signal is not None:
            signal.add_callback(lambda: loop.call_soon_threadsafe(future.cancel))
        try:
            return await future
        except asyncio.CancelledError:
            if signal is not None and signal.aborted:
                raise RequestCancelled() from None
            raise

    # ---------------- record operations (used by list controllers) -----------------

    async def list_page(
        self,
        resource: ResourceSpec,
        query_string: str,
        page_size: int,
        signal: Optional[AbortSignal] = None,
    ) -> ListResult:
        """Fetch one page of ``resource``.

        Args:
            resource: Collection descriptor
            query_string: Canonical query string from ``build_query``
            page_size: Rows per page, used to derive the page count
            signal: Abort signal of the owning fetch handle
        """
        path = f"{resource.path}?{query_string}" if query_string else resource.path
        body = await self._run(signal, "GET", path)
        return self.parse_list(resource, body, page_size)

    async def create(self, resource: ResourceSpec, payload: Mapping[str, Any],
                     signal: Optional[AbortSignal] = None) -> Record:
        body = await self._run(signal, "POST", resource.path, json=dict(payload))
        return self.unwrap_record(resource, body)

    async def update(self, resource: ResourceSpec, record_id: Any, payload: Mapping[str, Any],
                     signal: Optional[AbortSignal] = None) -> Record:
        body = await self._run(signal, "PATCH", f"{resource.path}/{record_id}", json=dict(payload))
        return self.unwrap_record(resource, body)

    async def delete(self, resource: ResourceSpec, record_id: Any,
                     signal: Optional[AbortSignal] = None) -> None:
        await self._run(signal, "DELETE", f"{resource.path}/{record_id}")

    async def action(
        self,
        resource: ResourceSpec,
        record_id: Any,
        action: str,
        payload: Mapping[str, Any],
        signal: Optional[AbortSignal] = None,
    ) -> Any:
        """Call an action endpoint such as ``/api/repairs/{id}/status``."""
        spec = resource.action(action)
        body = dict(payload)
        params: List[Tuple[str, str]] = []
        for key in spec.query_fields:
            value = body.pop(key, None)
            if value not in (None, ""):
                params.append((key, str(value)))
        if spec.path:
            path = spec.path.format(id=record_id)
        elif spec.collection:
            path = f"{resource.path}/{action}"
        else:
            path = f"{resource.path}/{record_id}/{action}"
        return await self._run(signal, spec.method, path, params=params or None, json=body)

    # ---------------- response shapes -----------------

    @staticmethod
    def parse_list(resource: ResourceSpec, body: Any, page_size: int) -> ListResult:
        """Normalise ``{items, total, pages}`` (or a bare list) into a ListResult.

        Raises:
            BackendError: when a 2xx answer is not a list page
        """
        if isinstance(body, list):
            items: Sequence[Any] = body
            total = len(body)
        elif isinstance(body, dict) or body is None:
            body = body or {}
            items = body.get(resource.items_key)
            if items is None:
                items = body.get("items") or []
            if not isinstance(items, list):
                raise BackendError(f"Unexpected {resource.name} list in response", 200)
            try:
                total = int(body.get("total", len(items)))
            except (TypeError, ValueError):
                total = len(items)
        else:
            raise BackendError(f"Unexpected {resource.name} response: {type(body).__name__}", 200)
        if not all(isinstance(item, dict) for item in items):
            raise BackendError(f"Unexpected {resource.name} record in response", 200)
        return ListResult.from_items(items, total, page_size)

    @staticmethod
    def unwrap_record(resource: ResourceSpec, body: Any) -> Record:
        if not isinstance(body, dict):
            return {}
        if resource.record_key and isinstance(body.get(resource.record_key), dict):
            return body[resource.record_key]
        return body

    # ---------------- blocking JSON helpers (auth, settings) -----------------

    def get_json(self, path: str, params: Any = None) -> Any:
        return self.request("GET", path, params=params)

    def post_json(self, path: str, json: Any = None) -> Any:
        return self.request("POST", path, json=json)

    def patch_json(self, path: str, json: Any = None) -> Any:
        return self.request("PATCH", path, json=json)


__all__ = ["RestClient"]
