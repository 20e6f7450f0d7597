"""Pytest fixtures for test configuration.

Global test safety measures:
 - Point the backend URL at a closed local port so a missed fake never hits
   a real server
 - Every fixture keeps files (session cache) inside tmp_path
"""
import asyncio
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

import pytest

from itam.core.state import ListResult
from itam.errors import RequestCancelled
from itam.resources.base import (
    CREATE,
    ActionSpec,
    FilterSpec,
    ResourceSpec,
    required,
)


def pytest_sessionstart(session):  # type: ignore[no-untyped-def]
    os.environ.setdefault('ITAM__API__BASE_URL', 'http://127.0.0.1:9')


@pytest.fixture
def test_config(tmp_path: Path) -> Dict[str, Any]:
    """Provide a minimal test configuration as a dict.

    Tests should use this fixture and pass cfg to CLI/modules directly,
    rather than creating config files or setting environment variables.
    """
    return {
        'log_level': 'DEBUG',
        'api': {
            'base_url': 'http://backend.test',
            'timeout': 5,
            'max_attempts': 2,
        },
        'auth': {
            'cache_file': str(tmp_path / 'session.json'),
        },
        'lists': {
            'page_size': 10,
            'debounce_ms': 0,
            'min_latency_ms': 0,
        },
        'notifications': {
            'emails_disabled': [],
        },
    }


WIDGETS = ResourceSpec(
    name="widgets",
    title="Widgets",
    path="/api/widgets",
    filters=(
        FilterSpec("department", "Department"),
        FilterSpec("expiringSoon", "Expiring soon", kind="bool"),
        FilterSpec("status", "Status", kind="choice", choices=("active", "retired")),
    ),
    columns=(("name", "Name"), ("department", "Department")),
    create_validators=(required("name", "Name"),),
    actions=(
        ActionSpec("status", method="PATCH", label="Change status",
                   validators=(required("status", "Status"),), notify=True),
        ActionSpec("rebuild", label="Rebuild", collection=True),
    ),
    notify_kinds=(CREATE,),
)


class FakeBackend:
    """In-memory RecordBackend with scripted delays and failures.

    Args:
        records: Initial rows (each needs an ``id``)
        delay: Seconds every list call takes
        delays: Per search text overrides of ``delay``
        honour_abort: When False, aborted list calls still return their
            (stale) result so the controller's own staleness check is tested
    """

    def __init__(self, records=None, delay: float = 0.0, delays: Optional[Dict[str, float]] = None,
                 honour_abort: bool = True):
        self.records: List[Dict[str, Any]] = [dict(r) for r in (records or [])]
        self.delay = delay
        self.delays = dict(delays or {})
        self.honour_abort = honour_abort
        self.errors: List[Exception] = []
        self.queries: List[str] = []
        self.calls: List[tuple] = []
        self.mutation_delay = 0.0
        self._next_id = max([int(r["id"]) for r in self.records] or [0]) + 1

    async def _wait(self, delay: float, signal) -> None:
        loop = asyncio.get_running_loop()
        end = loop.time() + delay
        while True:
            if self.honour_abort and signal is not None and signal.aborted:
                raise RequestCancelled()
            if loop.time() >= end:
                return
            await asyncio.sleep(0.002)

    def _raise_scripted(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    def _matches(self, record: Dict[str, Any], params: Dict[str, str]) -> bool:
        for key, value in params.items():
            if key in ("page", "limit"):
                continue
            if key == "q":
                if value.lower() not in str(record.get("name", "")).lower():
                    return False
            elif value == "1" and isinstance(record.get(key), bool):
                if not record.get(key):
                    return False
            elif str(record.get(key)) != value:
                return False
        return True

    async def list_page(self, resource, query_string, page_size, signal):
        self.queries.append(query_string)
        params = dict(parse_qsl(query_string))
        await self._wait(self.delays.get(params.get("q", ""), self.delay), signal)
        self._raise_scripted()
        rows = [r for r in self.records if self._matches(r, params)]
        page = int(params.get("page", 1))
        limit = int(params.get("limit", page_size))
        return ListResult.from_items(rows[(page - 1) * limit: page * limit], len(rows), limit)

    async def create(self, resource, payload, signal):
        self.calls.append(("create", dict(payload)))
        await self._wait(self.mutation_delay, signal)
        self._raise_scripted()
        record = {"id": self._next_id, **payload}
        self._next_id += 1
        self.records.append(record)
        return dict(record)

    async def update(self, resource, record_id, payload, signal):
        self.calls.append(("update", record_id, dict(payload)))
        await self._wait(self.mutation_delay, signal)
        self._raise_scripted()
        for record in self.records:
            if str(record["id"]) == str(record_id):
                record.update(payload)
                return dict(record)
        return {"id": record_id, **payload}

    async def delete(self, resource, record_id, signal):
        self.calls.append(("delete", record_id))
        await self._wait(self.mutation_delay, signal)
        self._raise_scripted()
        self.records = [r for r in self.records if str(r["id"]) != str(record_id)]

    async def action(self, resource, record_id, action, payload, signal):
        self.calls.append(("action", record_id, action, dict(payload)))
        await self._wait(self.mutation_delay, signal)
        self._raise_scripted()
        return {"ok": True}


def make_records(count: int, **extra) -> List[Dict[str, Any]]:
    return [{"id": i, "name": f"Widget {i:02d}", "department": "IT", **extra} for i in range(1, count + 1)]


@pytest.fixture
def widgets() -> ResourceSpec:
    return WIDGETS


@pytest.fixture
def fake_backend():
    """Factory fixture: ``fake_backend(records=..., delay=...)``."""
    def factory(records=None, **kwargs) -> FakeBackend:
        return FakeBackend(records if records is not None else make_records(3), **kwargs)
    return factory


@pytest.fixture
def records():
    """Factory fixture building ``count`` IT widgets."""
    return make_records
