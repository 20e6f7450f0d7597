"""Immutable state objects published by a list controller.

Views never receive mutable internals: every change produces a new
:class:`ControllerState` via ``dataclasses.replace``.
"""
from __future__ import annotations
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..errors import BackendError, ItamError, ValidationError
from .query import QueryState

Record = Dict[str, Any]


def page_count(total: int, page_size: int) -> int:
    """``ceil(total / page_size)`` with a floor of 1."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return max(1, math.ceil(max(total, 0) / page_size))


@dataclass(frozen=True)
class ListResult:
    """One page of a collection as returned by the backend."""

    items: Tuple[Record, ...] = ()
    total: int = 0
    page_count: int = 1

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        if self.total < 0:
            raise ValueError("total must be >= 0")
        if self.page_count < 1:
            object.__setattr__(self, "page_count", 1)

    @classmethod
    def from_items(cls, items, total: int, page_size: int) -> ListResult:
        return cls(items=tuple(items), total=total, page_count=page_count(total, page_size))

    def replace_item(self, index: int, record: Record) -> ListResult:
        items = list(self.items)
        items[index] = record
        return ListResult(items=tuple(items), total=self.total, page_count=self.page_count)

    def without_index(self, index: int) -> ListResult:
        items = self.items[:index] + self.items[index + 1:]
        return ListResult(items=items, total=self.total, page_count=self.page_count)


class Phase(str, Enum):
    """Fetch state machine: IDLE -> FETCHING -> COMMITTED | ERRORED."""

    IDLE = "idle"
    FETCHING = "fetching"
    COMMITTED = "committed"
    ERRORED = "errored"


@dataclass(frozen=True)
class ErrorInfo:
    """What went wrong on the last attempt, ready for display."""

    message: str
    kind: str = "backend"  # backend | network | validation
    status: Optional[int] = None
    field: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: ItamError) -> ErrorInfo:
        if isinstance(exc, ValidationError):
            return cls(message=exc.message, kind="validation", field=exc.field)
        if isinstance(exc, BackendError):
            return cls(message=exc.message, kind="backend", status=exc.status)
        return cls(message=exc.message, kind="network")


@dataclass(frozen=True)
class Notification:
    """Transient, dismissible message for the user."""

    level: str  # success | info | warning | error
    message: str


@dataclass(frozen=True)
class ControllerState:
    query: QueryState = field(default_factory=QueryState)
    loading: bool = False
    last_error: Optional[ErrorInfo] = None
    result: Optional[ListResult] = None
    busy_key: Optional[str] = None
    phase: Phase = Phase.IDLE

    @property
    def items(self) -> Tuple[Record, ...]:
        return self.result.items if self.result else ()

    @property
    def total(self) -> int:
        return self.result.total if self.result else 0

    @property
    def page_count(self) -> int:
        return self.result.page_count if self.result else 1

    @property
    def mutating(self) -> bool:
        return self.busy_key is not None

    def is_busy(self, key: Any) -> bool:
        return self.busy_key is not None and self.busy_key == str(key)


__all__ = [
    "Record",
    "page_count",
    "ListResult",
    "Phase",
    "ErrorInfo",
    "Notification",
    "ControllerState",
]
