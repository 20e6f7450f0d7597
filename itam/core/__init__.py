"""Paginated query controller and its building blocks."""

from .cancel import AbortSignal, FetchHandle, RequestCanceller
from .controller import PaginatedQueryController
from .debounce import Debouncer
from .latency import min_latency
from .query import QueryState, build_query
from .state import ControllerState, ErrorInfo, ListResult, Notification, Phase

__all__ = [
    "AbortSignal",
    "FetchHandle",
    "RequestCanceller",
    "PaginatedQueryController",
    "Debouncer",
    "min_latency",
    "QueryState",
    "build_query",
    "ControllerState",
    "ErrorInfo",
    "ListResult",
    "Notification",
    "Phase",
]
