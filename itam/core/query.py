"""QueryState and the canonical query-string builder.

State is immutable - always create a new QueryState via :meth:`QueryState.evolve`,
never mutate. Any change to a field other than ``page`` puts the view back on
page 1.

Filters are stored in canonical order: keys named in ``filter_order`` first
(declaration order), then any other keys alphabetically. Values that mean
"no filter" (None, False, blank strings) are dropped, so ``{"expiringSoon":
False}`` and ``{}`` are the same query.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

FilterValue = Union[str, bool, int]

TRUE_SENTINEL = "1"

# rawSearchText only feeds the debouncer, it never changes the query by itself
_NON_QUERY_FIELDS = {"page", "raw_search_text"}


def _is_unset(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def canonical_filters(
    filters: Union[Mapping[str, FilterValue], Iterable[Tuple[str, FilterValue]], None],
    order: Sequence[str] = (),
) -> Tuple[Tuple[str, FilterValue], ...]:
    """Normalise filters into a sorted, hashable tuple of pairs."""
    if filters is None:
        return ()
    items = filters.items() if isinstance(filters, Mapping) else filters
    kept = {key: value for key, value in items if not _is_unset(value)}
    rank = {key: i for i, key in enumerate(order)}
    keys = sorted(kept, key=lambda k: (rank.get(k, len(rank)), k))
    return tuple((key, kept[key]) for key in keys)


@dataclass(frozen=True)
class QueryState:
    """What the user currently asks the list endpoint for.

    Attributes:
        page: 1-based page number
        page_size: rows per page (``limit`` on the wire)
        search_text: debounced projection of ``raw_search_text``
        filters: canonical ``((key, value), ...)`` pairs
        raw_search_text: what is in the search box right now
        filter_order: declared filter keys, controls parameter order
    """

    page: int = 1
    page_size: int = 10
    search_text: str = ""
    filters: Tuple[Tuple[str, FilterValue], ...] = ()
    raw_search_text: str = ""
    filter_order: Tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self):
        if not isinstance(self.page, int) or self.page < 1:
            raise ValueError(f"page must be an integer >= 1, got {self.page!r}")
        if not isinstance(self.page_size, int) or self.page_size <= 0:
            raise ValueError(f"page_size must be a positive integer, got {self.page_size!r}")
        object.__setattr__(self, "filter_order", tuple(self.filter_order))
        object.__setattr__(self, "filters", canonical_filters(self.filters, self.filter_order))

    @classmethod
    def initial(
        cls,
        page_size: int = 10,
        filters: Optional[Mapping[str, FilterValue]] = None,
        filter_order: Sequence[str] = (),
    ) -> QueryState:
        return cls(page=1, page_size=page_size, filters=tuple((filters or {}).items()),
                   filter_order=tuple(filter_order))

    @property
    def filter_dict(self) -> Dict[str, FilterValue]:
        return dict(self.filters)

    def evolve(self, **changes: Any) -> QueryState:
        """Return a new state with ``changes`` applied.

        Accepts the dataclass field names; ``filters`` may be a mapping and
        replaces the whole filter set (use :meth:`with_filters` to merge).
        ``page`` is reset to 1 when anything besides ``page`` (and the raw
        search text) actually changes.
        """
        unknown = set(changes) - set(self.__dataclass_fields__)
        if unknown:
            raise TypeError(f"Unknown QueryState field(s): {', '.join(sorted(unknown))}")
        if "filters" in changes:
            changes["filters"] = canonical_filters(changes["filters"], self.filter_order)
        candidate = replace(self, **changes)
        query_changed = any(
            getattr(candidate, name) != getattr(self, name)
            for name in self.__dataclass_fields__
            if name not in _NON_QUERY_FIELDS and name != "filter_order"
        )
        if query_changed and candidate.page != 1:
            candidate = replace(candidate, page=1)
        return candidate

    def with_filters(self, **updates: FilterValue) -> QueryState:
        """Merge filter updates (None/False/blank clears a key)."""
        merged = self.filter_dict
        merged.update(updates)
        return self.evolve(filters=merged)

    def same_query(self, other: QueryState) -> bool:
        """True when both states would hit the backend with the same request."""
        return build_query(self) == build_query(other)


def query_params(state: QueryState) -> list[Tuple[str, str]]:
    """Ordered wire parameters: page, limit, q, then filters."""
    params: list[Tuple[str, str]] = [
        ("page", str(state.page)),
        ("limit", str(state.page_size)),
    ]
    q = state.search_text.strip()
    if q:
        params.append(("q", q))
    for key, value in state.filters:
        if value is True:
            params.append((key, TRUE_SENTINEL))
        elif isinstance(value, str):
            params.append((key, value.strip()))
        else:
            params.append((key, str(value)))
    return params


def build_query(state: QueryState) -> str:
    """Canonical query string for ``state``.

    Identical states always yield byte-identical strings. Empty search text
    and unset filters are omitted; ``page`` and ``limit`` are always present;
    true booleans become ``1`` and false ones are left out entirely.
    """
    return urlencode(query_params(state))


__all__ = ["QueryState", "build_query", "query_params", "canonical_filters", "TRUE_SENTINEL"]
