"""Resource descriptors.

A :class:`ResourceSpec` tells the generic list controller everything that
differs between record pages: endpoint path, declared filters, columns,
client-side validation, action endpoints and which mutations carry a
``notify`` (send e-mail) flag.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from ..errors import ValidationError

Payload = Dict[str, Any]
Validator = Callable[[Payload], None]

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
ACTION = "action"


@dataclass(frozen=True)
class FilterSpec:
    """One list filter as sent on the query string."""

    key: str
    label: str = ""
    kind: str = "text"  # text | bool | choice
    choices: Tuple[str, ...] = ()
    default: Any = None

    def coerce(self, raw: Any) -> Any:
        """Convert user input (CLI/GUI text) into a filter value.

        Raises:
            ValidationError: if a choice filter gets an unknown value
        """
        if self.kind == "bool":
            if isinstance(raw, bool):
                return raw
            return str(raw).strip().lower() in {"1", "true", "yes", "on"}
        value = "" if raw is None else str(raw).strip()
        if self.kind == "choice" and value and self.choices and value not in self.choices:
            raise ValidationError(
                f"{self.label or self.key} must be one of: {', '.join(self.choices)}", self.key
            )
        return value


@dataclass(frozen=True)
class ActionSpec:
    """Endpoint hanging off a record: ``{path}/{id}/{name}``.

    Collection actions have no record id: ``{path}/{name}``. ``path`` replaces
    both forms with an absolute template such as
    ``/api/software/assignments/{id}/revoke``.
    """

    name: str
    method: str = "POST"
    label: str = ""
    validators: Tuple[Validator, ...] = ()
    collection: bool = False
    query_fields: Tuple[str, ...] = ()  # payload keys sent as query parameters
    notify: bool = False
    path: Optional[str] = None

    def validate(self, payload: Payload) -> None:
        for check in self.validators:
            check(payload)


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    title: str
    path: str
    filters: Tuple[FilterSpec, ...] = ()
    columns: Tuple[Tuple[str, str], ...] = ()
    create_validators: Tuple[Validator, ...] = ()
    update_validators: Optional[Tuple[Validator, ...]] = None  # None: same as create
    actions: Tuple[ActionSpec, ...] = ()
    notify_kinds: Tuple[str, ...] = ()
    page_size: Optional[int] = None
    min_latency_ms: Optional[int] = None
    items_key: str = "items"
    record_key: Optional[str] = "item"
    id_field: str = "id"
    supports_create: bool = True
    supports_update: bool = True
    supports_delete: bool = True
    label_fields: Tuple[str, ...] = ("name",)
    parent: Optional[str] = None  # nested lists: path holds ``{parent_id}``
    parent_id: Any = None

    @property
    def bound(self) -> bool:
        """False for a nested resource that has no parent record yet."""
        return self.parent is None or self.parent_id is not None

    def bind(self, parent_id: Any) -> "ResourceSpec":
        """Return a copy listing the children of one parent record.

        Raises:
            ValidationError: if the resource is not nested or the id is blank
        """
        if self.parent is None:
            raise ValidationError(f"{self.title} has no parent record")
        if parent_id is None or not str(parent_id).strip():
            raise ValidationError(f"{self.title} needs a {self.parent} id", "parent")
        parent_id = str(parent_id).strip()
        return replace(self, path=self.path.format(parent_id=quote(parent_id, safe="")), parent_id=parent_id)

    @property
    def filter_order(self) -> Tuple[str, ...]:
        return tuple(f.key for f in self.filters)

    def default_filters(self) -> Dict[str, Any]:
        return {f.key: f.default for f in self.filters if f.default is not None}

    def filter_spec(self, key: str) -> FilterSpec:
        for spec in self.filters:
            if spec.key == key:
                return spec
        known = ", ".join(self.filter_order) or "none"
        raise ValidationError(f"Unknown filter '{key}' for {self.name} (known: {known})", key)

    def action(self, name: str) -> ActionSpec:
        for spec in self.actions:
            if spec.name == name:
                return spec
        known = ", ".join(a.name for a in self.actions) or "none"
        raise ValidationError(f"Unknown action '{name}' for {self.name} (known: {known})")

    def record_id(self, record: Mapping[str, Any]) -> Any:
        return record.get(self.id_field)

    def describe(self, record: Mapping[str, Any]) -> str:
        """Short human label for confirmations and messages."""
        parts = [str(record[f]) for f in self.label_fields if record.get(f)]
        return " / ".join(parts) or f"#{self.record_id(record)}"

    def prepare(self, payload: Mapping[str, Any]) -> Payload:
        """Trim strings; blank strings become None (dates, optional ids)."""
        prepared: Payload = {}
        for key, value in payload.items():
            if isinstance(value, str):
                value = value.strip()
                if value == "":
                    value = None
            prepared[key] = value
        return prepared

    def validate(self, kind: str, payload: Payload) -> None:
        """Run client-side checks for ``kind``.

        Raises:
            ValidationError: naming the offending field
        """
        if kind == CREATE:
            if not self.supports_create:
                raise ValidationError(f"{self.title} cannot be created here")
            validators: Sequence[Validator] = self.create_validators
        elif kind == UPDATE:
            if not self.supports_update:
                raise ValidationError(f"{self.title} cannot be edited here")
            if self.update_validators is None:
                # partial update: fields left out of the body keep their stored value
                validators = [c for c in self.create_validators if _applies_to(c, payload)]
            else:
                validators = self.update_validators
        elif kind == DELETE:
            if not self.supports_delete:
                raise ValidationError(f"{self.title} cannot be deleted here")
            validators = ()
        else:
            raise ValidationError(f"Unsupported mutation kind '{kind}'")
        for check in validators:
            check(payload)

    def wants_notify(self, kind: str, action: Optional[str] = None) -> bool:
        if kind == ACTION and action:
            return self.action(action).notify
        return kind in self.notify_kinds


# ---------------- validator factories -----------------

def _tagged(check: Validator, field_name: Optional[str]) -> Validator:
    check.field_name = field_name  # type: ignore[attr-defined]
    return check


def _applies_to(check: Validator, payload: Payload) -> bool:
    """Untagged validators always run; tagged ones only when their field is sent."""
    field_name = getattr(check, "field_name", None)
    return field_name is None or field_name in payload


def required(field_name: str, label: str) -> Validator:
    def check(payload: Payload) -> None:
        value = payload.get(field_name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{label} is required.", field_name)
    return _tagged(check, field_name)


def required_list(field_name: str, label: str) -> Validator:
    def check(payload: Payload) -> None:
        value = payload.get(field_name)
        if not value or not isinstance(value, (list, tuple)):
            raise ValidationError(f"Select at least 1 {label}.", field_name)
    return _tagged(check, field_name)


def number(field_name: str, label: str, minimum: Optional[float] = None) -> Validator:
    """Optional numeric field; when present it must parse and respect ``minimum``."""
    def check(payload: Payload) -> None:
        value = payload.get(field_name)
        if value is None or value == "":
            return
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid {label}.", field_name) from None
        if parsed != parsed or parsed in (float("inf"), float("-inf")):
            raise ValidationError(f"Invalid {label}.", field_name)
        if minimum is not None and parsed < minimum:
            raise ValidationError(f"{label[:1].upper()}{label[1:]} must be >= {minimum:g}.", field_name)
        payload[field_name] = int(parsed) if parsed.is_integer() and not isinstance(value, float) else parsed
    return _tagged(check, field_name)


def min_length(field_name: str, label: str, length: int) -> Validator:
    def check(payload: Payload) -> None:
        value = payload.get(field_name) or ""
        if len(str(value)) < length:
            raise ValidationError(f"{label} must be at least {length} characters.", field_name)
    return _tagged(check, field_name)


def when(predicate: Callable[[Payload], bool], validator: Validator) -> Validator:
    def check(payload: Payload) -> None:
        if predicate(payload):
            validator(payload)
    return _tagged(check, getattr(validator, "field_name", None))


__all__ = [
    "CREATE",
    "UPDATE",
    "DELETE",
    "ACTION",
    "FilterSpec",
    "ActionSpec",
    "ResourceSpec",
    "required",
    "required_list",
    "number",
    "min_length",
    "when",
]
