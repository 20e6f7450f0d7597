from __future__ import annotations
import asyncio
import json
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import click

from ..api import RestClient, SessionContext
from ..config import load_typed_config
from ..core import Notification, PaginatedQueryController
from ..resources import ResourceSpec, get_resource
from ..services.notify_prefs import NotificationPreferences
from ..version import __version__

NOTIFICATION_COLORS = {
    "success": "green",
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
}


@click.group()
@click.version_option(version=__version__, prog_name="it-asset-console")
@click.option('--api-url', default=None, help='Backend base URL (overrides ITAM__API__BASE_URL)')
@click.pass_context
def cli(ctx: click.Context, api_url: str | None):
    """IT asset management console.

    \b
    TYPICAL WORKFLOWS:

    \b
    Sign in:
      itam login --email admin@example.com

    \b
    Browse records:
      itam resources                         # List record collections
      itam list assets -q laptop -f department=IT
      itam watch employees                   # Interactive debounced search
      itam list software-seats --parent 4    # Seat assignments of software #4
      itam usage-summary --month 2026-10     # Internet usage trend

    \b
    Change records:
      itam create assets -F assetTag=LT-001 -F name="ThinkPad" -F category=Laptop -F department=IT
      itam update assets 42 -F department=Finance
      itam delete assets 42
      itam action repairs 7 status -F status=completed
      itam action software-seats 15 revoke --parent 4

    \b
    E-mail switches:
      itam emails off repairs                # Never send repair e-mails from this console
    """
    if not isinstance(ctx.obj, dict):
        ctx.obj = load_typed_config().to_dict()
    if api_url:
        ctx.obj.setdefault('api', {})['base_url'] = api_url


def get_session(cfg: Mapping[str, Any]) -> SessionContext:
    """Build the shared session context and restore a cached login."""
    prefs = NotificationPreferences((cfg.get('notifications') or {}).get('emails_disabled') or [])
    cache_file = (cfg.get('auth') or {}).get('cache_file')
    return SessionContext(cache_file=cache_file, notifications=prefs).load()


def get_client(cfg: Mapping[str, Any], session: SessionContext) -> RestClient:
    api = cfg.get('api') or {}
    return RestClient(
        api.get('base_url', 'http://localhost:4000'),
        session=session,
        timeout=api.get('timeout', 30),
        max_attempts=api.get('max_attempts', 3),
    )


def resolve_resource(name: str, parent_id: str | None = None, bind: bool = True) -> ResourceSpec:
    """Look up RESOURCE and, for nested lists, bind it to ``--parent``.

    ``bind=False`` returns a nested resource unbound (e-mail switches).
    """
    try:
        spec = get_resource(name)
    except KeyError as e:
        raise click.BadParameter(str(e.args[0]), param_hint="RESOURCE") from None
    if spec.parent is None:
        if parent_id is not None:
            raise click.BadParameter(f"{spec.name} is not listed per parent record", param_hint="--parent")
        return spec
    if not bind:
        return spec
    if parent_id is None or not parent_id.strip():
        raise click.UsageError(f"{spec.name} lists the records of one {spec.parent} item: pass --parent ID")
    return spec.bind(parent_id)


def make_controller(
    cfg: Mapping[str, Any],
    resource: ResourceSpec,
    client: RestClient,
    session: SessionContext,
    echo_notifications: bool = True,
    filters: Mapping[str, Any] | None = None,
) -> PaginatedQueryController:
    lists = cfg.get('lists') or {}
    controller = PaginatedQueryController(
        resource,
        client,
        session=session,
        page_size=lists.get('page_size', 10),
        debounce_ms=lists.get('debounce_ms', 250),
        min_latency_ms=lists.get('min_latency_ms', 300),
        filters=filters,
    )
    if echo_notifications:
        controller.on_notification(echo_notification)
    return controller


def echo_notification(notification: Notification) -> None:
    color = NOTIFICATION_COLORS.get(notification.level, None)
    click.echo(click.style(notification.message, fg=color), err=notification.level == "error")


def _coerce_field(raw: str) -> Any:
    """JSON lists/objects, true/false and null are decoded; everything else
    stays a string (asset tags like 007 must keep their zeros)."""
    txt = raw.strip()
    if (txt.startswith("[") and txt.endswith("]")) or (txt.startswith("{") and txt.endswith("}")):
        try:
            return json.loads(txt)
        except ValueError:
            return txt
    lower = txt.lower()
    if lower in ("true", "false"):
        return lower == "true"
    if lower == "null":
        return None
    return txt


def parse_fields(pairs: Iterable[str]) -> Dict[str, Any]:
    """Turn ``key=value`` options into a payload.

    JSON lists/objects, booleans and null are decoded, anything else is
    kept as text. Dotted keys build nested objects: ``tempPerson.name=Ann``.
    """
    payload: Dict[str, Any] = {}
    for pair in pairs:
        if '=' not in pair:
            raise click.BadParameter(f"Expected key=value, got '{pair}'", param_hint="--field")
        key, raw = pair.split('=', 1)
        key = key.strip()
        if not key:
            raise click.BadParameter(f"Empty key in '{pair}'", param_hint="--field")
        value = _coerce_field(raw)
        cursor = payload
        parts = key.split('.')
        for part in parts[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[parts[-1]] = value
    return payload


def parse_filters(resource: ResourceSpec, pairs: Iterable[str]) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}
    for pair in pairs:
        if '=' not in pair:
            raise click.BadParameter(f"Expected key=value, got '{pair}'", param_hint="--filter")
        key, raw = pair.split('=', 1)
        filters[key.strip()] = resource.filter_spec(key.strip()).coerce(raw)
    return filters


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.1f}"
    if isinstance(value, dict):
        return str(value.get('name') or value.get('id') or "")
    text = str(value)
    return text if len(text) <= 40 else text[:37] + "..."


def format_table(columns: Sequence[Tuple[str, str]], rows: Sequence[Mapping[str, Any]], id_field: str = "id") -> str:
    """Render rows as a fixed-width text table with an id column first."""
    headers = ["ID"] + [title for _, title in columns]
    body: List[List[str]] = [
        [_cell(row.get(id_field))] + [_cell(row.get(key)) for key, _ in columns] for row in rows
    ]
    widths = [len(h) for h in headers]
    for line in body:
        widths = [max(w, len(cell)) for w, cell in zip(widths, line)]
    out = ["  ".join(h.ljust(w) for h, w in zip(headers, widths))]
    out.append("  ".join("-" * w for w in widths))
    out.extend("  ".join(cell.ljust(w) for cell, w in zip(line, widths)) for line in body)
    return "\n".join(out)


def run_async(coro):
    """Run a coroutine to completion from a click command."""
    return asyncio.run(coro)


__all__ = [
    "cli",
    "get_session",
    "get_client",
    "resolve_resource",
    "make_controller",
    "echo_notification",
    "parse_fields",
    "parse_filters",
    "format_table",
    "run_async",
]
