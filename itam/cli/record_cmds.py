"""Record commands: browse and change any registered collection."""

from __future__ import annotations
import asyncio
import json as _json
from typing import Any, Dict, Optional

import click

from ..core import ControllerState, Phase
from ..errors import AuthenticationError, ItamError
from ..resources import ResourceSpec
from .helpers import (
    cli,
    format_table,
    get_client,
    get_session,
    make_controller,
    parse_fields,
    parse_filters,
    resolve_resource,
    run_async,
)

WATCH_HELP = ":next  :prev  :page N  :filter key=value  :refresh  :quit"


def _fail(e: ItamError) -> click.ClickException:
    if isinstance(e, AuthenticationError):
        return click.ClickException(f"{e.message} (run 'itam login' first)")
    return click.ClickException(e.message)


def _filters_or_fail(resource: ResourceSpec, pairs) -> Dict[str, Any]:
    try:
        return parse_filters(resource, pairs)
    except ItamError as e:
        raise click.BadParameter(e.message, param_hint="--filter")


def _render(resource: ResourceSpec, state: ControllerState, as_json: bool = False) -> str:
    if as_json:
        return _json.dumps({
            "items": list(state.items),
            "total": state.total,
            "page": state.query.page,
            "pages": state.page_count,
        }, indent=2, default=str)
    if not state.items:
        return "No records found."
    footer = f"Page {state.query.page}/{state.page_count} ({state.total} total)"
    return format_table(resource.columns, state.items, resource.id_field) + "\n" + footer


@cli.command(name="resources")
def list_resource_names():
    """Show the record collections this console can browse."""
    from ..resources import list_resources

    for spec in list_resources():
        ops = [name for name, ok in (("create", spec.supports_create), ("update", spec.supports_update),
                                     ("delete", spec.supports_delete)) if ok]
        ops.extend(a.name for a in spec.actions)
        filters = ", ".join(spec.filter_order) or "-"
        click.echo(f"{click.style(spec.name, fg='cyan'):<34} {spec.title}")
        click.echo(f"    filters: {filters}")
        click.echo(f"    operations: {', '.join(ops) or 'read only'}")
        if spec.parent:
            click.echo(f"    per {spec.parent} record: --parent ID")


@cli.command(name="list")
@click.argument('resource_name', metavar='RESOURCE')
@click.option('--search', '-q', default='', help='Search text (matched server side)')
@click.option('--filter', '-f', 'filter_pairs', multiple=True, help='Filter as key=value (repeatable)')
@click.option('--page', '-p', type=int, default=1, show_default=True)
@click.option('--limit', '-l', type=int, default=None, help='Rows per page (default from config)')
@click.option('--parent', 'parent_id', default=None, help='Parent record id for nested lists such as software-seats')
@click.option('--json', 'as_json', is_flag=True, help='Print the page as JSON')
@click.pass_context
def list_records(ctx: click.Context, resource_name: str, search: str, filter_pairs, page: int,
                 limit: Optional[int], as_json: bool, parent_id: Optional[str]):
    """Fetch one page of RESOURCE.

    \b
    Examples:
        itam list assets -q laptop -f department=IT
        itam list software -f type=domain -f expiry=30
        itam list software-seats --parent 4 -f status=revoked
        itam list software-renewals --parent 4
    """
    cfg = ctx.obj
    resource = resolve_resource(resource_name, parent_id)
    filters = _filters_or_fail(resource, filter_pairs)
    if limit is not None and limit < 1:
        raise click.BadParameter("must be >= 1", param_hint="--limit")
    session = get_session(cfg)
    client = get_client(cfg, session)

    async def _run() -> ControllerState:
        async with make_controller(cfg, resource, client, session, echo_notifications=False) as controller:
            query = controller.state.query
            changes: Dict[str, Any] = {
                "search_text": search.strip(),
                "filters": {**query.filter_dict, **filters},
            }
            if limit:
                changes["page_size"] = limit
            await controller.run(query.evolve(**changes).evolve(page=max(1, page)))
            return controller.state

    try:
        state = run_async(_run())
    except ItamError as e:
        raise _fail(e)
    click.echo(_render(resource, state, as_json))


async def _read_lines(stream):
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            return
        yield line.rstrip("\r\n")


@cli.command()
@click.argument('resource_name', metavar='RESOURCE')
@click.option('--filter', '-f', 'filter_pairs', multiple=True, help='Initial filter as key=value')
@click.option('--parent', 'parent_id', default=None, help='Parent record id for nested lists')
@click.pass_context
def watch(ctx: click.Context, resource_name: str, filter_pairs, parent_id: Optional[str]):
    """Interactive search over RESOURCE.

    Every line read from stdin becomes the new search text. Typing is
    debounced: only the last line of a quick burst reaches the backend,
    and a slower earlier response never overwrites a newer one.

    \b
    Commands:
        :next  :prev  :page N  :filter key=value  :refresh  :quit
    """
    cfg = ctx.obj
    resource = resolve_resource(resource_name, parent_id)
    filters = _filters_or_fail(resource, filter_pairs)
    session = get_session(cfg)
    client = get_client(cfg, session)
    stdin = click.get_text_stream('stdin')

    shown = {"result": None}

    def on_state(state: ControllerState) -> None:
        if state.phase is Phase.COMMITTED and state.result is not shown["result"]:
            shown["result"] = state.result
            label = f"search='{state.query.search_text}'" if state.query.search_text else "all"
            click.echo(click.style(f"-- {resource.title} [{label}]", fg="cyan"))
            click.echo(_render(resource, state))

    async def _handle_command(controller, line: str) -> bool:
        cmd, _, arg = line[1:].partition(" ")
        if cmd in ("q", "quit"):
            return False
        if cmd == "next":
            controller.next_page()
        elif cmd == "prev":
            controller.previous_page()
        elif cmd == "page" and arg.strip().isdigit():
            controller.go_to_page(int(arg))
        elif cmd == "filter" and "=" in arg:
            key, value = arg.split("=", 1)
            try:
                controller.set_filter(key.strip(), value)
            except ItamError as e:
                click.echo(click.style(e.message, fg="red"), err=True)
        elif cmd == "refresh":
            await controller.refresh()
        else:
            click.echo(f"Commands: {WATCH_HELP}")
        return True

    async def _run() -> ControllerState:
        async with make_controller(cfg, resource, client, session, filters=filters) as controller:
            controller.subscribe(on_state)
            await controller.load()
            async for line in _read_lines(stdin):
                if line.startswith(":"):
                    if not await _handle_command(controller, line.strip()):
                        return controller.state
                    continue
                controller.set_search(line)
            # stdin closed: deliver the last typed text
            await controller.refresh()
            return controller.state

    state = run_async(_run())
    if state.phase is Phase.ERRORED:
        ctx.exit(1)


def _mutation_result(ctx: click.Context, resource: ResourceSpec, outcome: Any, as_json: bool) -> None:
    if outcome is None:
        ctx.exit(1)
    if as_json:
        click.echo(_json.dumps(outcome, indent=2, default=str))
    elif isinstance(outcome, dict) and resource.record_id(outcome) is not None:
        click.echo(f"{resource.id_field}={resource.record_id(outcome)}  {resource.describe(outcome)}")


def _mutate(ctx: click.Context, resource: ResourceSpec, call) -> Any:
    cfg = ctx.obj
    session = get_session(cfg)
    client = get_client(cfg, session)

    async def _run():
        async with make_controller(cfg, resource, client, session) as controller:
            return await call(controller)

    return run_async(_run())


@cli.command()
@click.argument('resource_name', metavar='RESOURCE')
@click.option('--field', '-F', 'fields', multiple=True, help='Field as key=value (repeatable, dotted keys nest)')
@click.option('--notify/--no-notify', default=None, help='Send e-mail for this change (when the section allows it)')
@click.option('--json', 'as_json', is_flag=True, help='Print the created record as JSON')
@click.pass_context
def create(ctx: click.Context, resource_name: str, fields, notify: Optional[bool], as_json: bool):
    """Create a record in RESOURCE.

    \b
    Example:
        itam create repairs -F assetId=12 -F employeeId=3 -F title="Broken hinge" -F priority=high
    """
    resource = resolve_resource(resource_name)
    payload = parse_fields(fields)
    outcome = _mutate(ctx, resource, lambda c: c.create(payload, notify=notify))
    _mutation_result(ctx, resource, outcome, as_json)


@cli.command()
@click.argument('resource_name', metavar='RESOURCE')
@click.argument('record_id', metavar='ID')
@click.option('--field', '-F', 'fields', multiple=True, help='Field as key=value (repeatable)')
@click.option('--json', 'as_json', is_flag=True, help='Print the updated record as JSON')
@click.pass_context
def update(ctx: click.Context, resource_name: str, record_id: str, fields, as_json: bool):
    """Update record ID of RESOURCE."""
    resource = resolve_resource(resource_name)
    payload = parse_fields(fields)
    if not payload:
        raise click.UsageError("Nothing to update: pass at least one --field key=value")
    outcome = _mutate(ctx, resource, lambda c: c.update(record_id, payload))
    _mutation_result(ctx, resource, outcome, as_json)


@cli.command()
@click.argument('resource_name', metavar='RESOURCE')
@click.argument('record_id', metavar='ID')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete(ctx: click.Context, resource_name: str, record_id: str, yes: bool):
    """Delete record ID of RESOURCE."""
    resource = resolve_resource(resource_name)
    if not yes:
        click.confirm(f"Delete {resource.name} #{record_id}?", abort=True)
    outcome = _mutate(ctx, resource, lambda c: c.delete(record_id))
    if outcome is None:
        ctx.exit(1)


@cli.command()
@click.argument('resource_name', metavar='RESOURCE')
@click.argument('record_id', metavar='ID')
@click.argument('action_name', metavar='NAME')
@click.option('--field', '-F', 'fields', multiple=True, help='Field as key=value (repeatable)')
@click.option('--notify/--no-notify', default=None, help='Send e-mail for this action (when the section allows it)')
@click.option('--json', 'as_json', is_flag=True, help='Print the response as JSON')
@click.option('--parent', 'parent_id', default=None, help='Parent record id for nested lists')
@click.pass_context
def action(ctx: click.Context, resource_name: str, record_id: str, action_name: str, fields,
           notify: Optional[bool], as_json: bool, parent_id: Optional[str]):
    """Run action NAME on record ID of RESOURCE.

    Collection actions ignore ID; pass '-'.

    \b
    Examples:
        itam action repairs 7 status -F status=completed
        itam action software 4 renew -F newExpiryDate=2027-01-31 -F cost=120
        itam action internet-usage - generate-month -F month=2026-10
        itam action software-seats 15 revoke --parent 4
    """
    resource = resolve_resource(resource_name, parent_id)
    payload = parse_fields(fields)
    target = None if record_id == "-" else record_id
    outcome = _mutate(ctx, resource, lambda c: c.run_action(action_name, target, payload, notify=notify))
    _mutation_result(ctx, resource, outcome, as_json)


@cli.command()
@click.argument('state', type=click.Choice(['on', 'off', 'status']))
@click.argument('resource_name', metavar='RESOURCE', required=False)
@click.pass_context
def emails(ctx: click.Context, state: str, resource_name: Optional[str]):
    """Switch e-mail notifications of a section on or off.

    The switch is stored with the session cache. A request only sends mail
    when it asks for it and its section is switched on.
    """
    session = get_session(ctx.obj)
    prefs = session.notifications
    if state == 'status':
        names = [resource_name] if resource_name else [
            spec.name for spec in _notifying_resources()
        ]
        for name in names:
            flag = prefs.emails_enabled(name)
            click.echo(f"{name:<24} {click.style('ON', fg='green') if flag else click.style('OFF', fg='yellow')}")
        return
    if not resource_name:
        raise click.UsageError(f"emails {state} needs a RESOURCE")
    resource = resolve_resource(resource_name, bind=False)
    prefs.set_emails_enabled(resource.name, state == 'on')
    session.save()
    click.echo(f"E-mails for {resource.title}: {state.upper()}")


def _notifying_resources():
    from ..resources import list_resources

    return [spec for spec in list_resources()
            if spec.notify_kinds or any(a.notify for a in spec.actions)]


__all__ = [
    "list_resource_names",
    "list_records",
    "watch",
    "create",
    "update",
    "delete",
    "action",
    "emails",
]
