"""Settings documents and the internet usage report."""

from __future__ import annotations
import json as _json

import click

from ..errors import ItamError
from ..services.settings import SettingsService
from ..services.usage import DEFAULT_MONTHS, UsageSummaryService
from .helpers import cli, get_client, get_session


def _service(cfg) -> SettingsService:
    session = get_session(cfg)
    return SettingsService(get_client(cfg, session))


@cli.group()
def reminders():
    """Monthly billing reminder e-mail."""


@reminders.command(name="show")
@click.pass_context
def reminders_show(ctx: click.Context):
    """Print the reminder configuration and last run status."""
    try:
        data = _service(ctx.obj).billing_reminders()
    except ItamError as e:
        raise click.ClickException(e.message)
    click.echo(_json.dumps(data, indent=2, sort_keys=True))


@reminders.command(name="save")
@click.option('--file', 'path', type=click.Path(exists=True, dir_okay=False), required=True,
              help='JSON document with title, enabled, schedule, categories, extraEmails')
@click.pass_context
def reminders_save(ctx: click.Context, path: str):
    """Validate and store a reminder configuration."""
    try:
        with open(path, 'r', encoding='utf-8') as fh:
            doc = _json.load(fh)
    except ValueError as e:
        raise click.BadParameter(f"Not valid JSON: {e}", param_hint="--file")
    try:
        _service(ctx.obj).save_billing_reminders(doc)
    except ItamError as e:
        raise click.ClickException(e.message)
    click.echo(click.style("Billing reminder settings saved", fg="green"))


@reminders.command(name="test")
@click.pass_context
def reminders_test(ctx: click.Context):
    """Send the reminder e-mail now."""
    try:
        data = _service(ctx.obj).send_test_reminder() or {}
    except ItamError as e:
        raise click.ClickException(e.message)
    sent = data.get('sentTo') or []
    suffix = f" to {', '.join(sent)}" if sent else ""
    click.echo(click.style(f"Test reminder sent{suffix}", fg="green"))


@cli.group()
def recipients():
    """Software expiry alert recipients."""


@recipients.command(name="show")
@click.pass_context
def recipients_show(ctx: click.Context):
    try:
        emails = _service(ctx.obj).expiry_recipients()
    except ItamError as e:
        raise click.ClickException(e.message)
    if not emails:
        click.echo("No recipients configured.")
    for email in emails:
        click.echo(email)


@recipients.command(name="set")
@click.argument('emails', nargs=-1)
@click.pass_context
def recipients_set(ctx: click.Context, emails):
    """Replace the recipient list (no arguments clears it)."""
    try:
        saved = _service(ctx.obj).save_expiry_recipients(emails)
    except ItamError as e:
        raise click.ClickException(e.message)
    click.echo(click.style(f"Saved {len(saved)} recipient(s)", fg="green"))


@cli.command(name="usage-summary")
@click.option('--month', default=None, help='Last month of the window as YYYY-MM (default: this month)')
@click.option('--months', type=int, default=DEFAULT_MONTHS, show_default=True, help='Months in the trend')
@click.option('--json', 'as_json', is_flag=True, help='Print the summary as JSON')
@click.pass_context
def usage_summary(ctx: click.Context, month, months: int, as_json: bool):
    """Internet data used across all connections, month by month."""
    session = get_session(ctx.obj)
    try:
        data = UsageSummaryService(get_client(ctx.obj, session)).summary(month, months)
    except ItamError as e:
        raise click.ClickException(e.message)
    if as_json:
        click.echo(_json.dumps(data, indent=2))
        return
    click.echo(f"This month: {data['currentTotalUsedGB']:.2f} GB")
    peak = max((point['totalUsedGB'] for point in data['series']), default=0) or 1
    for point in data['series']:
        bar = '#' * int(round(point['totalUsedGB'] / peak * 30))
        click.echo(f"{point['month']}  {point['totalUsedGB']:>9.2f} GB  {bar}")


__all__ = ["reminders", "recipients", "usage_summary"]
