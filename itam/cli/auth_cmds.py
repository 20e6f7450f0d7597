"""Sign-in commands (login, register, logout, whoami)."""

from __future__ import annotations
import click

from ..api import AuthService
from ..errors import ItamError
from .helpers import cli, get_client, get_session


def _auth(cfg) -> AuthService:
    session = get_session(cfg)
    return AuthService(get_client(cfg, session), session)


@cli.command()
@click.option('--email', prompt=True, help='Account e-mail')
@click.option('--password', prompt=True, hide_input=True, help='Account password')
@click.pass_context
def login(ctx: click.Context, email: str, password: str):
    """Sign in and cache the session token for later commands."""
    auth = _auth(ctx.obj)
    try:
        user = auth.login(email, password)
    except ItamError as e:
        raise click.ClickException(e.message)
    name = user.get('username') or user.get('email') or email
    click.echo(click.style(f"Signed in as {name}", fg="green"))


@cli.command()
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.pass_context
def register(ctx: click.Context, username: str, email: str, password: str):
    """Create an account and sign in with it."""
    auth = _auth(ctx.obj)
    try:
        auth.register(username, email, password)
    except ItamError as e:
        raise click.ClickException(e.message)
    click.echo(click.style(f"Registered and signed in as {username}", fg="green"))


@cli.command()
@click.pass_context
def logout(ctx: click.Context):
    """Forget the cached session token."""
    _auth(ctx.obj).logout()
    click.echo("Signed out")


@cli.command()
@click.pass_context
def whoami(ctx: click.Context):
    """Show the signed-in user (refreshed from the backend)."""
    auth = _auth(ctx.obj)
    if not auth.session.authenticated:
        raise click.ClickException("Not signed in. Run 'itam login' first.")
    try:
        user = auth.fetch_me() or {}
    except ItamError as e:
        raise click.ClickException(e.message)
    click.echo(f"{user.get('username', '?')} <{user.get('email', '?')}>  role={user.get('role', 'user')}")


__all__ = ["login", "register", "logout", "whoami"]
