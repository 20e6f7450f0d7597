"""Core CLI module - registers command modules and the GUI launcher.

Command modules are organized by functionality:
- auth_cmds: login, register, logout, whoami
- record_cmds: resources, list, watch, create, update, delete, action, emails
- settings_cmds: billing reminders and expiry recipients
- config_cmds: configuration display
"""

from __future__ import annotations
import sys

import click

from .helpers import cli

# Import command modules to register commands with cli group
from . import auth_cmds  # noqa: F401
from . import record_cmds  # noqa: F401
from . import settings_cmds  # noqa: F401
from . import config_cmds  # noqa: F401


@cli.command()
@click.pass_context
def gui(ctx):
    """Launch the desktop GUI application.

    Requires PySide6 to be installed.

    \b
    Example:
        itam gui
    """
    try:
        from itam.gui.app import main as gui_main
    except ImportError as e:
        if "PySide6" in str(e):
            click.echo(click.style("Error: PySide6 not installed", fg="red", bold=True))
            click.echo("The GUI requires PySide6. Install it with:")
            click.echo(click.style("  pip install PySide6>=6.6.0", fg="cyan"))
            sys.exit(1)
        raise
    sys.exit(gui_main(ctx.obj))


__all__ = ["gui"]
