"""CLI package bootstrap.

Defines root group (`cli`) in helpers and imports submodules so their
decorators register commands.
"""
from itam.cli.helpers import cli  # root group
from itam.cli import core  # noqa: F401

__all__ = ["cli"]
