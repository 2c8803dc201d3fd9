"""
gitkeeper CLI.

Each command group lives in its own module and is attached to the main
click group through a ``register_*_commands`` function.

Entry point: gitkeeper.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="gitkeeper")
def main():
    """gitkeeper: accounts, repository protection and auto-push for git."""


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .account import register_account_commands
from .protect import register_protect_commands
from .push import register_push_commands
from .watch import register_watch_commands
from .config_cmd import register_config_commands
from .system import register_system_commands

register_account_commands(main)
register_protect_commands(main)
register_push_commands(main)
register_watch_commands(main)
register_config_commands(main)
register_system_commands(main)
