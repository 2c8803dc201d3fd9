"""Config commands: get, set, list."""

from __future__ import annotations

import click
from rich.table import Table

from ..config import ConfigKey, parse_key
from ._common import console, handle_errors, home_option, open_engine


def _display(value) -> str:
    if value == "":
        return "[dim]unset[/]"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    @main.group()
    def config():
        """Read and change settings in config.yaml."""

    @config.command("get")
    @click.argument("key")
    @home_option
    @handle_errors
    def config_get(key, home):
        """Print the value of KEY."""
        config_key = parse_key(key)
        with open_engine(home) as engine:
            value = engine.config.get_value(config_key)
        console.print(_display(value))

    @config.command("set")
    @click.argument("key")
    @click.argument("value")
    @home_option
    @handle_errors
    def config_set(key, value, home):
        """Set KEY to VALUE, converted to the key's type."""
        with open_engine(home) as engine:
            parsed = engine.config.set_value(key, value)
            engine.save_config()
        console.print(f"  [green]{parse_key(key).value}[/] = {_display(parsed)}")

    @config.command("list")
    @home_option
    @handle_errors
    def config_list(home):
        """Show every setting."""
        with open_engine(home) as engine:
            values = {k: engine.config.get_value(k) for k in ConfigKey}
            path = engine.storage.config_file

        table = Table(title=f"Config ({path})")
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for k, v in values.items():
            table.add_row(k.value, _display(v))

        console.print()
        console.print(table)
        console.print()
