"""System commands: status, logs, version."""

from __future__ import annotations

import click
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..git import GitService
from ..logs import read_log_file
from ._common import console, handle_errors, home_option, open_engine

_LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold red",
}


def register_system_commands(main: click.Group) -> None:
    """Register the status, logs and version commands."""

    @main.command("status")
    @home_option
    @handle_errors
    def status(home):
        """Show accounts, protected repositories and storage use."""
        with open_engine(home) as engine:
            current = engine.vault.current_name()
            accounts = len(engine.vault)
            guards = len(engine.registry.list())
            usage = engine.storage.usage()
            home_dir = engine.storage.home

        table = Table(title="gitkeeper status", show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        table.add_row("Version", __version__)
        table.add_row("Home", escape(str(home_dir)))
        table.add_row("Git", "installed" if GitService.is_installed() else "[red]not found on PATH[/]")
        table.add_row("Accounts", f"{accounts} (active: {current})" if current else "0")
        table.add_row("Protected repos", str(guards))
        for area, size in usage.items():
            table.add_row(f"Storage: {area}", f"{size:,} bytes")

        console.print()
        console.print(table)
        console.print()

    @main.command("logs")
    @click.option("--lines", "-n", default=50, help="Number of entries to show.")
    @click.option(
        "--level",
        type=click.Choice(list(_LEVEL_STYLES), case_sensitive=False),
        default=None,
        help="Only show entries at this level.",
    )
    @home_option
    @handle_errors
    def logs(lines, level, home):
        """Show recent log entries."""
        with open_engine(home) as engine:
            log_file = engine.storage.log_file
        entries = read_log_file(log_file, limit=lines, level=level)

        if not entries:
            console.print(f"\n  [dim]No log entries in {log_file}[/]\n")
            return

        for e in entries:
            style = _LEVEL_STYLES.get(e.level, "")
            console.print(
                f"[dim]{e.time:%Y-%m-%d %H:%M:%S}[/] [{style}]{e.level:<8}[/] "
                f"[cyan]{e.logger}[/] {escape(e.message)}",
                highlight=False,
            )

    @main.command("version")
    @click.option("--check", is_flag=True, help="Check GitHub for a newer release.")
    @home_option
    @handle_errors
    def version(check, home):
        """Show the installed version."""
        console.print(f"gitkeeper {__version__}")
        if not check:
            return

        with open_engine(home) as engine:
            info = engine.updates.check(__version__)
        if info is None:
            console.print("  [green]Up to date.[/]")
            return
        console.print(f"  [yellow]Update available:[/] {info.version}")
        if info.release_url:
            console.print(f"  {info.release_url}")
