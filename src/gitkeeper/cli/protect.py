"""Protection commands: protect, unprotect, protected."""

from __future__ import annotations

import click
from rich.table import Table

from ..guards import canonicalize
from ._common import console, handle_errors, home_option, open_engine


def register_protect_commands(main: click.Group) -> None:
    """Register the repository protection commands."""

    @main.command("protect")
    @click.argument("path", default=".", type=click.Path())
    @click.option("--password", "-p", default=None, help="Require this password to unprotect.")
    @click.option("--ask-password", is_flag=True, help="Prompt for the password.")
    @home_option
    @handle_errors
    def protect(path, password, ask_password, home):
        """Protect a repository from auto-push and unguarded changes.

        Everything underneath PATH is covered too. Without a password
        the guard only asks for confirmation.
        """
        if ask_password:
            password = click.prompt("Password", hide_input=True, confirmation_prompt=True)

        with open_engine(home) as engine:
            guard = engine.registry.protect(path, password or "")

        console.print(f"\n  [green]Protected[/] [bold]{guard.path}[/]")
        if guard.has_password:
            console.print("  [dim]Password required to unprotect.[/]")
        console.print()

    @main.command("unprotect")
    @click.argument("path", default=".", type=click.Path())
    @click.option("--password", "-p", default=None, help="Password set at protect time.")
    @home_option
    @handle_errors
    def unprotect(path, password, home):
        """Remove the guard covering PATH."""
        with open_engine(home) as engine:
            guard = engine.registry.get_protection(path)
            if guard is None:
                console.print(f"\n  [dim]{canonicalize(path)} is not protected.[/]\n")
                return
            if guard.has_password and password is None:
                password = click.prompt("Password", hide_input=True)
            engine.registry.unprotect(path, password or "")

        console.print(f"\n  [green]Unprotected[/] [bold]{guard.path}[/]\n")

    @main.command("protected")
    @home_option
    @handle_errors
    def protected(home):
        """List protected repositories."""
        with open_engine(home) as engine:
            guards = engine.registry.list()

        if not guards:
            console.print("\n  [dim]No protected repositories.[/]\n")
            return

        table = Table(title="Protected Repositories")
        table.add_column("Path", style="cyan")
        table.add_column("Password")
        table.add_column("Protected", style="dim")
        table.add_column("Last access", style="dim")

        for g in guards:
            table.add_row(
                g.path,
                "[yellow]yes[/]" if g.has_password else "no",
                g.protected_at.strftime("%Y-%m-%d %H:%M"),
                g.last_accessed.strftime("%Y-%m-%d %H:%M") if g.last_accessed else "never",
            )

        console.print()
        console.print(table)
        console.print()
