"""Account commands: add, remove, switch, list, current."""

from __future__ import annotations

import click
from rich.table import Table

from ..errors import NotFound
from ._common import console, handle_errors, home_option, open_engine


def register_account_commands(main: click.Group) -> None:
    """Register the account command group."""

    @main.group()
    def account():
        """Manage git accounts.

        Tokens are encrypted at rest with a key bound to this machine.
        Exactly one account is active; pushes authenticate as it.
        """

    @account.command("add")
    @click.argument("name")
    @click.option("--username", "-u", default="", help="Remote username (defaults to NAME).")
    @click.option("--email", "-e", default="", help="Commit email for this account.")
    @click.option("--token", "-t", default=None, help="Access token (prompted if omitted).")
    @home_option
    @handle_errors
    def account_add(name, username, email, token, home):
        """Add an account. The first account added becomes active."""
        if token is None:
            token = click.prompt("Access token", hide_input=True)

        with open_engine(home) as engine:
            identity = engine.vault.add(name, username or name, email, token)

        console.print(f"\n  [green]Added account[/] [bold]{identity.name}[/]")
        if identity.is_active:
            console.print("  [dim]Set as the active account.[/]")
        console.print()

    @account.command("remove")
    @click.argument("name")
    @click.option("--force", is_flag=True, help="Skip confirmation.")
    @home_option
    @handle_errors
    def account_remove(name, force, home):
        """Remove an account and its stored token."""
        with open_engine(home) as engine:
            if engine.vault.get(name) is None:
                raise NotFound(f"account '{name}' not found")
            if not force and not click.confirm(f"Remove account '{name}'?"):
                console.print("  [dim]Aborted.[/]")
                return
            engine.vault.remove(name)
            current = engine.vault.current_name()

        console.print(f"\n  [green]Removed account[/] [bold]{name}[/]")
        if current:
            console.print(f"  Active account: [cyan]{current}[/]")
        console.print()

    @account.command("switch")
    @click.argument("name")
    @home_option
    @handle_errors
    def account_switch(name, home):
        """Make NAME the active account."""
        with open_engine(home) as engine:
            engine.vault.switch_active(name)
        console.print(f"\n  Active account: [bold cyan]{name}[/]\n")

    @account.command("list")
    @home_option
    @handle_errors
    def account_list(home):
        """List all accounts."""
        with open_engine(home) as engine:
            identities = [engine.vault.get(n) for n in sorted(engine.vault.list())]

        if not identities:
            console.print("\n  [dim]No accounts yet. Add one with 'gitkeeper account add'.[/]\n")
            return

        table = Table(title="Accounts")
        table.add_column("", width=1)
        table.add_column("Name", style="cyan")
        table.add_column("Username")
        table.add_column("Email")
        table.add_column("Added", style="dim")

        for identity in identities:
            table.add_row(
                "[green]*[/]" if identity.is_active else "",
                identity.name,
                identity.username,
                identity.email,
                identity.created_at.strftime("%Y-%m-%d"),
            )

        console.print()
        console.print(table)
        console.print()

    @account.command("current")
    @home_option
    @handle_errors
    def account_current(home):
        """Show the active account."""
        with open_engine(home) as engine:
            identity = engine.vault.current()

        if identity is None:
            console.print("\n  [dim]No active account.[/]\n")
            return
        console.print(f"\n  [bold cyan]{identity.name}[/]")
        if identity.username:
            console.print(f"  Username: {identity.username}")
        if identity.email:
            console.print(f"  Email:    {identity.email}")
        console.print()
