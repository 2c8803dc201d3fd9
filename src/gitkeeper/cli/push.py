"""Push command: publish commits through the protection gate."""

from __future__ import annotations

import click

from ..errors import NotARepository
from ._common import console, handle_errors, home_option, open_engine


def register_push_commands(main: click.Group) -> None:
    """Register the push command."""

    @main.command("push")
    @click.argument("path", default=".", type=click.Path(exists=True, file_okay=False))
    @click.option("--remote", default="origin", help="Remote to push to.")
    @click.option("--branch", default="", help="Branch to push (default: current).")
    @click.option("--password", "-p", default=None, help="Protection password, if the repo has one.")
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation for a protected repo.")
    @home_option
    @handle_errors
    def push(path, remote, branch, password, yes, home):
        """Push the current branch as the active account.

        A protected repository asks for its password, or for a
        confirmation when the guard has none.
        """
        with open_engine(home) as engine:
            git = engine.git_service(path)
            if not git.is_under_version_control():
                raise NotARepository()

            root = git.working_path()
            guard = engine.registry.get_protection(root)
            if guard is not None:
                console.print(f"\n  [yellow]{guard.path} is protected.[/]")
                if guard.has_password:
                    if password is None:
                        password = click.prompt("Protection password", hide_input=True)
                elif not yes and not click.confirm("  Proceed with push?", default=False):
                    console.print("  [dim]Push cancelled.[/]\n")
                    return

            engine.authorize(root, password or "")
            branch = branch or engine.branch_for(git)
            git.publish(remote, branch)

        console.print(f"\n  [green]Pushed[/] {branch} to {remote}\n")
