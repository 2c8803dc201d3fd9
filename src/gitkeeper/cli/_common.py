"""Shared utilities for the CLI command modules.

Provides the Rich console, engine construction and the single place
gitkeeper errors are turned into a message and exit status 1.
"""

from __future__ import annotations

import functools
import sys
from pathlib import Path
from typing import Any, Callable, NoReturn

import click
from rich.console import Console
from rich.markup import escape

from .. import GITKEEPER_HOME
from ..engine import Engine
from ..errors import GitkeeperError

console = Console()

home_option = click.option(
    "--home",
    default=GITKEEPER_HOME,
    envvar="GITKEEPER_HOME",
    type=click.Path(),
    help="gitkeeper home directory.",
)


def open_engine(home: str, **kwargs: Any) -> Engine:
    """Build the engine for a command and apply its display settings."""
    engine = Engine(Path(home).expanduser(), **kwargs)
    console.no_color = not engine.config.color_output
    return engine


def print_error(error: GitkeeperError) -> None:
    """Print an error and its hint the same way for every command."""
    console.print(f"[bold red]Error:[/] {escape(str(error))}")
    if error.hint:
        console.print(f"  [dim]{error.hint}[/]")


def fail(error: GitkeeperError) -> NoReturn:
    print_error(error)
    sys.exit(1)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn gitkeeper and name-validation errors into exit status 1."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except GitkeeperError as exc:
            fail(exc)
        except ValueError as exc:
            console.print(f"[bold red]Error:[/] {escape(str(exc))}")
            sys.exit(1)

    return wrapper
