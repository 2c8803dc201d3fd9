"""Watch command: auto-push once a threshold is crossed."""

from __future__ import annotations

import signal

import click
from rich.markup import escape

from ..errors import AuthorizationError
from ..models import TriggerKind, WatcherConfig
from ._common import console, handle_errors, home_option, open_engine


def register_watch_commands(main: click.Group) -> None:
    """Register the watch command."""

    @main.command("watch")
    @click.argument("path", default=".", type=click.Path(exists=True, file_okay=False))
    @click.option(
        "--trigger",
        type=click.Choice([k.value for k in TriggerKind]),
        default=None,
        help="What to measure (default: watch_trigger from config).",
    )
    @click.option("--threshold", default=None, help="e.g. 5 commits, 10m, 2MB.")
    @click.option("--interval", type=float, default=None, help="Seconds between polls.")
    @click.option("--remote", default="", help="Remote to push to (default: origin).")
    @click.option("--branch", default="", help="Branch to push (default: current).")
    @home_option
    @handle_errors
    def watch(path, trigger, threshold, interval, remote, branch, home):
        """Watch a repository and push when the threshold is reached.

        Protected repositories are never pushed; the watcher reports the
        blocked push and keeps polling. Ctrl+C to stop.
        """
        with open_engine(home, start_background=True) as engine:
            defaults = engine.config
            kind = TriggerKind(trigger) if trigger else defaults.watch_trigger
            if threshold is None:
                threshold = defaults.watch_threshold if kind == defaults.watch_trigger else ""
            config = WatcherConfig(
                trigger=kind,
                threshold=threshold,
                interval=interval if interval is not None else defaults.watch_interval,
                remote=remote,
                branch=branch,
            )

            def published(remote_name, branch_name, count):
                console.print(f"  [green]Pushed[/] {count} commit(s) to {remote_name}/{branch_name}")

            def failed(error):
                colour = "yellow" if isinstance(error, AuthorizationError) else "red"
                console.print(f"  [{colour}]{escape(str(error))}[/]")

            def idle(reason):
                console.print(f"  [dim]{reason}[/]")

            watcher = engine.create_watcher(
                path, config, on_published=published, on_failed=failed, on_idle=idle
            )

            console.print(f"\n  [green]Watching[/] {path}")
            console.print(f"  {watcher.describe()}")
            console.print("  [dim]Ctrl+C to stop[/]\n")

            previous = signal.signal(signal.SIGTERM, lambda signum, frame: watcher.stop())
            thread = watcher.start()
            try:
                while thread.is_alive():
                    thread.join(timeout=0.5)
            except KeyboardInterrupt:
                watcher.stop()
                thread.join()
            finally:
                signal.signal(signal.SIGTERM, previous)

            stats = watcher.stats.snapshot()
            errors = engine.log_buffer.by_level("ERROR")
            update = engine.updates.latest if engine.updates.has_pending_update else None

        console.print(
            f"\n  Stopped after {stats['polls']} poll(s): "
            f"{stats['publishes']} push(es), {stats['failures']} failure(s)"
        )
        if errors:
            console.print(f"  [red]{len(errors)} error(s) logged[/]; see 'gitkeeper logs --level error'")
        if update is not None:
            console.print(f"  [yellow]Update available:[/] {update.version} (gitkeeper version --check)")
        console.print()
