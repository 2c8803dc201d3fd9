"""
Engine: the one place gitkeeper's components are wired together.

Nothing in the package reaches for a global. The CLI builds an
``Engine`` per invocation, asks it for the vault, the guard registry or
a watcher, and closes it on the way out. A long-running command (watch)
also gets the background update check.

Usage:
    with Engine() as engine:
        engine.vault.add("work", "octocat", "octo@example.com", token)
        watcher = engine.create_watcher(".", WatcherConfig(threshold="5"))
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from pathlib import Path
from typing import Any, Optional, Union

from . import __version__
from .config import AppConfig, load_config, save_config
from .errors import AccessDenied, GitCommandError, GitkeeperError
from .git import GitCredentials, GitService
from .guards import GuardRegistry
from .logs import RingBufferHandler, setup_logging, teardown_logging
from .models import WatcherConfig
from .storage import Storage
from .updates import UpdateChecker
from .vault import CredentialVault
from .watcher import ThresholdWatcher

logger = logging.getLogger("gitkeeper.engine")

UPDATE_INITIAL_DELAY = 5.0


class Engine:
    """Composition root owning storage, config, vault, registry and logging.

    Args:
        home: Override home directory. Defaults to ~/.gitkeeper.
        start_background: Start the periodic update check thread.
        update_checker: Replacement checker, mainly for tests.
    """

    def __init__(
        self,
        home: Optional[Path] = None,
        *,
        start_background: bool = False,
        update_checker: Optional[UpdateChecker] = None,
    ) -> None:
        self.storage = Storage(home).ensure()
        self.log_buffer: RingBufferHandler
        self.log_buffer, self._log_handlers = setup_logging(self.storage.log_file)
        self.config: AppConfig = load_config(self.storage.config_file)
        self.vault = CredentialVault(self.storage.accounts_dir)
        self.updates = update_checker or UpdateChecker()
        self.started_at = time.monotonic()

        self._stop_event = threading.Event()
        self._update_thread: Optional[threading.Thread] = None
        self._closed = False

        if start_background:
            self.start_update_checks()

    def __enter__(self) -> "Engine":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    @functools.cached_property
    def registry(self) -> GuardRegistry:
        """The guard registry, loaded on first use.

        Raises:
            ConfigParseError: If protected.json exists but cannot be read.
                Commands that never touch guards are unaffected.
        """
        return GuardRegistry(self.storage.protected_file)

    # -------------------------------------------------------------------
    # Config
    # -------------------------------------------------------------------

    def save_config(self) -> None:
        save_config(self.storage.config_file, self.config)

    # -------------------------------------------------------------------
    # Git
    # -------------------------------------------------------------------

    def credentials(self) -> Optional[GitCredentials]:
        """Credentials of the active identity, if there is one."""
        identity = self.vault.current()
        if identity is None:
            return None
        return GitCredentials(
            username=identity.username or identity.name,
            token=self.vault.get_secret(identity.name),
        )

    def git_service(self, cwd: Optional[Union[str, Path]] = None) -> GitService:
        """A ``GitService`` authenticated as the active identity."""
        return GitService(cwd, credentials=self.credentials())

    def branch_for(self, git: GitService) -> str:
        """The checked-out branch, or ``default_branch`` on a detached or unborn HEAD."""
        try:
            branch = git.current_branch()
        except GitCommandError:
            return self.config.default_branch
        return self.config.default_branch if branch in ("", "HEAD") else branch

    def create_watcher(
        self,
        cwd: Optional[Union[str, Path]] = None,
        config: Optional[WatcherConfig] = None,
        **callbacks: Any,
    ) -> ThresholdWatcher:
        """Build a watcher on ``cwd`` with config-file defaults filled in."""
        if config is None:
            config = WatcherConfig(
                trigger=self.config.watch_trigger,
                threshold=self.config.watch_threshold,
                interval=self.config.watch_interval,
            )
        git = self.git_service(cwd)
        if not config.branch and git.is_under_version_control():
            config = config.model_copy(update={"branch": self.branch_for(git)})
        return ThresholdWatcher(git, self.registry, git, config, **callbacks)

    def authorize(self, path: Union[str, Path], password: str = "") -> None:
        """Gate a destructive operation on ``path``.

        Raises:
            AccessDenied: If ``path`` is guarded by a password and
                ``password`` does not match.
        """
        if not self.registry.verify_access(path, password):
            raise AccessDenied(f"invalid password for protected repository '{path}'")
        self.registry.update_last_accessed(path)

    # -------------------------------------------------------------------
    # Update checks
    # -------------------------------------------------------------------

    def start_update_checks(self) -> Optional[threading.Thread]:
        """Start the periodic update check. ``update_interval: 0`` disables it."""
        if self.config.update_interval <= 0:
            logger.debug("Update checks disabled")
            return None
        if self._update_thread is not None and self._update_thread.is_alive():
            return self._update_thread
        self._update_thread = threading.Thread(
            target=self._update_loop, name="gitkeeper-updates", daemon=True
        )
        self._update_thread.start()
        return self._update_thread

    def _update_loop(self) -> None:
        interval = max(self.config.update_interval, 1) * 3600.0
        if self._stop_event.wait(timeout=UPDATE_INITIAL_DELAY):
            return
        while not self._stop_event.is_set():
            try:
                self.updates.check(__version__)
            except GitkeeperError as exc:
                logger.warning("Update check failed: %s", exc)
            self._stop_event.wait(timeout=interval)

    # -------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------

    def close(self) -> None:
        """Stop background work and detach log handlers. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()
        if self._update_thread is not None:
            self._update_thread.join(timeout=5)
        teardown_logging(self._log_handlers)
