"""
Thin subprocess wrapper around the ``git`` binary.

``GitService`` is both the repository inspector and the publisher the
threshold watcher talks to. Pushes authenticate with the active
account's token through a one-shot ``http.extraHeader`` config value,
so the token is never written to disk or to the remote URL.
"""

from __future__ import annotations

import base64
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import GitCommandError, PublishFailed

logger = logging.getLogger("gitkeeper.git")

# The well-known hash of git's empty tree, used as a diff base when the
# remote branch does not exist yet.
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


@dataclass(frozen=True)
class GitCredentials:
    """Username/token pair used for authenticated remote commands."""

    username: str
    token: str

    def __repr__(self) -> str:
        return f"GitCredentials(username={self.username!r}, token='***')"

    def header_config(self) -> str:
        basic = base64.b64encode(f"{self.username}:{self.token}".encode()).decode("ascii")
        return f"http.extraHeader=Authorization: Basic {basic}"


class GitService:
    """Runs git commands in one working directory.

    Args:
        cwd: Working directory. Defaults to the process cwd.
        credentials: Optional credentials for remote commands.
        timeout: Seconds before a git command is abandoned.
    """

    def __init__(
        self,
        cwd: Optional[Union[str, Path]] = None,
        credentials: Optional[GitCredentials] = None,
        timeout: float = 300.0,
    ) -> None:
        self.cwd = Path(cwd or os.getcwd())
        self._credentials = credentials
        self._timeout = timeout

    # -------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------

    @staticmethod
    def is_installed() -> bool:
        return shutil.which("git") is not None

    def is_under_version_control(self) -> bool:
        try:
            return self._run("rev-parse", "--is-inside-work-tree").strip() == "true"
        except GitCommandError:
            return False

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").strip()

    def working_path(self) -> str:
        """Top level of the working tree."""
        try:
            return self._run("rev-parse", "--show-toplevel").strip()
        except GitCommandError:
            return str(self.cwd)

    def pending_commit_count(self, remote: str, branch: str) -> int:
        """Commits on HEAD that ``remote/branch`` does not have."""
        base = self._remote_ref(remote, branch)
        spec = f"{base}..HEAD" if base else "HEAD"
        out = self._run("rev-list", "--count", spec).strip()
        try:
            return int(out)
        except ValueError:
            return 0

    def unpushed_change_size(self, remote: str, branch: str) -> int:
        """Bytes in the binary diff between ``remote/branch`` and HEAD."""
        base = self._remote_ref(remote, branch) or EMPTY_TREE
        return len(self._run_bytes("diff", "--binary", base, "HEAD"))

    # -------------------------------------------------------------------
    # Remote operations
    # -------------------------------------------------------------------

    def publish(self, remote: str, branch: str) -> None:
        """Push ``branch`` to ``remote``.

        Raises:
            PublishFailed: If git reports an error.
        """
        try:
            self._run("push", remote, branch, authenticated=True)
        except GitCommandError as exc:
            raise PublishFailed(f"push to {remote}/{branch} failed: {exc.stderr.strip() or exc.message}") from exc
        logger.info("Pushed %s to %s", branch, remote)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _remote_ref(self, remote: str, branch: str) -> Optional[str]:
        ref = f"{remote}/{branch}"
        try:
            self._run("rev-parse", "--verify", "--quiet", f"refs/remotes/{ref}")
        except GitCommandError:
            return None
        return ref

    def _command(self, args: tuple[str, ...], authenticated: bool) -> list[str]:
        cmd = ["git"]
        if authenticated and self._credentials is not None:
            cmd += ["-c", self._credentials.header_config()]
        cmd += list(args)
        return cmd

    def _exec(self, args: tuple[str, ...], authenticated: bool, text: bool) -> subprocess.CompletedProcess:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        try:
            result = subprocess.run(
                self._command(args, authenticated),
                capture_output=True,
                text=text,
                check=False,
                cwd=str(self.cwd),
                env=env,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(list(args), -1, f"timed out after {self._timeout:.0f}s") from exc
        except OSError as exc:
            raise GitCommandError(list(args), 127, f"cannot run git: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr if text else result.stderr.decode("utf-8", "replace")
            logger.debug("git %s -> %d: %s", " ".join(args), result.returncode, stderr.strip())
            raise GitCommandError(list(args), result.returncode, stderr)
        return result

    def _run(self, *args: str, authenticated: bool = False) -> str:
        return self._exec(args, authenticated, text=True).stdout

    def _run_bytes(self, *args: str) -> bytes:
        return self._exec(args, False, text=False).stdout
