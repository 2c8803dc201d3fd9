"""
Exception hierarchy for gitkeeper.

Every error carries a stable ``code`` for programmatic handling and a
``hint`` the CLI prints under the message. Authorization failures
(wrong password, protected repository) share a base class so callers
can tell them apart from transient failures worth retrying.
"""

from __future__ import annotations

from typing import Optional


class GitkeeperError(Exception):
    """Base class for all gitkeeper errors."""

    code = "UNKNOWN"
    hint = ""
    retryable = False

    def __init__(self, message: str = "", *, hint: Optional[str] = None) -> None:
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        super().__init__(self.message)
        if hint is not None:
            self.hint = hint

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# ---------------------------------------------------------------------------
# Credential vault
# ---------------------------------------------------------------------------


class DuplicateIdentity(GitkeeperError):
    """Account already exists."""

    code = "ACCOUNT_EXISTS"
    hint = "Use a different name or remove the existing account first"


class NotFound(GitkeeperError):
    """Requested account or guard does not exist."""

    code = "NOT_FOUND"
    hint = "Use 'gitkeeper account list' to see available accounts"


class EncryptionError(GitkeeperError):
    """Failed to encrypt secret."""

    code = "SECRET_ENCRYPT"
    hint = "This is an internal error. Please report this issue."


class DecryptError(GitkeeperError):
    """Failed to decrypt secret."""

    code = "SECRET_DECRYPT"
    hint = "The secret may have been encrypted on a different machine. Re-add the account."


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class AuthorizationError(GitkeeperError):
    """Operation refused by repository protection."""

    code = "UNAUTHORIZED"


class AccessDenied(AuthorizationError):
    """Invalid protection password."""

    code = "ACCESS_DENIED"
    hint = "The repository stays protected. Retry with the password set at protect time."


class AlreadyProtected(GitkeeperError):
    """Repository is already protected."""

    code = "ALREADY_PROTECTED"
    hint = "Run 'gitkeeper unprotect' first to change the protection password"


class PublishBlocked(AuthorizationError):
    """Repository is protected; publish refused."""

    code = "GIT_PROTECTED"
    hint = "Confirm the operation manually, or unprotect the repo first"


# ---------------------------------------------------------------------------
# Git and publishing
# ---------------------------------------------------------------------------


class NotARepository(GitkeeperError):
    """Not a git repository."""

    code = "GIT_NO_REPO"
    hint = "Run 'git init' to initialize a repository, or navigate to an existing repo"


class GitCommandError(GitkeeperError):
    """A git command exited with an error."""

    code = "GIT_COMMAND"
    hint = "Run the same git command by hand to see the full output"

    def __init__(self, args: list[str], returncode: int, stderr: str = "") -> None:
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"git {' '.join(args)}: {detail}")
        self.command = args
        self.returncode = returncode
        self.stderr = stderr


class PublishFailed(GitkeeperError):
    """Push to the remote failed."""

    code = "GIT_PUSH"
    hint = "Check your network and the active account's token permissions"
    retryable = True


# ---------------------------------------------------------------------------
# Configuration and updates
# ---------------------------------------------------------------------------


class ConfigParseError(GitkeeperError):
    """Invalid configuration value."""

    code = "CONFIG_PARSE"
    hint = "Run 'gitkeeper config list' to see recognized keys and their types"


class UpdateCheckError(GitkeeperError):
    """Failed to check for updates."""

    code = "UPDATE_CHECK"
    hint = "Check your internet connection and try again later"
    retryable = True
