"""
Guarded-repository registry: the gate in front of destructive git ops.

A ``Guard`` protects one canonical repository path and, implicitly,
everything underneath it. Guards may carry a password; removing a
password-bearing guard requires that password.

All guards are persisted together in ``config/protected.json``:

    {
      "/home/me/src/prod-infra": {
        "path": "/home/me/src/prod-infra",
        "password_hash": "scrypt$16384$8$1$<salt>$<hash>",
        "protected_at": "2026-01-01T00:00:00+00:00",
        "last_accessed": null
      }
    }

``is_protected`` is an advisory check used before offering a
confirmation prompt: if a path cannot be canonicalized it reports
False rather than raising.
"""

from __future__ import annotations

import base64
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from pydantic import ValidationError

from .errors import AccessDenied, AlreadyProtected, ConfigParseError
from .models import Guard
from .storage import DocumentStore

logger = logging.getLogger("gitkeeper.guards")

PathLike = Union[str, os.PathLike]

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_LENGTH = 32
SALT_SIZE = 16


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    """Hash a protection password with scrypt and a random salt."""
    salt = os.urandom(SALT_SIZE)
    kdf = Scrypt(salt=salt, length=SCRYPT_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    digest = kdf.derive(password.encode("utf-8"))
    return "$".join(
        [
            "scrypt",
            str(SCRYPT_N),
            str(SCRYPT_R),
            str(SCRYPT_P),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ]
    )


def verify_password(password: str, encoded: str) -> bool:
    """Check ``password`` against a ``hash_password`` string."""
    try:
        scheme, n, r, p, salt_b64, digest_b64 = encoded.split("$")
        if scheme != "scrypt":
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        kdf = Scrypt(salt=salt, length=len(expected), n=int(n), r=int(r), p=int(p))
        kdf.verify(password.encode("utf-8"), expected)
    except (ValueError, InvalidKey):
        return False
    return True


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def canonicalize(path: PathLike) -> str:
    """Absolute, symlink-resolved form of ``path`` used as a guard key."""
    return str(Path(path).expanduser().resolve(strict=False))


def _is_descendant(path: str, ancestor: str) -> bool:
    return path != ancestor and Path(path).is_relative_to(ancestor)


class _ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class GuardRegistry:
    """Path-keyed protection records with optional password gates.

    Args:
        path: Location of the shared guard document (protected.json).

    Raises:
        ConfigParseError: If the document exists but is not valid JSON.
    """

    def __init__(self, path: Path) -> None:
        self._store = DocumentStore(path)
        self._lock = _ReadWriteLock()
        self._guards: dict[str, Guard] = {}
        self._load()

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def is_protected(self, path: PathLike) -> bool:
        """True if ``path`` is a guarded path or lies underneath one."""
        return self.get_protection(path) is not None

    def get_protection(self, path: PathLike) -> Optional[Guard]:
        """The guard covering ``path``: exact match, else deepest ancestor."""
        try:
            canonical = canonicalize(path)
        except (OSError, RuntimeError, ValueError) as exc:
            logger.debug("Cannot canonicalize %s: %s", path, exc)
            return None
        with self._lock.read():
            guard = self._covering(canonical)
            return guard.model_copy() if guard else None

    def verify_access(self, path: PathLike, password: str = "") -> bool:
        """True if unguarded, guarded without password, or password matches."""
        guard = self.get_protection(path)
        if guard is None or not guard.has_password:
            return True
        return verify_password(password, guard.password_hash)

    def list(self) -> list[Guard]:
        with self._lock.read():
            return [self._guards[p].model_copy() for p in sorted(self._guards)]

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def protect(self, path: PathLike, password: str = "") -> Guard:
        """Guard ``path``; an empty password means confirmation-only.

        Re-protecting an exact path whose guard has no password replaces
        it, which is how a password gets added later.

        Raises:
            AlreadyProtected: If ``path`` is covered by a password-bearing
                guard or lies underneath another guard.
        """
        canonical = canonicalize(path)
        password_hash = hash_password(password) if password else ""

        with self._lock.write():
            existing = self._covering(canonical)
            if existing is not None:
                if existing.path != canonical:
                    raise AlreadyProtected(
                        f"'{canonical}' is already covered by the guard on '{existing.path}'"
                    )
                if existing.has_password:
                    raise AlreadyProtected(
                        f"'{canonical}' is already protected with a password"
                    )

            guard = Guard(path=canonical, password_hash=password_hash)
            self._commit({**self._guards, canonical: guard})

        logger.info(
            "Protected %s%s", canonical, " (password)" if password_hash else ""
        )
        return guard.model_copy()

    def unprotect(self, path: PathLike, password: str = "") -> bool:
        """Remove the guard covering ``path``.

        When ``path`` is a descendant of the guarded root, the root's
        guard is the one removed.

        Returns:
            True if a guard was removed, False if nothing covered ``path``.

        Raises:
            AccessDenied: If the covering guard's password does not match.
                The guard is left intact.
        """
        canonical = canonicalize(path)
        with self._lock.write():
            guard = self._covering(canonical)
            if guard is None:
                return False
            if guard.has_password and not verify_password(password, guard.password_hash):
                logger.warning("Unprotect of %s refused: wrong password", guard.path)
                raise AccessDenied(f"invalid password for protected repository '{guard.path}'")

            self._commit({p: g for p, g in self._guards.items() if p != guard.path})

        logger.info("Unprotected %s", guard.path)
        return True

    def update_last_accessed(self, path: PathLike) -> None:
        """Stamp the covering guard's access time. Never raises on I/O."""
        try:
            canonical = canonicalize(path)
        except (OSError, RuntimeError, ValueError):
            return
        with self._lock.write():
            guard = self._covering(canonical)
            if guard is None:
                return
            stamped = guard.model_copy(update={"last_accessed": datetime.now(timezone.utc)})
            try:
                self._commit({**self._guards, guard.path: stamped})
            except OSError as exc:
                logger.warning("Could not record access time for %s: %s", guard.path, exc)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _covering(self, canonical: str) -> Optional[Guard]:
        guard = self._guards.get(canonical)
        if guard is not None:
            return guard
        ancestors = [p for p in self._guards if _is_descendant(canonical, p)]
        if not ancestors:
            return None
        return self._guards[max(ancestors, key=len)]

    def _commit(self, guards: dict[str, Guard]) -> None:
        """Persist ``guards``, then make it the live mapping."""
        self._store.save({p: g.model_dump(mode="json") for p, g in guards.items()})
        self._guards = guards

    def _load(self) -> None:
        try:
            raw = self._store.load()
        except (ValueError, OSError) as exc:
            raise ConfigParseError(
                f"cannot read guard document {self._store.path}: {exc}",
                hint=f"Fix or remove {self._store.path}; commands that do not touch protected repos still work",
            ) from exc

        for key, data in raw.items():
            try:
                guard = Guard.model_validate(data)
            except ValidationError as exc:
                logger.warning("Skipping corrupt guard entry '%s': %s", key, exc)
                continue
            self._guards[guard.path] = guard
