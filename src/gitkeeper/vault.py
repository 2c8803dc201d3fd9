"""
Credential vault: multiple named accounts, secrets encrypted at rest.

Each account is an ``Identity`` record stored as its own JSON file under
``accounts/``. The secret inside is an AES-GCM token from the
``SecretCipher``; nothing but the cipher ever sees the plaintext.

Exactly one identity is active whenever the vault is non-empty. The
first account added becomes active; removing the active account
promotes the remaining account with the smallest name.

Usage:
    vault = CredentialVault(storage.accounts_dir)
    vault.add("work", "octocat", "octo@example.com", token)
    vault.switch_active("work")
    token = vault.get_secret("work")
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .cipher import SecretCipher
from .errors import DuplicateIdentity, NotFound
from .models import Identity
from .storage import RecordStore, validate_key

logger = logging.getLogger("gitkeeper.vault")


class CredentialVault:
    """Encrypted multi-identity secret store.

    Args:
        directory: Where account records live (``accounts/``).
        cipher: Cipher for secrets. Defaults to the machine-bound one.
    """

    def __init__(self, directory: Path, cipher: Optional[SecretCipher] = None) -> None:
        self._store = RecordStore(directory)
        self._cipher = cipher or SecretCipher()
        self._lock = threading.RLock()
        self._identities: dict[str, Identity] = {}
        self._current: Optional[str] = None
        self._load()

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------

    def current(self) -> Optional[Identity]:
        """The active identity, or None when the vault is empty."""
        with self._lock:
            if self._current is None:
                return None
            return self._identities[self._current].model_copy()

    def current_name(self) -> Optional[str]:
        with self._lock:
            return self._current

    def get(self, name: str) -> Optional[Identity]:
        with self._lock:
            identity = self._identities.get(name)
            return identity.model_copy() if identity else None

    def list(self) -> set[str]:
        with self._lock:
            return set(self._identities)

    def __len__(self) -> int:
        with self._lock:
            return len(self._identities)

    def get_secret(self, name: str) -> str:
        """Decrypt and return the secret for ``name``.

        Trailing newlines and carriage returns picked up from
        interactive prompts are stripped.

        Raises:
            NotFound: If no such identity exists.
            DecryptError: If the stored token cannot be decrypted.
        """
        with self._lock:
            identity = self._identities.get(name)
            if identity is None:
                raise NotFound(f"account '{name}' not found")
            token = identity.secret
        return self._cipher.decrypt(token).strip()

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def add(self, name: str, username: str, email: str, secret: str) -> Identity:
        """Add a new identity. The first one becomes active.

        Raises:
            DuplicateIdentity: If ``name`` is taken.
            EncryptionError: If the secret cannot be encrypted.
            ValueError: If ``name`` is not usable as a record key.
        """
        validate_key(name)
        with self._lock:
            if name in self._identities:
                raise DuplicateIdentity(f"account '{name}' already exists")

            token = self._cipher.encrypt(secret.strip())
            now = datetime.now(timezone.utc)
            identity = Identity(
                name=name,
                username=username,
                email=email,
                secret=token,
                is_active=not self._identities,
                created_at=now,
                updated_at=now,
            )

            self._persist(identity)
            self._identities[name] = identity
            if identity.is_active:
                self._current = name

        logger.info("Added account '%s'%s", name, " (active)" if identity.is_active else "")
        return identity.model_copy()

    def remove(self, name: str) -> None:
        """Delete an identity, promoting another if it was active.

        The successor is written active before the record is deleted,
        so a failure part way leaves the vault as it was.

        Raises:
            NotFound: If no such identity exists.
        """
        with self._lock:
            identity = self._identities.get(name)
            if identity is None:
                raise NotFound(f"account '{name}' not found")

            remaining = {n: i for n, i in self._identities.items() if n != name}
            successor = min(remaining) if self._current == name and remaining else None
            changed = self._activation_changes(remaining, successor) if successor else []

            self._persist_all(changed)
            try:
                self._store.delete(name)
            except OSError:
                self._restore(changed)
                raise

            for updated in changed:
                remaining[updated.name] = updated
            self._identities = remaining
            if self._current == name:
                self._current = successor

        logger.info("Removed account '%s'", name)

    def switch_active(self, name: str) -> None:
        """Make ``name`` the active identity.

        Raises:
            NotFound: If no such identity exists.
        """
        with self._lock:
            if name not in self._identities:
                raise NotFound(f"account '{name}' not found")
            self._activate(name)

        logger.info("Switched active account to '%s'", name)

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _activate(self, name: str) -> None:
        """Flip flags so only ``name`` is active; persist changed records."""
        changed = self._activation_changes(self._identities, name)
        self._persist_all(changed)
        for updated in changed:
            self._identities[updated.name] = updated
        self._current = name

    @staticmethod
    def _activation_changes(identities: dict[str, Identity], name: str) -> list[Identity]:
        """Records whose flag must flip for ``name`` to be the only active one.

        The newly active record comes first.
        """
        now = datetime.now(timezone.utc)
        changed = []
        for n in sorted(identities, key=lambda n: n != name):
            identity = identities[n]
            should_be_active = n == name
            if identity.is_active != should_be_active:
                changed.append(
                    identity.model_copy(update={"is_active": should_be_active, "updated_at": now})
                )
        return changed

    def _persist_all(self, records: list[Identity]) -> None:
        """Write ``records`` in order; on failure restore those already written."""
        written: list[Identity] = []
        try:
            for record in records:
                self._persist(record)
                written.append(record)
        except OSError:
            self._restore(written)
            raise

    def _restore(self, records: list[Identity]) -> None:
        for record in records:
            original = self._identities.get(record.name)
            if original is None:
                continue
            try:
                self._persist(original)
            except OSError as exc:
                logger.warning("Could not restore account record '%s': %s", record.name, exc)

    def _persist(self, identity: Identity) -> None:
        self._store.save(identity.name, identity.model_dump(mode="json"))

    def _load(self) -> None:
        """Load all identity records, skipping unreadable ones."""
        for key, data in self._store.load_all().items():
            try:
                identity = Identity.model_validate(data)
            except ValidationError as exc:
                logger.warning("Skipping corrupt account record '%s': %s", key, exc)
                continue
            if identity.name != key:
                logger.warning(
                    "Skipping account record '%s': name field says '%s'", key, identity.name
                )
                continue
            self._identities[identity.name] = identity

        active = sorted(n for n, i in self._identities.items() if i.is_active)
        if len(active) == 1:
            self._current = active[0]
        elif self._identities:
            chosen = active[0] if active else min(self._identities)
            logger.warning(
                "Account records have %d active entries; repairing with '%s' active",
                len(active),
                chosen,
            )
            self._activate(chosen)
