"""
Secret cipher: AES-256-GCM encryption bound to this machine.

The key is a SHA-256 digest of the hostname, the user's home directory
and a fixed application salt. It is recomputed in every process and
never written anywhere. A vault copied to another machine therefore
cannot be decrypted there; the accounts must be added again.

Token format (printable, standard base64):

    base64( nonce[12] || ciphertext || tag[16] )

Every call to ``encrypt`` draws a fresh random nonce, so the same
plaintext never produces the same token twice.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import socket
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import DecryptError, EncryptionError

KEY_SALT = "gitkeeper:vault:v1"
NONCE_SIZE = 12
TAG_SIZE = 16


def derive_key() -> bytes:
    """Derive the 32-byte vault key from machine identity."""
    hostname = socket.gethostname()
    home = str(Path.home())
    seed = f"{hostname}{home}{KEY_SALT}"
    return hashlib.sha256(seed.encode("utf-8")).digest()


def _encrypt_at_rest(data: bytes, key: bytes) -> bytes:
    """Encrypt with AES-256-GCM; output is nonce + ciphertext + tag."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, data, None)


def _decrypt_at_rest(blob: bytes, key: bytes) -> bytes:
    """Reverse ``_encrypt_at_rest``. Raises InvalidTag on tampering."""
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise ValueError("ciphertext too short")
    nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ciphertext, None)


class SecretCipher:
    """Symmetric authenticated encryption of short secrets.

    Args:
        key: Explicit 32-byte key. Defaults to ``derive_key()``; tests
            pass their own to simulate a different machine.
    """

    def __init__(self, key: Optional[bytes] = None) -> None:
        self._key = key if key is not None else derive_key()
        if len(self._key) != 32:
            raise ValueError("SecretCipher requires a 32-byte key")

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` and return a printable token.

        Raises:
            EncryptionError: If the underlying cipher fails.
        """
        try:
            blob = _encrypt_at_rest(plaintext.encode("utf-8"), self._key)
        except (ValueError, TypeError, OverflowError) as exc:
            raise EncryptionError(f"failed to encrypt secret: {exc}") from exc
        return base64.b64encode(blob).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Decrypt a token produced by ``encrypt``.

        Raises:
            DecryptError: If the token is malformed, truncated, was made
                with another key, or has been tampered with.
        """
        try:
            blob = base64.b64decode(token.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, AttributeError) as exc:
            raise DecryptError(f"malformed secret token: {exc}") from exc

        try:
            plaintext = _decrypt_at_rest(blob, self._key)
        except ValueError as exc:
            raise DecryptError(f"truncated secret token: {exc}") from exc
        except InvalidTag as exc:
            raise DecryptError("secret failed authentication (wrong machine or corrupted data)") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptError(f"decrypted secret is not valid text: {exc}") from exc
