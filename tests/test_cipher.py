"""Tests for the machine-bound AES-256-GCM secret cipher."""

from __future__ import annotations

import base64
import os

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gitkeeper.cipher import (
    NONCE_SIZE,
    TAG_SIZE,
    SecretCipher,
    _decrypt_at_rest,
    _encrypt_at_rest,
    derive_key,
)
from gitkeeper.errors import DecryptError

_KEY = os.urandom(32)


# ---------------------------------------------------------------------------
# Key derivation and low-level helpers
# ---------------------------------------------------------------------------


class TestKeyDerivation:
    def test_derive_key_is_stable(self) -> None:
        assert derive_key() == derive_key()

    def test_derive_key_length(self) -> None:
        assert len(derive_key()) == 32

    def test_derive_key_depends_on_hostname(self, monkeypatch) -> None:
        original = derive_key()
        monkeypatch.setattr("gitkeeper.cipher.socket.gethostname", lambda: "another-machine")
        assert derive_key() != original

    def test_rejects_short_key(self) -> None:
        with pytest.raises(ValueError):
            SecretCipher(b"too short")


class TestAtRestHelpers:
    def test_blob_layout(self) -> None:
        """Output is nonce (12) + ciphertext + tag (16)."""
        blob = _encrypt_at_rest(b"test data", _KEY)
        assert len(blob) == NONCE_SIZE + len(b"test data") + TAG_SIZE

    def test_roundtrip(self) -> None:
        assert _decrypt_at_rest(_encrypt_at_rest(b"payload", _KEY), _KEY) == b"payload"

    def test_short_blob_rejected(self) -> None:
        with pytest.raises(ValueError):
            _decrypt_at_rest(b"\x00" * (NONCE_SIZE + TAG_SIZE - 1), _KEY)


# ---------------------------------------------------------------------------
# SecretCipher
# ---------------------------------------------------------------------------


class TestSecretCipher:
    def test_roundtrip(self, cipher: SecretCipher) -> None:
        token = cipher.encrypt("ghp_exampletoken123")
        assert cipher.decrypt(token) == "ghp_exampletoken123"

    def test_empty_string(self, cipher: SecretCipher) -> None:
        assert cipher.decrypt(cipher.encrypt("")) == ""

    def test_token_is_printable_base64(self, cipher: SecretCipher) -> None:
        token = cipher.encrypt("secret")
        assert token.isascii()
        base64.b64decode(token, validate=True)

    def test_token_never_contains_plaintext(self, cipher: SecretCipher) -> None:
        assert "hunter2" not in cipher.encrypt("hunter2")

    def test_same_plaintext_gives_different_tokens(self, cipher: SecretCipher) -> None:
        assert cipher.encrypt("same") != cipher.encrypt("same")

    def test_other_key_cannot_decrypt(self, cipher: SecretCipher) -> None:
        token = cipher.encrypt("secret")
        other = SecretCipher(os.urandom(32))
        with pytest.raises(DecryptError):
            other.decrypt(token)

    def test_tampered_token_fails(self, cipher: SecretCipher) -> None:
        blob = bytearray(base64.b64decode(cipher.encrypt("secret")))
        blob[-1] ^= 0x01
        with pytest.raises(DecryptError):
            cipher.decrypt(base64.b64encode(bytes(blob)).decode())

    def test_truncated_token_fails(self, cipher: SecretCipher) -> None:
        truncated = base64.b64encode(b"\x01" * 10).decode()
        with pytest.raises(DecryptError, match="truncated"):
            cipher.decrypt(truncated)

    @pytest.mark.parametrize("token", ["not base64!!", "abc", "é"])
    def test_malformed_token_fails(self, cipher: SecretCipher, token: str) -> None:
        with pytest.raises(DecryptError):
            cipher.decrypt(token)

    def test_error_code(self, cipher: SecretCipher) -> None:
        with pytest.raises(DecryptError) as excinfo:
            cipher.decrypt("abc")
        assert excinfo.value.code == "SECRET_DECRYPT"
        assert str(excinfo.value).startswith("[SECRET_DECRYPT]")


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestCipherProperties:
    @given(plaintext=st.text(max_size=512))
    @settings(max_examples=50, deadline=None)
    def test_decrypt_inverts_encrypt(self, plaintext: str) -> None:
        cipher = SecretCipher(_KEY)
        assert cipher.decrypt(cipher.encrypt(plaintext)) == plaintext

    @given(plaintext=st.text(min_size=1, max_size=64))
    @settings(max_examples=25, deadline=None)
    def test_encryption_is_nondeterministic(self, plaintext: str) -> None:
        cipher = SecretCipher(_KEY)
        assert cipher.encrypt(plaintext) != cipher.encrypt(plaintext)

    @given(plaintext=st.text(max_size=64))
    @settings(max_examples=25, deadline=None)
    def test_cross_key_always_fails(self, plaintext: str) -> None:
        token = SecretCipher(_KEY).encrypt(plaintext)
        with pytest.raises(DecryptError):
            SecretCipher(bytes(b ^ 0xFF for b in _KEY)).decrypt(token)
