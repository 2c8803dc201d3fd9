"""Shared test fixtures for gitkeeper."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from gitkeeper.cipher import SecretCipher
from gitkeeper.storage import Storage


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide an empty gitkeeper home directory."""
    home = tmp_path / ".gitkeeper"
    home.mkdir()
    return home


@pytest.fixture
def storage(tmp_home: Path) -> Storage:
    """Provide a Storage with the full directory tree created."""
    return Storage(tmp_home).ensure()


@pytest.fixture
def cipher() -> SecretCipher:
    """A cipher with a random key, independent of the test machine."""
    return SecretCipher(os.urandom(32))


@pytest.fixture(autouse=True)
def _isolate_gitkeeper_logger():
    """Drop handlers a test left on the ``gitkeeper`` logger."""
    root = logging.getLogger("gitkeeper")
    before = list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
