"""
On-disk layout and the two JSON persistence primitives.

Storage layout:
    ~/.gitkeeper/
    ├── accounts/
    │   └── <name>.json        # One Identity per file
    ├── config/
    │   ├── config.yaml        # AppConfig
    │   └── protected.json     # All Guards, keyed by canonical path
    ├── cache/
    └── logs/
        └── gitkeeper.log

Every write goes to a sibling ``*.tmp`` file first and is renamed into
place, so a crash mid-write never leaves a half-written record behind.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

from . import GITKEEPER_HOME

logger = logging.getLogger("gitkeeper.storage")

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9@_.+-]+$")


class Storage:
    """Directory layout rooted at the gitkeeper home.

    Args:
        home: Override home directory. Defaults to ~/.gitkeeper.
    """

    def __init__(self, home: Optional[Path] = None) -> None:
        self.home = (home or Path(GITKEEPER_HOME)).expanduser()

    @property
    def accounts_dir(self) -> Path:
        return self.home / "accounts"

    @property
    def config_dir(self) -> Path:
        return self.home / "config"

    @property
    def cache_dir(self) -> Path:
        return self.home / "cache"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.yaml"

    @property
    def protected_file(self) -> Path:
        return self.config_dir / "protected.json"

    @property
    def log_file(self) -> Path:
        return self.logs_dir / "gitkeeper.log"

    def ensure(self) -> "Storage":
        """Create the directory tree (mode 0700) if it is missing."""
        for d in (self.home, self.accounts_dir, self.config_dir, self.cache_dir, self.logs_dir):
            d.mkdir(parents=True, exist_ok=True)
            try:
                os.chmod(d, 0o700)
            except OSError:
                logger.debug("Cannot chmod %s", d)
        return self

    def usage(self) -> dict[str, int]:
        """Bytes used per storage area."""
        stats: dict[str, int] = {}
        for name, d in (
            ("accounts", self.accounts_dir),
            ("config", self.config_dir),
            ("cache", self.cache_dir),
            ("logs", self.logs_dir),
        ):
            stats[name] = sum(f.stat().st_size for f in d.rglob("*") if f.is_file()) if d.is_dir() else 0
        return stats


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via tmp file + rename, mode 0600."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    tmp_path.replace(path)


def validate_key(key: str) -> str:
    """Reject record keys that could escape their directory."""
    if not key or key.startswith(".") or not _KEY_PATTERN.match(key):
        raise ValueError(
            f"Invalid name '{key}': use letters, digits, and . _ - @ + only"
        )
    return key


class RecordStore:
    """One JSON file per record inside a directory.

    Records are individually addressable, so a single corrupt file is
    skipped on load instead of taking the others down with it.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, key: str) -> Path:
        return self.directory / f"{validate_key(key)}.json"

    def load_all(self) -> dict[str, dict[str, Any]]:
        """Load every readable record, keyed by file stem."""
        records: dict[str, dict[str, Any]] = {}
        if not self.directory.is_dir():
            return records
        for f in sorted(self.directory.glob("*.json")):
            try:
                data = json.loads(f.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Skipping unreadable record %s: %s", f.name, exc)
                continue
            if not isinstance(data, dict):
                logger.warning("Skipping malformed record %s: not an object", f.name)
                continue
            records[f.stem] = data
        return records

    def save(self, key: str, record: dict[str, Any]) -> Path:
        path = self.path_for(key)
        atomic_write_text(path, json.dumps(record, indent=2, default=str))
        return path

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class DocumentStore:
    """A single JSON object document holding a whole mapping."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, Any]:
        """Load the mapping; a missing file is an empty mapping.

        Raises:
            ValueError: If the file exists but is not a JSON object.
        """
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def save(self, mapping: dict[str, Any]) -> None:
        atomic_write_text(self.path, json.dumps(mapping, indent=2, default=str))
