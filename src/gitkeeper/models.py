"""
Pydantic models for everything gitkeeper persists or passes around.

Identities live one-per-file under accounts/, guards live together in
config/protected.json, and a WatcherConfig is built once per watch run
and never changes afterwards.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Identity(BaseModel):
    """One remote-service login.

    The ``secret`` field holds a cipher token, never the plaintext.
    """

    name: str
    username: str = ""
    email: str = ""
    secret: str = Field(default="", description="AES-GCM token of the access secret")
    is_active: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Guard(BaseModel):
    """Protection record for one canonical repository path."""

    path: str
    password_hash: str = ""
    protected_at: datetime = Field(default_factory=_now)
    last_accessed: Optional[datetime] = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


class TriggerKind(str, Enum):
    """Dimension a watcher evaluates on every poll."""

    COMMITS = "commits"
    TIME = "time"
    SIZE = "size"


DEFAULT_THRESHOLDS: dict[TriggerKind, str] = {
    TriggerKind.COMMITS: "3",
    TriggerKind.TIME: "5m",
    TriggerKind.SIZE: "1MB",
}


class WatcherConfig(BaseModel):
    """Per-run watcher configuration.

    Empty fields are filled in by the watcher at construction time
    (remote ``origin``, the current branch, the trigger's default
    threshold). Once built the model is frozen.
    """

    model_config = ConfigDict(frozen=True)

    trigger: TriggerKind = TriggerKind.COMMITS
    threshold: str = ""
    interval: float = Field(default=10.0, gt=0, description="Seconds between polls")
    remote: str = ""
    branch: str = ""


class UpdateInfo(BaseModel):
    """A release newer than the running version."""

    version: str
    release_url: str = ""
    download_url: str = ""
    release_date: Optional[datetime] = None
    changelog: str = ""
    size: int = 0
