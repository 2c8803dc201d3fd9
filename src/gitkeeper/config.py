"""
Typed application configuration stored as YAML.

Only the keys in ``ConfigKey`` are recognized. ``set_value`` takes the
raw string a user typed on the command line and converts it to the
field's type, so there is no stringly-typed get/set anywhere else.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigParseError
from .models import TriggerKind
from .storage import atomic_write_text

logger = logging.getLogger("gitkeeper.config")


class ConfigKey(str, Enum):
    """Every key ``gitkeeper config`` accepts."""

    UPDATE_INTERVAL = "update_interval"
    COLOR_OUTPUT = "color_output"
    DEFAULT_BRANCH = "default_branch"
    WATCH_INTERVAL = "watch_interval"
    WATCH_TRIGGER = "watch_trigger"
    WATCH_THRESHOLD = "watch_threshold"


class AppConfig(BaseModel):
    """Persistent configuration for gitkeeper."""

    update_interval: int = Field(default=24, ge=0, description="Hours between update checks; 0 disables")
    color_output: bool = Field(default=True, description="Colour in terminal output")
    default_branch: str = Field(default="main", min_length=1, description="Branch used when HEAD is detached")
    watch_interval: float = Field(default=10.0, gt=0, description="Seconds between watcher polls")
    watch_trigger: TriggerKind = TriggerKind.COMMITS
    watch_threshold: str = ""

    def get_value(self, key: ConfigKey) -> Any:
        value = getattr(self, key.value)
        return value.value if isinstance(value, Enum) else value

    def set_value(self, key: "ConfigKey | str", raw: str) -> Any:
        """Parse ``raw`` for ``key`` and assign it.

        Returns:
            The parsed value.

        Raises:
            ConfigParseError: For an unknown key or an unparseable value.
        """
        config_key = parse_key(key)
        name = config_key.value
        field = type(self).model_fields[name]
        if field.annotation is bool:
            value: Any = _parse_bool(raw)
        else:
            value = raw

        try:
            updated = type(self).model_validate({**self.model_dump(), name: value})
        except ValidationError as exc:
            reason = exc.errors()[0].get("msg", "invalid value")
            raise ConfigParseError(f"invalid value '{raw}' for {name}: {reason}") from exc

        parsed = getattr(updated, name)
        setattr(self, name, parsed)
        return parsed


def parse_key(key: "ConfigKey | str") -> ConfigKey:
    if isinstance(key, ConfigKey):
        return key
    try:
        return ConfigKey(key)
    except ValueError as exc:
        known = ", ".join(k.value for k in ConfigKey)
        raise ConfigParseError(f"unknown config key '{key}' (known: {known})") from exc


def _parse_bool(raw: str) -> bool:
    text = raw.strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigParseError(f"invalid boolean '{raw}': use true/false")


def load_config(path: Path) -> AppConfig:
    """Load config.yaml, writing the defaults on first run.

    A file that cannot be parsed is reported and replaced in memory by
    defaults; it is not overwritten on disk until the next save.
    """
    if not path.exists():
        config = AppConfig()
        save_config(path, config)
        return config

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return AppConfig.model_validate(data)
    except (yaml.YAMLError, ValidationError, OSError) as exc:
        logger.warning("Failed to load config: %s; using defaults", exc)
        return AppConfig()


def save_config(path: Path, config: AppConfig) -> None:
    data = config.model_dump(mode="json")
    atomic_write_text(path, yaml.safe_dump(data, default_flow_style=False, sort_keys=True))
