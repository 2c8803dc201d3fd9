"""Tests for typed YAML configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from gitkeeper.config import AppConfig, ConfigKey, load_config, parse_key, save_config
from gitkeeper.errors import ConfigParseError
from gitkeeper.models import TriggerKind


class TestLoadSave:
    def test_first_load_writes_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config" / "config.yaml"
        config = load_config(path)
        assert config == AppConfig()
        assert yaml.safe_load(path.read_text())["default_branch"] == "main"

    def test_roundtrip(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        config = AppConfig(default_branch="trunk", watch_trigger=TriggerKind.SIZE, watch_threshold="2MB")
        save_config(path, config)
        assert load_config(path) == config

    def test_unparseable_file_falls_back(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("update_interval: [unclosed")
        assert load_config(path) == AppConfig()
        assert path.read_text() == "update_interval: [unclosed"

    def test_invalid_values_fall_back(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("update_interval: -5\n")
        assert load_config(path).update_interval == 24

    def test_unrecognized_keys_are_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("theme: dark\nupdate_interval: 6\n")
        config = load_config(path)
        assert config.update_interval == 6
        assert "theme" not in config.model_dump()

    def test_empty_file_is_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == AppConfig()


class TestSetValue:
    @pytest.mark.parametrize(
        "key,raw,expected",
        [
            ("update_interval", "12", 12),
            ("update_interval", "0", 0),
            ("watch_interval", "2.5", 2.5),
            ("color_output", "false", False),
            ("color_output", "on", True),
            ("watch_trigger", "time", TriggerKind.TIME),
            ("default_branch", "trunk", "trunk"),
        ],
    )
    def test_parses_per_key_type(self, key: str, raw: str, expected) -> None:
        config = AppConfig()
        assert config.set_value(key, raw) == expected
        assert getattr(config, key) == expected

    @pytest.mark.parametrize(
        "key,raw",
        [
            ("update_interval", "soon"),
            ("update_interval", "-1"),
            ("watch_interval", "0"),
            ("color_output", "maybe"),
            ("default_branch", ""),
            ("watch_trigger", "lines"),
        ],
    )
    def test_rejects_bad_values(self, key: str, raw: str) -> None:
        config = AppConfig()
        before = config.model_copy()
        with pytest.raises(ConfigParseError):
            config.set_value(key, raw)
        assert config == before

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigParseError, match="unknown config key"):
            AppConfig().set_value("favourite_colour", "blue")

    def test_get_value_unwraps_enums(self) -> None:
        config = AppConfig()
        assert config.get_value(ConfigKey.WATCH_TRIGGER) == "commits"
        assert config.get_value(ConfigKey.COLOR_OUTPUT) is True

    def test_parse_key(self) -> None:
        assert parse_key("default_branch") is ConfigKey.DEFAULT_BRANCH
        assert parse_key(ConfigKey.DEFAULT_BRANCH) is ConfigKey.DEFAULT_BRANCH

    def test_every_key_is_a_field(self) -> None:
        assert {k.value for k in ConfigKey} == set(AppConfig.model_fields)
