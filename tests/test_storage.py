"""Tests for the home layout and the JSON persistence primitives."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from gitkeeper.storage import DocumentStore, RecordStore, Storage, atomic_write_text, validate_key


class TestStorageLayout:
    def test_ensure_creates_tree(self, tmp_home: Path) -> None:
        s = Storage(tmp_home).ensure()
        for d in (s.accounts_dir, s.config_dir, s.cache_dir, s.logs_dir):
            assert d.is_dir()

    def test_paths(self, tmp_home: Path) -> None:
        s = Storage(tmp_home)
        assert s.config_file == tmp_home / "config" / "config.yaml"
        assert s.protected_file == tmp_home / "config" / "protected.json"
        assert s.log_file == tmp_home / "logs" / "gitkeeper.log"

    def test_usage_counts_bytes(self, storage: Storage) -> None:
        (storage.cache_dir / "blob").write_bytes(b"x" * 100)
        usage = storage.usage()
        assert usage["cache"] == 100
        assert usage["accounts"] == 0


class TestAtomicWrite:
    def test_writes_and_replaces(self, tmp_path: Path) -> None:
        target = tmp_path / "doc.json"
        atomic_write_text(target, "one")
        atomic_write_text(target, "two")
        assert target.read_text() == "two"
        assert not (tmp_path / "doc.json.tmp").exists()

    def test_file_mode_is_private(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write_text(target, "{}")
        assert stat.S_IMODE(target.stat().st_mode) == 0o600


class TestValidateKey:
    @pytest.mark.parametrize("key", ["work", "me@example.com", "a.b-c_d+e"])
    def test_accepts(self, key: str) -> None:
        assert validate_key(key) == key

    @pytest.mark.parametrize("key", ["", "../escape", "a/b", ".hidden", "with space"])
    def test_rejects(self, key: str) -> None:
        with pytest.raises(ValueError):
            validate_key(key)


class TestRecordStore:
    def test_save_and_load(self, tmp_path: Path) -> None:
        store = RecordStore(tmp_path / "records")
        store.save("alpha", {"n": 1})
        store.save("beta", {"n": 2})
        assert store.load_all() == {"alpha": {"n": 1}, "beta": {"n": 2}}

    def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        assert RecordStore(tmp_path / "nope").load_all() == {}

    def test_corrupt_record_is_skipped(self, tmp_path: Path) -> None:
        store = RecordStore(tmp_path)
        store.save("good", {"ok": True})
        (tmp_path / "bad.json").write_text("{not json")
        (tmp_path / "list.json").write_text("[1, 2]")
        assert store.load_all() == {"good": {"ok": True}}

    def test_delete(self, tmp_path: Path) -> None:
        store = RecordStore(tmp_path)
        store.save("gone", {})
        store.delete("gone")
        store.delete("never-existed")
        assert store.load_all() == {}


class TestDocumentStore:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert DocumentStore(tmp_path / "doc.json").load() == {}

    def test_empty_file_is_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.json"
        path.write_text("  \n")
        assert DocumentStore(path).load() == {}

    def test_roundtrip(self, tmp_path: Path) -> None:
        doc = DocumentStore(tmp_path / "sub" / "doc.json")
        doc.save({"/a": {"path": "/a"}})
        assert doc.load() == {"/a": {"path": "/a"}}
        assert json.loads((tmp_path / "sub" / "doc.json").read_text()) == {"/a": {"path": "/a"}}

    def test_non_object_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.json"
        path.write_text("[]")
        with pytest.raises(ValueError):
            DocumentStore(path).load()
