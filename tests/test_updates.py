"""Tests for the GitHub release update check."""

from __future__ import annotations

import io
import json
import urllib.error
from unittest.mock import MagicMock

import pytest

from gitkeeper.errors import UpdateCheckError
from gitkeeper.updates import UpdateChecker, is_newer_version

RELEASE = {
    "tag_name": "v1.4.0",
    "html_url": "https://github.com/gitkeeper/gitkeeper/releases/tag/v1.4.0",
    "published_at": "2026-03-01T12:00:00Z",
    "body": "Bug fixes",
    "assets": [
        {"browser_download_url": "https://example.invalid/gitkeeper-1.4.0.tar.gz", "size": 2048}
    ],
}


def _opener(payload) -> MagicMock:
    """A urlopen stand-in returning ``payload`` as the JSON body."""
    response = MagicMock()
    response.__enter__.return_value = io.BytesIO(json.dumps(payload).encode())
    response.__exit__.return_value = False
    return MagicMock(return_value=response)


class TestVersionCompare:
    @pytest.mark.parametrize(
        "latest,current,expected",
        [
            ("1.4.0", "1.3.9", True),
            ("1.4.0", "1.4.0", False),
            ("1.4.0", "1.10.0", False),
            ("2.0", "1.9.9", True),
            ("1.4.1", "1.4", True),
            ("v1.4.0", "1.4.0", False),
            ("1.4.0-rc1", "1.3.0", True),
            ("0.0.1", "dev", True),
            ("0.0.1", "", True),
        ],
    )
    def test_is_newer_version(self, latest: str, current: str, expected: bool) -> None:
        assert is_newer_version(latest, current) is expected


class TestUpdateChecker:
    def test_newer_release(self) -> None:
        opener = _opener(RELEASE)
        checker = UpdateChecker("gitkeeper", "gitkeeper", opener=opener)
        info = checker.check("1.3.0")
        assert info is not None
        assert info.version == "1.4.0"
        assert info.download_url.endswith(".tar.gz")
        assert info.size == 2048
        assert info.release_date.year == 2026
        assert checker.has_pending_update
        request = opener.call_args[0][0]
        assert request.full_url == "https://api.github.com/repos/gitkeeper/gitkeeper/releases/latest"

    def test_up_to_date(self) -> None:
        checker = UpdateChecker(opener=_opener(RELEASE))
        assert checker.check("1.4.0") is None
        assert not checker.has_pending_update
        assert checker.last_check is not None

    def test_no_assets_uses_tarball(self) -> None:
        release = {**RELEASE, "assets": [], "tarball_url": "https://example.invalid/tarball"}
        info = UpdateChecker(opener=_opener(release)).check("1.0.0")
        assert info.download_url == "https://example.invalid/tarball"
        assert info.size == 0

    def test_no_releases_is_none(self) -> None:
        opener = MagicMock(
            side_effect=urllib.error.HTTPError("url", 404, "Not Found", {}, None)
        )
        assert UpdateChecker(opener=opener).check("1.0.0") is None

    def test_http_error(self) -> None:
        opener = MagicMock(
            side_effect=urllib.error.HTTPError("url", 503, "Unavailable", {}, None)
        )
        with pytest.raises(UpdateCheckError, match="503") as excinfo:
            UpdateChecker(opener=opener).check("1.0.0")
        assert excinfo.value.retryable

    def test_network_error(self) -> None:
        opener = MagicMock(side_effect=urllib.error.URLError("no route"))
        with pytest.raises(UpdateCheckError):
            UpdateChecker(opener=opener).check("1.0.0")

    def test_bad_json(self) -> None:
        response = MagicMock()
        response.__enter__.return_value = io.BytesIO(b"<html>")
        response.__exit__.return_value = False
        with pytest.raises(UpdateCheckError):
            UpdateChecker(opener=MagicMock(return_value=response)).check("1.0.0")
