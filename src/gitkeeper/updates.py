"""
Release update checks against the GitHub releases API.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from datetime import datetime
from typing import Any, Callable, Optional

from .errors import UpdateCheckError
from .models import UpdateInfo

logger = logging.getLogger("gitkeeper.updates")

DEFAULT_OWNER = "gitkeeper"
DEFAULT_REPO = "gitkeeper"
API_URL = "https://api.github.com/repos/{owner}/{repo}/releases/latest"


def _version_parts(version: str) -> list[int]:
    parts = []
    for piece in version.strip().lstrip("v").split("."):
        digits = ""
        for ch in piece:
            if not ch.isdigit():
                break
            digits += ch
        parts.append(int(digits) if digits else 0)
    return parts


def is_newer_version(latest: str, current: str) -> bool:
    """True if ``latest`` is newer than ``current``.

    A development build (``dev`` or empty) is older than any release.
    """
    if current in ("", "dev"):
        return True
    lp, cp = _version_parts(latest), _version_parts(current)
    width = max(len(lp), len(cp))
    lp += [0] * (width - len(lp))
    cp += [0] * (width - len(cp))
    return lp > cp


class UpdateChecker:
    """Looks up the latest published release.

    Args:
        owner: GitHub owner of the release repository.
        repo: GitHub repository name.
        opener: ``urlopen``-compatible callable, replaceable in tests.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        owner: str = DEFAULT_OWNER,
        repo: str = DEFAULT_REPO,
        opener: Callable[..., Any] = urllib.request.urlopen,
        timeout: float = 10.0,
    ) -> None:
        self.url = API_URL.format(owner=owner, repo=repo)
        self._opener = opener
        self._timeout = timeout
        self.last_check: Optional[datetime] = None
        self.latest: Optional[UpdateInfo] = None

    @property
    def has_pending_update(self) -> bool:
        return self.latest is not None

    def check(self, current_version: str) -> Optional[UpdateInfo]:
        """Return the newer release, or None if up to date.

        Raises:
            UpdateCheckError: On network or response errors.
        """
        self.last_check = datetime.now().astimezone()
        request = urllib.request.Request(
            self.url, headers={"Accept": "application/vnd.github+json"}
        )
        try:
            with self._opener(request, timeout=self._timeout) as resp:
                release = json.loads(resp.read())
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                return None
            raise UpdateCheckError(f"GitHub API error: {exc.code}") from exc
        except (urllib.error.URLError, OSError, json.JSONDecodeError) as exc:
            raise UpdateCheckError(f"update check failed: {exc}") from exc

        tag = str(release.get("tag_name", "")).lstrip("v")
        if not tag or not is_newer_version(tag, current_version):
            return None

        published = release.get("published_at")
        assets = release.get("assets") or []
        info = UpdateInfo(
            version=tag,
            release_url=release.get("html_url", ""),
            download_url=assets[0].get("browser_download_url", "") if assets else release.get("tarball_url", "") or "",
            release_date=datetime.fromisoformat(published.replace("Z", "+00:00")) if published else None,
            changelog=release.get("body") or "",
            size=int(assets[0].get("size", 0)) if assets else 0,
        )
        self.latest = info
        logger.info("Update available: %s", info.version)
        return info
