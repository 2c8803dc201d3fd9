"""
Threshold watcher: push accumulated work once a threshold is crossed.

The watcher polls the repository on its own thread. Every poll it
evaluates one trigger:

    commits  pending commit count >= N
    time     time since the last successful push >= D, and there is
             at least one commit to push
    size     bytes of unpushed diff >= S (KB/MB/GB are powers of 1024)

When the trigger fires it asks the guard registry whether the
repository is protected. A protected repository is never pushed: the
attempt is reported as ``PublishBlocked`` through ``on_failed`` and the
watcher carries on polling. Failed pushes are reported as
``PublishFailed`` and retried no sooner than the next poll.

Usage:
    watcher = ThresholdWatcher(
        git, registry, git,
        WatcherConfig(trigger=TriggerKind.COMMITS, threshold="5"),
        on_published=lambda remote, branch, n: print(f"pushed {n}"),
    )
    watcher.start()
    ...
    watcher.stop()
"""

from __future__ import annotations

import logging
import re
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol, Union

from .errors import ConfigParseError, GitkeeperError, NotARepository, PublishBlocked, PublishFailed
from .models import DEFAULT_THRESHOLDS, TriggerKind, WatcherConfig

logger = logging.getLogger("gitkeeper.watcher")

DEFAULT_REMOTE = "origin"

_SIZE_UNITS = {"": 1, "B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}
_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([KMG]?B)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class RepositoryInspector(Protocol):
    """Read-only view of the repository being watched."""

    def is_under_version_control(self) -> bool: ...

    def pending_commit_count(self, remote: str, branch: str) -> int: ...

    def unpushed_change_size(self, remote: str, branch: str) -> int: ...

    def current_branch(self) -> str: ...

    def working_path(self) -> str: ...


class Publisher(Protocol):
    """Executes the actual push. Raises on failure."""

    def publish(self, remote: str, branch: str) -> None: ...


class ProtectionCheck(Protocol):
    def is_protected(self, path: Any) -> bool: ...


# ---------------------------------------------------------------------------
# Threshold parsing
# ---------------------------------------------------------------------------


def parse_size(value: Union[str, int]) -> int:
    """Parse ``"2MB"`` style sizes into bytes. No suffix means bytes.

    Raises:
        ConfigParseError: If the value is not a whole number with an
            optional B/KB/MB/GB suffix.
    """
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        raise ConfigParseError(f"invalid size '{value}': expected e.g. 512KB, 2MB, 1GB or a byte count")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[(unit or "").upper()]


def format_size(size: int) -> str:
    """Human-readable byte count."""
    if size >= 1024**3:
        return f"{size / 1024**3:.1f} GB"
    if size >= 1024**2:
        return f"{size / 1024**2:.1f} MB"
    if size >= 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size} B"


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse ``"5m"``, ``"1h30m"``, ``"90s"`` or bare seconds into seconds.

    Raises:
        ConfigParseError: If the value is not a duration.
    """
    text = str(value).strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ConfigParseError(f"invalid duration '{value}': expected e.g. 90s, 5m, 1h30m")
    return total


def format_duration(seconds: float) -> str:
    """Format seconds like ``1h2m3s``, rounded to the second."""
    remaining = int(round(seconds))
    if remaining <= 0:
        return "0s"
    hours, remaining = divmod(remaining, 3600)
    minutes, secs = divmod(remaining, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)


def parse_threshold(kind: TriggerKind, value: str) -> float:
    """Parse ``value`` per trigger kind and require it to be positive."""
    if kind == TriggerKind.COMMITS:
        try:
            parsed: float = int(str(value).strip())
        except ValueError as exc:
            raise ConfigParseError(f"invalid commit threshold '{value}': expected an integer") from exc
    elif kind == TriggerKind.TIME:
        parsed = parse_duration(value)
    else:
        parsed = parse_size(value)

    if parsed <= 0:
        raise ConfigParseError(f"{kind.value} threshold must be positive, got '{value}'")
    return parsed


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class WatcherStats:
    """Thread-safe counters for one watcher."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.polls = 0
        self.publishes = 0
        self.failures = 0
        self.last_published_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    def record_poll(self) -> None:
        with self._lock:
            self.polls += 1

    def record_publish(self) -> None:
        with self._lock:
            self.publishes += 1
            self.last_published_at = datetime.now(timezone.utc)

    def record_failure(self, error: Exception) -> None:
        with self._lock:
            self.failures += 1
            self.last_error = str(error)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "polls": self.polls,
                "publishes": self.publishes,
                "failures": self.failures,
                "last_published_at": (
                    self.last_published_at.isoformat() if self.last_published_at else None
                ),
                "last_error": self.last_error,
            }


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------


PublishedCallback = Callable[[str, str, int], None]
FailedCallback = Callable[[Exception], None]
EvaluatedCallback = Callable[[TriggerKind, str, str], None]
IdleCallback = Callable[[str], None]

EVENTS = ("published", "failed", "evaluated", "idle")


class ThresholdWatcher:
    """Cancellable polling loop that auto-pushes past a threshold.

    Args:
        repo: Repository inspector for the working copy.
        registry: Guard registry consulted before every push.
        publisher: Executes the push.
        config: Overrides; unset fields get defaults.
        on_published: ``(remote, branch, commit_count)`` after a push.
        on_failed: ``(error)`` for blocked or failed pushes.
        on_evaluated: ``(kind, current, threshold)`` on every poll.
        on_idle: ``(reason)`` when the trigger did not fire.
        clock: Monotonic seconds source, replaceable in tests.

    Raises:
        NotARepository: If ``repo`` is not under version control.
        ConfigParseError: If the threshold does not parse for its kind.
    """

    def __init__(
        self,
        repo: RepositoryInspector,
        registry: ProtectionCheck,
        publisher: Publisher,
        config: Optional[WatcherConfig] = None,
        *,
        on_published: Optional[PublishedCallback] = None,
        on_failed: Optional[FailedCallback] = None,
        on_evaluated: Optional[EvaluatedCallback] = None,
        on_idle: Optional[IdleCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not repo.is_under_version_control():
            raise NotARepository()

        self._repo = repo
        self._registry = registry
        self._publisher = publisher
        self._clock = clock
        self._config = self._resolve_config(config or WatcherConfig())
        self._threshold = parse_threshold(self._config.trigger, self._config.threshold)

        self._lock = threading.Lock()
        self._callbacks: dict[str, Optional[Callable[..., None]]] = {
            "published": on_published,
            "failed": on_failed,
            "evaluated": on_evaluated,
            "idle": on_idle,
        }
        self._stop_event = threading.Event()
        self._active = False
        self._thread: Optional[threading.Thread] = None
        self._last_publish = clock()
        self.stats = WatcherStats()

    @property
    def config(self) -> WatcherConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._active

    def on(self, event: str, callback: Optional[Callable[..., None]]) -> None:
        """Register (or clear) a listener after construction."""
        if event not in EVENTS:
            raise ValueError(f"Unknown watcher event '{event}'; expected one of {', '.join(EVENTS)}")
        with self._lock:
            self._callbacks[event] = callback

    def describe(self) -> str:
        c = self._config
        return (
            f"threshold={c.trigger.value}:{c.threshold} interval={format_duration(c.interval)} "
            f"remote={c.remote} branch={c.branch}"
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Run the loop on a background daemon thread."""
        with self._lock:
            if self._active:
                raise RuntimeError("watcher is already running")
            self._arm()
            self._thread = threading.Thread(
                target=self._loop, name="gitkeeper-watcher", daemon=True
            )
            self._thread.start()
            return self._thread

    def run(self) -> None:
        """Run the loop on the calling thread until ``stop()``."""
        with self._lock:
            if self._active:
                raise RuntimeError("watcher is already running")
            self._arm()
        self._loop()

    def stop(self) -> None:
        """Stop polling. An in-flight push is allowed to finish.

        Safe to call before start or more than once.
        """
        with self._lock:
            if not self._active:
                return
            self._stop_event.set()
        logger.info("Watcher stop requested")

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _arm(self) -> None:
        self._stop_event = threading.Event()
        self._active = True

    def _loop(self) -> None:
        stop_event = self._stop_event
        logger.info("Watcher started: %s", self.describe())
        try:
            while not stop_event.wait(timeout=self._config.interval):
                self.poll_once()
        finally:
            with self._lock:
                self._active = False
            logger.info("Watcher stopped")

    # -------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------

    def poll_once(self) -> bool:
        """Evaluate the trigger once and push if it fires.

        Returns:
            True if the trigger fired (whether or not the push succeeded).
        """
        self.stats.record_poll()
        try:
            triggered, reason, pending = self._evaluate()
        except (GitkeeperError, OSError) as exc:
            logger.warning("Threshold evaluation failed: %s", exc)
            self.stats.record_failure(exc)
            self._emit("failed", exc)
            return False

        if not triggered:
            self._emit("idle", reason)
            return False

        logger.info("Trigger fired: %s", reason)
        self._publish(pending)
        return True

    def _evaluate(self) -> tuple[bool, str, int]:
        c = self._config
        kind = c.trigger

        if kind == TriggerKind.COMMITS:
            threshold = int(self._threshold)
            count = self._repo.pending_commit_count(c.remote, c.branch)
            self._emit("evaluated", kind, str(count), str(threshold))
            if count >= threshold:
                return True, f"{count} commits pending (threshold: {threshold})", count
            return False, f"{count}/{threshold} commits", count

        if kind == TriggerKind.TIME:
            elapsed = self._clock() - self._last_publish
            self._emit("evaluated", kind, format_duration(elapsed), format_duration(self._threshold))
            if elapsed < self._threshold:
                return False, f"{format_duration(elapsed)}/{format_duration(self._threshold)} elapsed", 0
            count = self._repo.pending_commit_count(c.remote, c.branch)
            if count > 0:
                return True, f"time threshold reached ({c.threshold})", count
            return False, "time threshold reached, nothing to push", 0

        threshold = int(self._threshold)
        size = self._repo.unpushed_change_size(c.remote, c.branch)
        self._emit("evaluated", kind, format_size(size), format_size(threshold))
        if size >= threshold:
            count = self._repo.pending_commit_count(c.remote, c.branch)
            return True, f"size threshold reached ({format_size(size)})", count
        return False, f"{format_size(size)}/{format_size(threshold)} unpushed", 0

    def _publish(self, pending: int) -> None:
        c = self._config
        if self._stop_event.is_set():
            logger.info("Stop requested before push; skipping")
            return
        path = self._repo.working_path()
        if self._registry.is_protected(path):
            error: GitkeeperError = PublishBlocked(
                f"repository '{path}' is protected - skipping auto-push"
            )
            logger.warning("%s", error.message)
            self.stats.record_failure(error)
            self._emit("failed", error)
            return

        try:
            self._publisher.publish(c.remote, c.branch)
        except PublishFailed as exc:
            error = exc
        except Exception as exc:
            error = PublishFailed(f"push to {c.remote}/{c.branch} failed: {exc}")
            error.__cause__ = exc
        else:
            self._last_publish = self._clock()
            self.stats.record_publish()
            logger.info("Pushed %d commit(s) to %s/%s", pending, c.remote, c.branch)
            self._emit("published", c.remote, c.branch, pending)
            return

        logger.error("Auto-push failed: %s", error.message)
        self.stats.record_failure(error)
        self._emit("failed", error)

    def _emit(self, event: str, *args: Any) -> None:
        with self._lock:
            callback = self._callbacks.get(event)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Watcher %s callback raised", event)

    def _resolve_config(self, config: WatcherConfig) -> WatcherConfig:
        updates: dict[str, Any] = {}
        if not config.remote:
            updates["remote"] = DEFAULT_REMOTE
        if not config.branch:
            updates["branch"] = self._repo.current_branch()
        if not config.threshold:
            updates["threshold"] = DEFAULT_THRESHOLDS[config.trigger]
        return config.model_copy(update=updates) if updates else config
