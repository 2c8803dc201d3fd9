"""
Logging setup: an append-only log file plus an in-memory tail.

All modules log through ``logging.getLogger("gitkeeper.<module>")``.
``setup_logging`` attaches a file handler under ``logs/`` and a
``RingBufferHandler`` that keeps the most recent records of the
current process in memory. ``read_log_file`` parses the file back for
``gitkeeper logs``.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DEFAULT_BUFFER_SIZE = 1000


class LogEntry(BaseModel):
    time: datetime
    level: str
    logger: str
    message: str


class RingBufferHandler(logging.Handler):
    """Keep the last ``capacity`` formatted records in memory."""

    def __init__(self, capacity: int = DEFAULT_BUFFER_SIZE, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = LogEntry(
                time=datetime.fromtimestamp(record.created, tz=timezone.utc),
                level=record.levelname,
                logger=record.name,
                message=record.getMessage(),
            )
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    def entries(self) -> list[LogEntry]:
        with self._entries_lock:
            return list(self._entries)

    def last(self, n: int) -> list[LogEntry]:
        entries = self.entries()
        return entries[-n:] if n > 0 else []

    def since(self, when: datetime) -> list[LogEntry]:
        return [e for e in self.entries() if e.time > when]

    def by_level(self, level: str) -> list[LogEntry]:
        wanted = level.upper()
        return [e for e in self.entries() if e.level == wanted]

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


def setup_logging(
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    capacity: int = DEFAULT_BUFFER_SIZE,
) -> tuple[RingBufferHandler, list[logging.Handler]]:
    """Attach file and ring-buffer handlers to the ``gitkeeper`` logger.

    Returns:
        The ring buffer, and every handler added (for ``teardown_logging``).
    """
    root = logging.getLogger("gitkeeper")
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)
    added: list[logging.Handler] = []

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        added.append(file_handler)

    ring = RingBufferHandler(capacity)
    ring.setFormatter(formatter)
    added.append(ring)

    for handler in added:
        root.addHandler(handler)
    return ring, added


def teardown_logging(handlers: list[logging.Handler]) -> None:
    """Detach and close handlers added by ``setup_logging``."""
    root = logging.getLogger("gitkeeper")
    for handler in handlers:
        root.removeHandler(handler)
        handler.close()


_LINE_PATTERN = re.compile(
    r"^(?P<time>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}),\d+ \[(?P<logger>[^\]]+)\] (?P<level>[A-Z]+): (?P<message>.*)$"
)


def read_log_file(path: Path, limit: int = 50, level: Optional[str] = None) -> list[LogEntry]:
    """Parse the last ``limit`` entries of a log written with ``LOG_FORMAT``.

    Continuation lines (tracebacks) are folded into the preceding entry.
    """
    if not path.exists():
        return []
    entries: list[LogEntry] = []
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        match = _LINE_PATTERN.match(line)
        if match:
            entries.append(
                LogEntry(
                    time=datetime.strptime(match["time"], "%Y-%m-%d %H:%M:%S"),
                    level=match["level"],
                    logger=match["logger"],
                    message=match["message"],
                )
            )
        elif entries and line.strip():
            last = entries[-1]
            entries[-1] = last.model_copy(update={"message": f"{last.message}\n{line}"})
    if level:
        wanted = level.upper()
        entries = [e for e in entries if e.level == wanted]
    return entries[-limit:] if limit > 0 else entries
