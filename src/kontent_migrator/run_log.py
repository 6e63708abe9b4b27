"""Append-only run log and progress counter of one migration run."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

logger: logging.Logger = logging.getLogger("kontent_migrator")


class LogLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOGGING_LEVELS: dict[LogLevel, int] = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

LogCallback = Callable[[LogLevel, str, str | None], None]


@dataclass(frozen=True)
class LogEntry:
    level: LogLevel
    message: str
    details: str | None = None
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.UTC))


class MigrationLog:
    """Ordered, leveled log of a run.

    Every entry is also emitted to the package logger and, when given, to the
    caller's on_log callback, synchronously and in order.
    """

    _entries: list[LogEntry]
    _on_log: LogCallback | None

    def __init__(self, on_log: LogCallback | None = None) -> None:
        self._entries = []
        self._on_log = on_log

    def add(self, level: LogLevel, message: str, details: str | None = None) -> None:
        self._entries.append(LogEntry(level, message, details))
        text = f"{message} ({details})" if details else message
        logger.log(_LOGGING_LEVELS[level], text)
        if self._on_log is not None:
            self._on_log(level, message, details)

    def info(self, message: str, details: str | None = None) -> None:
        self.add(LogLevel.INFO, message, details)

    def success(self, message: str, details: str | None = None) -> None:
        self.add(LogLevel.SUCCESS, message, details)

    def warning(self, message: str, details: str | None = None) -> None:
        self.add(LogLevel.WARNING, message, details)

    def error(self, message: str, details: str | None = None) -> None:
        self.add(LogLevel.ERROR, message, details)

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def by_level(self, level: LogLevel) -> list[LogEntry]:
        return [entry for entry in self._entries if entry.level == level]

    def __len__(self) -> int:
        return len(self._entries)


class ProgressTracker:
    """Monotonic progress over a step total computed once, up front.

    Steps found during the run (e.g. linked items pulled in while wiring
    references) can push the count past the total; percent is clamped so it
    never exceeds 100 before finish().
    """

    total: int
    completed: int

    def __init__(self, total: int, on_progress: Callable[[float], None] | None = None) -> None:
        self.total = max(total, 0)
        self.completed = 0
        self._percent = 0.0
        self._on_progress = on_progress

    @property
    def percent(self) -> float:
        return self._percent

    def advance(self, steps: int = 1) -> float:
        self.completed += steps
        if self.total:
            self._update(min(self.completed / self.total * 100, 100.0))
        return self._percent

    def finish(self) -> float:
        self._update(100.0)
        return self._percent

    def _update(self, percent: float) -> None:
        if percent < self._percent:
            return
        self._percent = percent
        if self._on_progress is not None:
            self._on_progress(percent)
