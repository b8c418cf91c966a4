"""In-memory log capture backing ``GET /logs`` in webhook mode.

Replies that apologise for a failure link to the logs of the invocation
that failed. An Actions job has its run page for that; the webhook server
has this: the newest N records, each stamped with the correlation ID of
the invocation that was running when it was emitted.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Iterator

# The invocation currently running in this task, if any
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def _level_number(name: str) -> int:
    # getLevelName maps names to numbers, and unknown names to "Level X"
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else 0


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    name: str
    message: str
    correlation_id: str | None = None

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> LogEntry:
        return cls(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            name=record.name,
            message=record.getMessage(),
            correlation_id=getattr(record, "correlation_id", None) or correlation_id_var.get(),
        )

    @property
    def levelno(self) -> int:
        return _level_number(self.level)

    def to_dict(self) -> dict:
        return asdict(self)


class LogBuffer:
    """Bounded, thread-safe store of LogEntry; the oldest entries fall off."""

    def __init__(self, maxlen: int = 20_000) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def maxlen(self) -> int:
        return self._entries.maxlen or 0

    def push(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def _newest_first(self) -> Iterator[LogEntry]:
        with self._lock:
            snapshot = list(self._entries)
        return reversed(snapshot)

    def query(
        self,
        *,
        correlation_id: str | None = None,
        level: str | None = None,
        limit: int = 500,
    ) -> list[LogEntry]:
        """The newest ``limit`` entries matching the filters, oldest first.

        ``level`` is a minimum, e.g. ``"warning"`` also returns errors.
        """
        min_level = _level_number(level) if level else 0

        matches: list[LogEntry] = []
        for entry in self._newest_first():
            if len(matches) >= limit:
                break
            if correlation_id is not None and entry.correlation_id != correlation_id:
                continue
            if entry.levelno < min_level:
                continue
            matches.append(entry)
        matches.reverse()
        return matches


class RingBufferHandler(logging.Handler):
    """Feeds a LogBuffer. Attach to the root logger."""

    def __init__(self, log_buffer: LogBuffer, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self.buffer = log_buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.push(LogEntry.from_record(record))
        except Exception:
            self.handleError(record)
