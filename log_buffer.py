"""
In-memory ring buffer of log records, exposed via a logging.Handler.

A band run logs one line per band step and per failed visibility batch; the
/logs endpoint lets a client follow a long run by polling with a sequence
cursor, optionally only at WARNING and above to see just the degraded steps.
"""

import logging
import os
import threading
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class LogEntry:
    timestamp: float
    level: str
    level_no: int
    logger_name: str
    message: str
    worker_pid: int
    sequence: int


class LogBuffer(logging.Handler):
    """Thread-safe ring buffer that captures log records."""

    def __init__(self, maxlen: int = 2000, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self._buf: deque[LogEntry] = deque(maxlen=maxlen)
        self._seq = 0
        self._lock = threading.Lock()
        self._pid = os.getpid()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except (TypeError, ValueError):
            msg = str(record.msg)

        with self._lock:
            self._seq += 1
            self._buf.append(LogEntry(
                timestamp=record.created,
                level=record.levelname,
                level_no=record.levelno,
                logger_name=record.name,
                message=msg,
                worker_pid=self._pid,
                sequence=self._seq,
            ))

    def get_entries(
        self, since_sequence: int = 0, limit: int = 200, min_level: int = logging.NOTSET
    ) -> tuple[list[dict[str, Any]], int]:
        """Entries with sequence > since_sequence and level >= min_level.

        Returns:
            (entries_as_dicts, latest_sequence). When more than ``limit``
            entries match, the most recent ``limit`` are returned.
        """
        with self._lock:
            latest = self._seq
            if since_sequence >= latest:
                return [], latest
            entries = [
                asdict(e) for e in self._buf
                if e.sequence > since_sequence and e.level_no >= min_level
            ]
        return entries[-limit:], latest

    def clear(self) -> None:
        with self._lock:
            self._buf.clear()


# Module-level singleton, one per process
log_buffer = LogBuffer()
