"""
Structured log sink.

LogBuffer is a logging.Handler that keeps recent records as LogEntry
objects (level, message, details) so the service can expose them to an
observer. Attach it to the "veostudio" logger; modules keep using plain
logging.getLogger(__name__).
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel

LogLevel = Literal["info", "success", "warning", "error"]

MAX_ENTRIES = 1000


class LogEntry(BaseModel):
    id: str
    timestamp: str
    level: LogLevel
    message: str
    details: Optional[Any] = None


def _level_for(record: logging.LogRecord) -> LogLevel:
    if record.levelno >= logging.ERROR:
        return "error"
    if record.levelno >= logging.WARNING:
        return "warning"
    if getattr(record, "success", False):
        return "success"
    return "info"


class LogBuffer(logging.Handler):
    """Collects log records and notifies subscribers with the full list."""

    def __init__(self, max_entries: int = MAX_ENTRIES):
        super().__init__(level=logging.INFO)
        self._max_entries = max_entries
        self._entries: list[LogEntry] = []
        self._listeners: list[Callable[[list[LogEntry]], None]] = []
        self._buffer_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._append(record)
        except Exception:
            self.handleError(record)
            return
        self._notify(record)

    def _append(self, record: logging.LogRecord) -> None:
        entry = LogEntry(
            id=f"log_{uuid.uuid4().hex[:12]}",
            timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            level=_level_for(record),
            message=record.getMessage(),
            details=getattr(record, "details", None),
        )
        with self._buffer_lock:
            self._entries.append(entry)
            if len(self._entries) > self._max_entries:
                self._entries = self._entries[-self._max_entries:]

    def subscribe(self, callback: Callable[[list[LogEntry]], None]) -> Callable[[], None]:
        """Register a listener; it receives the current entries immediately."""
        self._listeners.append(callback)
        callback(self.entries())

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, record: Optional[logging.LogRecord] = None) -> None:
        """Each listener is isolated; a failing observer never reaches the caller."""
        snapshot = self.entries()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self.handleError(record or logging.makeLogRecord({"msg": "log listener failed"}))

    def entries(self) -> list[LogEntry]:
        with self._buffer_lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._buffer_lock:
            self._entries = []
        self._notify()

    def export(self) -> str:
        return json.dumps([e.model_dump() for e in self.entries()], indent=2, default=str)


def install(buffer: LogBuffer, logger_name: str = "veostudio") -> LogBuffer:
    """Attach the buffer to the package logger.

    httpx logs every request URL at INFO, and API-key requests carry the key
    in the query string, so it is capped at WARNING.
    """
    logger = logging.getLogger(logger_name)
    if buffer not in logger.handlers:
        logger.addHandler(buffer)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return buffer
