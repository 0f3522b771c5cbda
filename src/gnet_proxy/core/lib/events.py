"""Log events and the log sink the proxy engine reports to.

Every core component reports what it does as a ``LogEvent``: a timestamp,
a message and a severity. Events are handed to a ``LogSink``, which is
owned by whatever hosts the engine (a terminal UI, a log screen, a test).
The engine never reads events back.

``EventLog`` is the object the components actually talk to. It writes each
message to Loguru and appends it to the sink, so the host sees the same
stream that lands in the log files. Debug messages only go to Loguru;
relay teardown noise stays out of the host's view.

Example:
    sink = MemoryLogSink()
    log = EventLog(sink)
    log.info("Proxy server started on port 8080")
    sink.events()[-1].severity  # Severity.INFO
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Final, Protocol

from loguru import logger

# History depth of the log screen
MAX_EVENTS: Final = 100


class Severity(str, Enum):
    """Severity levels understood by the log sink."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class LogEvent:
    """A single message produced by the engine."""

    message: str
    severity: Severity
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


class LogSink(Protocol):
    """Anything that accepts engine log events."""

    def append(self, message: str, severity: Severity) -> None:
        """Record a message. Must not block the caller."""


class MemoryLogSink:
    """Thread-safe in-memory sink keeping the most recent events."""

    def __init__(self, max_events: int = MAX_EVENTS) -> None:
        self._events: deque[LogEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def append(self, message: str, severity: Severity) -> None:
        event = LogEvent(message=message, severity=severity)
        with self._lock:
            self._events.append(event)

    def events(self) -> list[LogEvent]:
        """Return a snapshot of the stored events, oldest first."""
        with self._lock:
            return list(self._events)

    def messages(self, severity: Severity | None = None) -> list[str]:
        """Return stored messages, optionally filtered by severity."""
        return [e.message for e in self.events() if severity is None or e.severity is severity]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class EventLog:
    """Writes messages to Loguru and forwards them to a log sink."""

    def __init__(self, sink: LogSink | None = None) -> None:
        self.sink: LogSink = sink if sink is not None else MemoryLogSink()

    def _emit(self, severity: Severity, message: str) -> None:
        # depth=2 attributes the record to the component, not to this class
        logger.opt(depth=2).log(severity.value, message)
        self.sink.append(message, severity)

    def debug(self, message: str) -> None:
        logger.opt(depth=1).debug(message)

    def info(self, message: str) -> None:
        self._emit(Severity.INFO, message)

    def warning(self, message: str) -> None:
        self._emit(Severity.WARNING, message)

    def error(self, message: str) -> None:
        self._emit(Severity.ERROR, message)
