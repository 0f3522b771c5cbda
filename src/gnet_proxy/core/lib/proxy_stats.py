"""Traffic statistics for the proxy engine.

This module keeps process-wide counters that the status panel reads:
- Active connection count
- Bytes moved from clients to targets ("sent")
- Bytes moved from targets back to clients ("received")
- A short bandwidth history for a rolling bytes-per-second figure

Every update takes the internal lock, so relay threads of any connection
can report at the same time without losing counts.

Example:
    from gnet_proxy.core.lib.proxy_stats import proxy_stats

    proxy_stats.connection_started()
    proxy_stats.update_bytes(sent=1024, received=0)
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final

BANDWIDTH_WINDOW: Final = 5.0  # seconds
HISTORY_SIZE: Final = 60


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the counters."""

    active_connections: int
    total_connections: int
    bytes_sent: int
    bytes_received: int

    @property
    def bytes_total(self) -> int:
        return self.bytes_sent + self.bytes_received


class ProxyStats:
    """Thread-safe statistics tracker for the proxy engine."""

    def __init__(self) -> None:
        """Initialize zeroed counters and an empty bandwidth history."""
        self.active_connections = 0
        self.total_connections = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.bandwidth_history: deque[tuple[int, float]] = deque(maxlen=HISTORY_SIZE)
        self.start_time = datetime.now(tz=UTC)
        self._lock = threading.Lock()

    def update_bytes(self, sent: int, received: int) -> None:
        """Record relayed bytes.

        Args:
            sent: Bytes moved client -> target
            received: Bytes moved target -> client
        """
        with self._lock:
            self.total_bytes_sent += sent
            self.total_bytes_received += received
            self.bandwidth_history.append((sent + received, time.monotonic()))

    def get_bandwidth(self) -> float:
        """Average throughput over the last few seconds in bytes/second."""
        with self._lock:
            cutoff = time.monotonic() - BANDWIDTH_WINDOW
            recent = sum(bytes_ for bytes_, ts in self.bandwidth_history if ts > cutoff)
        return recent / BANDWIDTH_WINDOW

    def connection_started(self) -> None:
        with self._lock:
            self.active_connections += 1
            self.total_connections += 1

    def connection_ended(self) -> None:
        with self._lock:
            self.active_connections = max(0, self.active_connections - 1)

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                active_connections=self.active_connections,
                total_connections=self.total_connections,
                bytes_sent=self.total_bytes_sent,
                bytes_received=self.total_bytes_received,
            )

    def reset(self) -> None:
        """Zero every counter. Used when a server instance starts."""
        with self._lock:
            self.active_connections = 0
            self.total_connections = 0
            self.total_bytes_sent = 0
            self.total_bytes_received = 0
            self.bandwidth_history.clear()
            self.start_time = datetime.now(tz=UTC)


# Global statistics object
proxy_stats = ProxyStats()
