"""Connection dispatching.

Each accepted connection runs on its own daemon thread. There is no pool
and no admission limit: a flood of clients means a flood of threads.

Whatever the protocol handler raises is caught and logged on that thread,
and the connection's sockets are closed in a ``finally`` block, so one
broken client never reaches the accept loop or any other connection.
"""

import threading
from collections.abc import Callable
from typing import Protocol

from gnet_proxy.core.config import ProxyKind
from gnet_proxy.core.lib.events import EventLog
from gnet_proxy.core.lib.http_handler import HttpProxyHandler
from gnet_proxy.core.lib.proxy_stats import ProxyStats, proxy_stats
from gnet_proxy.core.lib.registry import Connection
from gnet_proxy.core.lib.socks_handler import Socks5ProxyHandler


class ProtocolHandler(Protocol):
    def handle(self, connection: Connection) -> None: ...


def default_handlers(
    log: EventLog, stats: ProxyStats | None = None
) -> dict[ProxyKind, ProtocolHandler]:
    """Build the handler for every supported proxy kind."""
    return {
        ProxyKind.HTTP: HttpProxyHandler(log, stats=stats),
        ProxyKind.SOCKS5: Socks5ProxyHandler(log, stats=stats),
    }


class ConnectionDispatcher:
    """Hand accepted connections to their protocol handler on a new thread."""

    def __init__(
        self,
        log: EventLog,
        handlers: dict[ProxyKind, ProtocolHandler] | None = None,
        stats: ProxyStats | None = None,
    ) -> None:
        self.log = log
        self.stats = stats if stats is not None else proxy_stats
        self.handlers = handlers if handlers is not None else default_handlers(log, self.stats)

    def dispatch(
        self,
        connection: Connection,
        on_finished: Callable[[Connection], None] | None = None,
    ) -> threading.Thread:
        """Start a thread that serves ``connection``.

        Args:
            connection: Freshly accepted connection
            on_finished: Called once the connection is fully closed

        Returns:
            threading.Thread: The started handler thread
        """
        thread = threading.Thread(
            target=self._run,
            args=(connection, on_finished),
            name=f"conn-{connection.id}",
            daemon=True,
        )
        connection.thread = thread
        thread.start()
        return thread

    def handle(self, connection: Connection) -> None:
        """Run the handler selected by the connection's proxy kind."""
        handler = self.handlers[connection.kind]
        handler.handle(connection)

    def _run(
        self,
        connection: Connection,
        on_finished: Callable[[Connection], None] | None,
    ) -> None:
        client_ip = connection.client_ip
        self.stats.connection_started()
        try:
            self.log.debug(f"Dispatching connection {connection.id} from {client_ip}")
            self.handle(connection)
        except Exception as e:
            if connection.cancelled:
                self.log.debug(f"Connection from {client_ip} interrupted by shutdown: {e}")
            else:
                self.log.error(f"Error handling client connection from {client_ip}: {e}")
        finally:
            connection.close()
            self.stats.connection_ended()
            self.log.info(f"Client socket closed ({client_ip})")
            if on_finished is not None:
                on_finished(connection)
