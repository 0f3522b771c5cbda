"""Proxy server: listening socket, accept loop and shutdown.

This module implements the server that owns the engine's resources:
- One listening TCP socket bound to all interfaces with address reuse
- The accept loop, running on its own daemon thread
- The registry of live connections
- Start/stop orchestration

``start()`` binds synchronously, so a busy port is reported to the caller
as a ``BindError`` rather than appearing later in a log. ``stop()`` flips
the running flag, cancels every live connection by shutting down its
sockets, closes the listener and waits (bounded) for the handler threads.
An accept error caused by that close is the normal end of the loop.

Example:
    server = ProxyServer(EventLog(sink))
    server.start(ProxyConfiguration(kind=ProxyKind.SOCKS5, port=1080, active=True))
    ...
    server.stop()
"""

import socket
import threading
import time
from typing import Final

from gnet_proxy.core.config import ProxyConfiguration
from gnet_proxy.core.exceptions import BindError
from gnet_proxy.core.lib.dispatcher import ConnectionDispatcher
from gnet_proxy.core.lib.events import EventLog
from gnet_proxy.core.lib.proxy_stats import ProxyStats, proxy_stats
from gnet_proxy.core.lib.registry import Connection, ConnectionRegistry
from gnet_proxy.core.lib.streams import close_quietly

# Constants
LISTEN_HOST: Final = "0.0.0.0"
LISTEN_BACKLOG: Final = 128
ACCEPT_ERROR_DELAY: Final = 0.05  # Seconds before retrying a failed accept
STOP_JOIN_TIMEOUT: Final = 5.0  # Seconds to wait for handler threads on stop


class ProxyServer:
    """Single-port forward proxy server."""

    def __init__(
        self,
        log: EventLog | None = None,
        dispatcher: ConnectionDispatcher | None = None,
        stats: ProxyStats | None = None,
        host: str = LISTEN_HOST,
    ) -> None:
        """Initialize a stopped server.

        Args:
            log: Event log shared with every component
            dispatcher: Dispatcher for accepted connections
            stats: Traffic counters, defaults to the global proxy stats
            host: Address to bind the listener to
        """
        self.log = log or EventLog()
        self.stats = stats if stats is not None else proxy_stats
        self.dispatcher = dispatcher or ConnectionDispatcher(self.log, stats=self.stats)
        self.host = host
        self.registry = ConnectionRegistry()
        self.config: ProxyConfiguration | None = None
        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._running = False
        self._state_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def address(self) -> tuple[str, int] | None:
        """Address the listener is bound to, or None when stopped."""
        listener = self._listener
        if listener is None:
            return None
        try:
            return listener.getsockname()[:2]
        except OSError:
            return None

    def _bind(self, port: int) -> socket.socket:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            listener.bind((self.host, port))
            listener.listen(LISTEN_BACKLOG)
        except OSError as e:
            listener.close()
            raise BindError(f"Could not bind {self.host}:{port}: {e}") from e
        return listener

    def start(self, config: ProxyConfiguration) -> None:
        """Bind the listener and start accepting connections.

        Args:
            config: Snapshot used for the whole run

        Raises:
            BindError: If the port cannot be bound
        """
        with self._state_lock:
            if self._running:
                self.log.warning("Proxy server is already running")
                return

            self.log.info(f"Starting {config.kind.name} proxy server on port {config.port}")
            try:
                listener = self._bind(config.port)
            except BindError as e:
                self.log.error(f"Error starting server: {e}")
                raise

            self.stats.reset()
            self.config = config
            self._listener = listener
            self._running = True
            self._accept_thread = threading.Thread(
                target=self._accept_loop,
                args=(listener, config),
                name="proxy-accept",
                daemon=True,
            )
            self._accept_thread.start()
            self.log.info(f"Proxy server started on port {config.port}")

    def _accept_loop(self, listener: socket.socket, config: ProxyConfiguration) -> None:
        while self._running:
            try:
                client_sock, client_addr = listener.accept()
            except OSError as e:
                if not self._running:
                    break
                self.log.error(f"Error accepting client connection: {e}")
                time.sleep(ACCEPT_ERROR_DELAY)
                continue

            connection = Connection(client_sock, client_addr, config.kind)
            self.registry.add(connection)
            if not self._running:
                # stop() drained the registry between accept() and add()
                self.registry.remove(connection)
                connection.cancel()
                break
            self.log.info(f"Client connected from {connection.client_ip}")
            self.dispatcher.dispatch(connection, on_finished=self.registry.remove)

        self.log.debug("Accept loop finished")

    def stop(self) -> None:
        """Stop accepting, interrupt every connection and close the listener.

        Calling stop on a stopped server does nothing.
        """
        with self._state_lock:
            if not self._running and self._listener is None:
                return

            self.log.info("Stopping proxy server")
            self._running = False

            connections = self.registry.cancel_all()
            if connections:
                self.log.info(f"Closed {len(connections)} active connection(s)")

            close_quietly(self._listener)
            self._listener = None
            accept_thread, self._accept_thread = self._accept_thread, None

        if accept_thread is not None and accept_thread is not threading.current_thread():
            accept_thread.join(timeout=STOP_JOIN_TIMEOUT)

        deadline = time.monotonic() + STOP_JOIN_TIMEOUT
        for connection in connections:
            thread = connection.thread
            if thread is None or thread is threading.current_thread():
                continue
            thread.join(timeout=max(0.0, deadline - time.monotonic()))

        self.log.info("Proxy server stopped")

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        """Block the calling thread until the server is stopped."""
        while self._running:
            thread = self._accept_thread
            if thread is None:
                break
            thread.join(timeout=poll_interval)
