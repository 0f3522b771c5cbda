"""Lifecycle control and main entry point for the proxy engine.

The hosting process talks to the engine through ``ProxyController``:
- ``on_start()`` / ``on_stop()`` are the start and stop hooks
- ``apply(config)`` takes a new configuration snapshot; its ``active`` flag
  is the start/stop signal

A snapshot is never applied to a running server in place. If it differs
from the one the server runs with, the controller stops the server and
starts it again with the new snapshot.

Example:
    from gnet_proxy.core.proxy import create_controller

    controller = create_controller(ProxyConfiguration(port=8080, active=True))
    controller.on_start()
"""

import threading

from gnet_proxy.core.config import ProxyConfiguration
from gnet_proxy.core.lib import EventLog, LogSink, ProxyServer


class ProxyController:
    """Start/stop controller wrapping a ProxyServer."""

    def __init__(self, server: ProxyServer, config: ProxyConfiguration) -> None:
        self.server = server
        self.config = config
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self.server.running

    @property
    def log(self) -> EventLog:
        return self.server.log

    def on_start(self) -> None:
        """Start the server with the current snapshot.

        Raises:
            BindError: If the port cannot be bound
        """
        with self._lock:
            self.server.start(self.config)

    def on_stop(self) -> None:
        with self._lock:
            self.server.stop()

    def apply(self, config: ProxyConfiguration) -> None:
        """Take a new configuration snapshot and act on its active flag.

        Args:
            config: New snapshot

        Raises:
            BindError: If a (re)start cannot bind the port
        """
        with self._lock:
            self.config = config
            if not config.active:
                self.server.stop()
                return

            if self.server.running:
                current = self.server.config
                if current is not None and current.with_active(True) == config:
                    return
                self.log.info("Configuration changed, restarting proxy server")
                self.server.stop()
            self.server.start(config)


def create_controller(
    config: ProxyConfiguration, sink: LogSink | None = None
) -> ProxyController:
    """Build a controller around a fresh server.

    Args:
        config: Initial configuration snapshot
        sink: Log sink receiving engine events

    Returns:
        ProxyController: Controller ready for ``on_start()``
    """
    server = ProxyServer(EventLog(sink))
    return ProxyController(server, config)


__all__ = ["ProxyController", "create_controller"]
