"""Per-connection state and the active connection registry.

A ``Connection`` is created for every accepted client socket. It records
who the client is, which protocol it speaks, and (once negotiated) the
target it asked for. It also owns the sockets that have to be closed to
interrupt it: the client socket plus any target socket the handler opens.

The ``ConnectionRegistry`` is the server's set of live connections. Every
mutation goes through one lock. ``cancel_all()`` is used by ``stop()``: it
empties the registry and shuts down every socket, which unblocks whatever
accept/recv/send the handler threads are sitting in.
"""

import itertools
import socket
import threading

from gnet_proxy.core.config import ProxyKind
from gnet_proxy.core.exceptions import ConnectionCancelledError
from gnet_proxy.core.lib.address import TargetAddress
from gnet_proxy.core.lib.streams import close_quietly

_ids = itertools.count(1)


class Connection:
    """A single accepted client connection."""

    def __init__(
        self,
        client: socket.socket,
        client_address: tuple[str, int],
        kind: ProxyKind,
    ) -> None:
        self.id = next(_ids)
        self.client = client
        self.client_address = client_address
        self.kind = kind
        self.thread: threading.Thread | None = None
        self._target: TargetAddress | None = None
        self._sockets: list[socket.socket] = [client]
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def client_ip(self) -> str:
        return self.client_address[0]

    @property
    def target(self) -> TargetAddress | None:
        return self._target

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def set_target(self, host: str, port: int) -> TargetAddress:
        """Record the negotiated target. A target is set at most once."""
        with self._lock:
            if self._target is not None:
                raise RuntimeError(f"Connection {self.id} already targets {self._target}")
            self._target = TargetAddress(host=host, port=port)
            return self._target

    def attach(self, sock: socket.socket) -> socket.socket:
        """Register a target socket so cancellation also closes it."""
        with self._lock:
            if not self._cancelled:
                self._sockets.append(sock)
                return sock
        close_quietly(sock)
        raise ConnectionCancelledError(f"Connection {self.id} was cancelled")

    def cancel(self) -> None:
        """Interrupt the connection by shutting down all of its sockets."""
        with self._lock:
            self._cancelled = True
            sockets = list(self._sockets)
        for sock in sockets:
            close_quietly(sock)

    def close(self) -> None:
        """Close every owned socket after the handler finished."""
        with self._lock:
            sockets = list(self._sockets)
            self._sockets.clear()
        for sock in sockets:
            close_quietly(sock)

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.id}, client={self.client_ip}, "
            f"kind={self.kind.value}, target={self._target})"
        )


class ConnectionRegistry:
    """Thread-safe map of connection id to live connection."""

    def __init__(self) -> None:
        self._connections: dict[int, Connection] = {}
        self._lock = threading.Lock()

    def add(self, connection: Connection) -> None:
        with self._lock:
            self._connections[connection.id] = connection

    def remove(self, connection: Connection) -> None:
        with self._lock:
            self._connections.pop(connection.id, None)

    def snapshot(self) -> list[Connection]:
        with self._lock:
            return list(self._connections.values())

    def cancel_all(self) -> list[Connection]:
        """Cancel and forget every registered connection.

        Returns:
            list[Connection]: The connections that were cancelled
        """
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            connection.cancel()
        return connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        with self._lock:
            return isinstance(connection, Connection) and connection.id in self._connections
