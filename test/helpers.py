from __future__ import annotations

import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

from gnet_proxy.core.config import ProxyConfiguration, ProxyKind
from gnet_proxy.core.lib.dispatcher import ConnectionDispatcher
from gnet_proxy.core.lib.events import EventLog, MemoryLogSink
from gnet_proxy.core.lib.http_handler import HttpProxyHandler
from gnet_proxy.core.lib.proxy_server import ProxyServer
from gnet_proxy.core.lib.proxy_stats import ProxyStats
from gnet_proxy.core.lib.socks_handler import Socks5ProxyHandler
from gnet_proxy.core.network import open_connection


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class EchoServer:
    """TCP server echoing every byte back until the peer closes."""

    def __init__(self) -> None:
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.port = self.sock.getsockname()[1]
        self.accepted = 0
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            self.accepted += 1
            threading.Thread(target=self._echo, args=(conn,), daemon=True).start()

    @staticmethod
    def _echo(conn: socket.socket) -> None:
        with conn:
            while True:
                try:
                    data = conn.recv(4096)
                except OSError:
                    return
                if not data:
                    return
                conn.sendall(data)

    def close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()


class OriginHandler(BaseHTTPRequestHandler):
    """Replies with what it received so tests can inspect the forwarded request."""

    def _reply(self, body: bytes = b"") -> None:
        lines = [
            f"method={self.command}",
            f"path={self.path}",
            f"host={self.headers.get('Host')}",
            f"host_count={len(self.headers.get_all('Host') or [])}",
            f"connection={self.headers.get('Connection')}",
            f"proxy_authorization={self.headers.get('Proxy-Authorization')}",
            f"user_agent={self.headers.get('User-Agent')}",
            f"body={body.decode('utf-8')}",
        ]
        payload = "\n".join(lines).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self) -> None:  # noqa: N802
        self._reply()

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        self._reply(self.rfile.read(length))

    def log_message(self, format: str, *args) -> None:
        return


def start_origin() -> HTTPServer:
    httpd = HTTPServer(("127.0.0.1", 0), OriginHandler)
    threading.Thread(target=httpd.serve_forever, daemon=True).start()
    return httpd


class ProxyFixture:
    """A started ProxyServer plus the objects tests inspect."""

    def __init__(self, kind: ProxyKind, connector=open_connection) -> None:
        self.sink = MemoryLogSink(max_events=1000)
        self.log = EventLog(self.sink)
        self.stats = ProxyStats()
        handlers = {
            ProxyKind.HTTP: HttpProxyHandler(self.log, connector=connector, stats=self.stats),
            ProxyKind.SOCKS5: Socks5ProxyHandler(self.log, connector=connector, stats=self.stats),
        }
        dispatcher = ConnectionDispatcher(self.log, handlers=handlers, stats=self.stats)
        self.server = ProxyServer(self.log, dispatcher=dispatcher, stats=self.stats)
        self.port = free_port()
        self.config = ProxyConfiguration(kind=kind, port=self.port, active=True)
        self.server.start(self.config)

    def connect(self, timeout: float = 5.0) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self.port), timeout=timeout)

    def stop(self) -> None:
        self.server.stop()


def recv_all(sock: socket.socket) -> bytes:
    data = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk


def recv_until(sock: socket.socket, marker: bytes) -> bytes:
    data = b""
    while marker not in data:
        chunk = sock.recv(4096)
        if not chunk:
            break
        data += chunk
    return data


def recv_exactly(sock: socket.socket, n: int) -> bytes:
    data = b""
    while len(data) < n:
        chunk = sock.recv(n - len(data))
        if not chunk:
            break
        data += chunk
    return data
