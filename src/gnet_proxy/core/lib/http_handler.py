"""HTTP proxy protocol handler.

This module implements the HTTP side of the proxy:
- ``CONNECT host:port`` tunnels, relayed as opaque byte pipes
- Plain forwarding of absolute-form (``GET http://host/path``) requests
- Plain forwarding of relative-form requests using the ``Host`` header

Request parsing and header rewriting are plain functions returning
``ParseResult`` values, so they can be exercised without sockets. The
``HttpProxyHandler`` class wires them to the client and target sockets and
maps every outcome to a response:
- Malformed request line or target -> ``400 Bad Request``
- Missing ``Host`` header on a relative-form request -> ``400 Bad Request``
- Unparseable CONNECT target, or a target unreachable or failing before
  the response -> ``500``

Forwarded requests always carry exactly one ``Host`` header and
``Connection: close``; ``Proxy-*`` headers never leave the proxy.

Example:
    handler = HttpProxyHandler(EventLog(sink))
    handler.handle(connection)
"""

import socket
from collections.abc import Callable
from dataclasses import dataclass
from http import HTTPStatus
from typing import Final
from urllib.parse import urlsplit

from gnet_proxy.core.exceptions import ProxyError
from gnet_proxy.core.lib.address import TargetAddress
from gnet_proxy.core.lib.events import EventLog
from gnet_proxy.core.lib.proxy_stats import ProxyStats
from gnet_proxy.core.lib.registry import Connection
from gnet_proxy.core.lib.relay import pipe, relay
from gnet_proxy.core.lib.streams import SocketReader, close_quietly
from gnet_proxy.core.network import open_connection
from gnet_proxy.core.outcome import ParseOutcome, ParseResult

Header = tuple[str, str]
Connector = Callable[[str, int], socket.socket]

DEFAULT_HTTP_PORT: Final = 80
DEFAULT_CONNECT_PORT: Final = 443
CONNECT_PREFIX: Final = "CONNECT "
CONNECT_ESTABLISHED: Final = b"HTTP/1.1 200 Connection Established\r\n\r\n"
HTTP_ENCODING: Final = "iso-8859-1"


@dataclass(frozen=True)
class RequestLine:
    """Parsed ``METHOD target VERSION`` line."""

    method: str
    target: str
    version: str


@dataclass(frozen=True)
class ForwardTarget:
    """Where a plain HTTP request goes and what it asks for."""

    host: str
    port: int
    path: str
    authority: str


def parse_request_line(line: str) -> ParseResult[RequestLine]:
    """Split a request line into method, target and version."""
    parts = line.split()
    if len(parts) < 3:
        return ParseResult.failure(ParseOutcome.BAD_REQUEST, f"Invalid request line: {line!r}")
    method, target, version = parts[0], parts[1], parts[2]
    return ParseResult.success(RequestLine(method=method, target=target, version=version))


def _split_host_port(authority: str, default_port: int) -> tuple[str, int] | None:
    if authority.startswith("["):
        host, sep, rest = authority[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            return None
        port_text = rest[1:]
    elif authority.count(":") > 1:
        # Bare IPv6 literal without brackets
        return authority, default_port
    else:
        host, _, port_text = authority.partition(":")

    if not host:
        return None
    if not port_text:
        return host, default_port
    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        return None
    return host, int(port_text)


def parse_connect_target(token: str) -> ParseResult[TargetAddress]:
    """Parse the ``host:port`` token of a CONNECT request (port defaults to 443)."""
    parsed = _split_host_port(token, DEFAULT_CONNECT_PORT)
    if parsed is None:
        return ParseResult.failure(ParseOutcome.BAD_REQUEST, f"Invalid CONNECT target: {token!r}")
    host, port = parsed
    return ParseResult.success(TargetAddress(host=host, port=port))


def _format_authority(host: str, port: int) -> str:
    shown = f"[{host}]" if ":" in host else host
    return shown if port == DEFAULT_HTTP_PORT else f"{shown}:{port}"


def _split_absolute_url(url: str) -> ParseResult[ForwardTarget]:
    parts = urlsplit(url)
    if parts.scheme.lower() != "http":
        return ParseResult.failure(ParseOutcome.BAD_REQUEST, "Only http:// absolute-form supported")
    try:
        host = parts.hostname
        port = parts.port or DEFAULT_HTTP_PORT
    except ValueError as e:
        return ParseResult.failure(ParseOutcome.BAD_REQUEST, f"Invalid URL: {e}")
    if not host:
        return ParseResult.failure(ParseOutcome.BAD_REQUEST, f"Invalid URL: {url!r}")

    path = parts.path or "/"
    if parts.query:
        path += "?" + parts.query
    return ParseResult.success(
        ForwardTarget(host=host, port=port, path=path, authority=_format_authority(host, port))
    )


def find_header(headers: list[Header], name: str) -> str | None:
    """Return the first value of a header, matched case-insensitively."""
    wanted = name.lower()
    for key, value in headers:
        if key.lower() == wanted:
            return value
    return None


def resolve_forward_target(
    request: RequestLine, headers: list[Header]
) -> ParseResult[ForwardTarget]:
    """Work out host, port and path for a non-CONNECT request.

    Absolute-form targets carry everything in the URL. Relative-form
    targets take the authority from the ``Host`` header.
    """
    if not request.target.startswith("/") and "://" in request.target:
        return _split_absolute_url(request.target)

    host_value = find_header(headers, "Host")
    if not host_value:
        return ParseResult.failure(ParseOutcome.MISSING_HOST, "No Host header")

    path = request.target if request.target.startswith("/") else "/" + request.target
    result = _split_absolute_url(f"http://{host_value}{path}")
    if not result.ok or result.value is None:
        return result
    target = result.value
    return ParseResult.success(
        ForwardTarget(host=target.host, port=target.port, path=target.path, authority=host_value)
    )


def forward_headers(headers: list[Header], authority: str) -> list[Header]:
    """Rewrite client headers for the target.

    Drops ``Proxy-*`` and ``Connection`` headers, replaces every ``Host``
    header with a single one for ``authority`` and appends
    ``Connection: close``. Order of the remaining headers is kept.
    """
    result: list[Header] = [("Host", authority)]
    for name, value in headers:
        lower = name.lower()
        if lower.startswith("proxy-") or lower in ("connection", "host"):
            continue
        result.append((name, value))
    result.append(("Connection", "close"))
    return result


def build_forward_request(method: str, path: str, headers: list[Header]) -> bytes:
    """Serialize the request line and header block sent to the target."""
    lines = [f"{method} {path} HTTP/1.1"]
    lines.extend(f"{name}: {value}" for name, value in headers)
    return ("\r\n".join(lines) + "\r\n\r\n").encode(HTTP_ENCODING)


def error_response(status: int) -> bytes:
    """Build the plain-text error response for ``status``."""
    reason = HTTPStatus(status).phrase
    return (
        f"HTTP/1.1 {status} {reason}\r\n"
        "Content-Type: text/plain\r\n"
        "Connection: close\r\n"
        "\r\n"
        f"{status} {reason}\r\n"
    ).encode(HTTP_ENCODING)


class HttpProxyHandler:
    """Serve one HTTP proxy client connection."""

    def __init__(
        self,
        log: EventLog,
        connector: Connector = open_connection,
        stats: ProxyStats | None = None,
    ) -> None:
        self.log = log
        self.connector = connector
        self.stats = stats

    def send_error(self, client: socket.socket, status: int) -> None:
        """Send an error response if the client can still take it."""
        try:
            client.sendall(error_response(status))
        except OSError as e:
            self.log.debug(f"Could not send HTTP error {status}: {e}")
            return
        self.log.warning(f"Sent HTTP error {status}: {HTTPStatus(status).phrase}")

    def handle(self, connection: Connection) -> None:
        client_ip = connection.client_ip
        self.log.info(f"Handling HTTP proxy connection from {client_ip}")

        reader = SocketReader(connection.client)
        line = reader.readline()
        if line is None:
            self.log.debug(f"Connection from {client_ip} closed before a request line")
            return

        self.log.info(f"HTTP request from {client_ip}: {line}")

        if line.startswith(CONNECT_PREFIX):
            self._handle_connect(connection, reader, line)
            return

        parsed = parse_request_line(line)
        if not parsed.ok or parsed.value is None:
            self.log.error(f"Invalid HTTP request from {client_ip}: {line}")
            self.send_error(connection.client, 400)
            return
        request = parsed.value

        headers = reader.read_headers()
        resolved = resolve_forward_target(request, headers)
        if not resolved.ok or resolved.value is None:
            if resolved.outcome is ParseOutcome.MISSING_HOST:
                self.log.error(f"No Host header found from {client_ip}")
            else:
                self.log.error(f"Bad request target from {client_ip}: {resolved.detail}")
            self.send_error(connection.client, 400)
            return

        body_length = self._body_length(connection, headers)
        if body_length is None:
            return

        self._forward(connection, reader, request, resolved.value, headers, body_length)

    def _body_length(self, connection: Connection, headers: list[Header]) -> int | None:
        length = find_header(headers, "Content-Length")
        if length is None:
            return 0
        if not length.isdigit():
            self.log.error(f"Invalid Content-Length from {connection.client_ip}: {length}")
            self.send_error(connection.client, 400)
            return None
        return int(length)

    def _forward(
        self,
        connection: Connection,
        reader: SocketReader,
        request: RequestLine,
        target: ForwardTarget,
        headers: list[Header],
        body_length: int,
    ) -> None:
        client_ip = connection.client_ip
        connection.set_target(target.host, target.port)
        self.log.info(
            f"Connecting to {target.host}:{target.port}{target.path} for request from {client_ip}"
        )

        upstream: socket.socket | None = None
        try:
            upstream = connection.attach(self.connector(target.host, target.port))
            payload = build_forward_request(
                request.method, target.path, forward_headers(headers, target.authority)
            )
            upstream.sendall(payload)
            # The body is streamed through, never buffered whole
            for chunk in reader.iter_exact(body_length):
                upstream.sendall(chunk)
            self.log.info(f"Request sent to {target.host}:{target.port} from {client_ip}")
        except (ProxyError, OSError) as e:
            close_quietly(upstream)
            self.log.error(f"Error forwarding HTTP request: {e}")
            self.send_error(connection.client, 500)
            return

        try:
            pipe(
                upstream,
                connection.client,
                log=self.log,
                label="target->client",
                stats=self.stats,
                upstream=False,
            )
            self.log.info(f"Response sent back to {client_ip}")
        finally:
            close_quietly(upstream)

    def _handle_connect(self, connection: Connection, reader: SocketReader, line: str) -> None:
        client_ip = connection.client_ip
        self.log.info(f"Handling HTTPS CONNECT from {client_ip}: {line}")

        parts = line.split()
        if len(parts) < 2:
            self.log.error(f"Invalid CONNECT request from {client_ip}: {line}")
            self.send_error(connection.client, 400)
            return

        # Anything failing between here and the 200 line is a 500
        parsed = parse_connect_target(parts[1])
        if not parsed.ok or parsed.value is None:
            self.log.error(f"Error in HTTPS CONNECT handling: {parsed.detail}")
            self.send_error(connection.client, 500)
            return

        # The tunnel starts after the header block
        reader.read_headers()

        target = connection.set_target(parsed.value.host, parsed.value.port)
        self.log.info(f"Connecting to HTTPS target: {target} for request from {client_ip}")

        upstream: socket.socket | None = None
        try:
            upstream = connection.attach(self.connector(target.host, target.port))
            connection.client.sendall(CONNECT_ESTABLISHED)
        except (ProxyError, OSError) as e:
            close_quietly(upstream)
            self.log.error(f"Error in HTTPS CONNECT handling: {e}")
            self.send_error(connection.client, 500)
            return

        self.log.info(f"HTTPS tunnel established between {client_ip} and {target}")
        try:
            pipelined = reader.drain()
            if pipelined:
                upstream.sendall(pipelined)
            relay(
                connection.client,
                upstream,
                log=self.log,
                stats=self.stats,
                name=f"conn-{connection.id}",
            )
        finally:
            close_quietly(upstream)
        self.log.info(f"HTTPS tunnel closed for {client_ip}")
