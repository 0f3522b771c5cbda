"""SOCKS5 protocol handler implementation for the proxy server.

This module implements the subset of RFC 1928 the proxy supports:
- Method negotiation, always answered with "no authentication"
- The CONNECT command only (BIND and UDP ASSOCIATE are refused)
- IPv4, domain name and IPv6 destination addresses
- Bi-directional data forwarding once the target is connected

Replies are fixed 10-byte packets with an all-zero IPv4 bound address:

    05 <status> 00 01 00 00 00 00 00 00

Status codes sent:
- ``0x00`` success
- ``0x01`` general failure (target unreachable)
- ``0x07`` command not supported
- ``0x08`` address type not supported

A short read or a malformed address aborts the connection without a reply.

Example:
    handler = Socks5ProxyHandler(EventLog(sink))
    handler.handle(connection)
"""

import socket
import struct
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from gnet_proxy.core.exceptions import ProxyError
from gnet_proxy.core.lib.address import (
    ADDR_TYPE_DOMAIN,
    ADDR_TYPE_IPV4,
    ADDR_TYPE_IPV6,
    IPV4_LENGTH,
    IPV6_LENGTH,
    PORT_LENGTH,
    TargetAddress,
    is_supported,
    resolve_address,
)
from gnet_proxy.core.lib.events import EventLog
from gnet_proxy.core.lib.proxy_stats import ProxyStats
from gnet_proxy.core.lib.registry import Connection
from gnet_proxy.core.lib.relay import relay
from gnet_proxy.core.lib.streams import close_quietly, recv_exact
from gnet_proxy.core.network import open_connection
from gnet_proxy.core.outcome import ParseOutcome, ParseResult

Connector = Callable[[str, int], socket.socket]

# SOCKS protocol constants
SOCKS_VERSION: Final = 5
METHOD_NO_AUTH: Final = 0x00
CONNECT_CMD: Final = 0x01

# Response codes
RESP_SUCCESS: Final = 0x00
RESP_GENERAL_FAILURE: Final = 0x01
RESP_CMD_NOT_SUPPORTED: Final = 0x07
RESP_ADDR_NOT_SUPPORTED: Final = 0x08

NO_AUTH_REPLY: Final = bytes([SOCKS_VERSION, METHOD_NO_AUTH])


def build_reply(status: int) -> bytes:
    """Build a reply with a zero-filled IPv4 bound address and port."""
    return struct.pack("!BBBB", SOCKS_VERSION, status, 0x00, ADDR_TYPE_IPV4) + bytes(6)


@dataclass(frozen=True)
class RequestHeader:
    """The fixed four bytes opening a SOCKS5 request."""

    version: int
    command: int
    reserved: int
    atyp: int


def parse_request_header(raw: bytes) -> ParseResult[RequestHeader]:
    """Check the command and address type of a request header."""
    version, command, reserved, atyp = struct.unpack("!BBBB", raw)
    header = RequestHeader(version=version, command=command, reserved=reserved, atyp=atyp)
    if command != CONNECT_CMD:
        return ParseResult(ParseOutcome.UNSUPPORTED_COMMAND, header, f"command {command:#04x}")
    if not is_supported(atyp):
        return ParseResult(ParseOutcome.UNSUPPORTED_ADDRESS_TYPE, header, f"atyp {atyp:#04x}")
    return ParseResult.success(header)


class Socks5ProxyHandler:
    """Serve one SOCKS5 client connection."""

    def __init__(
        self,
        log: EventLog,
        connector: Connector = open_connection,
        stats: ProxyStats | None = None,
    ) -> None:
        self.log = log
        self.connector = connector
        self.stats = stats

    def _negotiate(self, connection: Connection) -> None:
        """Read the greeting and select the no-auth method."""
        version, nmethods = recv_exact(connection.client, 2)
        self.log.info(
            f"SOCKS5 handshake from {connection.client_ip} - "
            f"version: {version}, methods: {nmethods}"
        )
        # Offered methods are read and ignored; only no-auth is implemented
        recv_exact(connection.client, nmethods)
        connection.client.sendall(NO_AUTH_REPLY)

    def _read_address(self, client: socket.socket, atyp: int) -> TargetAddress:
        if atyp == ADDR_TYPE_IPV4:
            raw_addr = recv_exact(client, IPV4_LENGTH)
        elif atyp == ADDR_TYPE_IPV6:
            raw_addr = recv_exact(client, IPV6_LENGTH)
        else:
            length = recv_exact(client, 1)
            raw_addr = length + recv_exact(client, length[0])
        raw_port = recv_exact(client, PORT_LENGTH)
        return resolve_address(atyp, raw_addr, raw_port)

    def _reply(self, client: socket.socket, status: int) -> None:
        client.sendall(build_reply(status))

    def handle(self, connection: Connection) -> None:
        """Run the handshake, connect to the target and relay."""
        client = connection.client
        client_ip = connection.client_ip
        self.log.info(f"Handling SOCKS5 proxy connection from {client_ip}")

        try:
            self._negotiate(connection)
            parsed = parse_request_header(recv_exact(client, 4))
            header = parsed.value
            if header is not None:
                self.log.info(
                    f"SOCKS5 request from {client_ip} - version: {header.version}, "
                    f"command: {header.command}, address type: {header.atyp}"
                )

            if parsed.outcome is ParseOutcome.UNSUPPORTED_COMMAND:
                self.log.warning(f"Unsupported SOCKS5 command: {header.command} from {client_ip}")
                self._reply(client, RESP_CMD_NOT_SUPPORTED)
                return
            if parsed.outcome is ParseOutcome.UNSUPPORTED_ADDRESS_TYPE:
                self.log.warning(f"Unknown SOCKS5 address type: {header.atyp} from {client_ip}")
                self._reply(client, RESP_ADDR_NOT_SUPPORTED)
                return

            address = self._read_address(client, header.atyp)
        except (ProxyError, OSError) as e:
            self.log.warning(f"Aborted SOCKS5 request from {client_ip}: {e}")
            return

        target = connection.set_target(address.host, address.port)
        self.log.info(f"Connecting to SOCKS5 target: {target} from {client_ip}")

        upstream: socket.socket | None = None
        try:
            upstream = connection.attach(self.connector(target.host, target.port))
        except ProxyError as e:
            self.log.error(f"Error connecting to SOCKS5 target {target}: {e}")
            try:
                self._reply(client, RESP_GENERAL_FAILURE)
            except OSError as send_error:
                self.log.debug(f"Could not send SOCKS5 failure reply: {send_error}")
            return

        try:
            self._reply(client, RESP_SUCCESS)
            self.log.info(f"SOCKS5 connection established between {client_ip} and {target}")
            relay(client, upstream, log=self.log, stats=self.stats, name=f"conn-{connection.id}")
        finally:
            close_quietly(upstream)
        self.log.info(f"SOCKS5 connection closed for {client_ip}")
