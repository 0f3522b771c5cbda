"""Custom exceptions for the proxy engine.

This module defines the exceptions raised by the core proxy components.
They are reserved for I/O level failures:
- Listener bind failures
- DNS resolution and upstream connection failures
- Short reads and oversized lines from clients
- SOCKS5 address decoding failures

Protocol violations (bad request lines, missing Host headers, unsupported
SOCKS5 commands) are not exceptions; they travel as ``ParseResult`` values
so every handler maps them straight to a wire reply.

Example:
    try:
        server.start(config)
    except BindError as e:
        console.print(f"[red]Could not listen: {e}")
"""


class ProxyError(Exception):
    """Base exception for proxy errors."""


class BindError(ProxyError):
    """Raised when the listening socket cannot be bound."""


class DNSResolutionError(ProxyError):
    """Raised when DNS resolution fails."""


class UpstreamConnectError(ProxyError):
    """Raised when the requested destination cannot be reached."""


class AddressTypeError(ProxyError):
    """Raised for a SOCKS5 address-type tag that is not supported."""

    def __init__(self, atyp: int) -> None:
        super().__init__(f"Unsupported address type: {atyp:#04x}")
        self.atyp = atyp


class MalformedAddressError(ProxyError):
    """Raised when raw address bytes do not match their declared layout."""


class IncompleteReadError(ProxyError):
    """Raised when the peer closes before the expected bytes arrive."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"Expected {expected} bytes, got {received}")
        self.expected = expected
        self.received = received


class LineTooLongError(ProxyError):
    """Raised when a request or header line exceeds the read limit."""


class ConnectionCancelledError(ProxyError):
    """Raised when a socket is attached to a connection that was cancelled."""
