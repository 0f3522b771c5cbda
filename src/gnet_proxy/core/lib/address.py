"""SOCKS5 address decoding.

Turns the raw DST.ADDR / DST.PORT fields of a SOCKS5 request into a host
string and port that ``socket.create_connection`` accepts. Decoding is pure:
no I/O, no DNS, no logging.

Supported address types:
- ``0x01`` IPv4: 4 bytes rendered as dotted decimal
- ``0x03`` domain name: 1 length byte followed by that many bytes of text
- ``0x04`` IPv6: 16 bytes rendered as eight uncompressed hex groups

Example:
    decode_host(ADDR_TYPE_DOMAIN, b"\\x0bexample.com")  # "example.com"
    decode_port(b"\\x1f\\x90")  # 8080
"""

import struct
from dataclasses import dataclass
from typing import Final

from gnet_proxy.core.exceptions import AddressTypeError, MalformedAddressError

ADDR_TYPE_IPV4: Final = 0x01
ADDR_TYPE_DOMAIN: Final = 0x03
ADDR_TYPE_IPV6: Final = 0x04

IPV4_LENGTH: Final = 4
IPV6_LENGTH: Final = 16
PORT_LENGTH: Final = 2

SUPPORTED_ADDR_TYPES: Final = frozenset({ADDR_TYPE_IPV4, ADDR_TYPE_DOMAIN, ADDR_TYPE_IPV6})


@dataclass(frozen=True)
class TargetAddress:
    """A connectable destination."""

    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def is_supported(atyp: int) -> bool:
    return atyp in SUPPORTED_ADDR_TYPES


def decode_host(atyp: int, raw: bytes) -> str:
    """Decode a raw DST.ADDR field.

    Args:
        atyp: Address-type tag from the request header
        raw: Address bytes; for domain names this includes the length byte

    Returns:
        str: Host string usable for a TCP connect

    Raises:
        AddressTypeError: If ``atyp`` is not a supported tag
        MalformedAddressError: If ``raw`` does not match the tag's layout
    """
    if atyp == ADDR_TYPE_IPV4:
        if len(raw) != IPV4_LENGTH:
            raise MalformedAddressError(f"IPv4 address needs {IPV4_LENGTH} bytes, got {len(raw)}")
        return ".".join(str(octet) for octet in raw)

    if atyp == ADDR_TYPE_DOMAIN:
        if not raw or raw[0] != len(raw) - 1:
            raise MalformedAddressError("Domain length byte does not match domain bytes")
        if raw[0] == 0:
            raise MalformedAddressError("Empty domain name")
        try:
            return raw[1:].decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedAddressError(f"Domain name is not valid text: {e}") from e

    if atyp == ADDR_TYPE_IPV6:
        if len(raw) != IPV6_LENGTH:
            raise MalformedAddressError(f"IPv6 address needs {IPV6_LENGTH} bytes, got {len(raw)}")
        groups = struct.unpack("!8H", raw)
        return ":".join(f"{group:04x}" for group in groups)

    raise AddressTypeError(atyp)


def decode_port(raw: bytes) -> int:
    """Decode the big-endian DST.PORT field."""
    if len(raw) != PORT_LENGTH:
        raise MalformedAddressError(f"Port needs {PORT_LENGTH} bytes, got {len(raw)}")
    return struct.unpack("!H", raw)[0]


def resolve_address(atyp: int, raw_addr: bytes, raw_port: bytes) -> TargetAddress:
    """Decode both address fields into a TargetAddress."""
    return TargetAddress(host=decode_host(atyp, raw_addr), port=decode_port(raw_port))
