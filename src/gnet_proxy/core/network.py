"""Network helpers for the proxy engine.

This module provides:
- Opening TCP connections to proxy targets, resolving hostnames first
- Listing local IPv4 addresses clients can use to reach the proxy

Connections are opened without a connect timeout. A target that never
answers keeps the handler thread blocked until the OS gives up or the
server is stopped.

Example:
    sock = open_connection("example.com", 80)
    for address in list_local_addresses():
        print(f"{address.interface}: {address.ip}")
"""

import ipaddress
import socket
from dataclasses import dataclass

import psutil

from gnet_proxy.core.exceptions import DNSResolutionError, UpstreamConnectError
from gnet_proxy.core.lib.dns_handler import DNSResolver, dns_resolver

# Interfaces that never carry client traffic
SKIPPED_PREFIXES = ("lo", "docker", "veth", "vmnet", "bridge", "utun")


@dataclass
class LocalAddress:
    """An IPv4 address assigned to an up interface.

    Attributes:
        interface: Interface name (e.g., 'wlan0', 'eth0')
        ip: IPv4 address assigned to the interface
    """

    interface: str
    ip: str


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def open_connection(
    host: str, port: int, resolver: DNSResolver | None = None
) -> socket.socket:
    """Open a TCP connection to a proxy target.

    Args:
        host: Hostname or IP literal
        port: Destination port
        resolver: Resolver for hostnames, defaults to the global one

    Returns:
        socket.socket: Connected blocking socket

    Raises:
        UpstreamConnectError: If resolution or the connect fails
    """
    resolver = resolver or dns_resolver
    address = host
    if not _is_ip_literal(host):
        try:
            address = resolver.resolve(host)
        except DNSResolutionError as e:
            raise UpstreamConnectError(str(e)) from e

    try:
        return socket.create_connection((address, port))
    except OSError as e:
        raise UpstreamConnectError(f"Could not connect to {host}:{port}: {e}") from e


def list_local_addresses() -> list[LocalAddress]:
    """List IPv4 addresses of up, non-virtual interfaces."""
    stats = psutil.net_if_stats()
    addresses = []
    for name, addrs in psutil.net_if_addrs().items():
        if name.startswith(SKIPPED_PREFIXES):
            continue

        iface_stats = stats.get(name)
        if not iface_stats or not iface_stats.isup:
            continue

        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            if addr.address.startswith(("127.", "169.254.")):
                continue
            addresses.append(LocalAddress(interface=name, ip=addr.address))

    return addresses
