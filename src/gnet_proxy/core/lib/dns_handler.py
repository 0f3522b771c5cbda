"""Hostname resolution for upstream connections using dnspython."""

import socket
from typing import ClassVar, Final

import dns.exception
import dns.resolver
from loguru import logger

from gnet_proxy.core.exceptions import DNSResolutionError

# DNS resolver constants
DEFAULT_TIMEOUT: Final = 1.0  # seconds
DEFAULT_LIFETIME: Final = 3.0  # seconds
DEFAULT_NAMESERVERS: Final = [
    "1.1.1.1",  # Cloudflare
    "8.8.8.8",  # Google
    "9.9.9.9",  # Quad9
]


class DNSResolver:
    """Resolve hostnames with the system resolver, then public nameservers.

    One instance is shared by every connection thread, so it holds no
    per-lookup state: each nameserver query gets its own dnspython
    ``Resolver``.
    """

    # Shared across instances; entries never expire for the process lifetime
    _resolve_cache: ClassVar[dict[str, str]] = {}

    def __init__(self, nameservers: list[str] | None = None) -> None:
        self.nameservers = tuple(nameservers or DEFAULT_NAMESERVERS)

    @staticmethod
    def _build_resolver(nameserver: str) -> dns.resolver.Resolver:
        resolver = dns.resolver.Resolver(configure=False)
        resolver.timeout = DEFAULT_TIMEOUT
        resolver.lifetime = DEFAULT_LIFETIME
        resolver.nameservers = [nameserver]
        return resolver

    def _try_system_dns(self, domain: str) -> str | None:
        try:
            return socket.gethostbyname(domain)
        except (socket.gaierror, UnicodeError) as e:
            logger.debug(f"System DNS resolution failed for {domain}: {e}")
            return None

    def _try_nameservers(self, domain: str) -> str | None:
        for nameserver in self.nameservers:
            try:
                answer = self._build_resolver(nameserver).resolve(domain, "A")
                return str(answer[0])
            except dns.exception.DNSException as e:
                logger.debug(f"Nameserver {nameserver} failed for {domain}: {e}")
        return None

    def resolve(self, domain: str) -> str:
        """Resolve domain name to an IPv4 address.

        Args:
            domain: Domain name to resolve

        Returns:
            str: Resolved IP address

        Raises:
            DNSResolutionError: If every resolution method fails
        """
        if domain in self._resolve_cache:
            return self._resolve_cache[domain]

        ip = self._try_system_dns(domain) or self._try_nameservers(domain)
        if ip is None:
            raise DNSResolutionError(f"Could not resolve {domain} using any available method")

        self._resolve_cache[domain] = ip
        return ip

    @classmethod
    def clear_cache(cls) -> None:
        cls._resolve_cache.clear()


# Global resolver instance
dns_resolver = DNSResolver()
