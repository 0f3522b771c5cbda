"""Proxy configuration snapshot.

The configuration is read once when the server starts. Changing any field
means building a new snapshot and going through a stop/start cycle; the
running server never looks at a live, mutable configuration object.

Example:
    config = ProxyConfiguration(kind="socks5", port=1080, active=True)
    controller.apply(config)
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Final

DEFAULT_PORT: Final = 8080
MIN_PORT: Final = 1
MAX_PORT: Final = 65535


class ProxyKind(str, Enum):
    """Protocol spoken on the listening port."""

    HTTP = "http"
    SOCKS5 = "socks5"

    @classmethod
    def parse(cls, value: "str | ProxyKind") -> "ProxyKind":
        """Coerce a case-insensitive name into a ProxyKind."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            msg = f"Unknown proxy kind: {value!r} (expected 'http' or 'socks5')"
            raise ValueError(msg) from None


@dataclass(frozen=True)
class ProxyConfiguration:
    """Immutable proxy settings.

    Attributes:
        kind: Protocol spoken on the port
        port: TCP port to listen on (1-65535)
        active: Whether the proxy should be running
    """

    kind: ProxyKind = ProxyKind.HTTP
    port: int = DEFAULT_PORT
    active: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ProxyKind.parse(self.kind))
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"port must be an integer, got {self.port!r}")
        if not MIN_PORT <= self.port <= MAX_PORT:
            raise ValueError(f"port must be between {MIN_PORT} and {MAX_PORT}")

    def with_active(self, active: bool) -> "ProxyConfiguration":
        """Return a copy of this snapshot with a different active flag."""
        return replace(self, active=active)
