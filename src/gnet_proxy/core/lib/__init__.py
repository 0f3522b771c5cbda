"""Core proxy library components."""

from .dispatcher import ConnectionDispatcher
from .events import EventLog, LogEvent, LogSink, MemoryLogSink, Severity
from .http_handler import HttpProxyHandler
from .proxy_server import ProxyServer
from .proxy_stats import ProxyStats, proxy_stats
from .registry import Connection, ConnectionRegistry
from .relay import relay
from .socks_handler import Socks5ProxyHandler

__all__ = [
    "Connection",
    "ConnectionDispatcher",
    "ConnectionRegistry",
    "EventLog",
    "HttpProxyHandler",
    "LogEvent",
    "LogSink",
    "MemoryLogSink",
    "ProxyServer",
    "ProxyStats",
    "Severity",
    "Socks5ProxyHandler",
    "proxy_stats",
    "relay",
]
