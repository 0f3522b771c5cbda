"""Core proxy engine implementation.

This package contains the core components of the forward proxy:
- Protocol handlers (HTTP proxy and SOCKS5)
- The bidirectional byte relay
- Connection dispatching and the active connection registry
- The listening server and its lifecycle controller
- Configuration snapshots, parse outcomes and exceptions

The core package has no terminal or UI dependencies; hosting code (such as
the command line interface) drives it through ``ProxyController`` and
receives its log events through a ``LogSink``.
"""
