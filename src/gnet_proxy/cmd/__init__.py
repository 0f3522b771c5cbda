"""Command line interface modules.

This package provides the command-line tools for:
- Starting and stopping the proxy server
- Listing the local addresses clients connect to
- Displaying live traffic statistics
- Error reporting and logging

The command modules drive the core engine through its lifecycle
controller and never touch sockets themselves.
"""
