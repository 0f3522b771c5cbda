"""Proxy server command interface.

This module provides a high-level interface for:
- Starting the proxy server through its lifecycle controller
- Showing where clients can reach it
- Copying the proxy address to the clipboard
- Optionally showing the live status panel
- Blocking until Ctrl+C, then stopping cleanly

Example:
    # Start a SOCKS5 proxy on port 1080
    run_proxy(ProxyConfiguration(kind="socks5", port=1080, active=True))
"""

import pyperclip
from prompt_toolkit.shortcuts import ProgressBar
from rich.console import Console

from gnet_proxy.cmd.status import StatusPanel
from gnet_proxy.core.config import ProxyConfiguration
from gnet_proxy.core.network import list_local_addresses
from gnet_proxy.core.proxy import ProxyController, create_controller
from gnet_proxy.core.utils.utils import format_endpoint

console = Console()


def _copy_to_clipboard(endpoint: str) -> None:
    try:
        pyperclip.copy(endpoint)
        console.print(f"[bold green]Proxy address {endpoint} copied to clipboard")
    except pyperclip.PyperclipException as e:
        console.print(f"[yellow]Could not copy to clipboard: {e}")


def _primary_endpoint(port: int) -> str:
    addresses = list_local_addresses()
    host = addresses[0].ip if addresses else "127.0.0.1"
    return format_endpoint(host, port)


def run_proxy(
    config: ProxyConfiguration,
    *,
    show_ui: bool = False,
    copy_address: bool = False,
    controller: ProxyController | None = None,
) -> None:
    """Run the proxy until interrupted.

    Args:
        config: Configuration snapshot to serve
        show_ui: Show the live status panel
        copy_address: Copy ``ip:port`` to the clipboard after starting
        controller: Controller to drive, built from ``config`` if omitted

    Raises:
        BindError: If the port cannot be bound
    """
    controller = controller or create_controller(config)

    with ProgressBar(title=f"Starting {config.kind.name} proxy on port {config.port}...") as pb:
        for _ in pb(range(1)):
            controller.on_start()

    endpoint = _primary_endpoint(config.port)
    console.print(f"[green]{config.kind.name} proxy server started on {endpoint}")
    if copy_address:
        _copy_to_clipboard(endpoint)

    panel = StatusPanel(config, endpoint) if show_ui else None
    if panel is not None:
        panel.start()

    try:
        controller.server.serve_forever()
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down proxy server...")
    finally:
        if panel is not None:
            panel.stop()
        controller.on_stop()
