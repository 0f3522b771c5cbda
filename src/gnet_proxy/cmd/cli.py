"""Command-line interface for the proxy server.

This module provides the main command-line interface, handling:
- Command-line argument parsing
- Logging setup
- Configuration from options and environment variables
- Error reporting

The CLI is built using Typer and provides:
- ``proxy``: start an HTTP or SOCKS5 proxy on one port
- ``addresses``: list the local addresses clients can connect to

Example:
    # Run from command line:
    $ gnet-proxy proxy --kind socks5 --port 1080
    $ GNET_PROXY_KIND=http gnet-proxy proxy --ui
"""

import typer
from loguru import logger
from rich.console import Console

from gnet_proxy import __version__
from gnet_proxy.cmd.addresses import show_addresses
from gnet_proxy.cmd.serve import run_proxy
from gnet_proxy.core.config import DEFAULT_PORT, MAX_PORT, MIN_PORT, ProxyConfiguration, ProxyKind
from gnet_proxy.core.exceptions import BindError
from gnet_proxy.core.utils.log_config import configure_logging

console = Console()
app = typer.Typer(help="Local forward proxy speaking HTTP or SOCKS5 on a single port")


@app.callback(invoke_without_command=True)
def version_callback() -> None:
    """Show version information."""
    console.print(f"[cyan]GNet Proxy v{__version__}[/cyan]")


@app.command(name="proxy")
def start_proxy(
    kind: ProxyKind = typer.Option(
        ProxyKind.HTTP,
        "--kind",
        "-k",
        envvar="GNET_PROXY_KIND",
        case_sensitive=False,
        help="Protocol to speak on the port",
    ),
    port: int = typer.Option(
        DEFAULT_PORT,
        "--port",
        "-p",
        envvar="GNET_PROXY_PORT",
        min=MIN_PORT,
        max=MAX_PORT,
        help="Port to listen on",
    ),
    ui: bool = typer.Option(default=False, help="Show the live status panel"),
    copy: bool = typer.Option(default=False, help="Copy the proxy address to the clipboard"),
    debug: bool = typer.Option(default=False, help="Enable debug logging"),
) -> None:
    """Start the proxy server."""
    log_file = configure_logging(debug=debug)
    logger.debug(f"Writing logs to {log_file}")

    config = ProxyConfiguration(kind=kind, port=port, active=True)
    logger.info(f"Starting {config.kind.name} proxy server on port {config.port}")

    try:
        run_proxy(config, show_ui=ui, copy_address=copy)
    except BindError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from e
    except Exception as e:
        logger.exception("Error running proxy server")
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from e


@app.command(name="addresses")
def addresses(
    port: int | None = typer.Option(None, "--port", "-p", help="Proxy port to show"),
) -> None:
    """List local addresses clients can use to reach the proxy."""
    show_addresses(port)


if __name__ == "__main__":
    app()
