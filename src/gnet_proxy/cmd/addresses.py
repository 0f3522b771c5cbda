"""Local address listing.

Shows the IPv4 addresses this machine can be reached on, so clients
(for example devices on a hotspot) know what to enter as their proxy
host. The table is built with Rich from the interface scan in
``gnet_proxy.core.network``.

Example:
    show_addresses(port=8080)
"""

from rich.console import Console
from rich.table import Table

from gnet_proxy.core.network import LocalAddress, list_local_addresses
from gnet_proxy.core.utils.utils import format_endpoint

console = Console()


def show_addresses(port: int | None = None) -> list[LocalAddress]:
    """Print a table of local addresses and return them.

    Args:
        port: Proxy port to show next to each address, if known

    Returns:
        list[LocalAddress]: The addresses that were listed
    """
    addresses = list_local_addresses()
    if not addresses:
        console.print("[yellow]No active network interface with an IPv4 address found")
        return addresses

    table = Table(title="Local Addresses")
    table.add_column("Interface", style="cyan")
    table.add_column("Address", style="green")
    if port is not None:
        table.add_column("Proxy Endpoint", style="magenta")

    for address in addresses:
        row = [address.interface, address.ip]
        if port is not None:
            row.append(format_endpoint(address.ip, port))
        table.add_row(*row)

    console.print(table)
    return addresses
