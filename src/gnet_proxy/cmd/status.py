"""Live status panel for a running proxy.

Renders a Rich panel that refreshes from the global traffic counters:
- Proxy kind and listening endpoint
- Current bandwidth with a spinner
- Active and total connection counts
- Total data transferred in each direction

The panel runs on a daemon thread and stops when ``stop()`` is called or
the process exits.
"""

import threading
import time

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from gnet_proxy.core.config import ProxyConfiguration
from gnet_proxy.core.lib.proxy_stats import ProxyStats, proxy_stats
from gnet_proxy.core.utils.utils import format_bytes

console = Console()

# Bandwidth changes smaller than this are not redrawn
BANDWIDTH_THRESHOLD = 100  # bytes


class StatusPanel:
    """Terminal status panel for the proxy server."""

    def __init__(
        self,
        config: ProxyConfiguration,
        endpoint: str,
        stats: ProxyStats | None = None,
        refresh_rate: float = 0.5,
    ) -> None:
        self.config = config
        self.endpoint = endpoint
        self.stats = stats or proxy_stats
        self.refresh_rate = refresh_rate
        self._last_bandwidth = 0.0
        self._start_time = time.monotonic()
        self._spinner = Spinner("dots", text="")
        self._stop = threading.Event()

    def _generate_table(self) -> Table:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Property", style="cyan", no_wrap=True)
        table.add_column("Value", style="green", no_wrap=True)

        bandwidth = self.stats.get_bandwidth()
        if abs(bandwidth - self._last_bandwidth) > BANDWIDTH_THRESHOLD or bandwidth == 0:
            self._last_bandwidth = bandwidth

        snapshot = self.stats.snapshot()
        spinner_text = self._spinner.render(time.monotonic() - self._start_time)

        table.add_row(
            "Bandwidth", Text.assemble(spinner_text, f" {format_bytes(self._last_bandwidth)}/s")
        )
        table.add_row("Active Connections", str(snapshot.active_connections))
        table.add_row("Total Connections", str(snapshot.total_connections))
        table.add_row("Sent", format_bytes(snapshot.bytes_sent))
        table.add_row("Received", format_bytes(snapshot.bytes_received))
        return table

    def render(self) -> Panel:
        title = Text(f"{self.config.kind.name} Proxy: {self.endpoint}", style="bold cyan")
        return Panel(
            self._generate_table(),
            title=title,
            subtitle="Press Ctrl+C to stop",
            border_style="blue",
            padding=(1, 2),
        )

    def run(self) -> None:
        with Live(self.render(), console=console, auto_refresh=False, transient=True) as live:
            while not self._stop.is_set():
                live.update(self.render(), refresh=True)
                self._stop.wait(self.refresh_rate)

    def start(self) -> threading.Thread:
        thread = threading.Thread(target=self.run, name="status-panel", daemon=True)
        thread.start()
        return thread

    def stop(self) -> None:
        self._stop.set()
