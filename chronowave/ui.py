"""Console display helpers - header, station table, on-air panel."""
from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .catalog import Track
from .config import APP_VERSION
from .engine import frequency_for
from .utils import fmt_size, fmt_time

console = Console()


def print_header():
    console.print(
        f"\n  [bold red]♪  CHRONO[/bold red][bold]WAVE[/bold]"
        f"  [dim]v{APP_VERSION}[/dim]"
    )


def print_stations(tracks: list[Track], is_default: bool = False):
    """Table of the dial: frequency, name, source and loop offset."""
    table = Table(box=None, padding=(0, 2), show_header=True, header_style="dim")
    table.add_column("MHz", justify="right", style="bold green")
    table.add_column("Station")
    table.add_column("Source", style="dim")
    table.add_column("Offset", justify="right", style="dim")

    for i, t in enumerate(tracks):
        source = f"local {fmt_size(len(t.payload))}" if t.payload is not None else "stream"
        table.add_row(frequency_for(i), t.name, source, fmt_time(t.offset_seed))

    title = "House stations" if is_default else f"{len(tracks)} stations"
    console.print(Panel(table, title=f"[bold green]≋[/bold green] {title}", border_style="green", expand=False))


def print_on_air(epoch_ms: float, host: str, port: int):
    started = datetime.fromtimestamp(epoch_ms / 1000).strftime("%H:%M:%S")
    console.print(
        f"  [green]●[/green] On air since [bold]{started}[/bold]"
        f"  ·  listeners connect to [bold cyan]ws://{host}:{port}/ws[/bold cyan]\n"
    )
