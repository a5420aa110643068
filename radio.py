"""ChronoWave - always-on simulated radio. Entry point."""
import asyncio
import logging
import sys

import uvicorn
from rich.logging import RichHandler

from chronowave.catalog import BlobRegistry
from chronowave.config import DEV_MODE, WEB_HOST, WEB_PORT
from chronowave.preflight import run_preflight
from chronowave.ui import console, print_header, print_on_air, print_stations
from chronowave.web import server


async def _startup() -> bool:
    ok = await run_preflight(server._store)
    if not ok:
        return False
    scope = BlobRegistry().scope()
    tracks = await server._registry.list_tracks(scope.mint)
    print_stations(tracks, server._registry.is_default(tracks))
    scope.release()
    return True


def main():
    logging.basicConfig(
        level=logging.DEBUG if DEV_MODE else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    print_header()
    app = server.create_app()

    if not asyncio.run(_startup()):
        sys.exit(1)

    print_on_air(server._clock.epoch_ms, WEB_HOST, WEB_PORT)
    uvicorn.run(app, host=WEB_HOST, port=WEB_PORT, log_config=None)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        console.print("\n\n  [bold]Signing off.[/bold] Goodbye.\n")
        sys.exit(0)
