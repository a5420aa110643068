"""Startup preflight check"""
import tempfile

import httpx
from rich.console import Console

from .catalog import BlobRegistry, CatalogStore
from .config import APP_VERSION, DATA_DIR, DEFAULT_STATIONS
from .errors import StorageError

console = Console()


async def run_preflight(store: CatalogStore) -> bool:
    """
    Run all startup checks. Print results. Return True only if ALL pass.
    """
    console.print(f"\n  [bold]♪  ChronoWave v{APP_VERSION}[/bold] - preflight check\n")

    checks = [
        ("Python deps", _check_python_deps),
        ("Data directory", _check_data_dir),
        ("Catalog", lambda: _check_catalog(store)),
        ("House stations", _check_stations),
    ]

    results = []
    for i, (label, fn) in enumerate(checks, 1):
        ok, msg, fix = await fn()
        results.append((ok, label, msg, fix))
        icon = "[green]✓[/green]" if ok else "[red]✗[/red]"
        dot_count = 30 - len(label)
        dots = "." * max(dot_count, 3)
        status = f"[green]{msg}[/green]" if ok else f"[red]{msg}[/red]"
        console.print(f"  [{i}/{len(checks)}] {label} {dots} {icon} {status}")

    # Print fix instructions for any failures
    failures = [(label, fix) for ok, label, _, fix in results if not ok and fix]
    if failures:
        console.print("")
        for label, fix in failures:
            console.print(f"  [yellow]Fix for {label}:[/yellow]")
            for line in fix.strip().splitlines():
                console.print(f"    {line}")
            console.print("")
        console.print("  Then re-run: [bold]python radio.py[/bold]\n")
        return False

    console.print("")
    return True


async def _check_python_deps() -> tuple[bool, str, str]:
    missing = []
    versions = []
    try:
        import starlette
        versions.append(f"starlette {starlette.__version__}")
    except ImportError:
        missing.append("starlette")

    try:
        import uvicorn
        versions.append(f"uvicorn {uvicorn.__version__}")
    except ImportError:
        missing.append("uvicorn")

    versions.append(f"httpx {httpx.__version__}")

    try:
        import dotenv  # noqa: F401
        versions.append("python-dotenv")
    except ImportError:
        missing.append("python-dotenv")

    if missing:
        return False, f"missing: {', '.join(missing)}", "Run: pip install -e ."
    return True, ", ".join(versions), ""


async def _check_data_dir() -> tuple[bool, str, str]:
    try:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryFile(dir=DATA_DIR):
            pass
    except OSError as e:
        return False, "not writable", f"Can't write to {DATA_DIR}: {e}\nSet DATA_DIR in .env to a writable path."
    return True, str(DATA_DIR), ""


async def _check_catalog(store: CatalogStore) -> tuple[bool, str, str]:
    scope = BlobRegistry().scope()
    try:
        tracks = await store.get_all(scope.mint)
    except StorageError as e:
        return False, "unreadable", f"Catalog at {store.backend.path} failed to open: {e}"
    finally:
        scope.release()
    if not tracks:
        return True, "empty, house stations will play", ""
    return True, f"{len(tracks)} recordings", ""


async def _check_stations() -> tuple[bool, str, str]:
    """Remote stations are optional: an offline dial still starts."""
    reachable = 0
    async with httpx.AsyncClient(timeout=5, follow_redirects=True) as client:
        for station in DEFAULT_STATIONS:
            try:
                r = await client.head(station["address"])
                if r.status_code < 400:
                    reachable += 1
            except httpx.HTTPError:
                pass
    total = len(DEFAULT_STATIONS)
    if reachable == 0:
        return True, f"0/{total} reachable (offline?)", ""
    return True, f"{reachable}/{total} reachable", ""
