"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import sys
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from repack_sync import __version__
from repack_sync.core.sync import SyncService
from repack_sync.exceptions import RepackSyncError
from repack_sync.models.config import SyncConfig
from repack_sync.storage.cache import DocumentCache
from repack_sync.storage.config_manager import ConfigManager

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_import_summary,
    print_repacks_table,
    print_sources_table,
    print_sync_report,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("repack_sync")

app = typer.Typer(
    name="repack-sync",
    help=(
        "Import download-source manifests, match their repacks against a catalog,"
        " and keep them in sync. Use 'repack-sync <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if override := os.getenv("REPACK_SYNC_CONFIG_DIR"):
        return Path(override).expanduser()
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "repack-sync"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config() -> SyncConfig:
    return ConfigManager(CONFIG_FILE).load_config()


def _run(operation):
    """Runs a coroutine function with a service, rendering known errors."""

    async def _with_service():
        async with SyncService(_load_config()) as service:
            return await operation(service)

    try:
        return asyncio.run(_with_service())
    except RepackSyncError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the cached catalog documents and exit."
    ),
):
    """Download-source synchronization CLI"""
    if version:
        console.print(f"[bold]repack-sync[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("repack_sync").setLevel(log_level)

    if clear_cache:
        cache = DocumentCache(CONFIG_DIR)
        console.print("[cyan]Clearing catalog cache...[/cyan]")
        try:
            removed = cache.clear()
        except OSError as e:
            console.print(f"[red]✗ Failed to clear cache: {e}[/red]")
            raise typer.Exit(code=1) from e
        console.print(
            f"[green]✓ Cache cleared successfully ({removed} entries removed).[/green]"
        )
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]repack-sync init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        print_config(CONFIG_FILE, config_manager.read_settings())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    catalog_url: str = typer.Option(
        "", "--catalog-url", help="URL of the catalog document, bucketed by letter."
    ),
    title_hash_url: str = typer.Option(
        "", "--title-hash-url", help="URL of the title-hash to catalog id mapping."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {"catalog_url": catalog_url, "title_hash_url": title_hash_url}
    try:
        SyncConfig(**settings, config_path=str(CONFIG_DIR))
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except (ValueError, RepackSyncError) as e:
        console.print(f"[red]✗ Invalid settings: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    if not catalog_url:
        console.print(
            "[yellow]⚠️  No catalog URL set; repacks will only match through"
            " title hashes.[/yellow]"
        )
    console.print("Ready! Try: [cyan]repack-sync import <MANIFEST_URL>[/cyan]")


def _read_urls_from_stdin() -> list[str]:
    """Reads URLs from stdin, one per line."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Please pipe URLs or redirect"
            " a file.[/yellow]"
        )
        raise typer.Exit(code=1)

    urls = [
        line.strip()
        for line in sys.stdin
        if line.strip() and not line.strip().startswith("#")
    ]
    if not urls:
        console.print("[yellow]⚠️  No valid URLs found in stdin.[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Read {len(urls)} URLs from stdin.[/green]")
    return urls


@app.command(name="import")
def import_command(
    urls: list[str] | None = typer.Argument(  # noqa: B008
        None, help="One or more manifest URLs."
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Fail instead of skipping when a URL is already registered.",
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read URLs from standard input, one URL per line."
    ),
):
    """Import download sources from manifest URLs."""
    if stdin:
        urls = _read_urls_from_stdin()
    elif not urls:
        console.print(
            "[red]✗ No URLs provided.[/red] "
            "Use: [cyan]repack-sync import <URL>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)

    unique_urls = list(dict.fromkeys(urls))
    if len(unique_urls) < len(urls):
        log.info(f"Removed {len(urls) - len(unique_urls)} duplicate URLs.")

    async def _import(service: SyncService):
        imported = 0
        for url in unique_urls:
            console.print(f"[cyan]Importing[/cyan] [dim]{url}[/dim]")
            source = await service.import_source(url, fail_on_duplicate=strict)
            if source is None:
                console.print("[yellow]○ Already imported, skipping.[/yellow]")
                continue
            print_import_summary(source, service.ingestor.last_stats)
            imported += 1
        return imported

    imported = _run(_import)
    console.print(f"\n[bold green]✓ Imported {imported} new source(s).[/bold green]")


@app.command()
def refresh(source_id: int = typer.Argument(..., help="ID of the source.")):
    """Re-read a source's manifest and update its name, tag and count."""

    async def _refresh(service: SyncService):
        return await service.refresh_source(source_id)

    source = _run(_refresh)
    console.print(
        f"[green]✓ Refreshed '{source.name}' ({source.download_count} repacks "
        "listed).[/green]"
    )
    console.print(
        "[dim]Repacks are not re-imported by refresh; use "
        "[cyan]repack-sync sync[/cyan] to pull new entries.[/dim]"
    )


@app.command()
def sync():
    """Pull new repacks from every registered source."""

    async def _sync(service: SyncService):
        start_time = time.monotonic()
        report = await service.sync_all()
        return report, time.monotonic() - start_time

    report, duration = _run(_sync)
    print_sync_report(report, duration)
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def repair(
    source_id: int | None = typer.Argument(
        None, help="ID of the source. Omit to repair every incomplete source."
    ),
):
    """Re-ingest repacks missing after an interrupted import."""

    async def _repair(service: SyncService):
        if source_id is not None:
            return {source_id: await service.repair_source(source_id)}
        results = {}
        for source, stored_count in await service.find_incomplete_sources():
            console.print(
                f"[cyan]Repairing '{source.name}'[/cyan] "
                f"[dim]({stored_count}/{source.download_count} repacks stored)[/dim]"
            )
            results[source.id] = await service.repair_source(source.id)
        return results

    results = _run(_repair)
    if not results:
        console.print("[green]✓ All sources are complete.[/green]")
    for repaired_id, added in results.items():
        console.print(f"[green]✓ Source {repaired_id}: {added} repacks added.[/green]")


@app.command()
def sources():
    """List registered download sources."""

    async def _sources(service: SyncService):
        return await service.list_sources()

    print_sources_table(_run(_sources))


@app.command()
def repacks(
    source_id: int | None = typer.Option(
        None, "--source", "-s", help="Only show repacks of this source."
    ),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows to show."),
):
    """List stored repacks."""

    async def _repacks(service: SyncService):
        return await service.list_repacks(source_id)

    stored = _run(_repacks)
    print_repacks_table(stored[:limit], len(stored))


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        print_validation_table(_load_config())
    except RepackSyncError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def vacuum():
    """Optimize the local database."""

    async def _vacuum(service: SyncService):
        console.print("[cyan]Optimizing database...[/cyan]")
        await service.store.vacuum()

    _run(_vacuum)
    console.print("[green]✓ Database optimized.[/green]")
