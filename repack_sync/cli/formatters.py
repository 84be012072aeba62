"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from repack_sync.models.config import SyncConfig
from repack_sync.models.records import DownloadSource, DownloadSourceStatus, Repack
from repack_sync.models.stats import MatchStats, SyncReport
from repack_sync.utils.formatting import format_object_ids, format_timestamp, truncate


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "DuplicateSourceError": [
            "• This URL is already registered as a download source.",
            "• Use `repack-sync sync` to pull new repacks from existing sources.",
        ],
        "ManifestValidationError": [
            "• The URL did not return a valid download-source manifest.",
            "• Check that the URL points at the raw JSON document.",
        ],
        "NetworkError": [
            "• A network connection issue occurred.",
            "• The download source might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "StorageError": [
            "• The local database could not be read or written.",
            "• Check free disk space and permissions of the config directory.",
            "• If an import was interrupted, run `repack-sync repair <ID>`.",
        ],
        "SourceNotFoundError": [
            "• List registered sources and their ids with `repack-sync sources`.",
        ],
        "ConfigurationError": [
            "• Run `repack-sync init` to create a configuration file.",
            "• Run `repack-sync validate` to check the current settings.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        content += f"{key} = {value if value != '' else '[dim](unset)[/dim]'}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: SyncConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Catalog:", config.catalog_url or "[yellow]✗ Not set[/yellow]")
    table.add_row(
        "Title Hashes:", config.title_hash_url or "[yellow]✗ Not set[/yellow]"
    )
    table.add_row("Request Timeout:", f"{config.request_timeout}s")
    table.add_row("Max Retries:", str(config.max_retries))
    table.add_row("Cache Max Age:", f"{config.cache_max_age_days} day(s)")
    table.add_row("Database:", f"[dim]{config.database_file}[/dim]")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def _status_markup(status: DownloadSourceStatus) -> str:
    if status == DownloadSourceStatus.UP_TO_DATE:
        return "[green]up to date[/green]"
    return "[red]errored[/red]"


def print_sources_table(sources: list[DownloadSource]):
    """Displays every registered download source."""
    console = Console()
    if not sources:
        console.print(
            "[dim]No download sources yet. Add one with "
            "[cyan]repack-sync import <URL>[/cyan].[/dim]"
        )
        return

    table = Table(title="Download Sources", box=box.ROUNDED)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("URL", overflow="fold")
    table.add_column("Repacks", justify="right", style="green")
    table.add_column("Matched", justify="right", style="magenta")
    table.add_column("Status")
    table.add_column("Updated", style="dim")

    for source in sources:
        table.add_row(
            str(source.id),
            source.name,
            source.url,
            str(source.download_count),
            str(len(source.object_ids)),
            _status_markup(source.status),
            format_timestamp(source.updated_at),
        )
    console.print(table)


def print_repacks_table(repacks: list[Repack], total: int):
    """Displays stored repacks with their matched catalog ids."""
    console = Console()
    if not repacks:
        console.print("[dim]No repacks stored.[/dim]")
        return

    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Uploaded", style="dim")
    table.add_column("Repacker")
    table.add_column("Catalog IDs", style="magenta")

    for repack in repacks:
        table.add_row(
            str(repack.id),
            truncate(repack.title),
            repack.file_size,
            repack.upload_date,
            repack.repacker,
            format_object_ids(repack.object_ids),
        )
    console.print(table)
    if total > len(repacks):
        console.print(f"[dim]Showing {len(repacks)} of {total} repacks.[/dim]")


def _match_stats_rows(table: Table, stats: MatchStats):
    table.add_row("Hash Matches:", f"[green]{stats.hash_matches}[/green]")
    table.add_row("Fuzzy Matches:", f"[cyan]{stats.fuzzy_matches}[/cyan]")
    table.add_row("Unmatched:", f"[yellow]{stats.no_matches}[/yellow]")


def print_import_summary(source: DownloadSource, stats: MatchStats):
    """Displays the outcome of a single import."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()

    table.add_row("Source ID:", str(source.id))
    table.add_row("Repacks:", f"[bold green]{source.download_count}[/bold green]")
    table.add_row("Catalog IDs:", str(len(source.object_ids)))
    _match_stats_rows(table, stats)

    console.print(
        Panel(
            table,
            title=f"✓ [bold]{source.name}[/bold]",
            border_style="green",
            expand=False,
        )
    )


def print_sync_report(report: SyncReport, duration_s: float):
    """Displays the outcome of a full synchronization run."""
    console = Console()
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Source", style="cyan")
    table.add_column("Result")

    for result in report.results:
        if result.error:
            outcome = f"[red]✗ {result.error}[/red]"
        elif result.not_modified:
            outcome = "[dim]unchanged[/dim]"
        elif result.new_repacks:
            outcome = f"[green]+{result.new_repacks} repacks[/green]"
        else:
            outcome = "[dim]no new repacks[/dim]"
        table.add_row(str(result.source_id), result.name, outcome)

    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column(style="bold cyan", justify="right")
    summary.add_column()
    summary.add_row("New Repacks:", f"[bold green]{report.new_repacks}[/bold green]")
    if report.failed:
        summary.add_row("Failed Sources:", f"[bold red]{len(report.failed)}[/bold red]")
    _match_stats_rows(summary, report.match_stats)
    summary.add_row("Time Elapsed:", f"[blue]{duration_s:.1f}s[/blue]")

    console.print(table)
    console.print(
        Panel(
            summary,
            title="🔄 [bold]Sync Complete[/bold]",
            border_style="red" if report.failed else "green",
            box=box.DOUBLE,
            expand=False,
        )
    )
