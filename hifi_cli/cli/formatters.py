"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any, List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hifi_cli.core.queue import DownloadQueue
from hifi_cli.models.catalog import Album, AlbumDetail, Track
from hifi_cli.models.quality import get_quality_info
from hifi_cli.utils.formatting import format_duration, format_track_duration


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `hifi config` to see the current settings.",
        ],
        "CatalogNetworkError": [
            "• The catalog proxy might be temporarily unavailable.",
            "• Point `api_base_url` at another proxy with `hifi config`.",
            "• Please try again in a few minutes.",
        ],
        "TrackNotFoundError": [
            "• The id may be wrong, or the track was removed from the catalog.",
            "• Search again with `hifi search`.",
        ],
        "QualityUnavailableError": [
            "• The track is not offered at that quality tier.",
        ],
        "ResolutionFailure": [
            "• No quality tier of this track could be streamed.",
            "• The track may be region-locked.",
        ],
        "ConversionFailure": [
            "• Make sure ffmpeg is installed and `ffmpeg_path` points to it.",
            "• The lossless file was kept next to the intended MP3.",
        ],
        "MediaLoadError": [
            "• Make sure mpv is installed and `mpv_path` points to it.",
            "• The stream URL may have expired; try playing the track again.",
        ],
        "FilesystemFailure": [
            "• Check that the download folder exists and is writable.",
            "• Change `download_dir` with `hifi config`, or pass -o.",
        ],
        "NetworkFailure": [
            "• A network connection issue occurred.",
            "• Check your internet connection and retry the download.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

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
    content = "\n".join(f"{key} = {value}" for key, value in sorted(config_data.items()))
    console.print(
        Panel(
            content,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_track_results(tracks: List[Track], title: str = "Tracks"):
    """Displays numbered track search results."""
    console = Console()
    if not tracks:
        console.print("[yellow]No tracks found.[/yellow]")
        return

    table = Table(title=f"[bold]{title}[/bold]", box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Artist")
    table.add_column("Album", style="dim")
    table.add_column("Length", justify="right")
    table.add_column("Quality", style="magenta")
    table.add_column("ID", style="dim", justify="right")

    for i, track in enumerate(tracks, 1):
        title_text = f"{track.title} [red]E[/red]" if track.explicit else track.title
        table.add_row(
            str(i),
            title_text,
            ", ".join(track.artist_names),
            track.album.title,
            format_track_duration(track.duration),
            get_quality_info(track.best_quality)["name"],
            str(track.id),
        )
    console.print(table)


def print_album_results(albums: List[Album]):
    """Displays numbered album search results."""
    console = Console()
    if not albums:
        console.print("[yellow]No albums found.[/yellow]")
        return

    table = Table(title="[bold]Albums[/bold]", box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Artist")
    table.add_column("Tracks", justify="right")
    table.add_column("Released", style="dim")
    table.add_column("ID", style="dim", justify="right")

    for i, album in enumerate(albums, 1):
        table.add_row(
            str(i),
            album.title,
            album.artist_name,
            str(album.number_of_tracks),
            album.release_date[:4],
            str(album.id),
        )
    console.print(table)


def print_album_detail(detail: AlbumDetail):
    """Displays an album header followed by its track list."""
    album = detail.album
    Console().print(
        f"\n[bold cyan]{album.title}[/bold cyan] [dim]by[/dim] {album.artist_name}"
        f" [dim]({len(detail.tracks)} tracks)[/dim]"
    )
    print_track_results(detail.tracks, title="Track List")


def print_summary_panel(queue: DownloadQueue, duration_s: float):
    """Displays the final summary of a download session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{len(queue.completed)}[/bold green]"
    )
    if queue.errored:
        stats_table.add_row("✗ Failed:", f"[bold red]{len(queue.errored)}[/bold red]")
    if queue.cancelled:
        stats_table.add_row("○ Cancelled:", f"[yellow]{len(queue.cancelled)}[/yellow]")
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    for job in queue.completed:
        stats_table.add_row("", f"[dim]{job.path}[/dim]")
    for job in queue.errored:
        stats_table.add_row("", f"[red]{job.filename}: {job.error}[/red]")

    border_color = "green" if not queue.errored else "yellow"
    console.print()
    console.print(
        Panel(
            stats_table,
            title="🎵 [bold]Downloads Finished[/bold]",
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
