"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import sys
import time
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from hifi_cli import __version__
from hifi_cli.api.client import CatalogClient
from hifi_cli.core.download_manager import DownloadManager
from hifi_cli.core.player import (
    SOURCE_ALBUM_DETAIL,
    SOURCE_TRACK_DETAIL,
    PlaybackEngine,
    PlaybackSession,
    PlaybackState,
)
from hifi_cli.core.queue import DownloadQueue
from hifi_cli.exceptions import ConfigurationError
from hifi_cli.media.mpv import MpvBackend
from hifi_cli.models.catalog import AlbumDetail, Track
from hifi_cli.models.config import AppConfig
from hifi_cli.storage.config_manager import ConfigManager

from .formatters import (
    print_album_detail,
    print_album_results,
    print_config,
    print_summary_panel,
    print_track_results,
)
from .progress_manager import QueueDisplay, render_session

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
log = logging.getLogger("hifi_cli")

app = typer.Typer(
    name="hifi-cli",
    help=(
        "Search a lossless music catalog, preview tracks and download them as"
        " FLAC or MP3. Use 'hifi <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

VOLUME_STEP = 5


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "hifi-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict | None = None) -> AppConfig:
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


def _catalog(config: AppConfig) -> CatalogClient:
    return CatalogClient(config.api_base_url, config.album_api_url)


def _display_value(value):
    return value.value if isinstance(value, Enum) else value


def _config_as_dict(config: AppConfig) -> dict:
    return {
        key: _display_value(getattr(config, key)) for key in AppConfig.get_ini_keys()
    }


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
):
    """hifi-cli"""
    if version:
        console.print(f"[bold]hifi-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("hifi_cli").setLevel(log_level)

    if show_config:
        print_config(CONFIG_FILE, _config_as_dict(_load_config()))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def search(
    query: str = typer.Argument(..., help="Free-text search."),
    albums: bool = typer.Option(False, "--albums", "-a", help="Search albums instead of tracks."),
):
    """Search the catalog."""
    config = _load_config()

    async def _search_async():
        async with _catalog(config) as client:
            if albums:
                print_album_results(await client.search_albums(query))
            else:
                print_track_results(await client.search_tracks(query))

    asyncio.run(_search_async())


def _select(tracks: list[Track], picks: list[int]) -> list[Track]:
    selected = []
    for pick in picks:
        if 1 <= pick <= len(tracks):
            selected.append(tracks[pick - 1])
        else:
            console.print(f"[yellow]⚠️  No result #{pick}, skipping.[/yellow]")
    return selected


async def _offer_retry(queue: DownloadQueue) -> None:
    """Asks once whether failed jobs should be retried."""
    failed = list(queue.errored)
    if not failed or not sys.stdin.isatty():
        return
    if not typer.confirm(f"Retry {len(failed)} failed download(s)?", default=False):
        return
    async with QueueDisplay(console, queue):
        await asyncio.gather(*(queue.retry(job.id) for job in failed))


def _download_options(audio_format: str | None) -> dict:
    return {"download_format": audio_format} if audio_format else {}


@app.command(name="download")
def download_command(
    query: str = typer.Argument(..., help="Search query, or a track id with --id."),
    picks: list[int] | None = typer.Option(  # noqa: B008
        None,
        "-n",
        "--pick",
        help="Result number(s) to download. Repeat to download several at once.",
    ),
    by_id: bool = typer.Option(False, "--id", help="Treat QUERY as a track id."),
    audio_format: str | None = typer.Option(
        None, "-f", "--format", help="Output format: flac or mp3."
    ),
    output: Path | None = typer.Option(  # noqa: B008
        None, "-o", "--output", help="Destination folder."
    ),
):
    """Download one or more tracks."""
    config = _load_config(_download_options(audio_format))

    async def _download_async():
        async with _catalog(config) as client, DownloadManager(config) as manager:
            if by_id:
                if not query.isdigit():
                    raise ConfigurationError(f"'{query}' is not a track id.")
                tracks = [await client.fetch_track(int(query))]
                selected = tracks
            else:
                tracks = await client.search_tracks(query)
                selected = _select(tracks, picks or [1])
            if not selected:
                console.print("[yellow]Nothing to download.[/yellow]")
                raise typer.Exit(code=1)

            queue = DownloadQueue(config, manager, client)
            queue.set_results("search", tracks)

            start_time = time.monotonic()
            async with QueueDisplay(console, queue):
                await asyncio.gather(
                    *(queue.download(track, dest_dir=output) for track in selected)
                )
            await _offer_retry(queue)
            print_summary_panel(queue, time.monotonic() - start_time)

        if queue.errored:
            raise typer.Exit(code=1)

    asyncio.run(_download_async())


async def _fetch_album(client: CatalogClient, album: str) -> AlbumDetail:
    if album.isdigit():
        return await client.fetch_album_detail(int(album))
    results = await client.search_albums(album)
    if not results:
        console.print(f"[yellow]No album matches '{album}'.[/yellow]")
        raise typer.Exit(code=1)
    return await client.fetch_album_detail(results[0].id)


@app.command()
def album(
    album_ref: str = typer.Argument(..., metavar="ALBUM", help="Album id or search query."),
    audio_format: str | None = typer.Option(
        None, "-f", "--format", help="Output format: flac or mp3."
    ),
    output: Path | None = typer.Option(  # noqa: B008
        None, "-o", "--output", help="Destination folder (default: <download_dir>/albums/<title>)."
    ),
):
    """Download a whole album, one track after another."""
    config = _load_config(_download_options(audio_format))

    async def _album_async():
        async with _catalog(config) as client, DownloadManager(config) as manager:
            detail = await _fetch_album(client, album_ref)
            print_album_detail(detail)
            if not detail.tracks:
                raise typer.Exit(code=1)

            queue = DownloadQueue(config, manager, client)
            queue.set_results("album", detail.tracks)
            destination = output or queue.album_folder(detail.album.title)
            console.print(f"[cyan]Saving to[/cyan] [dim]{destination}[/dim]")

            start_time = time.monotonic()
            async with QueueDisplay(console, queue):
                await queue.download_album(detail.tracks, destination)
            await _offer_retry(queue)
            print_summary_panel(queue, time.monotonic() - start_time)

        if queue.errored:
            raise typer.Exit(code=1)

    asyncio.run(_album_async())


class _PlayerSession:
    """Drives a PlaybackEngine from the terminal until playback is over."""

    def __init__(self, engine: PlaybackEngine, live: Live):
        self.engine = engine
        self.live = live
        self.finished = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._last_state = engine.session.state
        engine.subscribe(self.on_session_changed)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def on_session_changed(self, session: PlaybackSession) -> None:
        self.live.update(render_session(session))
        if session.state is not self._last_state:
            self._last_state = session.state
            if session.state is PlaybackState.ENDED:
                if session.has_next:
                    self._spawn(self.engine.next())
                else:
                    self.finished.set()
            elif session.state is PlaybackState.FAILED:
                self.finished.set()

    def on_command(self, line: str) -> None:
        engine, session = self.engine, self.engine.session
        command, _, argument = line.strip().partition(" ")
        if command == "p" and session.is_paused:
            engine.resume()
        elif command == "p":
            engine.pause()
        elif command == "n":
            self._spawn(engine.next())
        elif command == "b":
            self._spawn(engine.previous())
        elif command == "+":
            engine.set_volume(session.volume + VOLUME_STEP)
        elif command == "-":
            engine.set_volume(session.volume - VOLUME_STEP)
        elif command == "m":
            engine.toggle_mute()
        elif command == "s" and argument.replace(".", "", 1).isdigit():
            engine.seek(float(argument))
        elif command == "q":
            self.finished.set()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        interactive = sys.stdin.isatty()
        if interactive:
            loop.add_reader(
                sys.stdin.fileno(), lambda: self.on_command(sys.stdin.readline())
            )
        try:
            await self.finished.wait()
        finally:
            if interactive:
                loop.remove_reader(sys.stdin.fileno())
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)


async def _play(
    config: AppConfig,
    client: CatalogClient,
    track: Track,
    source: str,
    playlist: list[Track] | None = None,
    index: int | None = None,
):
    backend = MpvBackend(config.mpv_path)
    engine = PlaybackEngine(backend, client, volume=config.volume)
    try:
        with Live(render_session(engine.session), console=console, refresh_per_second=4) as live:
            session = _PlayerSession(engine, live)
            await engine.play_track(track, source, playlist, index)
            await session.run()
    finally:
        await engine.close()


@app.command()
def play(
    query: str = typer.Argument(..., help="Search query, or a track id with --id."),
    pick: int = typer.Option(1, "-n", "--pick", help="Result number to play."),
    by_id: bool = typer.Option(False, "--id", help="Treat QUERY as a track id."),
):
    """Stream a single track through mpv."""
    config = _load_config()

    async def _play_async():
        async with _catalog(config) as client:
            if by_id:
                if not query.isdigit():
                    raise ConfigurationError(f"'{query}' is not a track id.")
                track = await client.fetch_track(int(query))
            else:
                selected = _select(await client.search_tracks(query), [pick])
                if not selected:
                    raise typer.Exit(code=1)
                track = selected[0]
            await _play(config, client, track, SOURCE_TRACK_DETAIL)

    asyncio.run(_play_async())


@app.command(name="play-album")
def play_album(
    album_ref: str = typer.Argument(..., metavar="ALBUM", help="Album id or search query."),
    start: int = typer.Option(1, "--start", "-s", help="Track number to start from."),
):
    """Stream an album through mpv, advancing track by track."""
    config = _load_config()

    async def _play_album_async():
        async with _catalog(config) as client:
            detail = await _fetch_album(client, album_ref)
            if not 1 <= start <= len(detail.tracks):
                console.print(f"[red]✗ The album has {len(detail.tracks)} tracks.[/red]")
                raise typer.Exit(code=1)
            index = start - 1
            await _play(
                config,
                client,
                detail.tracks[index],
                SOURCE_ALBUM_DETAIL,
                detail.tracks,
                index,
            )

    asyncio.run(_play_album_async())


@app.command()
def config(
    key: str | None = typer.Argument(None, help="Setting to show or change."),
    value: str | None = typer.Argument(None, help="New value for the setting."),
):
    """Show the configuration, or change one setting."""
    config_manager = ConfigManager(CONFIG_FILE)
    current = config_manager.load_config()

    if key is None:
        print_config(CONFIG_FILE, _config_as_dict(current))
        return

    if key not in AppConfig.get_ini_keys():
        console.print(
            f"[red]✗ Unknown setting '{key}'.[/red] "
            f"Known settings: {', '.join(sorted(AppConfig.get_ini_keys()))}"
        )
        raise typer.Exit(code=1)

    if value is None:
        console.print(f"{key} = {_display_value(getattr(current, key))}")
        return

    updated = config_manager.update(**{key: value})
    console.print(
        f"[green]✓ {key} = {_display_value(getattr(updated, key))}[/green] [dim]({CONFIG_FILE})[/dim]"
    )
