"""
The orchestrator for individual track downloads: transfer, format conversion,
collision-free naming, progress reporting and cancellation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import aiohttp
from rich.markup import escape

from hifi_cli.exceptions import (
    DownloadCancelledError,
    DownloadInProgressError,
    FilesystemFailure,
)
from hifi_cli.media import Downloader, Tagger, Transcoder, create_download_session
from hifi_cli.models.catalog import Track
from hifi_cli.models.config import AppConfig
from hifi_cli.models.quality import AudioFormat
from hifi_cli.utils.path import create_dir, uniquify

log = logging.getLogger(__name__)

PHASE_TRANSFERRING = "transferring"
PHASE_CONVERTING = "converting"


@dataclass(frozen=True)
class ProgressEvent:
    """Progress of one transfer, keyed by the filename originally requested."""

    filename_key: str
    percentage: int
    phase: str = PHASE_TRANSFERRING


@dataclass(frozen=True)
class DownloadResult:
    final_path: Path
    final_filename: str


@dataclass
class _ActiveTransfer:
    key: str
    dest_dir: Path
    temp_path: Path
    output_path: Optional[Path] = None
    task: Optional[asyncio.Task] = None
    cancelled: bool = False
    last_percentage: int = field(default=-1, repr=False)

    def partial_paths(self) -> List[Path]:
        return [p for p in (self.temp_path, self.output_path) if p is not None]


def is_compressed_source(url: str) -> bool:
    """
    Guesses from the URL whether the catalog served MP3 rather than FLAC.
    The catalog almost always serves FLAC, so anything without an MP3
    marker counts as lossless.
    """
    url_lower = url.lower()
    return ".mp3" in url_lower or url_lower.endswith("mp3")


class DownloadManager:
    """
    Owns the registry of in-flight transfers and the HTTP session they share.
    Every public method is meant to be called from the single event loop that
    also drives the UI state, so progress callbacks run on that loop.
    """

    def __init__(
        self,
        config: AppConfig,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        transcoder: Optional[Transcoder] = None,
        tagger: Optional[Tagger] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config
        self.on_progress = on_progress
        self.transcoder = transcoder or Transcoder(config.ffmpeg_path)
        self.tagger = tagger or Tagger()
        self._session = session
        self._owns_session = session is None
        self._active: Dict[str, _ActiveTransfer] = {}

    async def __aenter__(self) -> "DownloadManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancels anything still running and closes the owned session."""
        for key in list(self._active):
            await self.cancel(key)
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            log.debug("Download session closed.")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_download_session()
            self._owns_session = True
        return self._session

    @property
    def active_keys(self) -> List[str]:
        return list(self._active)

    def is_active(self, filename_key: str) -> bool:
        return filename_key in self._active

    @staticmethod
    def ensure_directory(path: Union[str, Path]) -> bool:
        """Creates `path` recursively. Failures are logged, never raised."""
        try:
            create_dir(Path(path))
            return True
        except OSError as e:
            log.error(f"[red]Could not create directory '{escape(str(path))}': {e}[/red]")
            return False

    def _emit(self, entry: _ActiveTransfer, percentage: float, phase: str) -> None:
        rounded = int(round(percentage))
        if phase == PHASE_TRANSFERRING and rounded == entry.last_percentage:
            return
        entry.last_percentage = rounded
        if self.on_progress:
            self.on_progress(ProgressEvent(entry.key, rounded, phase))

    async def start_download(
        self,
        source_url: str,
        dest_dir: Union[str, Path],
        base_filename: str,
        preferred_format: AudioFormat,
        track: Optional[Track] = None,
    ) -> DownloadResult:
        """
        Downloads `source_url` into `dest_dir` under a collision-free name
        derived from `base_filename` and `preferred_format`.

        The returned filename may carry a " - N" suffix the caller did not
        know about when the download started.

        Raises:
            DownloadInProgressError: a transfer for `base_filename` is running.
            NetworkFailure: the transfer failed; the partial file is left.
            ConversionFailure: ffmpeg failed; the lossless file is kept.
            FilesystemFailure: the temp file cannot be written, or the downloaded
                file cannot be located afterwards.
            DownloadCancelledError: `cancel()` was called for this key.
        """
        key = base_filename
        if key in self._active:
            raise DownloadInProgressError(f"'{key}' is already being downloaded.")

        dest_dir = Path(dest_dir)
        self.ensure_directory(dest_dir)

        final_name = f"{Path(base_filename).stem}.{preferred_format.ext}"
        unique_final_path = uniquify(dest_dir / final_name)
        unique_base = unique_final_path.stem

        # Transfers always land in a lossless-named file first
        temp_path = dest_dir / f"{unique_base}.{AudioFormat.FLAC.ext}"
        if temp_path != unique_final_path and temp_path.exists():
            temp_path = uniquify(temp_path)

        entry = _ActiveTransfer(key=key, dest_dir=dest_dir, temp_path=temp_path)
        self._active[key] = entry
        log.debug(f"Starting transfer for '{key}' into '{temp_path.name}'.")

        try:
            downloader = Downloader(self._get_session())
            entry.task = asyncio.create_task(
                downloader.download_file(
                    source_url,
                    str(temp_path),
                    lambda pct: self._emit(entry, pct, PHASE_TRANSFERRING),
                )
            )
            await entry.task
            self._raise_if_cancelled(entry)

            wants_compressed = preferred_format is AudioFormat.MP3
            source_compressed = is_compressed_source(source_url)

            if wants_compressed and not source_compressed:
                entry.output_path = unique_final_path
                self._emit(entry, 0, PHASE_CONVERTING)
                entry.task = asyncio.create_task(
                    self.transcoder.transcode(temp_path, unique_final_path)
                )
                await entry.task
                self._raise_if_cancelled(entry)
                final_path = unique_final_path
            else:
                final_path = self._move_into_place(temp_path, unique_final_path)
        except asyncio.CancelledError:
            if entry.cancelled:
                raise DownloadCancelledError(f"Download of '{key}' was cancelled.") from None
            raise
        finally:
            if self._active.get(key) is entry:
                del self._active[key]

        if track is not None and self.config.embed_tags:
            await asyncio.to_thread(self.tagger.tag_file, final_path, track)

        log.info(f"[green]✓ Saved[/green] [dim]{escape(str(final_path))}[/dim]")
        return DownloadResult(final_path=final_path, final_filename=final_path.name)

    @staticmethod
    def _raise_if_cancelled(entry: _ActiveTransfer) -> None:
        if entry.cancelled:
            raise DownloadCancelledError(f"Download of '{entry.key}' was cancelled.")

    @staticmethod
    def _move_into_place(temp_path: Path, final_path: Path) -> Path:
        """Renames the temp file, falling back to the temp name if that fails."""
        if temp_path == final_path:
            return final_path
        try:
            temp_path.replace(final_path)
            return final_path
        except OSError as e:
            if temp_path.exists():
                log.warning(
                    f"[yellow]Could not rename '{escape(temp_path.name)}' to "
                    f"'{escape(final_path.name)}': {e}. Keeping the original name.[/yellow]"
                )
                return temp_path
            raise FilesystemFailure(
                f"Downloaded file '{temp_path.name}' could not be moved into place: {e}"
            ) from e

    async def cancel(
        self, filename_key: str, dest_dir: Optional[Union[str, Path]] = None
    ) -> bool:
        """
        Aborts the transfer or conversion running for `filename_key`, waits for
        its file handle to close and removes the partial files it was writing.
        When `dest_dir` is given, only a transfer into that directory matches.
        Returns False (and does nothing) when no such transfer is running, which
        makes repeated or late cancellation harmless.
        """
        entry = self._active.get(filename_key)
        if entry is None or (dest_dir is not None and Path(dest_dir) != entry.dest_dir):
            log.debug(f"No active transfer for '{filename_key}' to cancel.")
            return False
        del self._active[filename_key]

        entry.cancelled = True
        if entry.task and not entry.task.done():
            entry.task.cancel()
            await asyncio.wait([entry.task])

        for partial in entry.partial_paths():
            try:
                partial.unlink(missing_ok=True)
            except OSError as e:
                log.debug(f"Could not remove partial file '{partial}': {e}")

        log.info(f"[yellow]Cancelled download of '{escape(filename_key)}'.[/yellow]")
        return True
