"""
The download queue: the list of jobs the user sees, their live progress and
ETA, and the cancel / retry / remove actions.
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from rich.markup import escape

from hifi_cli.exceptions import (
    ConversionFailure,
    DownloadCancelledError,
    DownloadInProgressError,
    FilesystemFailure,
    NetworkFailure,
    ResolutionFailure,
)
from hifi_cli.models.catalog import Track
from hifi_cli.models.config import AppConfig
from hifi_cli.models.job import RETRYABLE_STATUSES, DownloadJob, JobStatus
from hifi_cli.utils.path import album_folder_name, generate_filename

from .download_manager import PHASE_CONVERTING, DownloadManager, ProgressEvent
from .eta import EtaEstimator
from .resolver import SourceProvider, resolve_source

log = logging.getLogger(__name__)

SOURCE_UNAVAILABLE = "source unavailable"
SOURCE_NOT_FOUND = "source not found"


class DownloadQueue:
    """
    View-model over every download requested in this session.

    All mutation happens on the event loop: progress events arrive through
    `handle_progress`, which the download manager calls from that loop.
    """

    def __init__(
        self,
        config: AppConfig,
        manager: DownloadManager,
        catalog: SourceProvider,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.manager = manager
        self.manager.on_progress = self.handle_progress
        self.catalog = catalog
        self.jobs: List[DownloadJob] = []
        self._clock = clock
        self.eta = EtaEstimator(clock)
        # Requested filename -> id of the job whose transfer holds that key
        self._owners: Dict[str, str] = {}
        self._results: Dict[str, List[Track]] = {}
        self._listeners: List[Callable[[DownloadJob], None]] = []

    # Buckets
    @property
    def active(self) -> List[DownloadJob]:
        return [j for j in self.jobs if j.status.is_active]

    @property
    def completed(self) -> List[DownloadJob]:
        return [j for j in self.jobs if j.status is JobStatus.COMPLETED]

    @property
    def errored(self) -> List[DownloadJob]:
        return [j for j in self.jobs if j.status is JobStatus.ERROR]

    @property
    def cancelled(self) -> List[DownloadJob]:
        return [j for j in self.jobs if j.status is JobStatus.CANCELLED]

    def get(self, job_id: str) -> Optional[DownloadJob]:
        return next((j for j in self.jobs if j.id == job_id), None)

    def estimated_seconds(self, job_id: str) -> Optional[float]:
        return self.eta.estimate(job_id)

    def subscribe(self, listener: Callable[[DownloadJob], None]) -> None:
        """Registers a callback invoked with the job after every change."""
        self._listeners.append(listener)

    def _changed(self, job: DownloadJob) -> None:
        if not job.status.is_active:
            self.eta.discard(job.id)
        self.eta.retain_only(j.id for j in self.jobs if j.status.is_active)
        for listener in self._listeners:
            listener(job)

    # Loaded result sets, used to find a job's track again on retry
    def set_results(self, name: str, tracks: Iterable[Track]) -> None:
        self._results[name] = list(tracks)

    def clear_results(self, name: str) -> None:
        self._results.pop(name, None)

    def find_source_track(self, job: DownloadJob) -> Optional[Track]:
        for tracks in self._results.values():
            for track in tracks:
                name = generate_filename(
                    track.artist.name, track.title, job.audio_format.ext
                )
                if name == job.requested_filename:
                    return track
        return None

    def handle_progress(self, event: ProgressEvent) -> None:
        """
        Applies a progress event to the job whose transfer holds the event's
        filename key. Other jobs for the same track are left alone.
        """
        owner = self._owners.get(event.filename_key)
        job = self.get(owner) if owner else None
        if job is None or job.status.is_terminal:
            return
        if event.phase == PHASE_CONVERTING:
            if job.status is JobStatus.DOWNLOADING:
                job.transition(JobStatus.CONVERTING)
                self.eta.discard(job.id)
                self._changed(job)
        elif job.update_progress(event.percentage):
            self.eta.record(job.id, job.progress)
            self._changed(job)

    def album_folder(self, album_title: str) -> Path:
        """Proposed destination for a whole-album download."""
        return (
            self.config.resolve_download_dir() / "albums" / album_folder_name(album_title)
        )

    async def download(
        self,
        track: Track,
        url: Optional[str] = None,
        dest_dir: Optional[Union[str, Path]] = None,
    ) -> DownloadJob:
        """Queues a track and runs it to a terminal status."""
        audio_format = self.config.download_format
        job = DownloadJob(
            id=f"{track.id}-{uuid.uuid4().hex[:8]}",
            requested_filename=generate_filename(
                track.artist.name, track.title, audio_format.ext
            ),
            destination_dir=Path(dest_dir) if dest_dir else self.config.resolve_download_dir(),
            audio_format=audio_format,
            track_title=track.title,
        )
        self.jobs.append(job)
        self._changed(job)
        await self._run(job, track, url)
        return job

    async def download_album(
        self, tracks: List[Track], dest_dir: Optional[Union[str, Path]] = None
    ) -> List[DownloadJob]:
        """
        Downloads tracks one after another with a fixed pause between them so
        the catalog is not flooded.
        """
        destination = Path(dest_dir) if dest_dir else self.config.resolve_download_dir()
        self.manager.ensure_directory(destination)

        jobs = []
        for index, track in enumerate(tracks):
            jobs.append(await self.download(track, dest_dir=destination))
            if index < len(tracks) - 1:
                await asyncio.sleep(self.config.album_delay)
        return jobs

    async def _run(self, job: DownloadJob, track: Track, url: Optional[str]) -> None:
        if not url:
            try:
                url = (await resolve_source(self.catalog, track)).url
            except ResolutionFailure as e:
                log.error(f"[red]✗ {escape(job.filename)}: {e}[/red]")
                self._fail(job, SOURCE_UNAVAILABLE)
                return

        # Cancelled while the URL was being resolved
        if job.status is not JobStatus.DOWNLOADING:
            return

        key = job.requested_filename
        self._owners.setdefault(key, job.id)
        try:
            result = await self.manager.start_download(
                url,
                job.destination_dir,
                key,
                job.audio_format,
                track,
            )
        except DownloadCancelledError:
            if not job.status.is_terminal:
                job.transition(JobStatus.CANCELLED)
                self._changed(job)
            return
        except (
            NetworkFailure,
            ConversionFailure,
            FilesystemFailure,
            DownloadInProgressError,
        ) as e:
            log.error(f"[red]✗ Failed:[/] {escape(job.filename)} ({e})")
            self._fail(job, str(e))
            return
        finally:
            if self._owners.get(key) == job.id:
                del self._owners[key]

        if job.status.is_terminal:
            return
        job.complete(result.final_path, result.final_filename)
        self._changed(job)

    def _fail(self, job: DownloadJob, message: str) -> None:
        if job.status.is_terminal:
            return
        job.fail(message)
        self._changed(job)

    async def cancel(self, job_id: str) -> bool:
        """Cancels a running job. A job that already finished is left untouched."""
        job = self.get(job_id)
        if job is None or job.status.is_terminal:
            return False
        job.transition(JobStatus.CANCELLED)
        self._changed(job)
        # Only the job holding the key has a transfer to abort
        if self._owners.get(job.requested_filename) == job.id:
            await self.manager.cancel(job.requested_filename, job.destination_dir)
        return True

    async def retry(self, job_id: str) -> bool:
        """
        Re-runs a failed or cancelled job; completed jobs are left alone. The
        job's track is looked up again in the currently loaded result sets; if
        it is no longer there the retry fails with "source not found".
        """
        job = self.get(job_id)
        if job is None or job.status not in RETRYABLE_STATUSES:
            return False

        job.reset()
        self._changed(job)

        track = self.find_source_track(job)
        if track is None:
            log.warning(
                f"[yellow]Cannot retry '{escape(job.filename)}': its track is no "
                "longer in the loaded results.[/yellow]"
            )
            self._fail(job, SOURCE_NOT_FOUND)
            return False

        await self._run(job, track, None)
        return job.status is JobStatus.COMPLETED

    def remove(self, job_id: str) -> bool:
        """
        Drops a job from the list without touching any running transfer.
        Subscribers are notified so they can forget the job too.
        """
        job = self.get(job_id)
        if job is None:
            return False
        self.jobs.remove(job)
        self.eta.discard(job_id)
        for listener in self._listeners:
            listener(job)
        return True

    def clear_completed(self) -> int:
        before = len(self.jobs)
        self.jobs = [j for j in self.jobs if j.status is not JobStatus.COMPLETED]
        return before - len(self.jobs)

    def clear_all(self) -> None:
        self.jobs.clear()
        self._owners.clear()
        self.eta = EtaEstimator(self._clock)
