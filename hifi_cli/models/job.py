"""
The lifecycle record of a single download request.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from hifi_cli.exceptions import InvalidTransitionError

from .quality import AudioFormat


class JobStatus(str, Enum):
    DOWNLOADING = "downloading"
    CONVERTING = "converting"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.DOWNLOADING, JobStatus.CONVERTING)


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.CANCELLED}
)
RETRYABLE_STATUSES = frozenset({JobStatus.ERROR, JobStatus.CANCELLED})

_ALLOWED_TRANSITIONS = {
    JobStatus.DOWNLOADING: {
        JobStatus.CONVERTING,
        JobStatus.COMPLETED,
        JobStatus.ERROR,
        JobStatus.CANCELLED,
    },
    JobStatus.CONVERTING: {
        JobStatus.COMPLETED,
        JobStatus.ERROR,
        JobStatus.CANCELLED,
    },
}


@dataclass
class DownloadJob:
    """
    A queued download. `filename` is what the queue displays and may change
    once the orchestrator reports the collision-free final name;
    `requested_filename` never changes and is the key progress events,
    cancellation and retry match against.
    """

    id: str
    requested_filename: str
    destination_dir: Path
    audio_format: AudioFormat
    filename: str = ""
    progress: float = 0.0
    status: JobStatus = JobStatus.DOWNLOADING
    error: Optional[str] = None
    path: Optional[Path] = None
    track_title: str = field(default="", compare=False)

    def __post_init__(self):
        if not self.filename:
            self.filename = self.requested_filename

    def transition(self, status: JobStatus) -> None:
        """Moves the job forward, rejecting transitions the lifecycle forbids."""
        if status not in _ALLOWED_TRANSITIONS.get(self.status, ()):
            raise InvalidTransitionError(
                f"Job {self.id} cannot move from {self.status.value} to {status.value}."
            )
        self.status = status
        if status is JobStatus.CONVERTING:
            self.progress = 0.0

    def update_progress(self, percentage: float) -> bool:
        """
        Records transfer progress. Only applies while downloading and never
        moves backwards. Returns True when the stored value changed.
        """
        if self.status is not JobStatus.DOWNLOADING:
            return False
        percentage = min(100.0, max(0.0, float(percentage)))
        if percentage <= self.progress:
            return False
        self.progress = percentage
        return True

    def complete(self, path: Path, filename: str) -> None:
        self.transition(JobStatus.COMPLETED)
        self.path = path
        self.filename = filename
        self.progress = 100.0
        self.error = None

    def fail(self, message: str) -> None:
        self.transition(JobStatus.ERROR)
        self.error = message

    def reset(self) -> None:
        """
        Returns a failed or cancelled job to the start of its lifecycle for a
        retry. A completed job stays completed.
        """
        if self.status not in RETRYABLE_STATUSES:
            raise InvalidTransitionError(
                f"Job {self.id} cannot be retried from {self.status.value}."
            )
        self.status = JobStatus.DOWNLOADING
        self.progress = 0.0
        self.error = None
        self.path = None
        self.filename = self.requested_filename
