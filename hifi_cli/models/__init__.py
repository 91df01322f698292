"""
Data Models Layer.

This package contains the data structures used throughout the application:
catalog entities, download jobs, quality tiers and configuration.
"""

from .catalog import Album, AlbumDetail, Track, TrackSource
from .config import AppConfig
from .job import DownloadJob, JobStatus
from .quality import AudioFormat, QualityTier

__all__ = [
    "Album",
    "AlbumDetail",
    "AppConfig",
    "AudioFormat",
    "DownloadJob",
    "JobStatus",
    "QualityTier",
    "Track",
    "TrackSource",
]
