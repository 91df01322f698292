"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class HifiCliError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(HifiCliError):
    """Raised for issues related to configuration loading or validation."""


class NetworkFailure(HifiCliError):
    """Raised when an audio transfer fails on the network."""


class ConversionFailure(HifiCliError):
    """Raised when the external encoder fails. The input file is left in place."""


class FilesystemFailure(HifiCliError):
    """Raised when the download file cannot be written or moved into place."""


class ResolutionFailure(HifiCliError):
    """Raised when a playable source URL cannot be obtained for a track."""


class TrackNotFoundError(ResolutionFailure):
    """Raised when the catalog does not know the requested track."""


class QualityUnavailableError(ResolutionFailure):
    """Raised when the track is not offered at the requested quality tier."""


class ManifestParseError(ResolutionFailure):
    """Raised when a track detail response matches no known shape."""


class CatalogNetworkError(NetworkFailure, ResolutionFailure):
    """Raised when a catalog request fails at the transport or server level."""


class DownloadInProgressError(HifiCliError):
    """Raised when a transfer for the same filename key is already running."""


class DownloadCancelledError(HifiCliError):
    """Raised by the orchestrator when an in-flight download was cancelled."""


class InvalidTransitionError(HifiCliError):
    """Raised when a download job is moved to a status it cannot reach."""


class MediaLoadError(HifiCliError):
    """Raised by a media backend when a source cannot be loaded or played."""
