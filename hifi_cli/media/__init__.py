"""
Media Processing Layer.

This package is responsible for all media file operations: streaming audio
to disk, transcoding, metadata tagging, and the playback backend.
"""

from .converter import Transcoder
from .downloader import Downloader, create_download_session
from .tagger import Tagger

__all__ = ["Downloader", "Tagger", "Transcoder", "create_download_session"]
