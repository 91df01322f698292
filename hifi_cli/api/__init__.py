"""
Catalog API Layer.

This package handles all communication with the remote music catalog.
"""

from .client import CatalogClient
from .manifest import parse_album_detail, parse_track_source

__all__ = ["CatalogClient", "parse_album_detail", "parse_track_source"]
