"""
Utilities for building destination filenames and keeping them collision-free.
"""

import logging
import re
from pathlib import Path
from typing import Union

from pathvalidate import sanitize_filename

log = logging.getLogger(__name__)

# Characters the catalog's naming scheme strips from artist and title
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def generate_filename(artist: str, title: str, extension: str = "flac") -> str:
    """Builds the "artist - title.ext" name used for downloaded tracks."""
    safe_artist = _UNSAFE_CHARS.sub("", artist)
    safe_title = _UNSAFE_CHARS.sub("", title)
    return sanitize_filename(f"{safe_artist} - {safe_title}.{extension}", platform="auto")


def album_folder_name(album_title: str) -> str:
    """Sanitizes an album title for use as a directory name."""
    cleaned = re.sub(r'[\\/:*?"<>|]', "-", album_title).strip()
    return sanitize_filename(cleaned, platform="auto") or "Unknown Album"


def uniquify(path: Union[str, Path]) -> Path:
    """
    Returns `path` unchanged if nothing exists there, otherwise the first
    free "base - N.ext" sibling with N starting at 2.

    Only checks for existence; two callers racing on the same directory can
    still receive the same answer.
    """
    path = Path(path)
    if not path.exists():
        return path

    directory, stem, suffix = path.parent, path.stem, path.suffix
    counter = 2
    candidate = directory / f"{stem} - {counter}{suffix}"
    while candidate.exists():
        counter += 1
        candidate = directory / f"{stem} - {counter}{suffix}"

    log.debug(f"'{path.name}' exists, using '{candidate.name}' instead.")
    return candidate
