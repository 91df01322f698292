"""
Writes catalog metadata as tags to downloaded FLAC and MP3 files.
"""

import logging
from pathlib import Path
from typing import Any, Dict

import mutagen.id3 as id3
from mutagen import MutagenError
from mutagen.flac import FLAC
from mutagen.id3 import ID3NoHeaderError

from hifi_cli.models.catalog import Track

log = logging.getLogger(__name__)

COPYRIGHT, PHON_COPYRIGHT = "©", "℗"


class Tagger:
    """Writes metadata tags to MP3 and FLAC files in place."""

    def tag_file(self, file_path: Path, track: Track) -> bool:
        """
        Tags `file_path` according to its extension. Returns False (after
        logging) when the file cannot be tagged; the file itself is untouched
        in that case.
        """
        suffix = file_path.suffix.lower()
        try:
            if suffix == ".mp3":
                self._tag_mp3(file_path, track)
            elif suffix == ".flac":
                self._tag_flac(file_path, track)
            else:
                log.debug(f"No tagger for '{file_path.name}'.")
                return False
            return True
        except (MutagenError, OSError) as e:
            log.warning(
                f"[yellow]Failed to tag file '{file_path.name}': {e}[/yellow]",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            return False

    def _get_common_tags(self, track: Track) -> Dict[str, Any]:
        """Gathers and formats tags common to both MP3 and FLAC."""
        copyright_str = track.copyright
        return {
            "title": track.title,
            "album": track.album.title,
            "artist": track.artist_names,
            "albumartist": track.artist.name,
            "isrc": track.isrc or None,
            "bpm": str(track.bpm) if track.bpm else None,
            "copyright": copyright_str.replace("(P)", PHON_COPYRIGHT).replace(
                "(C)", COPYRIGHT
            )
            if copyright_str
            else None,
            "itunesadvisory": "1" if track.explicit else None,
        }

    def _tag_flac(self, path: Path, track: Track):
        audio = FLAC(path)
        for key, value in self._get_common_tags(track).items():
            if value:
                audio[key.upper()] = (
                    [str(v) for v in value] if isinstance(value, list) else [value]
                )
        audio.save()

    def _tag_mp3(self, path: Path, track: Track):
        try:
            audio = id3.ID3(path)
        except ID3NoHeaderError:
            audio = id3.ID3()

        tags = self._get_common_tags(track)
        audio.add(id3.TIT2(encoding=3, text=tags["title"]))
        audio.add(id3.TALB(encoding=3, text=tags["album"]))
        audio.add(id3.TPE1(encoding=3, text=tags["artist"]))
        audio.add(id3.TPE2(encoding=3, text=tags["albumartist"]))
        if tags["isrc"]:
            audio.add(id3.TSRC(encoding=3, text=tags["isrc"]))
        if tags["bpm"]:
            audio.add(id3.TBPM(encoding=3, text=tags["bpm"]))
        if tags["copyright"]:
            audio.add(id3.TCOP(encoding=3, text=tags["copyright"]))
        if tags["itunesadvisory"]:
            audio.add(id3.TXXX(encoding=3, desc="ITUNESADVISORY", text="1"))

        audio.save(filename=path, v2_version=3)
