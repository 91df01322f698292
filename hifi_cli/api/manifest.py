"""
Normalizes the catalog's track-detail and album-detail responses.

The catalog has returned two shapes over time:

* ``object``: ``{"track": {...}, "manifest": {"OriginalTrackUrl": ..., ...}}``
* ``tuple``:  ``[{track}, {stream info}, {"OriginalTrackUrl": ...}]``

Each shape has exactly one normalizer, chosen by `detect_shape`. Anything else
is rejected with `ManifestParseError` instead of being searched blindly.
"""

import base64
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from hifi_cli.exceptions import ManifestParseError
from hifi_cli.models.catalog import Album, AlbumDetail, Track, TrackSource
from hifi_cli.models.quality import QualityTier

log = logging.getLogger(__name__)

URL_KEY = "OriginalTrackUrl"


def detect_shape(payload: Any) -> str:
    """Returns the discriminant of a track-detail payload."""
    if isinstance(payload, dict) and isinstance(payload.get("manifest"), dict):
        return "object"
    if isinstance(payload, list) and len(payload) >= 3 and isinstance(payload[2], dict):
        return "tuple"
    raise ManifestParseError(
        f"Unrecognized track detail response ({type(payload).__name__})."
    )


def _decode_mime_type(encoded: Optional[str]) -> Optional[str]:
    """Extracts the mime type from a base64 JSON manifest, if it is one."""
    if not encoded:
        return None
    try:
        decoded = json.loads(base64.b64decode(encoded))
    except (ValueError, TypeError):
        return None
    return decoded.get("mimeType") if isinstance(decoded, dict) else None


def _track_id(value: Any, requested: int) -> int:
    if value is None:
        return requested
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ManifestParseError(
            f"Invalid trackId {value!r} in response for track {requested}."
        ) from e


def _normalize_object(
    payload: Dict[str, Any], track_id: int, requested: Optional[QualityTier]
) -> TrackSource:
    manifest = payload["manifest"]
    url = manifest.get(URL_KEY)
    if not url:
        raise ManifestParseError(f"No playable URL in manifest for track {track_id}.")
    return TrackSource(
        track_id=_track_id(manifest.get("trackId"), track_id),
        url=url,
        quality=manifest.get("audioQuality"),
        requested_quality=requested,
        manifest_mime_type=_decode_mime_type(manifest.get("manifest")),
        shape="object",
    )


def _normalize_tuple(
    payload: List[Any], track_id: int, requested: Optional[QualityTier]
) -> TrackSource:
    info = payload[1] if isinstance(payload[1], dict) else {}
    url = payload[2].get(URL_KEY)
    if not url:
        raise ManifestParseError(f"No playable URL in response for track {track_id}.")
    return TrackSource(
        track_id=_track_id(info.get("trackId"), track_id),
        url=url,
        quality=info.get("audioQuality"),
        requested_quality=requested,
        manifest_mime_type=_decode_mime_type(info.get("manifest")),
        shape="tuple",
    )


_NORMALIZERS: Dict[str, Callable[..., TrackSource]] = {
    "object": _normalize_object,
    "tuple": _normalize_tuple,
}


def parse_track_source(
    payload: Any, track_id: int, requested: Optional[QualityTier] = None
) -> TrackSource:
    """Turns a track-detail response into a `TrackSource` or raises."""
    shape = detect_shape(payload)
    log.debug(f"Track {track_id} detail response has shape '{shape}'.")
    return _NORMALIZERS[shape](payload, track_id, requested)


def parse_album_detail(payload: Any) -> AlbumDetail:
    """
    Normalizes an album-detail response. The object shape nests tracks as
    ``tracks.items[].item``; the tuple shape is ``[album, {"items": [...]}]``.
    """
    if isinstance(payload, dict) and "album" in payload:
        album_raw = payload["album"]
        items = payload.get("tracks", {}).get("items", [])
    elif isinstance(payload, list) and len(payload) >= 2 and isinstance(payload[0], dict):
        album_raw = payload[0]
        items = payload[1].get("items", []) if isinstance(payload[1], dict) else []
    else:
        raise ManifestParseError("Unrecognized album detail response.")

    try:
        album = Album.model_validate(album_raw)
        album_ref = {"id": album.id, "title": album.title, "cover": album.cover}
        tracks = []
        for entry in items:
            if not isinstance(entry, dict):
                continue
            item = entry.get("item", entry)
            tracks.append(Track.model_validate({"album": album_ref, **item}))
    except ValidationError as e:
        raise ManifestParseError(f"Album detail failed validation: {e}") from e
    return AlbumDetail(album=album, tracks=tracks)
