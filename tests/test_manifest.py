import base64
import json

import pytest

from hifi_cli.api.manifest import detect_shape, parse_album_detail, parse_track_source
from hifi_cli.exceptions import ManifestParseError
from hifi_cli.models.quality import QualityTier

URL = "https://cdn.test/audio/123.flac?token=x"


def encoded_manifest(mime_type="audio/flac"):
    return base64.b64encode(json.dumps({"mimeType": mime_type}).encode()).decode()


def test_object_shape():
    payload = {
        "track": {"id": 123},
        "manifest": {
            "trackId": 123,
            "audioQuality": "LOSSLESS",
            "manifest": encoded_manifest(),
            "OriginalTrackUrl": URL,
        },
    }
    source = parse_track_source(payload, 123, QualityTier.LOSSLESS)
    assert source.url == URL
    assert source.shape == "object"
    assert source.quality == "LOSSLESS"
    assert source.requested_quality is QualityTier.LOSSLESS
    assert source.manifest_mime_type == "audio/flac"


def test_tuple_shape():
    payload = [
        {"id": 123, "title": "Song"},
        {"trackId": 123, "audioQuality": "HIGH", "manifest": "not base64 json"},
        {"OriginalTrackUrl": URL},
    ]
    source = parse_track_source(payload, 123)
    assert source.url == URL
    assert source.shape == "tuple"
    assert source.quality == "HIGH"
    assert source.manifest_mime_type is None


@pytest.mark.parametrize(
    "payload",
    [None, "text", {"track": {}}, [{"id": 1}], [{}, {}, "url"], {"manifest": "x"}],
)
def test_unknown_shapes_are_rejected(payload):
    with pytest.raises(ManifestParseError):
        detect_shape(payload)


def test_missing_url_is_a_parse_error():
    with pytest.raises(ManifestParseError):
        parse_track_source({"manifest": {"trackId": 1}}, 1)


def _album_raw():
    return {"id": 9, "title": "Record", "numberOfTracks": 2, "artists": [{"id": 7, "name": "Artist"}]}


def _track_raw(track_id):
    return {"id": track_id, "title": f"T{track_id}", "artist": {"id": 7, "name": "Artist"}}


def test_album_detail_object_shape():
    payload = {
        "album": _album_raw(),
        "tracks": {"items": [{"item": _track_raw(1)}, {"item": _track_raw(2)}]},
    }
    detail = parse_album_detail(payload)
    assert detail.album.title == "Record"
    assert [t.id for t in detail.tracks] == [1, 2]
    assert detail.tracks[0].album.title == "Record"


def test_album_detail_tuple_shape():
    detail = parse_album_detail([_album_raw(), {"items": [_track_raw(5)]}])
    assert [t.title for t in detail.tracks] == ["T5"]
    assert detail.album.artist_name == "Artist"


def test_album_detail_rejects_unknown_shape():
    with pytest.raises(ManifestParseError):
        parse_album_detail({"items": []})


@pytest.mark.parametrize("track_id", ["abc", {"id": 1}])
def test_non_numeric_track_id_is_a_parse_error(track_id):
    payload = {"manifest": {"trackId": track_id, "OriginalTrackUrl": URL}}
    with pytest.raises(ManifestParseError):
        parse_track_source(payload, 123)

    payload = [{"id": 123}, {"trackId": track_id}, {"OriginalTrackUrl": URL}]
    with pytest.raises(ManifestParseError):
        parse_track_source(payload, 123)


def test_missing_track_id_falls_back_to_requested():
    source = parse_track_source({"manifest": {"OriginalTrackUrl": URL}}, 123)
    assert source.track_id == 123
