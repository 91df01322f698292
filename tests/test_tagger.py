from mutagen.id3 import ID3

from hifi_cli.media.tagger import Tagger


def test_mp3_gets_id3_tags(tmp_path, make_track):
    path = tmp_path / "a.mp3"
    path.write_bytes(b"\xff\xfb\x90\x00" + bytes(400))
    track = make_track(title="Song", artist="Artist")

    assert Tagger().tag_file(path, track)

    tags = ID3(path)
    assert str(tags["TIT2"]) == "Song"
    assert str(tags["TPE1"]) == "Artist"
    assert str(tags["TALB"]) == "Album"


def test_unreadable_flac_is_reported_not_raised(tmp_path, make_track):
    path = tmp_path / "a.flac"
    path.write_bytes(b"not a flac file")
    assert not Tagger().tag_file(path, make_track())


def test_unknown_extension_is_skipped(tmp_path, make_track):
    path = tmp_path / "a.wav"
    path.write_bytes(b"RIFF")
    assert not Tagger().tag_file(path, make_track())
