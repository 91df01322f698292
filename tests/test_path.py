from pathlib import Path

from hifi_cli.utils.path import album_folder_name, generate_filename, uniquify


def test_uniquify_returns_free_path_unchanged(tmp_path):
    target = tmp_path / "Artist - Song.flac"
    assert uniquify(target) == target


def test_uniquify_picks_lowest_free_suffix(tmp_path):
    (tmp_path / "Artist - Song.flac").write_bytes(b"")
    assert uniquify(tmp_path / "Artist - Song.flac") == tmp_path / "Artist - Song - 2.flac"

    (tmp_path / "Artist - Song - 2.flac").write_bytes(b"")
    (tmp_path / "Artist - Song - 3.flac").write_bytes(b"")
    assert uniquify(tmp_path / "Artist - Song.flac") == tmp_path / "Artist - Song - 4.flac"


def test_uniquify_does_not_skip_gaps(tmp_path):
    (tmp_path / "X.mp3").write_bytes(b"")
    (tmp_path / "X - 3.mp3").write_bytes(b"")
    assert uniquify(tmp_path / "X.mp3") == tmp_path / "X - 2.mp3"


def test_uniquify_accepts_strings(tmp_path):
    assert uniquify(str(tmp_path / "a.flac")) == Path(tmp_path / "a.flac")


def test_generate_filename_strips_unsafe_characters():
    assert generate_filename("AC/DC", 'What? "Now"', "mp3") == "ACDC - What Now.mp3"


def test_generate_filename_defaults_to_flac():
    assert generate_filename("Artist", "Song") == "Artist - Song.flac"


def test_album_folder_name_replaces_separators():
    assert album_folder_name("Live: A/B") == "Live- A-B"
    assert album_folder_name("   ") == "Unknown Album"
