import asyncio
import json

import pytest

from hifi_cli.exceptions import MediaLoadError
from hifi_cli.media.mpv import MpvBackend


class Writer:
    def __init__(self):
        self.lines = []

    def write(self, data):
        self.lines.append(json.loads(data))

    def is_closing(self):
        return False


def test_commands_are_json_lines(tmp_path):
    backend = MpvBackend(socket_path=str(tmp_path / "mpv.sock"))
    backend._writer = Writer()
    backend.pause()
    backend.set_volume(40)
    backend.seek(12.5)
    commands = [line["command"] for line in backend._writer.lines]
    assert commands == [
        ["set_property", "pause", True],
        ["set_property", "volume", 40],
        ["seek", 12.5, "absolute"],
    ]
    assert [line["request_id"] for line in backend._writer.lines] == [1, 2, 3]


def test_commands_without_connection_are_dropped(tmp_path):
    backend = MpvBackend(socket_path=str(tmp_path / "mpv.sock"))
    backend.stop()
    assert not backend.running


def test_events_drive_callbacks(tmp_path):
    backend = MpvBackend(socket_path=str(tmp_path / "mpv.sock"))
    positions, ended = [], []
    backend.on_time_update = positions.append
    backend.on_ended = lambda: ended.append(True)

    backend._dispatch({"event": "property-change", "name": "time-pos", "data": 3.5})
    backend._dispatch({"event": "property-change", "name": "time-pos", "data": None})
    backend._dispatch({"event": "end-file", "reason": "stop"})
    backend._dispatch({"event": "end-file", "reason": "eof"})

    assert positions == [3.5]
    assert ended == [True]


def test_load_error_event_rejects_pending_load(tmp_path):
    backend = MpvBackend(socket_path=str(tmp_path / "mpv.sock"))

    async def scenario():
        backend._load_waiter = asyncio.get_running_loop().create_future()
        backend._dispatch({"event": "end-file", "reason": "error", "file_error": "loading failed"})
        with pytest.raises(MediaLoadError, match="loading failed"):
            await backend._load_waiter

    asyncio.run(scenario())


def test_missing_binary_raises_media_load_error(tmp_path):
    backend = MpvBackend(mpv_path=str(tmp_path / "no-mpv"), socket_path=str(tmp_path / "mpv.sock"))
    with pytest.raises(MediaLoadError):
        asyncio.run(backend.load("https://cdn.test/a.flac"))
