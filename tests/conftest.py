import asyncio
from typing import Optional

import pytest

from hifi_cli.exceptions import QualityUnavailableError
from hifi_cli.models.catalog import Track, TrackSource
from hifi_cli.models.config import AppConfig
from hifi_cli.models.quality import QualityTier


def build_track(
    track_id: int = 1,
    title: str = "Song",
    artist: str = "Artist",
    duration: int = 200,
    audio_quality: str = "LOSSLESS",
    tags=None,
) -> Track:
    return Track.model_validate(
        {
            "id": track_id,
            "title": title,
            "duration": duration,
            "artist": {"id": 7, "name": artist},
            "artists": [{"id": 7, "name": artist}],
            "album": {"id": 3, "title": "Album"},
            "audioQuality": audio_quality,
            "mediaMetadata": {"tags": tags or []},
        }
    )


class FakeCatalog:
    """
    Answers fetch_track_source from a table keyed by quality tier. A value is
    either a URL or an exception to raise; missing tiers are unavailable.
    """

    def __init__(self, answers: Optional[dict] = None, gate: Optional[asyncio.Event] = None):
        self.answers = answers if answers is not None else {None: "https://cdn.test/a.flac"}
        self.gate = gate
        self.calls = []

    async def fetch_track_source(self, track_id: int, quality: Optional[QualityTier] = None):
        self.calls.append((track_id, quality))
        if self.gate is not None:
            await self.gate.wait()
        answer = self.answers.get(quality)
        if answer is None:
            raise QualityUnavailableError(f"{quality} unavailable")
        if isinstance(answer, Exception):
            raise answer
        return TrackSource(track_id=track_id, url=answer, requested_quality=quality)


@pytest.fixture
def make_track():
    return build_track


@pytest.fixture
def catalog_factory():
    return FakeCatalog


@pytest.fixture
def config(tmp_path):
    return AppConfig(download_dir=str(tmp_path), embed_tags=False, album_delay=0)
