"""
The playback state machine.

A session moves Idle -> Loading -> Playing <-> Paused -> Ended, or to Failed
when a source cannot be resolved or loaded. Selecting a track updates the
session immediately; the playable URL may arrive later.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from rich.markup import escape

from hifi_cli.exceptions import MediaLoadError, ResolutionFailure
from hifi_cli.models.catalog import Track

from .resolver import SourceProvider, resolve_source

log = logging.getLogger(__name__)

SOURCE_TRACK_DETAIL = "track-detail"
SOURCE_ALBUM_DETAIL = "album-detail"
SOURCE_OTHER = "other"
PLAY_SOURCES = (SOURCE_TRACK_DETAIL, SOURCE_ALBUM_DETAIL, SOURCE_OTHER)
# Play sources for which next/previous walk a playlist
PLAYLIST_SOURCES = frozenset({SOURCE_ALBUM_DETAIL, SOURCE_OTHER})


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    FAILED = "failed"


def _clamp_volume(volume: float) -> int:
    return int(max(0, min(100, round(volume))))


@dataclass
class PlaybackSession:
    """What is playing right now, and how."""

    current_track: Optional[Track] = None
    playlist: List[Track] = field(default_factory=list)
    current_index: int = -1
    state: PlaybackState = PlaybackState.IDLE
    play_source: str = SOURCE_OTHER
    url: str = ""
    position: float = 0.0
    progress: float = 0.0
    volume: int = 50
    muted: bool = False
    error: Optional[str] = None

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def is_paused(self) -> bool:
        return self.state is PlaybackState.PAUSED

    @property
    def is_loading(self) -> bool:
        return self.state is PlaybackState.LOADING

    @property
    def effective_volume(self) -> int:
        return 0 if self.muted else self.volume

    @property
    def duration(self) -> float:
        return float(self.current_track.duration) if self.current_track else 0.0

    @property
    def can_navigate(self) -> bool:
        return self.play_source in PLAYLIST_SOURCES and bool(self.playlist)

    @property
    def has_next(self) -> bool:
        return self.can_navigate and 0 <= self.current_index < len(self.playlist) - 1

    @property
    def has_previous(self) -> bool:
        return self.can_navigate and 0 < self.current_index < len(self.playlist)


class MediaBackend(ABC):
    """
    The decoder/output the engine drives. Implementations report playback
    position through `on_time_update` and end of media through `on_ended`.
    """

    on_time_update: Optional[Callable[[float], None]] = None
    on_ended: Optional[Callable[[], None]] = None

    @abstractmethod
    async def load(self, url: str) -> None:
        """Loads and starts `url`. Raises MediaLoadError if it cannot be played."""

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def resume(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def seek(self, seconds: float) -> None: ...

    @abstractmethod
    def set_volume(self, volume: int) -> None:
        """Sets the output gain, 0 to 100."""

    async def close(self) -> None:
        self.stop()


class PlaybackEngine:
    """
    Owns the single media backend and the session it plays.

    Each `play()` call supersedes every earlier one: a load or source lookup
    that finishes after a newer `play()` is discarded.
    """

    def __init__(
        self,
        backend: MediaBackend,
        catalog: SourceProvider,
        volume: int = 50,
    ):
        self.backend = backend
        self.catalog = catalog
        self.session = PlaybackSession(volume=_clamp_volume(volume))
        self._generation = 0
        self._listeners: List[Callable[[PlaybackSession], None]] = []

        backend.on_time_update = self.on_time_update
        backend.on_ended = self.on_media_ended

    def subscribe(self, listener: Callable[[PlaybackSession], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in self._listeners:
            listener(self.session)

    async def play(
        self,
        track: Track,
        url: str,
        source: str = SOURCE_OTHER,
        playlist: Optional[Sequence[Track]] = None,
        index: Optional[int] = None,
    ) -> None:
        """
        Makes `track` current. With an empty `url` the session waits in
        Loading and the backend keeps whatever it was doing; otherwise the
        previous media is stopped and the new source loaded.
        """
        if source not in PLAY_SOURCES:
            raise ValueError(f"Unknown play source: {source}")

        self._generation += 1
        generation = self._generation

        s = self.session
        s.current_track = track
        s.playlist = list(playlist) if playlist else []
        if index is not None and 0 <= index < len(s.playlist):
            s.current_index = index
        else:
            s.current_index = next(
                (i for i, t in enumerate(s.playlist) if t.id == track.id), -1
            )
        s.play_source = source
        s.url = url
        s.position = 0.0
        s.progress = 0.0
        s.error = None
        s.state = PlaybackState.LOADING
        self._changed()

        if not url:
            return

        self.backend.stop()
        try:
            await self.backend.load(url)
        except MediaLoadError as e:
            if generation != self._generation:
                return
            log.error(f"[red]Could not play '{escape(track.title)}': {e}[/red]")
            s.state = PlaybackState.FAILED
            s.error = str(e)
            self._changed()
            return

        if generation != self._generation:
            return
        self.backend.set_volume(s.effective_volume)
        s.state = PlaybackState.PLAYING
        self._changed()

    def pause(self) -> None:
        if self.session.state is not PlaybackState.PLAYING:
            return
        self.backend.pause()
        self.session.state = PlaybackState.PAUSED
        self._changed()

    def resume(self) -> None:
        if self.session.state is not PlaybackState.PAUSED:
            return
        self.backend.resume()
        self.session.state = PlaybackState.PLAYING
        self._changed()

    def seek(self, seconds: float) -> None:
        s = self.session
        if s.current_track is None:
            return
        duration = s.duration
        seconds = max(0.0, min(seconds, duration) if duration else seconds)
        if s.state in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            self.backend.seek(seconds)
        s.position = seconds
        s.progress = seconds / duration * 100 if duration else 0.0
        self._changed()

    def set_volume(self, volume: float) -> None:
        self.session.volume = _clamp_volume(volume)
        self.backend.set_volume(self.session.effective_volume)
        self._changed()

    def toggle_mute(self) -> None:
        self.session.muted = not self.session.muted
        self.backend.set_volume(self.session.effective_volume)
        self._changed()

    async def next(self) -> bool:
        """Plays the following playlist entry. Returns False at the end."""
        if not self.session.has_next:
            return False
        await self._navigate(self.session.current_index + 1)
        return True

    async def previous(self) -> bool:
        """Plays the preceding playlist entry. Returns False at the start."""
        if not self.session.has_previous:
            return False
        await self._navigate(self.session.current_index - 1)
        return True

    async def _navigate(self, index: int) -> None:
        s = self.session
        await self.play_track(s.playlist[index], s.play_source, s.playlist, index)

    async def play_track(
        self,
        track: Track,
        source: str = SOURCE_OTHER,
        playlist: Optional[Sequence[Track]] = None,
        index: Optional[int] = None,
    ) -> None:
        """
        Shows `track` as loading right away, then resolves its URL through the
        quality-fallback chain and plays it. The URL is dropped if another
        track was selected in the meantime; if no tier resolves the session
        ends up Failed.
        """
        s = self.session
        await self.play(track, "", source, playlist, index)
        playlist, index = s.playlist, s.current_index
        generation = self._generation

        try:
            resolved = await resolve_source(self.catalog, track)
        except ResolutionFailure as e:
            if generation == self._generation:
                log.error(f"[red]No playable source for '{escape(track.title)}'.[/red]")
                s.state = PlaybackState.FAILED
                s.error = str(e)
                self._changed()
            return

        if generation != self._generation:
            log.debug(f"Dropping resolved source for '{track.title}': superseded.")
            return
        await self.play(track, resolved.url, source, playlist, index)

    def on_time_update(self, seconds: float) -> None:
        s = self.session
        if s.current_track is None or s.state not in (
            PlaybackState.PLAYING,
            PlaybackState.PAUSED,
        ):
            return
        s.position = seconds
        duration = s.duration
        s.progress = min(100.0, seconds / duration * 100) if duration else 0.0
        self._changed()

    def on_media_ended(self) -> None:
        s = self.session
        if s.current_track is None or s.state is not PlaybackState.PLAYING:
            return
        s.state = PlaybackState.ENDED
        s.position = 0.0
        s.progress = 0.0
        self._changed()

    async def close(self) -> None:
        await self.backend.close()
