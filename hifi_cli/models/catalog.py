"""
Pydantic models for catalog entities. The catalog speaks camelCase JSON, so
fields are declared with aliases and can be populated by either name.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from .quality import QualityTier, get_best_quality


class _CatalogModel(BaseModel):
    class Config:
        """Pydantic model configuration."""

        frozen = True
        populate_by_name = True
        extra = "ignore"


class ArtistRef(_CatalogModel):
    id: int
    name: str
    type: str = "MAIN"
    picture: Optional[str] = None


class AlbumRef(_CatalogModel):
    id: int
    title: str
    cover: str = ""
    vibrant_color: Optional[str] = Field(default=None, alias="vibrantColor")


class MediaMetadata(_CatalogModel):
    tags: List[str] = Field(default_factory=list)


class Track(_CatalogModel):
    """A catalog track. Immutable once fetched."""

    id: int
    title: str
    duration: int = 0
    artist: ArtistRef
    artists: List[ArtistRef] = Field(default_factory=list)
    album: AlbumRef
    audio_quality: str = Field(default="LOSSLESS", alias="audioQuality")
    media_metadata: MediaMetadata = Field(
        default_factory=MediaMetadata, alias="mediaMetadata"
    )
    popularity: int = 0
    explicit: bool = False
    bpm: Optional[int] = None
    copyright: str = ""
    url: str = ""
    isrc: str = ""

    @property
    def best_quality(self) -> QualityTier:
        return get_best_quality(self.audio_quality, self.media_metadata.tags)

    @property
    def artist_names(self) -> List[str]:
        names = [a.name for a in self.artists] or [self.artist.name]
        return list(dict.fromkeys(names))


class Album(_CatalogModel):
    id: int
    title: str
    duration: int = 0
    cover: str = ""
    vibrant_color: Optional[str] = Field(default=None, alias="vibrantColor")
    artists: List[ArtistRef] = Field(default_factory=list)
    number_of_tracks: int = Field(default=0, alias="numberOfTracks")
    release_date: str = Field(default="", alias="releaseDate")
    audio_quality: str = Field(default="LOSSLESS", alias="audioQuality")
    media_metadata: MediaMetadata = Field(
        default_factory=MediaMetadata, alias="mediaMetadata"
    )
    popularity: int = 0
    explicit: bool = False
    url: str = ""
    upc: str = ""

    @property
    def artist_name(self) -> str:
        return self.artists[0].name if self.artists else "Unknown Artist"


class AlbumDetail(_CatalogModel):
    """An album together with its ordered track list."""

    album: Album
    tracks: List[Track] = Field(default_factory=list)


class TrackSource(_CatalogModel):
    """A resolved, time-limited playable URL for one quality tier."""

    track_id: int
    url: str
    quality: Optional[str] = None
    requested_quality: Optional[QualityTier] = None
    manifest_mime_type: Optional[str] = None
    shape: str = "object"
