"""
Async client for the catalog's JSON endpoints.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from hifi_cli.exceptions import (
    CatalogNetworkError,
    ManifestParseError,
    QualityUnavailableError,
    TrackNotFoundError,
)
from hifi_cli.models.catalog import Album, AlbumDetail, Track, TrackSource
from hifi_cli.models.quality import QualityTier

from .manifest import parse_album_detail, parse_track_source

log = logging.getLogger(__name__)


class CatalogClient:
    """
    Thin async client over the catalog proxy.

    Every method performs exactly one request. Quality fallback is not done
    here; `hifi_cli.core.resolver` drives it.
    """

    def __init__(
        self,
        base_url: str,
        album_base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initializes the catalog client.

        Args:
            base_url: Host serving search and track detail endpoints.
            album_base_url: Host serving album detail; defaults to `base_url`.
            session: An existing aiohttp session to reuse. When omitted the
                client creates and owns one.
        """
        self.base_url = base_url.rstrip("/")
        self.album_base_url = (album_base_url or base_url).rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available with compression enabled."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
                    "Accept-Encoding": "gzip, deflate, br",
                },
                timeout=aiohttp.ClientTimeout(total=30, connect=10, sock_read=20),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def api_call(self, base: str, endpoint: str, **params: Any) -> Any:
        """
        Performs a GET request and returns the decoded JSON body.

        Raises:
            TrackNotFoundError: on HTTP 404.
            CatalogNetworkError: on any other transport or HTTP failure.
        """
        session = await self._initialize_session()
        query = {key: value for key, value in params.items() if value is not None}
        start_time = time.monotonic()

        try:
            async with session.get(f"{base}/{endpoint}/", params=query) as r:
                duration_ms = (time.monotonic() - start_time) * 1000
                log.debug(
                    f"GET {endpoint} {query} -> {r.status} ({duration_ms:.0f} ms)"
                )
                if r.status == 404:
                    raise TrackNotFoundError(f"Catalog has no result for {query}.")
                r.raise_for_status()
                return await r.json(content_type=None)
        except aiohttp.ClientResponseError as e:
            raise CatalogNetworkError(
                f"Catalog request '{endpoint}' failed with HTTP {e.status}."
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CatalogNetworkError(f"Catalog request '{endpoint}' failed: {e}") from e
        except ValueError as e:
            raise CatalogNetworkError(
                f"Catalog returned invalid JSON for '{endpoint}'."
            ) from e

    # Public API Methods
    async def search_tracks(self, query: str) -> List[Track]:
        data = await self.api_call(self.base_url, "search", s=query)
        items = data.get("items", []) if isinstance(data, dict) else []
        return self._parse_items(items, Track)

    async def search_albums(self, query: str) -> List[Album]:
        data = await self.api_call(self.base_url, "search", al=query)
        items = data.get("albums", {}).get("items", []) if isinstance(data, dict) else []
        return self._parse_items(items, Album)

    async def fetch_album_detail(self, album_id: int) -> AlbumDetail:
        data = await self.api_call(self.album_base_url, "album", id=album_id)
        return parse_album_detail(data)

    async def fetch_track(self, track_id: int) -> Track:
        """Fetches a track's metadata from its detail response."""
        data = await self.api_call(self.base_url, "track", id=track_id)
        raw = data.get("track") if isinstance(data, dict) else (data[0] if data else None)
        try:
            return Track.model_validate(raw)
        except ValidationError as e:
            raise ManifestParseError(f"Track {track_id} failed validation: {e}") from e

    async def fetch_track_source(
        self, track_id: int, quality: Optional[QualityTier] = None
    ) -> TrackSource:
        """
        Resolves a playable URL at one quality tier (or the catalog default
        when `quality` is None).

        Raises:
            TrackNotFoundError, CatalogNetworkError, QualityUnavailableError
        """
        try:
            data = await self.api_call(
                self.base_url,
                "track",
                id=track_id,
                quality=quality.value if quality else None,
            )
        except CatalogNetworkError as e:
            # The proxy answers an unsupported tier with a client error
            cause = e.__cause__
            if (
                quality is not None
                and isinstance(cause, aiohttp.ClientResponseError)
                and cause.status in (400, 403, 422)
            ):
                raise QualityUnavailableError(
                    f"Track {track_id} is not available in {quality.value}."
                ) from e
            raise
        return parse_track_source(data, track_id, quality)

    @staticmethod
    def _parse_items(items: List[Dict[str, Any]], model: type) -> list:
        parsed = []
        for item in items:
            try:
                parsed.append(model.model_validate(item))
            except ValidationError as e:
                log.debug(f"Skipping malformed {model.__name__} entry: {e}")
        return parsed
