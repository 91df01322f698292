"""
Resolves a track's playable URL by walking the quality-fallback chain.
"""

import logging
from typing import Optional, Protocol

from rich.markup import escape

from hifi_cli.exceptions import ResolutionFailure
from hifi_cli.models.catalog import Track, TrackSource
from hifi_cli.models.quality import QualityTier, quality_fallback_chain

log = logging.getLogger(__name__)


class SourceProvider(Protocol):
    async def fetch_track_source(
        self, track_id: int, quality: Optional[QualityTier] = None
    ) -> TrackSource: ...


async def resolve_source(catalog: SourceProvider, track: Track) -> TrackSource:
    """
    Requests the track at each tier of its fallback chain and returns the first
    source that resolves. Lower tiers are never requested once one succeeds.

    Raises:
        ResolutionFailure: when every tier failed.
    """
    failures = []
    for tier in quality_fallback_chain(track.best_quality):
        label = tier.value if tier else "default"
        try:
            source = await catalog.fetch_track_source(track.id, tier)
        except ResolutionFailure as e:
            log.debug(f"Track {track.id} at {label} failed: {e}")
            failures.append(f"{label}: {e}")
            continue
        if failures:
            log.info(
                f"[yellow]Resolved '{escape(track.title)}' at {label} after "
                f"{len(failures)} failed tier(s).[/yellow]"
            )
        return source

    raise ResolutionFailure(
        f"No quality tier of track {track.id} could be resolved ({'; '.join(failures)})."
    )
