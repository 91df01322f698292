"""
Quality tiers offered by the catalog and the local output formats.
"""

from enum import Enum
from typing import List, Optional, Sequence


class AudioFormat(str, Enum):
    """Output container the user wants on disk."""

    FLAC = "flac"
    MP3 = "mp3"

    @property
    def ext(self) -> str:
        return self.value

    @property
    def is_lossless(self) -> bool:
        return self is AudioFormat.FLAC


class QualityTier(str, Enum):
    """Catalog quality codes, ordered from highest to lowest fidelity."""

    HI_RES_LOSSLESS = "HIRES_LOSSLESS"
    LOSSLESS = "LOSSLESS"
    HIGH = "HIGH"
    LOW = "NORMAL"


# Display metadata per tier
QUALITY_MAP = {
    QualityTier.HI_RES_LOSSLESS: {
        "name": "Hi-Res Lossless",
        "short": "Hi-Res",
        "color": "magenta",
    },
    QualityTier.LOSSLESS: {
        "name": "Lossless",
        "short": "Lossless",
        "color": "green",
    },
    QualityTier.HIGH: {
        "name": "High",
        "short": "High",
        "color": "blue",
    },
    QualityTier.LOW: {
        "name": "Normal",
        "short": "Normal",
        "color": "white",
    },
}

# Explicit tiers tried after the unspecified request, in descending order
FALLBACK_TIERS = (QualityTier.LOSSLESS, QualityTier.HIGH, QualityTier.LOW)


def get_quality_info(quality: Optional[str]) -> dict[str, str]:
    """Gets display information for a catalog quality code."""
    try:
        return QUALITY_MAP[QualityTier(quality)]
    except ValueError:
        return {"name": quality or "Unknown", "short": quality or "?", "color": "white"}


def get_best_quality(audio_quality: Optional[str], tags: Sequence[str]) -> QualityTier:
    """Picks the highest tier a track advertises through its quality and media tags."""
    if QualityTier.HI_RES_LOSSLESS.value in tags:
        return QualityTier.HI_RES_LOSSLESS
    if audio_quality == QualityTier.LOSSLESS.value or QualityTier.LOSSLESS.value in tags:
        return QualityTier.LOSSLESS
    if audio_quality == QualityTier.HIGH.value:
        return QualityTier.HIGH
    return QualityTier.LOW


def quality_fallback_chain(best: QualityTier) -> List[Optional[QualityTier]]:
    """
    Builds the ordered list of tiers to request: the best tier, then no tier
    (the catalog's default), then the explicit tiers in descending order.
    Duplicates are dropped while keeping the first position.
    """
    chain: List[Optional[QualityTier]] = [best, None, *FALLBACK_TIERS]
    return list(dict.fromkeys(chain))
