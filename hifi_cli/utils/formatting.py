"""
Helper functions for formatting data into human-readable strings.
"""

import math
from typing import Optional


def format_track_duration(seconds: int) -> str:
    """Formats a track length as M:SS."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def format_eta(seconds: Optional[float]) -> str:
    """
    Formats an estimated remaining time. Returns an empty string when there is
    no usable estimate.
    """
    if seconds is None or seconds < 0 or not math.isfinite(seconds):
        return ""
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        minutes = int(seconds // 60)
        return f"{minutes}m {round(seconds % 60)}s"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


def format_duration(seconds: float) -> str:
    """Formats an elapsed time as e.g. '2h 34m 12s'."""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)
