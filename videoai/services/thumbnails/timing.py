"""Seek offsets and file naming for thumbnail capture."""

import time
from dataclasses import dataclass
from typing import Optional

# Seek used when the duration is unknown
UNKNOWN_DURATION_OFFSET = 1.0

# Multi-position capture: (fraction of duration, label)
STANDARD_POSITIONS = (
    (0.0, "0pct"),
    (0.25, "25pct"),
    (0.5, "50pct"),
    (0.75, "75pct"),
)


@dataclass(frozen=True)
class CapturePosition:
    index: int
    label: str
    offset: float  # seconds


def capture_offset(duration: Optional[float], preferred: float = 3.0) -> float:
    """
    Seek offset for a single representative frame.

    Short clips use their midpoint (never before 0.5s), clips under ten
    seconds use 2s, longer ones ``preferred`` but at least a second before
    the end.
    """
    if duration is None or duration <= 0:
        return UNKNOWN_DURATION_OFFSET
    if duration < 3:
        return max(0.5, duration / 2)
    if duration < 10:
        return 2.0
    return min(preferred, duration - 1)


def clamp_duration(duration: Optional[float]) -> float:
    """Duration used to place the multi-position captures."""
    if duration is None or duration <= 0:
        return 12.0
    if duration < 2:
        return max(duration, 1.0)
    return min(duration, 300.0)


def standard_positions(duration: Optional[float]) -> list[CapturePosition]:
    """Capture points at 0/25/50/75% of the clamped duration, earliest first."""
    span = clamp_duration(duration)
    return [
        CapturePosition(index=i, label=label, offset=fraction * span)
        for i, (fraction, label) in enumerate(STANDARD_POSITIONS)
    ]


def thumbnail_filename(video_id: str, label: Optional[str] = None, now_ms: Optional[int] = None) -> str:
    if label:
        return f"{video_id}_thumbnail_{label}.jpg"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{video_id}_thumb_{now_ms}.jpg"
