"""Thumbnail pipeline: an ordered cascade of strategies.

1. LocalFrameStrategy - ffmpeg frame, Pillow JPEG, thumbnails bucket
2. CdnStrategy - CDN video processor renders it later (deferred)
3. PlaceholderStrategy - generated graphic or static URL
"""

from .base import (
    FrameSource,
    OutcomeKind,
    ThumbnailContext,
    ThumbnailResult,
    ThumbnailStrategy,
    TierOutcome,
)
from .frames import FrameExtractor
from .pipeline import ThumbnailPipeline
from .strategies import CdnStrategy, LocalFrameStrategy, PlaceholderStrategy
from .timing import capture_offset, clamp_duration, standard_positions, thumbnail_filename


__all__ = [
    "FrameSource",
    "OutcomeKind",
    "ThumbnailContext",
    "ThumbnailResult",
    "ThumbnailStrategy",
    "TierOutcome",
    "FrameExtractor",
    "ThumbnailPipeline",
    "CdnStrategy",
    "LocalFrameStrategy",
    "PlaceholderStrategy",
    "capture_offset",
    "clamp_duration",
    "standard_positions",
    "thumbnail_filename",
]
