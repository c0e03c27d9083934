"""Base classes for the thumbnail strategy cascade."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from videoai.core.exceptions import AllTiersExhaustedError
from videoai.models import ThumbnailKind, VideoRecord


@dataclass
class FrameSource:
    """Where frames can be decoded from: a local path or a signed read URL."""
    location: str
    duration: Optional[float] = None


@dataclass
class ThumbnailContext:
    """Everything a strategy needs for one attempt."""
    record: VideoRecord
    source: Optional[FrameSource] = None


class OutcomeKind(str, Enum):
    READY = "ready"
    DEFERRED = "deferred"  # Finished later by an external processor


@dataclass
class TierOutcome:
    """Successful outcome of one tier."""
    kind: OutcomeKind
    thumbnail_kind: Optional[ThumbnailKind] = None
    thumbnail_ref: Optional[str] = None
    cdn_video_id: Optional[str] = None

    @classmethod
    def ready(cls, thumbnail_kind: ThumbnailKind, thumbnail_ref: str) -> "TierOutcome":
        return cls(OutcomeKind.READY, thumbnail_kind=thumbnail_kind, thumbnail_ref=thumbnail_ref)

    @classmethod
    def deferred(cls, cdn_video_id: str) -> "TierOutcome":
        return cls(OutcomeKind.DEFERRED, cdn_video_id=cdn_video_id)


@dataclass
class ThumbnailResult:
    """What the cascade did for one video."""
    video_id: str
    success: bool
    deferred: bool = False
    tier: Optional[str] = None
    thumbnail_kind: Optional[ThumbnailKind] = None
    thumbnail_ref: Optional[str] = None
    error: Optional[AllTiersExhaustedError] = None
    skipped_reason: Optional[str] = None


class ThumbnailStrategy(ABC):
    """One tier of the cascade."""

    # Whether the tier decodes frames from the video bytes
    needs_source: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable tier name, used for ``start_after``."""

    @abstractmethod
    async def attempt(self, context: ThumbnailContext) -> TierOutcome:
        """
        Produce a thumbnail for ``context.record``.

        Raises:
            ThumbnailTierError: this tier failed; the cascade moves on
        """
