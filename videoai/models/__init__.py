"""
Models package for VideoAI.

- base: shared helpers and generic schemas
- video: VideoRecord, the Beanie ``Video`` document and API schemas
- ai: transcript and summary documents
"""

from .base import Message, ensure_utc, utc_now

from .video import (
    SourceType,
    ThumbnailKind,
    ThumbnailStatus,
    Video,
    VideoBase,
    VideoPublic,
    VideoRecord,
    VideosPublic,
    VideoStatus,
    VideoTagsUpdate,
    VideoUploadRequest,
    VideoUploadResponse,
    merge_tags,
)

from .ai import (
    SummarizationResult,
    Summary,
    SummaryBase,
    Transcript,
    TranscriptBase,
    TranscriptionResult,
    VideoInsightsPublic,
)

__all__ = [
    "Message",
    "ensure_utc",
    "utc_now",
    "SourceType",
    "ThumbnailKind",
    "ThumbnailStatus",
    "Video",
    "VideoBase",
    "VideoPublic",
    "VideoRecord",
    "VideosPublic",
    "VideoStatus",
    "VideoTagsUpdate",
    "VideoUploadRequest",
    "VideoUploadResponse",
    "merge_tags",
    "SummarizationResult",
    "Summary",
    "SummaryBase",
    "Transcript",
    "TranscriptBase",
    "TranscriptionResult",
    "VideoInsightsPublic",
]
