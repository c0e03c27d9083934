"""Video models and schemas for the upload and thumbnail pipeline."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from beanie import Document
from pydantic import BaseModel, Field, field_validator, model_validator
from typing_extensions import Self

from .base import ensure_utc, utc_now


class VideoStatus(str, Enum):
    """Lifecycle of the video itself."""
    UPLOADING = "uploading"    # Record exists, bytes not confirmed
    PROCESSING = "processing"  # Bytes stored, thumbnail pending
    READY = "ready"            # Playable
    ERROR = "error"            # Upload failed


class ThumbnailStatus(str, Enum):
    """Lifecycle of the thumbnail, independent of the video."""
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class ThumbnailKind(str, Enum):
    """Where the authoritative thumbnail reference points."""
    CDN = "cdn"                  # URL produced by the CDN video processor
    STORAGE = "storage"          # Path in the thumbnails bucket, needs a signed URL
    PLACEHOLDER = "placeholder"  # Generated graphic (path) or static URL


class SourceType(str, Enum):
    DEVICE = "device"
    CAMERA = "camera"


def merge_tags(*sources: Iterable[str]) -> list[str]:
    """De-duplicated union of tag sources.

    Not a plain set union: comparison is case-insensitive, so "Cat" and
    "cat" collapse into one tag. The first spelling seen wins and order
    follows first appearance, so user tags (passed first) keep their
    casing over AI suggestions. Tags are stripped and empty ones dropped.
    """
    merged: list[str] = []
    seen: set[str] = set()
    for source in sources:
        for tag in source or ():
            cleaned = tag.strip()
            key = cleaned.casefold()
            if not cleaned or key in seen:
                continue
            seen.add(key)
            merged.append(cleaned)
    return merged


class VideoBase(BaseModel):
    """Fields shared by the domain record and the stored document."""
    user_id: str
    title: str
    description: Optional[str] = None
    storage_path: str  # Key of the raw blob in the videos bucket
    original_filename: Optional[str] = None
    content_type: Optional[str] = None
    file_size: Optional[int] = None  # bytes
    duration: Optional[int] = None  # seconds
    width: Optional[int] = None
    height: Optional[int] = None
    source_type: SourceType = SourceType.DEVICE

    status: VideoStatus = VideoStatus.UPLOADING
    thumb_status: ThumbnailStatus = ThumbnailStatus.PENDING
    thumbnail_kind: Optional[ThumbnailKind] = None
    thumbnail_ref: Optional[str] = None
    thumb_error_message: Optional[str] = None
    cdn_video_id: Optional[str] = None  # Set once the CDN processor is engaged

    user_tags: list[str] = Field(default_factory=list)
    ai_tags: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("duration", "file_size", "width", "height", mode="before")
    @classmethod
    def _round_to_int(cls, v):
        if isinstance(v, float):
            return round(v)
        return v

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def _enforce_invariants(self) -> Self:
        self.tags = merge_tags(self.user_tags, self.ai_tags)

        if (self.thumbnail_kind is None) != (self.thumbnail_ref is None):
            raise ValueError("thumbnail_kind and thumbnail_ref must be set together")
        if self.thumb_status == ThumbnailStatus.READY and not self.thumbnail_ref:
            raise ValueError("thumbnail cannot be ready without a reference")
        return self


class VideoRecord(VideoBase):
    """In-memory view of one uploaded video and its processing state."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def bytes_stored(self) -> bool:
        return self.status in (VideoStatus.PROCESSING, VideoStatus.READY)

    @property
    def needs_reconciliation(self) -> bool:
        """Thumbnail still in flight for a video that has not failed."""
        return self.status != VideoStatus.ERROR and self.thumb_status in (
            ThumbnailStatus.PENDING,
            ThumbnailStatus.PROCESSING,
        )


class Video(Document, VideoBase):
    """Video document in MongoDB."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")

    class Settings:
        name = "videos"
        use_state_management = True

    @classmethod
    def from_record(cls, record: VideoRecord) -> "Video":
        return cls(**record.model_dump())

    def to_record(self) -> VideoRecord:
        return VideoRecord.model_validate(self.model_dump(exclude={"revision_id"}))


class VideoUploadRequest(BaseModel):
    """Request schema for upload target negotiation."""
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(default="video/mp4")
    file_size: int = Field(..., gt=0)
    title: Optional[str] = Field(default=None, max_length=255)
    duration: Optional[float] = Field(default=None, ge=0)
    width: Optional[int] = Field(default=None, ge=0)
    height: Optional[int] = Field(default=None, ge=0)


class VideoUploadResponse(BaseModel):
    """Response schema for upload target negotiation."""
    video_id: str
    upload_url: str  # One-time PUT URL
    storage_path: str


class VideoTagsUpdate(BaseModel):
    user_tags: list[str] = Field(default_factory=list, max_length=50)


class VideoPublic(BaseModel):
    """Public video response schema."""
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    status: VideoStatus
    thumb_status: ThumbnailStatus
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = None
    tags: list[str] = []
    user_tags: list[str] = []
    ai_tags: list[str] = []
    created_at: datetime


class VideosPublic(BaseModel):
    data: list[VideoPublic]
    count: int
