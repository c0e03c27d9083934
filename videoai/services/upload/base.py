"""Value types shared by the upload transport and the upload flow."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from videoai.core.exceptions import TransferError


class DestinationCategory(str, Enum):
    """Which bucket a negotiated write goes to."""
    VIDEOS = "videos"
    THUMBNAILS = "thumbnails"


@dataclass
class UploadProgress:
    """Bytes sent so far for one transfer."""
    loaded: int
    total: int
    percentage: int

    @classmethod
    def of(cls, loaded: int, total: int) -> "UploadProgress":
        percentage = round(loaded * 100 / total) if total else 100
        return cls(loaded=loaded, total=total, percentage=min(percentage, 100))


ProgressCallback = Callable[[UploadProgress], None]


@dataclass
class UploadTarget:
    """A one-time write URL and the canonical path the bytes will live at."""
    write_url: str
    canonical_path: str
    bucket: str


@dataclass
class TransferResult:
    """Result of moving bytes to an upload target."""
    success: bool
    bytes_sent: int = 0
    error: Optional[str] = None
    failure: Optional[TransferError] = None

    @classmethod
    def failed(cls, failure: TransferError) -> "TransferResult":
        return cls(success=False, error=failure.message, failure=failure)


@dataclass
class UploadResult:
    """Result of the whole upload flow."""
    success: bool
    video_id: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.success and not self.video_id:
            raise ValueError("video_id is required for successful uploads")
