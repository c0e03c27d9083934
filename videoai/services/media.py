"""Media acquisition: turn a picked file or a camera capture into a validated asset.

Validation happens before any network call, in this order:
container type, byte size, duration.
"""

import mimetypes
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional

from videoai.core.exceptions import AcquisitionValidationError
from videoai.core.logger import get_logger
from videoai.models import SourceType
from videoai.services.ffmpeg import VideoProbe, probe_video

logger = get_logger(__name__)

# Extensions the platform registry does not always know about
_EXTRA_TYPES = {
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".avi": "video/x-msvideo",
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
}

Prober = Callable[[str], Awaitable[Optional[VideoProbe]]]


def guess_content_type(filename: str) -> Optional[str]:
    """MIME type from the file extension, or None when unknown."""
    ext = os.path.splitext(filename)[1].lower()
    if ext in _EXTRA_TYPES:
        return _EXTRA_TYPES[ext]
    content_type, _ = mimetypes.guess_type(filename)
    return content_type


@dataclass
class MediaAsset:
    """A candidate video with its local bytes and metadata."""
    path: Path
    filename: str
    file_size: int
    content_type: Optional[str]
    duration: Optional[float] = None  # seconds
    width: Optional[int] = None
    height: Optional[int] = None
    source_type: SourceType = SourceType.DEVICE
    temporary: bool = False
    _released: bool = field(default=False, init=False, repr=False)

    @property
    def released(self) -> bool:
        return self._released

    @property
    def file_url(self) -> str:
        """Local reference usable for immediate playback."""
        return self.path.resolve().as_uri()

    def release(self) -> None:
        """Delete temporary bytes. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        if self.temporary:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove temporary file {self.path}: {e}")

    def __enter__(self) -> "MediaAsset":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


@dataclass
class AcquisitionResult:
    """Result of a pick or capture."""
    success: bool
    asset: Optional[MediaAsset] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.success and self.asset is None:
            raise ValueError("asset is required for successful acquisitions")


class MediaAcquirer:
    """Produces validated ``MediaAsset`` objects from files and captures."""

    def __init__(
        self,
        max_bytes: int,
        max_duration_seconds: int,
        allowed_types: Iterable[str],
        prober: Prober = probe_video,
        temp_dir: Optional[str] = None,
    ):
        self.max_bytes = max_bytes
        self.max_duration_seconds = max_duration_seconds
        self.allowed_types = {t.lower() for t in allowed_types}
        self.prober = prober
        self.temp_dir = temp_dir

    def check(
        self,
        content_type: Optional[str],
        file_size: int,
        duration: Optional[float] = None,
    ) -> None:
        """
        Validate metadata without touching any bytes.

        Raises:
            AcquisitionValidationError: on the first failed rule
        """
        if not content_type or content_type.lower() not in self.allowed_types:
            raise AcquisitionValidationError(
                message="Video format not supported",
                field="content_type",
                debug_message=f"content_type={content_type!r}",
            )

        if file_size > self.max_bytes:
            max_mb = self.max_bytes // (1024 * 1024)
            raise AcquisitionValidationError(
                message=f"Video file is too large (max {max_mb}MB)",
                field="file_size",
                debug_message=f"file_size={file_size}",
            )

        if duration is not None and duration > self.max_duration_seconds:
            max_minutes = self.max_duration_seconds // 60
            raise AcquisitionValidationError(
                message=f"Video is too long (max {max_minutes} minutes)",
                field="duration",
                debug_message=f"duration={duration}",
            )

    async def validate(self, asset: MediaAsset) -> None:
        """Check type and size, probe metadata when missing, then check duration."""
        self.check(asset.content_type, asset.file_size)

        if asset.duration is None:
            probe = await self.prober(str(asset.path))
            if probe is not None:
                asset.duration = probe.duration
                asset.width = asset.width or probe.width
                asset.height = asset.height or probe.height

        self.check(asset.content_type, asset.file_size, asset.duration)

    async def pick_file(
        self, path: str | Path, content_type: Optional[str] = None
    ) -> AcquisitionResult:
        """File-selection mode: validate a video that already lives on disk."""
        path = Path(path)
        if not path.is_file():
            return AcquisitionResult(success=False, error="Selected file could not be read")

        asset = MediaAsset(
            path=path,
            filename=path.name,
            file_size=path.stat().st_size,
            content_type=content_type or guess_content_type(path.name),
            source_type=SourceType.DEVICE,
        )
        return await self._accept(asset)

    async def capture(
        self,
        data: bytes,
        filename: str = "capture.mp4",
        content_type: Optional[str] = None,
    ) -> AcquisitionResult:
        """
        Camera-capture mode: persist captured bytes to a temporary file.

        The caller owns the returned asset and must ``release()`` it.
        A rejected capture is released here.
        """
        suffix = os.path.splitext(filename)[1] or ".mp4"
        fd, temp_path = tempfile.mkstemp(prefix="capture_", suffix=suffix, dir=self.temp_dir)
        with os.fdopen(fd, "wb") as f:
            f.write(data)

        asset = MediaAsset(
            path=Path(temp_path),
            filename=filename,
            file_size=len(data),
            content_type=content_type or guess_content_type(filename),
            source_type=SourceType.CAMERA,
            temporary=True,
        )
        result = await self._accept(asset)
        if not result.success:
            asset.release()
        return result

    async def _accept(self, asset: MediaAsset) -> AcquisitionResult:
        try:
            await self.validate(asset)
        except AcquisitionValidationError as e:
            logger.info(
                f"Rejected {asset.filename}: {e.message}",
                extra={"extra_data": e.to_dict(include_debug=True)},
            )
            return AcquisitionResult(success=False, error=e.message)
        return AcquisitionResult(success=True, asset=asset)
