"""The three thumbnail tiers: local frame, CDN processor, placeholder."""

import asyncio
from typing import Awaitable, Callable, Optional

from videoai.core.exceptions import (
    CdnProcessingError,
    DecodeUnsupportedError,
    EncodeError,
    ThumbnailTierError,
    UploadVerificationError,
)
from videoai.core.logger import get_logger
from videoai.models import ThumbnailKind, VideoRecord
from videoai.services.cdn import CdnVideoProcessor
from videoai.services.storage import ObjectStorage, build_storage_path

from .base import ThumbnailContext, ThumbnailStrategy, TierOutcome
from .frames import FrameExtractor
from .timing import capture_offset, standard_positions, thumbnail_filename

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class LocalFrameStrategy(ThumbnailStrategy):
    """Decode a frame with ffmpeg, encode it with Pillow, store it in the thumbnails bucket."""

    needs_source = True

    def __init__(
        self,
        extractor: FrameExtractor,
        storage: ObjectStorage,
        bucket: str,
        verify_delay_seconds: float = 1.0,
        multi_position: bool = False,
        sleep: Sleep = asyncio.sleep,
    ):
        self.extractor = extractor
        self.storage = storage
        self.bucket = bucket
        self.verify_delay_seconds = verify_delay_seconds
        self.multi_position = multi_position
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "local"

    async def attempt(self, context: ThumbnailContext) -> TierOutcome:
        if context.source is None:
            raise DecodeUnsupportedError(message="No readable video source for frame extraction")

        record = context.record
        duration = context.source.duration
        if duration is None:
            duration = record.duration

        if self.multi_position:
            path = await self._capture_positions(record, context.source.location, duration)
        else:
            jpeg = await self.extractor.extract(context.source.location, capture_offset(duration))
            path = await self.upload_verified(record, jpeg, thumbnail_filename(record.id))

        return TierOutcome.ready(ThumbnailKind.STORAGE, path)

    async def _capture_positions(
        self, record: VideoRecord, location: str, duration: Optional[float]
    ) -> str:
        """Capture every standard position; the earliest verified upload wins."""
        uploaded: list[tuple[int, str]] = []
        errors: list[ThumbnailTierError] = []

        for position in standard_positions(duration):
            try:
                jpeg = await self.extractor.extract(location, position.offset)
                path = await self.upload_verified(
                    record, jpeg, thumbnail_filename(record.id, label=position.label)
                )
            except ThumbnailTierError as e:
                logger.info(f"Position {position.label} failed for {record.id}: {e.message}")
                errors.append(e)
                continue
            uploaded.append((position.index, path))

        if not uploaded:
            raise errors[0]

        logger.info(f"Captured {len(uploaded)}/{len(uploaded) + len(errors)} positions for {record.id}")
        return min(uploaded)[1]

    async def upload_verified(self, record: VideoRecord, data: bytes, filename: str) -> str:
        """
        Store a JPEG and confirm it is really there.

        Raises:
            ThumbnailTierError: storage refused the bytes
            UploadVerificationError: the object cannot be found afterwards
        """
        path = build_storage_path(record.user_id, filename)
        if not await self.storage.put(self.bucket, path, data, "image/jpeg"):
            raise ThumbnailTierError(
                error_code="THUMBNAIL_UPLOAD_FAILED",
                message="Thumbnail upload failed",
                metadata={"path": path},
            )

        # Listings lag behind writes on some stores
        await self._sleep(self.verify_delay_seconds)

        try:
            listed = path in await self.storage.list_keys(self.bucket, path)
        except Exception as e:
            logger.debug(f"Listing {self.bucket}/{path} failed, falling back to HEAD: {e}")
            listed = False

        if not listed and not await self.storage.exists(self.bucket, path):
            raise UploadVerificationError(metadata={"path": path})
        return path


class CdnStrategy(ThumbnailStrategy):
    """Hand the raw video to the CDN processor; the thumbnail arrives later."""

    def __init__(
        self,
        cdn: Optional[CdnVideoProcessor],
        storage: ObjectStorage,
        videos_bucket: str,
        read_url_expires_seconds: int = 3600,
    ):
        self.cdn = cdn
        self.storage = storage
        self.videos_bucket = videos_bucket
        self.read_url_expires_seconds = read_url_expires_seconds

    @property
    def name(self) -> str:
        return "cdn"

    async def attempt(self, context: ThumbnailContext) -> TierOutcome:
        if self.cdn is None:
            raise ThumbnailTierError(
                error_code="CDN_DISABLED",
                message="CDN video processor is not configured",
            )

        record = context.record
        try:
            source_url = await self.storage.presigned_get_url(
                self.videos_bucket, record.storage_path, self.read_url_expires_seconds
            )
        except Exception as e:
            raise ThumbnailTierError(
                error_code="SOURCE_URL_FAILED",
                message="Could not sign a read URL for the video",
                debug_message=str(e),
            ) from e

        try:
            guid = await self.cdn.start_processing(record.title, source_url, record.duration)
        except CdnProcessingError as e:
            raise ThumbnailTierError(
                error_code=e.error_code,
                message=e.message,
                metadata=e.metadata,
                debug_message=e.debug_message,
            ) from e

        logger.info(f"CDN processing started for {record.id} as {guid}")
        return TierOutcome.deferred(guid)


class PlaceholderStrategy(ThumbnailStrategy):
    """Generated graphic in storage, or the static placeholder URL."""

    def __init__(
        self,
        extractor: FrameExtractor,
        storage: ObjectStorage,
        bucket: str,
        static_url: str,
    ):
        self.extractor = extractor
        self.storage = storage
        self.bucket = bucket
        self.static_url = static_url

    @property
    def name(self) -> str:
        return "placeholder"

    async def attempt(self, context: ThumbnailContext) -> TierOutcome:
        record = context.record
        try:
            data = self.extractor.render_placeholder(record.id, record.title)
        except EncodeError as e:
            logger.warning(f"Placeholder render failed for {record.id}: {e.debug_message}")
            return TierOutcome.ready(ThumbnailKind.PLACEHOLDER, self.static_url)

        path = build_storage_path(record.user_id, f"{record.id}_placeholder.jpg")
        if await self.storage.put(self.bucket, path, data, "image/jpeg"):
            return TierOutcome.ready(ThumbnailKind.PLACEHOLDER, path)

        logger.warning(f"Storage refused placeholder for {record.id}, using static URL")
        return TierOutcome.ready(ThumbnailKind.PLACEHOLDER, self.static_url)
