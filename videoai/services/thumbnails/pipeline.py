"""Thumbnail cascade driver.

Runs the strategies in order and stops at the first one that succeeds.
Exhaustion marks only the thumbnail as failed; the video keeps its status.
"""

from typing import Optional, Sequence

from videoai.core.exceptions import (
    AllTiersExhaustedError,
    ConflictException,
    NotFoundException,
    ThumbnailTierError,
)
from videoai.core.logger import get_logger, log_exception
from videoai.models import ThumbnailStatus, VideoRecord, VideoStatus
from videoai.services.repository import VideoRepository
from videoai.services.storage import ObjectStorage

from .base import (
    FrameSource,
    OutcomeKind,
    ThumbnailContext,
    ThumbnailResult,
    ThumbnailStrategy,
)

logger = get_logger(__name__)


class ThumbnailPipeline:
    """Drives the ordered strategy cascade for one video at a time."""

    def __init__(
        self,
        repository: VideoRepository,
        storage: ObjectStorage,
        strategies: Sequence[ThumbnailStrategy],
        videos_bucket: str,
        read_url_expires_seconds: int = 3600,
    ):
        self.repository = repository
        self.storage = storage
        self.strategies = list(strategies)
        self.videos_bucket = videos_bucket
        self.read_url_expires_seconds = read_url_expires_seconds
        self._in_flight: set[str] = set()

    def is_running(self, video_id: str) -> bool:
        return video_id in self._in_flight

    def tiers_after(self, start_after: Optional[str]) -> list[ThumbnailStrategy]:
        if start_after is None:
            return list(self.strategies)
        names = [s.name for s in self.strategies]
        if start_after not in names:
            raise ValueError(f"Unknown thumbnail tier: {start_after}")
        return self.strategies[names.index(start_after) + 1:]

    async def _signed_source(self, record: VideoRecord) -> Optional[FrameSource]:
        try:
            url = await self.storage.presigned_get_url(
                self.videos_bucket, record.storage_path, self.read_url_expires_seconds
            )
        except Exception as e:
            logger.warning(f"Could not sign a read URL for {record.id}: {e}")
            return None
        return FrameSource(location=url, duration=record.duration)

    async def run(
        self,
        video_id: str,
        source: Optional[FrameSource] = None,
        start_after: Optional[str] = None,
    ) -> ThumbnailResult:
        """
        Produce a thumbnail for ``video_id``.

        Args:
            video_id: Record to work on
            source: Local frame source; a signed read URL is used when absent
            start_after: Skip every tier up to and including this one

        Returns:
            ThumbnailResult; exhaustion is reported here, never raised
        """
        record = await self.repository.get(video_id)
        if record is None:
            raise NotFoundException(
                message="Video not found", resource_type="video", resource_id=video_id
            )

        if record.thumb_status == ThumbnailStatus.READY:
            return ThumbnailResult(
                video_id=video_id,
                success=True,
                thumbnail_kind=record.thumbnail_kind,
                thumbnail_ref=record.thumbnail_ref,
                skipped_reason="already ready",
            )

        if record.status in (VideoStatus.UPLOADING, VideoStatus.ERROR):
            return ThumbnailResult(
                video_id=video_id,
                success=False,
                skipped_reason=f"video is {record.status.value}",
            )

        if video_id in self._in_flight:
            return ThumbnailResult(
                video_id=video_id, success=False, skipped_reason="already running"
            )

        self._in_flight.add(video_id)
        try:
            return await self._cascade(record, source, self.tiers_after(start_after))
        finally:
            self._in_flight.discard(video_id)

    async def _cascade(
        self,
        record: VideoRecord,
        source: Optional[FrameSource],
        tiers: list[ThumbnailStrategy],
    ) -> ThumbnailResult:
        record = await self.repository.update(record.id, thumb_status=ThumbnailStatus.PROCESSING)

        if source is None and any(t.needs_source for t in tiers):
            source = await self._signed_source(record)

        context = ThumbnailContext(record=record, source=source)
        errors: list[ThumbnailTierError] = []

        for tier in tiers:
            try:
                outcome = await tier.attempt(context)
            except ThumbnailTierError as e:
                log_exception(logger, e, extra_context={"video_id": record.id, "tier": tier.name})
                errors.append(e)
                continue
            except Exception as e:
                log_exception(logger, e, extra_context={"video_id": record.id, "tier": tier.name})
                errors.append(
                    ThumbnailTierError(
                        message=f"Thumbnail tier {tier.name} failed unexpectedly",
                        metadata={"tier": tier.name},
                        debug_message=str(e),
                    )
                )
                continue

            if outcome.kind == OutcomeKind.DEFERRED:
                await self.repository.update(
                    record.id,
                    thumb_status=ThumbnailStatus.PROCESSING,
                    cdn_video_id=outcome.cdn_video_id,
                )
                logger.info(f"Thumbnail for {record.id} deferred to tier {tier.name}")
                return ThumbnailResult(
                    video_id=record.id, success=True, deferred=True, tier=tier.name
                )

            await self.repository.update(
                record.id,
                thumb_status=ThumbnailStatus.READY,
                thumbnail_kind=outcome.thumbnail_kind,
                thumbnail_ref=outcome.thumbnail_ref,
                thumb_error_message=None,
            )
            logger.info(f"Thumbnail for {record.id} ready from tier {tier.name}")
            return ThumbnailResult(
                video_id=record.id,
                success=True,
                tier=tier.name,
                thumbnail_kind=outcome.thumbnail_kind,
                thumbnail_ref=outcome.thumbnail_ref,
            )

        error = AllTiersExhaustedError(tier_errors=errors)
        await self.repository.update(
            record.id,
            thumb_status=ThumbnailStatus.ERROR,
            thumb_error_message="; ".join(error.metadata["tiers"]) or error.message,
        )
        log_exception(logger, error, extra_context={"video_id": record.id})
        return ThumbnailResult(video_id=record.id, success=False, error=error)

    async def retry(self, video_id: str, source: Optional[FrameSource] = None) -> ThumbnailResult:
        """Move a failed thumbnail back to pending and run the cascade again."""
        record = await self.repository.get(video_id)
        if record is None:
            raise NotFoundException(
                message="Video not found", resource_type="video", resource_id=video_id
            )
        if record.thumb_status == ThumbnailStatus.PROCESSING:
            raise ConflictException(
                message="Thumbnail generation already in progress",
                metadata={"video_id": video_id},
            )
        if record.thumb_status == ThumbnailStatus.ERROR:
            await self.repository.update(
                video_id,
                thumb_status=ThumbnailStatus.PENDING,
                thumb_error_message=None,
            )
        return await self.run(video_id, source=source)
