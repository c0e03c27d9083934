"""Video library operations: read, tag, resolve URLs, delete."""

from typing import Optional

from videoai.core.exceptions import ForbiddenException, NotFoundException
from videoai.core.logger import get_logger, log_business_error
from videoai.models import (
    ThumbnailKind,
    ThumbnailStatus,
    VideoInsightsPublic,
    VideoPublic,
    VideoRecord,
)
from videoai.services.cdn import CdnVideoProcessor
from videoai.services.playback_cache import PlaybackUrlCache
from videoai.services.repository import VideoRepository
from videoai.services.storage import ObjectStorage

logger = get_logger(__name__)


def _is_url(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


class VideoService:
    """Owner-facing operations on stored videos."""

    def __init__(
        self,
        repository: VideoRepository,
        storage: ObjectStorage,
        videos_bucket: str,
        thumbnails_bucket: str,
        playback_cache: PlaybackUrlCache,
        cdn: Optional[CdnVideoProcessor] = None,
        signed_url_expires_seconds: int = 3600,
    ):
        self.repository = repository
        self.storage = storage
        self.videos_bucket = videos_bucket
        self.thumbnails_bucket = thumbnails_bucket
        self.playback_cache = playback_cache
        self.cdn = cdn
        self.signed_url_expires_seconds = signed_url_expires_seconds

    async def get_owned(self, video_id: str, owner_id: str) -> VideoRecord:
        """
        Raises:
            NotFoundException: no such video
            ForbiddenException: the video belongs to someone else
        """
        record = await self.repository.get(video_id)
        if record is None:
            raise NotFoundException(
                message="Video not found", resource_type="video", resource_id=video_id
            )
        if record.user_id != owner_id:
            raise ForbiddenException(metadata={"video_id": video_id})
        return record

    async def list_videos(self, owner_id: str) -> list[VideoRecord]:
        return await self.repository.list_by_owner(owner_id)

    async def thumbnail_url(self, record: VideoRecord) -> Optional[str]:
        """Displayable URL for the record's authoritative thumbnail."""
        if record.thumb_status != ThumbnailStatus.READY or not record.thumbnail_ref:
            return None
        ref = record.thumbnail_ref
        if record.thumbnail_kind == ThumbnailKind.CDN or _is_url(ref):
            return ref
        return await self.storage.presigned_get_url(
            self.thumbnails_bucket, ref, self.signed_url_expires_seconds
        )

    async def resolve_playback_url(self, record: VideoRecord) -> str:
        """
        URL to play the video: the cached local file, the CDN playlist once
        the CDN has finished, or a signed read URL.
        """
        cached = self.playback_cache.get(record.id)
        if cached:
            return cached

        if self.cdn is not None and record.cdn_video_id and record.thumbnail_kind == ThumbnailKind.CDN:
            url = self.cdn.playlist_url(record.cdn_video_id)
        else:
            url = await self.storage.presigned_get_url(
                self.videos_bucket, record.storage_path, self.signed_url_expires_seconds
            )
        self.playback_cache.put(record.id, url)
        return url

    async def to_public(self, record: VideoRecord) -> VideoPublic:
        return VideoPublic(
            **record.model_dump(exclude={"thumbnail_kind", "thumbnail_ref"}),
            thumbnail_url=await self.thumbnail_url(record),
        )

    async def update_user_tags(self, video_id: str, owner_id: str, user_tags: list[str]) -> VideoRecord:
        await self.get_owned(video_id, owner_id)
        return await self.repository.update_tags(video_id, user_tags=user_tags)

    async def insights(self, video_id: str, owner_id: str) -> VideoInsightsPublic:
        """Latest transcript and summary for a video."""
        await self.get_owned(video_id, owner_id)
        transcript = await self.repository.latest_transcript(video_id)
        summary = await self.repository.latest_summary(video_id)
        return VideoInsightsPublic(
            video_id=video_id,
            transcript=transcript.content if transcript else None,
            transcript_language=transcript.language if transcript else None,
            summary=summary.content if summary else None,
            key_points=summary.key_points if summary else [],
        )

    async def delete_video(self, video_id: str, owner_id: str) -> None:
        """
        Delete a video and, best effort, everything it owns elsewhere.

        Blob, stored thumbnail and CDN copy are removed first; their failures
        are logged as warnings and never stop the record delete.
        """
        record = await self.get_owned(video_id, owner_id)

        if not await self.storage.delete(self.videos_bucket, record.storage_path):
            log_business_error(
                logger,
                "VIDEO_BLOB_DELETE_FAILED",
                "Raw video could not be deleted",
                {"video_id": video_id, "path": record.storage_path},
            )

        ref = record.thumbnail_ref
        if ref and record.thumbnail_kind != ThumbnailKind.CDN and not _is_url(ref):
            if not await self.storage.delete(self.thumbnails_bucket, ref):
                log_business_error(
                    logger,
                    "THUMBNAIL_DELETE_FAILED",
                    "Thumbnail could not be deleted",
                    {"video_id": video_id, "path": ref},
                )

        if record.cdn_video_id and self.cdn is not None:
            if not await self.cdn.delete_video(record.cdn_video_id):
                log_business_error(
                    logger,
                    "CDN_DELETE_FAILED",
                    "CDN copy could not be deleted",
                    {"video_id": video_id, "guid": record.cdn_video_id},
                )

        await self.repository.delete(video_id)
        self.playback_cache.evict(video_id)
        logger.info(f"Deleted video {video_id}")
