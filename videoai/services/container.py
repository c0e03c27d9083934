"""Composition root: builds every collaborator from settings."""

from dataclasses import dataclass
from typing import Optional

from videoai.core.config import Settings
from videoai.core.logger import get_logger
from videoai.services.ai import AIProcessor, GeminiSummarizer, WhisperTranscriber
from videoai.services.cdn import BunnyStreamClient, CdnVideoProcessor
from videoai.services.change_feed import ChangeFeed, RedisChangeFeed
from videoai.services.media import MediaAcquirer
from videoai.services.pipeline import MediaPipeline
from videoai.services.playback_cache import PlaybackUrlCache
from videoai.services.reconciler import ListCallback, StatusReconciler
from videoai.services.repository import BeanieVideoRepository, VideoRepository
from videoai.services.storage import ObjectStorage, S3ObjectStorage
from videoai.services.thumbnails import (
    CdnStrategy,
    FrameExtractor,
    LocalFrameStrategy,
    PlaceholderStrategy,
    ThumbnailPipeline,
)
from videoai.services.upload import DestinationCategory, UploadTransport
from videoai.services.videos import VideoService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    repository: VideoRepository
    storage: ObjectStorage
    change_feed: Optional[ChangeFeed]
    cdn: Optional[CdnVideoProcessor]
    acquirer: MediaAcquirer
    transport: UploadTransport
    thumbnails: ThumbnailPipeline
    playback_cache: PlaybackUrlCache
    ai_processor: AIProcessor
    pipeline: MediaPipeline
    videos: VideoService

    @classmethod
    def build(
        cls,
        settings: Settings,
        repository: Optional[VideoRepository] = None,
        storage: Optional[ObjectStorage] = None,
        change_feed: Optional[ChangeFeed] = None,
        cdn: Optional[CdnVideoProcessor] = None,
    ) -> "ServiceContainer":
        """Wire the pipeline. Explicit collaborators override the configured ones."""
        if change_feed is None and repository is None:
            change_feed = RedisChangeFeed(settings.REDIS_URL)
        repository = repository or BeanieVideoRepository(change_feed)

        storage = storage or S3ObjectStorage(
            endpoint=settings.S3_ENDPOINT,
            access_key=settings.S3_ACCESS_KEY,
            secret_key=settings.S3_SECRET_KEY,
            region=settings.S3_REGION,
            use_ssl=settings.S3_USE_SSL,
        )

        if cdn is None and settings.cdn_enabled:
            cdn = BunnyStreamClient(
                library_id=settings.BUNNY_STREAM_LIBRARY_ID,
                api_key=settings.BUNNY_STREAM_API_KEY,
                cdn_hostname=settings.BUNNY_STREAM_CDN_HOSTNAME,
                api_url=settings.BUNNY_STREAM_API_URL,
            )

        acquirer = MediaAcquirer(
            max_bytes=settings.MAX_UPLOAD_BYTES,
            max_duration_seconds=settings.MAX_DURATION_SECONDS,
            allowed_types=settings.ALLOWED_VIDEO_TYPES,
        )

        transport = UploadTransport(
            storage=storage,
            repository=repository,
            buckets={
                DestinationCategory.VIDEOS: settings.S3_VIDEOS_BUCKET,
                DestinationCategory.THUMBNAILS: settings.S3_THUMBNAILS_BUCKET,
            },
            upload_url_expires_seconds=settings.UPLOAD_URL_EXPIRES_SECONDS,
            timeout_seconds=settings.TRANSFER_TIMEOUT_SECONDS,
            chunk_bytes=settings.TRANSFER_CHUNK_BYTES,
        )

        extractor = FrameExtractor(
            width=settings.THUMBNAIL_WIDTH,
            height=settings.THUMBNAIL_HEIGHT,
            quality=settings.THUMBNAIL_QUALITY,
            timeout_seconds=settings.FRAME_EXTRACTION_TIMEOUT_SECONDS,
        )
        thumbnails = ThumbnailPipeline(
            repository=repository,
            storage=storage,
            strategies=[
                LocalFrameStrategy(
                    extractor,
                    storage,
                    settings.S3_THUMBNAILS_BUCKET,
                    verify_delay_seconds=settings.UPLOAD_VERIFY_DELAY_SECONDS,
                    multi_position=settings.THUMBNAIL_MULTI_POSITION,
                ),
                CdnStrategy(
                    cdn,
                    storage,
                    settings.S3_VIDEOS_BUCKET,
                    read_url_expires_seconds=settings.SIGNED_URL_EXPIRES_SECONDS,
                ),
                PlaceholderStrategy(
                    extractor,
                    storage,
                    settings.S3_THUMBNAILS_BUCKET,
                    static_url=settings.PLACEHOLDER_THUMBNAIL_URL,
                ),
            ],
            videos_bucket=settings.S3_VIDEOS_BUCKET,
            read_url_expires_seconds=settings.SIGNED_URL_EXPIRES_SECONDS,
        )

        playback_cache = PlaybackUrlCache(settings.PLAYBACK_CACHE_SIZE)

        transcriber = None
        summarizer = None
        if settings.OPENAI_API_KEY:
            transcriber = WhisperTranscriber(
                api_key=settings.OPENAI_API_KEY,
                url=settings.OPENAI_TRANSCRIPTION_URL,
                model=settings.OPENAI_TRANSCRIPTION_MODEL,
            )
            if settings.GEMINI_API_KEY:
                summarizer = GeminiSummarizer(settings.GEMINI_API_KEY, settings.GEMINI_MODEL)
        else:
            logger.info("OPENAI_API_KEY not set, AI processing disabled")

        ai_processor = AIProcessor(
            repository=repository,
            storage=storage,
            videos_bucket=settings.S3_VIDEOS_BUCKET,
            transcriber=transcriber,
            summarizer=summarizer,
            max_bytes=settings.TRANSCRIPTION_MAX_BYTES,
            read_url_expires_seconds=settings.SIGNED_URL_EXPIRES_SECONDS,
        )

        pipeline = MediaPipeline(
            acquirer=acquirer,
            transport=transport,
            thumbnails=thumbnails,
            repository=repository,
            playback_cache=playback_cache,
            ai_processor=ai_processor,
        )

        videos = VideoService(
            repository=repository,
            storage=storage,
            videos_bucket=settings.S3_VIDEOS_BUCKET,
            thumbnails_bucket=settings.S3_THUMBNAILS_BUCKET,
            playback_cache=playback_cache,
            cdn=cdn,
            signed_url_expires_seconds=settings.SIGNED_URL_EXPIRES_SECONDS,
        )

        return cls(
            settings=settings,
            repository=repository,
            storage=storage,
            change_feed=change_feed,
            cdn=cdn,
            acquirer=acquirer,
            transport=transport,
            thumbnails=thumbnails,
            playback_cache=playback_cache,
            ai_processor=ai_processor,
            pipeline=pipeline,
            videos=videos,
        )

    def reconciler_for(self, owner_id: str, on_change: Optional[ListCallback] = None) -> StatusReconciler:
        return StatusReconciler(
            owner_id=owner_id,
            repository=self.repository,
            thumbnails=self.thumbnails,
            change_feed=self.change_feed,
            cdn=self.cdn,
            on_change=on_change,
            poll_interval_seconds=self.settings.POLL_INTERVAL_SECONDS,
        )

    async def shutdown(self) -> None:
        await self.ai_processor.shutdown()
        self.playback_cache.clear()
        if isinstance(self.cdn, BunnyStreamClient):
            await self.cdn.aclose()
        if isinstance(self.change_feed, RedisChangeFeed):
            await self.change_feed.disconnect()
