"""Upload flow: validate, negotiate, record, transfer, finalize, thumbnail, ready.

``MediaPipeline.upload`` is the single entry point for an acquired asset.
Every failure is turned into an ``UploadResult``; nothing escapes the flow.
"""

import asyncio
from typing import Optional

from videoai.core.exceptions import BaseAppException
from videoai.core.logger import bind_video, end_flow, get_logger, log_exception, start_flow
from videoai.models import VideoStatus
from videoai.services.ai import AIProcessor
from videoai.services.media import MediaAcquirer, MediaAsset
from videoai.services.playback_cache import PlaybackUrlCache
from videoai.services.repository import VideoRepository
from videoai.services.thumbnails import FrameSource, ThumbnailPipeline
from videoai.services.upload import (
    DestinationCategory,
    ProgressCallback,
    TransferResult,
    UploadResult,
    UploadTransport,
)

logger = get_logger(__name__)

CANCELLED = "cancelled"


class MediaPipeline:
    """Orchestrates one upload from local asset to playable record."""

    def __init__(
        self,
        acquirer: MediaAcquirer,
        transport: UploadTransport,
        thumbnails: ThumbnailPipeline,
        repository: VideoRepository,
        playback_cache: Optional[PlaybackUrlCache] = None,
        ai_processor: Optional[AIProcessor] = None,
    ):
        self.acquirer = acquirer
        self.transport = transport
        self.thumbnails = thumbnails
        self.repository = repository
        self.playback_cache = playback_cache
        self.ai_processor = ai_processor

    async def _transfer_or_cancel(
        self,
        asset: MediaAsset,
        write_url: str,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[asyncio.Event],
    ) -> TransferResult:
        transfer = asyncio.create_task(self.transport.transfer(asset, write_url, on_progress))
        if cancel_event is None:
            return await transfer

        cancelled = asyncio.create_task(cancel_event.wait())
        done, _ = await asyncio.wait({transfer, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        if transfer in done:
            cancelled.cancel()
            return transfer.result()

        # In-flight PUT is abandoned
        transfer.cancel()
        await asyncio.gather(transfer, return_exceptions=True)
        return TransferResult(success=False, error=CANCELLED)

    async def upload(
        self,
        asset: MediaAsset,
        owner_id: str,
        title: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UploadResult:
        """
        Run the full upload flow for ``asset``.

        Args:
            asset: Validated or raw acquired asset
            owner_id: Owner of the new record
            title: Display title, defaults to the filename
            on_progress: Called after each transferred chunk
            cancel_event: Set it to abandon the upload; the record goes to error

        Returns:
            UploadResult with the new video id or an error description
        """
        start_flow()
        video_id: Optional[str] = None
        try:
            await self.acquirer.validate(asset)

            target = await self.transport.negotiate_upload_target(
                owner_id,
                asset.filename,
                DestinationCategory.VIDEOS,
                asset.content_type or "video/mp4",
            )
            record = await self.transport.create_record(
                owner_id, asset, target.canonical_path, title
            )
            video_id = record.id
            bind_video(video_id)
            logger.info(f"Created record {video_id} for {asset.filename}")

            if cancel_event is not None and cancel_event.is_set():
                transfer = TransferResult(success=False, error=CANCELLED)
            else:
                transfer = await self._transfer_or_cancel(
                    asset, target.write_url, on_progress, cancel_event
                )

            await self.transport.finalize(video_id, transfer.success)
            if not transfer.success:
                logger.warning(f"Upload of {video_id} failed: {transfer.error}")
                return UploadResult(success=False, video_id=video_id, error=transfer.error)

            result = await self.thumbnails.run(
                video_id,
                source=FrameSource(location=str(asset.path), duration=asset.duration),
            )
            if not result.success and result.error is not None:
                logger.warning(f"No thumbnail for {video_id}: {result.error.message}")

            # Registered only after extraction: eviction releases temporary bytes
            if self.playback_cache is not None:
                self.playback_cache.put(
                    video_id,
                    asset.file_url,
                    release=asset.release if asset.temporary else None,
                )

            await self.repository.update(video_id, status=VideoStatus.READY)

            if self.ai_processor is not None:
                self.ai_processor.schedule(video_id)

            logger.info(f"Upload of {video_id} complete")
            return UploadResult(success=True, video_id=video_id)

        except BaseAppException as e:
            log_exception(logger, e, extra_context={"video_id": video_id})
            await self._mark_failed(video_id)
            return UploadResult(success=False, video_id=video_id, error=e.message)
        except Exception as e:
            logger.exception(f"Unexpected error during upload: {e}")
            await self._mark_failed(video_id)
            return UploadResult(success=False, video_id=video_id, error="Unexpected error during upload")
        finally:
            end_flow()

    async def _mark_failed(self, video_id: Optional[str]) -> None:
        if video_id is None:
            return
        try:
            record = await self.repository.get(video_id)
            if record is None or record.status != VideoStatus.UPLOADING:
                return
            await self.repository.update(video_id, status=VideoStatus.ERROR)
        except BaseAppException as e:
            log_exception(logger, e, extra_context={"video_id": video_id})
