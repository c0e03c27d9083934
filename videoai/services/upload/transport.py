"""Upload transport: negotiate a write target, create the record, move the bytes."""

import asyncio
from typing import AsyncIterator, Optional

import httpx

from videoai.core.exceptions import TargetNegotiationError, TransferError
from videoai.core.logger import get_logger
from videoai.models import VideoRecord, VideoStatus
from videoai.services.media import MediaAsset
from videoai.services.repository import VideoRepository
from videoai.services.storage import ObjectStorage, build_storage_path

from .base import (
    DestinationCategory,
    ProgressCallback,
    TransferResult,
    UploadProgress,
    UploadTarget,
)

logger = get_logger(__name__)


class UploadTransport:
    """Moves an acquired asset into object storage and tracks it as a record."""

    def __init__(
        self,
        storage: ObjectStorage,
        repository: VideoRepository,
        buckets: dict[DestinationCategory, str],
        upload_url_expires_seconds: int = 3600,
        timeout_seconds: float = 60.0,
        chunk_bytes: int = 256 * 1024,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.storage = storage
        self.repository = repository
        self.buckets = buckets
        self.upload_url_expires_seconds = upload_url_expires_seconds
        self.timeout_seconds = timeout_seconds
        self.chunk_bytes = chunk_bytes
        self._client = client

    async def negotiate_upload_target(
        self,
        owner_id: str,
        filename: str,
        destination_category: DestinationCategory = DestinationCategory.VIDEOS,
        content_type: str = "video/mp4",
    ) -> UploadTarget:
        """
        Ask storage for a one-time write URL at the canonical path.

        Raises:
            TargetNegotiationError: storage refused to sign the request
        """
        bucket = self.buckets[destination_category]
        path = build_storage_path(owner_id, filename)
        try:
            write_url = await self.storage.presigned_put_url(
                bucket, path, content_type, self.upload_url_expires_seconds
            )
        except Exception as e:
            raise TargetNegotiationError(
                metadata={"bucket": bucket, "path": path},
                debug_message=str(e),
            ) from e
        return UploadTarget(write_url=write_url, canonical_path=path, bucket=bucket)

    async def create_record(
        self,
        owner_id: str,
        asset: MediaAsset,
        storage_path: str,
        title: Optional[str] = None,
    ) -> VideoRecord:
        """Insert the record as uploading/pending before any byte moves."""
        record = VideoRecord(
            user_id=owner_id,
            title=title or asset.filename,
            storage_path=storage_path,
            original_filename=asset.filename,
            content_type=asset.content_type,
            file_size=asset.file_size,
            duration=asset.duration,
            width=asset.width,
            height=asset.height,
            source_type=asset.source_type,
        )
        return await self.repository.insert(record)

    async def _chunks(
        self, asset: MediaAsset, on_progress: Optional[ProgressCallback]
    ) -> AsyncIterator[bytes]:
        loaded = 0
        f = await asyncio.to_thread(open, asset.path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(f.read, self.chunk_bytes)
                if not chunk:
                    break
                yield chunk
                loaded += len(chunk)
                if on_progress:
                    on_progress(UploadProgress.of(loaded, asset.file_size))
        finally:
            f.close()

    async def _put(
        self,
        client: httpx.AsyncClient,
        asset: MediaAsset,
        write_url: str,
        on_progress: Optional[ProgressCallback],
    ) -> httpx.Response:
        headers = {
            "Content-Type": asset.content_type or "application/octet-stream",
            # Presigned PUTs reject chunked transfer encoding
            "Content-Length": str(asset.file_size),
        }
        return await client.put(
            write_url,
            content=self._chunks(asset, on_progress),
            headers=headers,
        )

    async def transfer(
        self,
        asset: MediaAsset,
        write_url: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransferResult:
        """
        PUT the asset bytes to ``write_url``.

        The whole transfer is bounded by ``timeout_seconds``. Failures are
        returned, not raised; nothing is retried.
        """
        try:
            if self._client is not None:
                response = await asyncio.wait_for(
                    self._put(self._client, asset, write_url, on_progress),
                    timeout=self.timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=None) as client:
                    response = await asyncio.wait_for(
                        self._put(client, asset, write_url, on_progress),
                        timeout=self.timeout_seconds,
                    )
        except asyncio.TimeoutError:
            return self._failed(asset, TransferError(
                error_code="TRANSFER_TIMEOUT",
                message="Upload timed out",
                metadata={"timeout_seconds": self.timeout_seconds},
            ))
        except httpx.HTTPError as e:
            return self._failed(asset, TransferError(
                message="Network error during upload",
                debug_message=str(e),
            ))
        except OSError as e:
            return self._failed(asset, TransferError(
                error_code="SOURCE_UNREADABLE",
                message="Video file could not be read",
                debug_message=str(e),
            ))

        if not response.is_success:
            return self._failed(asset, TransferError(
                message=f"Upload failed with status {response.status_code}",
                metadata={"status_code": response.status_code},
                debug_message=response.text[:200],
            ))

        return TransferResult(success=True, bytes_sent=asset.file_size)

    def _failed(self, asset: MediaAsset, failure: TransferError) -> TransferResult:
        logger.warning(
            f"Transfer of {asset.filename} failed [{failure.error_code}]: {failure.message}",
            extra={"extra_data": failure.to_dict(include_debug=True)},
        )
        return TransferResult.failed(failure)

    async def finalize(
        self,
        video_id: str,
        success: bool,
        thumbnails_deferred: bool = False,
    ) -> VideoRecord:
        """
        Record the transfer outcome.

        Success moves the video to processing (ready when thumbnails are
        deferred); failure moves it to error and leaves the thumbnail alone.
        """
        if not success:
            return await self.repository.update(video_id, status=VideoStatus.ERROR)
        status = VideoStatus.READY if thumbnails_deferred else VideoStatus.PROCESSING
        return await self.repository.update(video_id, status=status)
