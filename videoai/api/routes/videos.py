"""Video upload and library API routes.

Provides endpoints for:
- Requesting pre-signed upload URLs
- Marking uploads complete
- Listing videos and polling their status
- Editing tags, retrying thumbnails, deleting
- Reading transcript and summary
"""

from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, UploadFile

from videoai.api.deps import CurrentOwner, ServicesDep
from videoai.core.exceptions import ConflictException, ValidationException
from videoai.core.logger import get_logger
from videoai.models import (
    Message,
    VideoInsightsPublic,
    VideoPublic,
    VideoRecord,
    VideosPublic,
    VideoStatus,
    VideoTagsUpdate,
    VideoUploadRequest,
    VideoUploadResponse,
)
from videoai.services.upload import DestinationCategory

logger = get_logger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


@router.post("/upload-request", response_model=VideoUploadResponse)
async def request_video_upload(
    request: VideoUploadRequest,
    owner_id: CurrentOwner,
    services: ServicesDep,
) -> VideoUploadResponse:
    """
    Request a pre-signed URL for direct video upload.

    Flow:
    1. Client calls this endpoint with the file metadata
    2. Backend validates it, signs a PUT URL and creates an uploading record
    3. Client uploads directly to storage using the URL
    4. Client calls /videos/{video_id}/complete when done
    """
    services.acquirer.check(request.content_type, request.file_size, request.duration)

    target = await services.transport.negotiate_upload_target(
        owner_id,
        request.filename,
        DestinationCategory.VIDEOS,
        request.content_type,
    )

    record = await services.repository.insert(
        VideoRecord(
            user_id=owner_id,
            title=request.title or request.filename,
            storage_path=target.canonical_path,
            original_filename=request.filename,
            content_type=request.content_type,
            file_size=request.file_size,
            duration=request.duration,
            width=request.width,
            height=request.height,
        )
    )

    logger.info(f"Created upload request for video {record.id} by user {owner_id}")

    return VideoUploadResponse(
        video_id=record.id,
        upload_url=target.write_url,
        storage_path=target.canonical_path,
    )


@router.post("/upload")
async def upload_video(
    owner_id: CurrentOwner,
    services: ServicesDep,
    file: UploadFile = File(...),
    title: Optional[str] = Form(default=None),
) -> dict[str, Any]:
    """
    Upload a video through the server.

    The file is staged locally, validated and pushed through the full
    upload flow; the thumbnail is settled before the response.
    """
    data = await file.read()
    acquired = await services.acquirer.capture(
        data,
        filename=file.filename or "upload.mp4",
        content_type=file.content_type,
    )
    if not acquired.success:
        raise ValidationException(error_code="INVALID_VIDEO", message=acquired.error)

    asset = acquired.asset
    with asset:
        result = await services.pipeline.upload(asset, owner_id, title=title)
    # Staged file is only playable on this host
    if result.video_id:
        services.playback_cache.evict(result.video_id)

    if not result.success:
        raise ValidationException(
            error_code="UPLOAD_FAILED",
            message=result.error or "Upload failed",
            metadata={"video_id": result.video_id} if result.video_id else {},
        )

    return {"success": True, "video_id": result.video_id}


@router.post("/{video_id}/complete")
async def complete_video_upload(
    video_id: str,
    owner_id: CurrentOwner,
    services: ServicesDep,
    background_tasks: BackgroundTasks,
) -> dict[str, Any]:
    """
    Mark a direct upload as complete and start thumbnail generation.

    The video becomes ready immediately; the thumbnail cascade and AI
    processing continue in the background.
    """
    record = await services.videos.get_owned(video_id, owner_id)

    if record.status != VideoStatus.UPLOADING:
        raise ConflictException(
            message=f"Video is not pending upload (status: {record.status.value})",
            metadata={"video_id": video_id},
        )

    exists = await services.storage.exists(
        services.settings.S3_VIDEOS_BUCKET, record.storage_path
    )
    if not exists:
        await services.transport.finalize(video_id, False)
        logger.warning(f"Completion of {video_id} found no stored bytes, video marked failed")
        raise ValidationException(
            error_code="UPLOAD_NOT_FOUND",
            message="Video file not found in storage. Upload may have failed.",
            metadata={"video_id": video_id},
        )

    record = await services.transport.finalize(video_id, True, thumbnails_deferred=True)
    background_tasks.add_task(services.thumbnails.run, video_id)
    services.ai_processor.schedule(video_id)

    logger.info(f"Video {video_id} marked complete, thumbnail generation queued")

    return {
        "success": True,
        "video_id": video_id,
        "status": record.status,
    }


@router.get("", response_model=VideosPublic)
async def list_videos(owner_id: CurrentOwner, services: ServicesDep) -> VideosPublic:
    """List the caller's videos, newest first."""
    records = await services.videos.list_videos(owner_id)
    data = [await services.videos.to_public(r) for r in records]
    return VideosPublic(data=data, count=len(data))


@router.get("/{video_id}", response_model=VideoPublic)
async def get_video(video_id: str, owner_id: CurrentOwner, services: ServicesDep) -> VideoPublic:
    record = await services.videos.get_owned(video_id, owner_id)
    return await services.videos.to_public(record)


@router.get("/{video_id}/status")
async def get_video_status(
    video_id: str,
    owner_id: CurrentOwner,
    services: ServicesDep,
) -> dict[str, Any]:
    """
    Get video and thumbnail status (for polling).
    """
    record = await services.videos.get_owned(video_id, owner_id)

    response: dict[str, Any] = {
        "video_id": video_id,
        "status": record.status,
        "thumb_status": record.thumb_status,
    }
    thumbnail_url = await services.videos.thumbnail_url(record)
    if thumbnail_url:
        response["thumbnail_url"] = thumbnail_url
    if record.thumb_error_message:
        response["thumb_error"] = record.thumb_error_message
    return response


@router.get("/{video_id}/playback")
async def get_playback_url(
    video_id: str,
    owner_id: CurrentOwner,
    services: ServicesDep,
) -> dict[str, str]:
    record = await services.videos.get_owned(video_id, owner_id)
    return {"video_id": video_id, "url": await services.videos.resolve_playback_url(record)}


@router.put("/{video_id}/tags", response_model=VideoPublic)
async def update_video_tags(
    video_id: str,
    update: VideoTagsUpdate,
    owner_id: CurrentOwner,
    services: ServicesDep,
) -> VideoPublic:
    record = await services.videos.update_user_tags(video_id, owner_id, update.user_tags)
    return await services.videos.to_public(record)


@router.post("/{video_id}/thumbnail/retry")
async def retry_thumbnail(
    video_id: str,
    owner_id: CurrentOwner,
    services: ServicesDep,
) -> dict[str, Any]:
    """Re-run the thumbnail cascade for a video whose thumbnail failed."""
    await services.videos.get_owned(video_id, owner_id)
    result = await services.thumbnails.retry(video_id)
    record = await services.repository.get(video_id)

    response: dict[str, Any] = {
        "video_id": video_id,
        "success": result.success,
        "deferred": result.deferred,
        "thumb_status": record.thumb_status if record else None,
    }
    if result.error is not None:
        response["error"] = result.error.message
        response["tiers"] = result.error.metadata.get("tiers", [])
    elif result.skipped_reason:
        response["skipped"] = result.skipped_reason
    return response


@router.get("/{video_id}/insights", response_model=VideoInsightsPublic)
async def get_video_insights(
    video_id: str,
    owner_id: CurrentOwner,
    services: ServicesDep,
) -> VideoInsightsPublic:
    """Latest transcript and summary."""
    return await services.videos.insights(video_id, owner_id)


@router.delete("/{video_id}", response_model=Message)
async def delete_video(video_id: str, owner_id: CurrentOwner, services: ServicesDep) -> Message:
    await services.videos.delete_video(video_id, owner_id)
    return Message(message="Video deleted successfully")
