import httpx
import pytest
from fastapi.testclient import TestClient

from videoai.api.deps import get_services
from videoai.core.config import settings as app_settings
from videoai.main import app
from videoai.models import (
    SummaryBase,
    ThumbnailKind,
    ThumbnailStatus,
    TranscriptBase,
    VideoRecord,
    VideoStatus,
)
from videoai.services.ai import AIProcessor
from videoai.services.container import ServiceContainer
from videoai.services.videos import VideoService

from tests.conftest import OWNER, THUMBNAILS_BUCKET, VIDEOS_BUCKET

API = app_settings.API_V1_STR
HEADERS = {"X-User-Id": OWNER}


@pytest.fixture
def services(
    settings, repository, storage, change_feed, cdn, acquirer, transport, thumbnails, playback_cache, pipeline
) -> ServiceContainer:
    return ServiceContainer(
        settings=settings,
        repository=repository,
        storage=storage,
        change_feed=change_feed,
        cdn=cdn,
        acquirer=acquirer,
        transport=transport,
        thumbnails=thumbnails,
        playback_cache=playback_cache,
        ai_processor=AIProcessor(repository=repository, storage=storage, videos_bucket=VIDEOS_BUCKET),
        pipeline=pipeline,
        videos=VideoService(
            repository=repository,
            storage=storage,
            videos_bucket=VIDEOS_BUCKET,
            thumbnails_bucket=THUMBNAILS_BUCKET,
            playback_cache=playback_cache,
            cdn=cdn,
        ),
    )


@pytest.fixture
async def client(services):
    app.dependency_overrides[get_services] = lambda: services
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def upload_request(**overrides) -> dict:
    body = {"filename": "beach.mp4", "content_type": "video/mp4", "file_size": 5 * 1024 * 1024, "duration": 12}
    body.update(overrides)
    return body


async def test_missing_owner_header(client):
    response = await client.get(f"{API}/videos")

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Missing X-User-Id header",
        "error_code": "HTTP_401",
    }


async def test_upload_request_creates_uploading_record(client, repository):
    response = await client.post(f"{API}/videos/upload-request", json=upload_request(), headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    record = await repository.get(body["video_id"])
    assert record.status == VideoStatus.UPLOADING
    assert record.title == "beach.mp4"
    assert body["storage_path"] == record.storage_path
    assert body["upload_url"].startswith(f"https://storage.test/{VIDEOS_BUCKET}/{record.storage_path}")


async def test_upload_request_rejects_oversized_file(client, repository):
    response = await client.post(
        f"{API}/videos/upload-request",
        json=upload_request(file_size=200 * 1024 * 1024),
        headers=HEADERS,
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "ACQUISITION_REJECTED"
    assert body["error"] == "Video file is too large (max 100MB)"
    assert repository.records == {}


async def test_upload_request_schema_errors(client):
    response = await client.post(f"{API}/videos/upload-request", json=upload_request(file_size=0), headers=HEADERS)

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert "file_size" in body["field_errors"]


async def test_complete_without_stored_bytes_fails_the_video(client, repository):
    created = (
        await client.post(f"{API}/videos/upload-request", json=upload_request(), headers=HEADERS)
    ).json()
    video_id = created["video_id"]

    missing = await client.post(f"{API}/videos/{video_id}/complete", headers=HEADERS)

    assert missing.status_code == 400
    assert missing.json()["error_code"] == "UPLOAD_NOT_FOUND"
    record = await repository.get(video_id)
    assert record.status == VideoStatus.ERROR
    assert record.thumb_status == ThumbnailStatus.PENDING
    assert not record.needs_reconciliation

    again = await client.post(f"{API}/videos/{video_id}/complete", headers=HEADERS)
    assert again.status_code == 409


async def test_complete_flow(client, repository, storage):
    created = (
        await client.post(f"{API}/videos/upload-request", json=upload_request(), headers=HEADERS)
    ).json()
    video_id = created["video_id"]

    storage.objects[(VIDEOS_BUCKET, created["storage_path"])] = b"video bytes"
    response = await client.post(f"{API}/videos/{video_id}/complete", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"success": True, "video_id": video_id, "status": "ready"}
    record = await repository.get(video_id)
    assert record.status == VideoStatus.READY
    assert record.thumb_status == ThumbnailStatus.READY
    assert record.thumbnail_kind == ThumbnailKind.STORAGE

    again = await client.post(f"{API}/videos/{video_id}/complete", headers=HEADERS)
    assert again.status_code == 409


async def test_server_side_upload(client, repository, playback_cache):
    response = await client.post(
        f"{API}/videos/upload",
        files={"file": ("beach.mp4", b"\x00" * 4096, "video/mp4")},
        data={"title": "Beach day"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    video_id = response.json()["video_id"]
    record = await repository.get(video_id)
    assert record.title == "Beach day"
    assert record.status == VideoStatus.READY
    assert video_id not in playback_cache


async def test_server_side_upload_rejects_unknown_type(client, repository):
    response = await client.post(
        f"{API}/videos/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_VIDEO"
    assert repository.records == {}


async def test_list_is_scoped_to_owner(client, stored_video):
    mine = await stored_video()
    await stored_video(owner_id="user-2")

    body = (await client.get(f"{API}/videos", headers=HEADERS)).json()

    assert body["count"] == 1
    assert body["data"][0]["id"] == mine.id


async def test_other_owner_is_forbidden(client, stored_video):
    theirs = await stored_video(owner_id="user-2")

    response = await client.get(f"{API}/videos/{theirs.id}", headers=HEADERS)

    assert response.status_code == 403
    assert response.json()["success"] is False


async def test_status_reports_thumbnail_error(client, stored_video):
    record = await stored_video(
        thumb_status=ThumbnailStatus.ERROR,
        thumb_error_message="DECODE_UNSUPPORTED: Video codec not supported",
    )

    body = (await client.get(f"{API}/videos/{record.id}/status", headers=HEADERS)).json()

    assert body == {
        "video_id": record.id,
        "status": "processing",
        "thumb_status": "error",
        "thumb_error": "DECODE_UNSUPPORTED: Video codec not supported",
    }


async def test_status_includes_thumbnail_url(client, stored_video):
    record = await stored_video(
        thumb_status=ThumbnailStatus.READY,
        thumbnail_kind=ThumbnailKind.CDN,
        thumbnail_ref="https://cdn.test/guid-1/thumbnail.jpg",
    )

    body = (await client.get(f"{API}/videos/{record.id}/status", headers=HEADERS)).json()

    assert body["thumbnail_url"] == "https://cdn.test/guid-1/thumbnail.jpg"


async def test_playback_url(client, stored_video):
    record = await stored_video()

    body = (await client.get(f"{API}/videos/{record.id}/playback", headers=HEADERS)).json()

    assert body["url"].startswith(f"https://storage.test/{VIDEOS_BUCKET}/{record.storage_path}")


async def test_update_tags(client, stored_video):
    record = await stored_video(ai_tags=["ocean"])

    response = await client.put(
        f"{API}/videos/{record.id}/tags", json={"user_tags": ["beach"]}, headers=HEADERS
    )

    assert response.status_code == 200
    assert response.json()["tags"] == ["beach", "ocean"]


async def test_retry_failed_thumbnail(client, stored_video, repository):
    record = await stored_video(thumb_status=ThumbnailStatus.ERROR, thumb_error_message="boom")

    body = (await client.post(f"{API}/videos/{record.id}/thumbnail/retry", headers=HEADERS)).json()

    assert body["success"] is True
    assert body["thumb_status"] == "ready"
    assert (await repository.get(record.id)).thumb_error_message is None


async def test_retry_while_processing_conflicts(client, stored_video):
    record = await stored_video(thumb_status=ThumbnailStatus.PROCESSING)

    response = await client.post(f"{API}/videos/{record.id}/thumbnail/retry", headers=HEADERS)

    assert response.status_code == 409


async def test_insights(client, stored_video, repository):
    record = await stored_video()
    await repository.save_transcript(TranscriptBase(video_id=record.id, content="hello", language="en"))
    await repository.save_summary(SummaryBase(video_id=record.id, content="A greeting.", model_used="gemini"))

    body = (await client.get(f"{API}/videos/{record.id}/insights", headers=HEADERS)).json()

    assert body["transcript"] == "hello"
    assert body["summary"] == "A greeting."


async def test_delete(client, stored_video, repository):
    record = await stored_video()

    response = await client.delete(f"{API}/videos/{record.id}", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"message": "Video deleted successfully"}
    assert await repository.get(record.id) is None
    assert (await client.get(f"{API}/videos/{record.id}", headers=HEADERS)).status_code == 404


async def test_library_stream(services, repository):
    record = VideoRecord(
        user_id=OWNER,
        title="Sunset run",
        storage_path=f"{OWNER}/1700000000000_clip.mp4",
        status=VideoStatus.READY,
        thumb_status=ThumbnailStatus.READY,
        thumbnail_kind=ThumbnailKind.PLACEHOLDER,
        thumbnail_ref="https://placehold.test/400x225.jpg",
    )
    repository.records[record.id] = record
    app.dependency_overrides[get_services] = lambda: services

    try:
        with TestClient(app).websocket_connect(f"{API}/videos/ws?user_id={OWNER}") as ws:
            opening = [ws.receive_json(), ws.receive_json()]
            by_type = {m["type"]: m for m in opening}
            assert by_type["connected"]["push"] is True
            assert by_type["library"]["count"] == 1
            assert by_type["library"]["data"][0]["thumbnail_url"] == "https://placehold.test/400x225.jpg"

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"type": "refresh"})
            refreshed = ws.receive_json()
            assert refreshed["type"] == "library"
            assert refreshed["data"][0]["id"] == record.id
    finally:
        app.dependency_overrides.clear()
