import asyncio

import httpx

from videoai.models import ThumbnailKind, ThumbnailStatus, VideoStatus
from videoai.services.media import MediaAsset
from videoai.services.pipeline import CANCELLED, MediaPipeline
from videoai.services.playback_cache import PlaybackUrlCache
from videoai.services.thumbnails import FrameExtractor
from videoai.services.upload import DestinationCategory, UploadTransport

from tests.conftest import OWNER, THUMBNAILS_BUCKET, VIDEOS_BUCKET
from tests.fakes import png_bytes

MB = 1024 * 1024


def write_video(path, size: int) -> None:
    with open(path, "wb") as f:
        f.write(b"\x00\x00\x00\x18ftypmp42")
        f.truncate(size)


async def test_five_megabyte_clip_end_to_end(pipeline, acquirer, repository, change_feed, storage, tmp_path):
    path = tmp_path / "beach.mp4"
    write_video(path, 5 * MB)
    acquired = await acquirer.pick_file(path)
    assert acquired.success

    result = await pipeline.upload(acquired.asset, OWNER, title="Beach day")

    assert result.success
    record = await repository.get(result.video_id)
    assert record.status == VideoStatus.READY
    assert record.thumb_status == ThumbnailStatus.READY
    assert record.thumbnail_kind == ThumbnailKind.STORAGE
    assert record.thumbnail_ref
    assert record.title == "Beach day"
    assert record.duration == 12
    assert storage.objects[(VIDEOS_BUCKET, record.storage_path)] == path.read_bytes()
    assert change_feed.progression(record.id, "status") == ["uploading", "processing", "ready"]
    assert change_feed.progression(record.id, "thumb_status") == ["pending", "processing", "ready"]


async def test_local_file_is_cached_for_playback(pipeline, acquirer, playback_cache, tmp_path):
    path = tmp_path / "beach.mp4"
    write_video(path, MB)
    acquired = await acquirer.pick_file(path)

    result = await pipeline.upload(acquired.asset, OWNER)

    assert playback_cache.get(result.video_id) == path.resolve().as_uri()
    playback_cache.evict(result.video_id)
    assert path.exists()


async def test_captured_file_is_released_when_evicted(pipeline, acquirer, playback_cache):
    acquired = await acquirer.capture(b"\x00" * 4096, filename="camera.mp4")
    asset = acquired.asset

    result = await pipeline.upload(asset, OWNER)

    assert result.success
    assert asset.path.exists()
    playback_cache.evict(result.video_id)
    assert asset.released
    assert not asset.path.exists()


async def test_captured_file_survives_cache_pressure_during_extraction(
    acquirer, transport, make_thumbnails, repository
):
    cache = PlaybackUrlCache(max_entries=1)
    acquired = await acquirer.capture(b"\x00" * 4096, filename="camera.mp4")
    asset = acquired.asset
    seen_on_disk = []

    async def busy_capture(location, offset, timeout):
        # Another upload lands in the cache while frames are decoded
        cache.put("other-video", "https://storage.test/other.mp4")
        seen_on_disk.append(asset.path.exists())
        return png_bytes()

    thumbnails = make_thumbnails(frame_extractor=FrameExtractor(capture=busy_capture))
    pipeline = MediaPipeline(
        acquirer=acquirer,
        transport=transport,
        thumbnails=thumbnails,
        repository=repository,
        playback_cache=cache,
    )

    result = await pipeline.upload(asset, OWNER)

    assert result.success
    assert seen_on_disk == [True]
    record = await repository.get(result.video_id)
    assert record.thumbnail_kind == ThumbnailKind.STORAGE
    assert cache.get(result.video_id) == asset.file_url
    assert asset.path.exists()


async def test_oversized_upload_makes_no_network_call(pipeline, repository, storage, endpoint, tmp_path):
    path = tmp_path / "huge.mp4"
    write_video(path, 120 * MB)
    asset = MediaAsset(path=path, filename="huge.mp4", file_size=120 * MB, content_type="video/mp4")

    result = await pipeline.upload(asset, OWNER)

    assert not result.success
    assert result.video_id is None
    assert result.error == "Video file is too large (max 100MB)"
    assert repository.records == {}
    assert storage.calls == []
    assert endpoint.requests == []


async def test_network_drop_fails_video_but_not_thumbnail(
    pipeline, acquirer, repository, endpoint, capture, cdn, storage, tmp_path
):
    endpoint.fail_with = httpx.RemoteProtocolError("peer closed connection mid-stream")
    path = tmp_path / "beach.mp4"
    write_video(path, MB)
    acquired = await acquirer.pick_file(path)

    result = await pipeline.upload(acquired.asset, OWNER)

    assert not result.success
    assert result.error == "Network error during upload"
    record = await repository.get(result.video_id)
    assert record.status == VideoStatus.ERROR
    assert record.thumb_status == ThumbnailStatus.PENDING
    assert capture.calls == []
    assert cdn.started == []
    assert storage.keys(THUMBNAILS_BUCKET) == []


async def test_negotiation_failure_creates_no_record(pipeline, acquirer, repository, storage, tmp_path):
    storage.signing_fails = True
    path = tmp_path / "beach.mp4"
    write_video(path, MB)
    acquired = await acquirer.pick_file(path)

    result = await pipeline.upload(acquired.asset, OWNER)

    assert not result.success
    assert result.video_id is None
    assert repository.records == {}


async def test_cancel_before_transfer(pipeline, acquirer, repository, endpoint, tmp_path):
    path = tmp_path / "beach.mp4"
    write_video(path, MB)
    acquired = await acquirer.pick_file(path)
    cancel = asyncio.Event()
    cancel.set()

    result = await pipeline.upload(acquired.asset, OWNER, cancel_event=cancel)

    assert result.error == CANCELLED
    assert (await repository.get(result.video_id)).status == VideoStatus.ERROR
    assert endpoint.requests == []


async def test_cancel_abandons_inflight_transfer(acquirer, thumbnails, repository, storage, tmp_path):
    started = asyncio.Event()

    async def hanging(request):
        started.set()
        await asyncio.sleep(10)
        return httpx.Response(200)

    path = tmp_path / "beach.mp4"
    write_video(path, MB)
    acquired = await acquirer.pick_file(path)
    cancel = asyncio.Event()

    async with httpx.AsyncClient(transport=httpx.MockTransport(hanging)) as client:
        pipeline = MediaPipeline(
            acquirer=acquirer,
            transport=UploadTransport(
                storage=storage,
                repository=repository,
                buckets={DestinationCategory.VIDEOS: VIDEOS_BUCKET},
                client=client,
            ),
            thumbnails=thumbnails,
            repository=repository,
        )
        upload = asyncio.create_task(pipeline.upload(acquired.asset, OWNER, cancel_event=cancel))
        await asyncio.wait_for(started.wait(), timeout=5)
        cancel.set()
        result = await asyncio.wait_for(upload, timeout=5)

    assert not result.success
    assert result.error == CANCELLED
    record = await repository.get(result.video_id)
    assert record.status == VideoStatus.ERROR
    assert record.thumb_status == ThumbnailStatus.PENDING
