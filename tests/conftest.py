import logging
from typing import Optional

import httpx
import pytest

from videoai.core.config import Settings
from videoai.models import VideoRecord, VideoStatus
from videoai.services.ffmpeg import VideoProbe
from videoai.services.media import MediaAcquirer
from videoai.services.pipeline import MediaPipeline
from videoai.services.playback_cache import PlaybackUrlCache
from videoai.services.thumbnails import (
    CdnStrategy,
    FrameExtractor,
    LocalFrameStrategy,
    PlaceholderStrategy,
    ThumbnailPipeline,
)
from videoai.services.upload import DestinationCategory, UploadTransport

from tests.fakes import (
    FakeCdn,
    FakeChangeFeed,
    FakeStorage,
    InMemoryVideoRepository,
    RecordingCapture,
    no_sleep,
)

OWNER = "user-1"
VIDEOS_BUCKET = "videos"
THUMBNAILS_BUCKET = "thumbnails"
PLACEHOLDER_URL = "https://placehold.test/400x225.jpg"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="local",
        S3_VIDEOS_BUCKET=VIDEOS_BUCKET,
        S3_THUMBNAILS_BUCKET=THUMBNAILS_BUCKET,
        PLACEHOLDER_THUMBNAIL_URL=PLACEHOLDER_URL,
        OPENAI_API_KEY=None,
        GEMINI_API_KEY=None,
        BUNNY_STREAM_LIBRARY_ID=None,
    )


@pytest.fixture
def videoai_logs(caplog):
    """Route the application logger tree into caplog."""
    logger = logging.getLogger("videoai")
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="videoai")
    yield caplog
    logger.removeHandler(caplog.handler)


@pytest.fixture
def change_feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture
def repository(change_feed) -> InMemoryVideoRepository:
    return InMemoryVideoRepository(change_feed)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def cdn() -> FakeCdn:
    return FakeCdn()


@pytest.fixture
def capture() -> RecordingCapture:
    return RecordingCapture()


@pytest.fixture
def extractor(capture) -> FrameExtractor:
    return FrameExtractor(width=400, height=225, quality=80, capture=capture)


@pytest.fixture
def make_thumbnails(repository, storage, cdn, extractor):
    def build(
        cdn_enabled: bool = True,
        multi_position: bool = False,
        frame_extractor: Optional[FrameExtractor] = None,
    ) -> ThumbnailPipeline:
        frames = frame_extractor or extractor
        return ThumbnailPipeline(
            repository=repository,
            storage=storage,
            strategies=[
                LocalFrameStrategy(
                    frames,
                    storage,
                    THUMBNAILS_BUCKET,
                    multi_position=multi_position,
                    sleep=no_sleep,
                ),
                CdnStrategy(cdn if cdn_enabled else None, storage, VIDEOS_BUCKET),
                PlaceholderStrategy(frames, storage, THUMBNAILS_BUCKET, PLACEHOLDER_URL),
            ],
            videos_bucket=VIDEOS_BUCKET,
        )

    return build


@pytest.fixture
def thumbnails(make_thumbnails) -> ThumbnailPipeline:
    return make_thumbnails()


async def fixed_probe(path: str) -> VideoProbe:
    return VideoProbe(duration=12.0, width=1280, height=720)


@pytest.fixture
def acquirer(tmp_path) -> MediaAcquirer:
    return MediaAcquirer(
        max_bytes=100 * 1024 * 1024,
        max_duration_seconds=30 * 60,
        allowed_types=["video/mp4", "video/quicktime", "video/webm"],
        prober=fixed_probe,
        temp_dir=str(tmp_path),
    )


class StorageEndpoint:
    """MockTransport handler standing in for the presigned PUT target."""

    def __init__(self, storage: FakeStorage):
        self.storage = storage
        self.requests: list[httpx.Request] = []
        self.fail_with: Optional[Exception] = None
        self.status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if self.status_code >= 300:
            return httpx.Response(self.status_code, text="denied")
        bucket, key = request.url.path.lstrip("/").split("/", 1)
        self.storage.objects[(bucket, key)] = request.content
        return httpx.Response(self.status_code)


@pytest.fixture
def endpoint(storage) -> StorageEndpoint:
    return StorageEndpoint(storage)


@pytest.fixture
async def http_client(endpoint):
    async with httpx.AsyncClient(transport=httpx.MockTransport(endpoint)) as client:
        yield client


@pytest.fixture
def transport(storage, repository, http_client) -> UploadTransport:
    return UploadTransport(
        storage=storage,
        repository=repository,
        buckets={
            DestinationCategory.VIDEOS: VIDEOS_BUCKET,
            DestinationCategory.THUMBNAILS: THUMBNAILS_BUCKET,
        },
        timeout_seconds=5.0,
        chunk_bytes=64 * 1024,
        client=http_client,
    )


@pytest.fixture
def playback_cache() -> PlaybackUrlCache:
    return PlaybackUrlCache(max_entries=20)


@pytest.fixture
def pipeline(acquirer, transport, thumbnails, repository, playback_cache) -> MediaPipeline:
    return MediaPipeline(
        acquirer=acquirer,
        transport=transport,
        thumbnails=thumbnails,
        repository=repository,
        playback_cache=playback_cache,
    )


@pytest.fixture
def stored_video(repository):
    """Insert a record whose bytes are already in storage."""

    async def insert(
        owner_id: str = OWNER,
        status: VideoStatus = VideoStatus.PROCESSING,
        **fields,
    ) -> VideoRecord:
        record = VideoRecord(
            user_id=owner_id,
            title=fields.pop("title", "Sunset run"),
            storage_path=fields.pop("storage_path", f"{owner_id}/1700000000000_clip.mp4"),
            status=status,
            duration=fields.pop("duration", 12),
            **fields,
        )
        return await repository.insert(record)

    return insert
