"""In-memory collaborators for the pipeline tests."""

import io
from collections.abc import Iterable
from typing import Any, Optional

from PIL import Image

from videoai.core.exceptions import (
    CdnProcessingError,
    DecodeUnsupportedError,
    NotFoundException,
    ReconciliationChannelError,
    ThumbnailTierError,
)
from videoai.models import SummaryBase, TranscriptBase, VideoRecord
from videoai.services.cdn import CdnVideoProcessor, CdnVideoState, CdnVideoStatus
from videoai.services.change_feed import ChangeCallback, ChangeFeed, Subscription
from videoai.services.repository import VideoRepository, apply_changes
from videoai.services.storage import ObjectStorage


def png_bytes(width: int = 640, height: int = 360, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class InMemoryVideoRepository(VideoRepository):
    def __init__(self, change_feed: Optional[ChangeFeed] = None):
        super().__init__(change_feed)
        self.records: dict[str, VideoRecord] = {}
        self.transcripts: list[TranscriptBase] = []
        self.summaries: list[SummaryBase] = []
        self.writes: list[tuple[str, dict[str, Any]]] = []

    async def insert(self, record: VideoRecord) -> VideoRecord:
        self.records[record.id] = record.model_copy(deep=True)
        self.writes.append((record.id, {"insert": True}))
        await self._announce("INSERT", record)
        return record

    async def get(self, video_id: str) -> Optional[VideoRecord]:
        record = self.records.get(video_id)
        return record.model_copy(deep=True) if record else None

    async def update(self, video_id: str, **changes: Any) -> VideoRecord:
        record = self.records.get(video_id)
        if record is None:
            raise NotFoundException(resource_type="video", resource_id=video_id)
        updated = apply_changes(record, changes)
        self.records[video_id] = updated
        self.writes.append((video_id, changes))
        await self._announce("UPDATE", updated)
        return updated.model_copy(deep=True)

    async def list_by_owner(self, owner_id: str) -> list[VideoRecord]:
        owned = [r for r in self.records.values() if r.user_id == owner_id]
        owned.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in owned]

    async def delete(self, video_id: str) -> bool:
        record = self.records.pop(video_id, None)
        if record is None:
            return False
        await self._announce("DELETE", record)
        return True

    async def save_transcript(self, transcript: TranscriptBase) -> None:
        self.transcripts.append(transcript)

    async def save_summary(self, summary: SummaryBase) -> None:
        self.summaries.append(summary)

    async def latest_transcript(self, video_id: str) -> Optional[TranscriptBase]:
        matching = [t for t in self.transcripts if t.video_id == video_id]
        return max(matching, key=lambda t: t.created_at) if matching else None

    async def latest_summary(self, video_id: str) -> Optional[SummaryBase]:
        matching = [s for s in self.summaries if s.video_id == video_id]
        return max(matching, key=lambda s: s.created_at) if matching else None


class FakeStorage(ObjectStorage):
    """
    Dict-backed object store.

    ``listing_lags`` hides new objects from ``list_keys`` (HEAD still sees them),
    ``drops_writes`` acknowledges puts without keeping the bytes.
    """

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.refuse_puts = False
        self.drops_writes = False
        self.listing_lags = False
        self.signing_fails = False
        self.failing_deletes: set[str] = set()

    async def presigned_put_url(self, bucket, key, content_type, expires_in) -> str:
        self.calls.append(("presign_put", bucket, key))
        if self.signing_fails:
            raise RuntimeError("signature service unavailable")
        return f"https://storage.test/{bucket}/{key}?X-Amz-Signature=put"

    async def presigned_get_url(self, bucket, key, expires_in) -> str:
        self.calls.append(("presign_get", bucket, key))
        if self.signing_fails:
            raise RuntimeError("signature service unavailable")
        return f"https://storage.test/{bucket}/{key}?X-Amz-Signature=get"

    async def put(self, bucket, key, data, content_type) -> bool:
        self.calls.append(("put", bucket, key))
        if self.refuse_puts:
            return False
        if not self.drops_writes:
            self.objects[(bucket, key)] = data
        return True

    async def exists(self, bucket, key) -> bool:
        self.calls.append(("head", bucket, key))
        return (bucket, key) in self.objects

    async def list_keys(self, bucket, prefix) -> list[str]:
        self.calls.append(("list", bucket, prefix))
        if self.listing_lags:
            return []
        return [k for (b, k) in self.objects if b == bucket and k.startswith(prefix)]

    async def delete(self, bucket, key) -> bool:
        self.calls.append(("delete", bucket, key))
        if key in self.failing_deletes:
            return False
        self.objects.pop((bucket, key), None)
        return True

    def keys(self, bucket: str) -> list[str]:
        return sorted(k for (b, k) in self.objects if b == bucket)

    @property
    def network_calls(self) -> list[tuple[str, str, str]]:
        return list(self.calls)


class FakeSubscription(Subscription):
    def __init__(self, feed: "FakeChangeFeed", owner_id: str, callback: ChangeCallback):
        self.feed = feed
        self.owner_id = owner_id
        self.callback = callback
        self.closed = False

    async def close(self) -> None:
        self.closed = True
        self.feed.subscribers.get(self.owner_id, []).remove(self)


class FakeChangeFeed(ChangeFeed):
    def __init__(self, unavailable: bool = False):
        self.unavailable = unavailable
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.subscribers: dict[str, list[FakeSubscription]] = {}

    async def publish(self, owner_id: str, event: dict[str, Any]) -> None:
        self.events.append((owner_id, event))
        for subscription in list(self.subscribers.get(owner_id, [])):
            await subscription.callback(event)

    async def subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        if self.unavailable:
            raise ReconciliationChannelError(metadata={"owner_id": owner_id})
        subscription = FakeSubscription(self, owner_id, callback)
        self.subscribers.setdefault(owner_id, []).append(subscription)
        return subscription

    def progression(self, video_id: str, field: str) -> list[str]:
        """Distinct consecutive values of ``field`` announced for a video."""
        values: list[str] = []
        for _, event in self.events:
            if event["video_id"] != video_id:
                continue
            if not values or values[-1] != event[field]:
                values.append(event[field])
        return values


class FakeCdn(CdnVideoProcessor):
    def __init__(self):
        self.started: list[dict[str, Any]] = []
        self.states: dict[str, CdnVideoState] = {}
        self.reachable: set[str] = set()
        self.deleted: list[str] = []
        self.fail_start = False
        self.fail_delete = False
        self.status_checks = 0

    async def start_processing(self, title, source_url, duration=None) -> str:
        if self.fail_start:
            raise CdnProcessingError(message="Video processor rejected the request")
        guid = f"guid-{len(self.started) + 1}"
        self.started.append({"guid": guid, "title": title, "source_url": source_url})
        self.states[guid] = CdnVideoState.PENDING
        return guid

    async def get_video_status(self, guid: str) -> CdnVideoStatus:
        self.status_checks += 1
        return CdnVideoStatus(guid=guid, state=self.states.get(guid, CdnVideoState.PENDING))

    def thumbnail_url(self, guid: str) -> str:
        return f"https://cdn.test/{guid}/thumbnail.jpg"

    def playlist_url(self, guid: str) -> str:
        return f"https://cdn.test/{guid}/playlist.m3u8"

    async def thumbnail_available(self, guid: str) -> bool:
        return guid in self.reachable

    async def delete_video(self, guid: str) -> bool:
        if self.fail_delete:
            return False
        self.deleted.append(guid)
        return True

    def finish(self, guid: str, thumbnail_reachable: bool = True) -> None:
        self.states[guid] = CdnVideoState.FINISHED
        if thumbnail_reachable:
            self.reachable.add(guid)


class RecordingCapture:
    """Frame capture stand-in; fails at the listed offsets (or always)."""

    def __init__(
        self,
        frame: Optional[bytes] = None,
        fail_offsets: Iterable[float] = (),
        error: Optional[ThumbnailTierError] = None,
    ):
        self.frame = frame or png_bytes()
        self.fail_offsets = set(fail_offsets)
        self.error = error
        self.calls: list[tuple[str, float]] = []

    async def __call__(self, location: str, offset: float, timeout: float) -> bytes:
        self.calls.append((location, offset))
        if self.error is not None:
            raise self.error
        if offset in self.fail_offsets:
            raise DecodeUnsupportedError(metadata={"offset": offset})
        return self.frame

    @property
    def offsets(self) -> list[float]:
        return [offset for _, offset in self.calls]


async def no_sleep(seconds: float) -> None:
    return None
