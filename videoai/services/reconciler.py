"""Status reconciler: keep an owner's library in step with the backend.

Two producers feed one queue:
- push: change feed events for ``videos:user:{owner_id}``
- poll: a timer that runs only while some record still needs work

A single consumer drains the queue, so refreshes never overlap.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from videoai.core.exceptions import BaseAppException, CdnProcessingError, ReconciliationChannelError
from videoai.core.logger import get_logger, log_exception
from videoai.models import ThumbnailKind, ThumbnailStatus, VideoRecord
from videoai.services.cdn import CdnVideoProcessor, CdnVideoState
from videoai.services.change_feed import ChangeFeed, Subscription
from videoai.services.repository import VideoRepository
from videoai.services.thumbnails import ThumbnailPipeline

logger = get_logger(__name__)

ListCallback = Callable[[list[VideoRecord]], Union[None, Awaitable[None]]]

PUSH = "push"
POLL = "poll"
INITIAL = "initial"


class VideoLibrary:
    """In-memory view of one owner's records, newest first."""

    def __init__(self) -> None:
        self._records: dict[str, VideoRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[VideoRecord]:
        return sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)

    def get(self, video_id: str) -> Optional[VideoRecord]:
        return self._records.get(video_id)

    def replace(self, records: list[VideoRecord]) -> None:
        self._records = {r.id: r for r in records}

    def upsert(self, record: VideoRecord) -> None:
        self._records[record.id] = record

    def discard(self, video_id: str) -> None:
        self._records.pop(video_id, None)

    def needing_reconciliation(self) -> list[VideoRecord]:
        """Visible records whose thumbnail is still pending or processing."""
        return [r for r in self.records if r.needs_reconciliation]


class StatusReconciler:
    """Push/poll reconciliation loop for one owner."""

    def __init__(
        self,
        owner_id: str,
        repository: VideoRepository,
        thumbnails: ThumbnailPipeline,
        change_feed: Optional[ChangeFeed] = None,
        cdn: Optional[CdnVideoProcessor] = None,
        library: Optional[VideoLibrary] = None,
        on_change: Optional[ListCallback] = None,
        poll_interval_seconds: float = 10.0,
    ):
        self.owner_id = owner_id
        self.repository = repository
        self.thumbnails = thumbnails
        self.change_feed = change_feed
        self.cdn = cdn
        self.library = library or VideoLibrary()
        self.on_change = on_change
        self.poll_interval_seconds = poll_interval_seconds

        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._subscription: Optional[Subscription] = None
        self._consumer: Optional[asyncio.Task] = None
        self._poller: Optional[asyncio.Task] = None

    @property
    def push_active(self) -> bool:
        return self._subscription is not None

    @property
    def polling(self) -> bool:
        return self._poller is not None and not self._poller.done()

    async def start(self) -> None:
        """Subscribe to pushes, start the consumer and queue an initial refresh."""
        if self.change_feed is not None:
            try:
                self._subscription = await self.change_feed.subscribe(self.owner_id, self._on_push)
            except ReconciliationChannelError as e:
                log_exception(logger, e, extra_context={"owner_id": self.owner_id})
                self._subscription = None

        self._consumer = asyncio.create_task(self._consume())
        self.enqueue(INITIAL)

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        for task in (self._poller, self._consumer):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._poller = None
        self._consumer = None

    def enqueue(self, kind: str, payload: Any = None) -> None:
        self._queue.put_nowait((kind, payload))

    async def drain(self) -> None:
        """Wait until every queued trigger has been handled."""
        await self._queue.join()

    async def _on_push(self, event: dict[str, Any]) -> None:
        self.enqueue(PUSH, event)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_seconds)
            if not self.library.needing_reconciliation():
                logger.debug(f"Nothing left to reconcile for {self.owner_id}, polling stops")
                return
            self.enqueue(POLL)

    def _ensure_polling(self) -> None:
        if self.library.needing_reconciliation() and not self.polling:
            self._poller = asyncio.create_task(self._poll())

    async def _consume(self) -> None:
        while True:
            kind, payload = await self._queue.get()
            try:
                await self.refresh(advance=kind in (POLL, INITIAL))
            except BaseAppException as e:
                log_exception(logger, e, extra_context={"owner_id": self.owner_id, "trigger": kind})
            except Exception as e:
                logger.exception(f"Reconciliation failed for {self.owner_id}: {e}")
            finally:
                self._queue.task_done()

    async def refresh(self, advance: bool = False) -> list[VideoRecord]:
        """
        Refetch the owner's list, optionally advance stuck thumbnails,
        update the library and deliver the list.
        """
        records = await self.repository.list_by_owner(self.owner_id)
        if advance and await self._advance(records):
            records = await self.repository.list_by_owner(self.owner_id)

        self.library.replace(records)
        await self._deliver(self.library.records)
        self._ensure_polling()
        return records

    async def _deliver(self, records: list[VideoRecord]) -> None:
        if self.on_change is None:
            return
        result = self.on_change(records)
        if inspect.isawaitable(result):
            await result

    async def _advance(self, records: list[VideoRecord]) -> bool:
        """Move thumbnails forward where possible. Returns True if anything changed."""
        changed = False
        for record in records:
            if not record.needs_reconciliation:
                continue
            if record.thumb_status == ThumbnailStatus.PROCESSING and record.cdn_video_id:
                changed |= await self._check_cdn(record)
            elif (
                not record.cdn_video_id
                and record.bytes_stored
                and not self.thumbnails.is_running(record.id)
            ):
                # Pending, or processing left behind by an interrupted cascade
                logger.info(f"Re-running thumbnail cascade for stuck video {record.id}")
                result = await self.thumbnails.run(record.id)
                changed |= result.skipped_reason is None
        return changed

    async def _check_cdn(self, record: VideoRecord) -> bool:
        if self.cdn is None:
            return False
        guid = record.cdn_video_id
        try:
            status = await self.cdn.get_video_status(guid)
        except CdnProcessingError as e:
            log_exception(logger, e, extra_context={"video_id": record.id, "guid": guid})
            return False

        if status.state == CdnVideoState.FINISHED:
            if not await self.cdn.thumbnail_available(guid):
                logger.debug(f"CDN finished {guid} but thumbnail is not reachable yet")
                return False
            await self.repository.update(
                record.id,
                thumb_status=ThumbnailStatus.READY,
                thumbnail_kind=ThumbnailKind.CDN,
                thumbnail_ref=self.cdn.thumbnail_url(guid),
                thumb_error_message=None,
            )
            logger.info(f"CDN thumbnail ready for {record.id}")
            return True

        if status.state == CdnVideoState.FAILED:
            logger.warning(f"CDN processing failed for {record.id} (status {status.raw_status})")
            await self.thumbnails.run(record.id, start_after="cdn")
            return True

        return False
