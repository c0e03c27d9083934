"""Persistence of video records, transcripts and summaries.

``VideoRepository`` is the interface the pipeline writes through. Every
write produces a fully validated ``VideoRecord`` (tags recomputed, thumbnail
invariants checked) and announces the change on the change feed.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import ValidationError
from pymongo.errors import PyMongoError

from videoai.core.exceptions import NotFoundException, RecordPersistenceError
from videoai.core.logger import get_logger
from videoai.models import (
    Summary,
    SummaryBase,
    Transcript,
    TranscriptBase,
    Video,
    VideoRecord,
    utc_now,
)
from videoai.services.change_feed import ChangeFeed

logger = get_logger(__name__)


def apply_changes(record: VideoRecord, changes: dict[str, Any]) -> VideoRecord:
    """
    Return a new record with ``changes`` applied and re-validated.

    Raises:
        RecordPersistenceError: the result would break a record invariant
    """
    data = record.model_dump()
    data.update(changes)
    data["updated_at"] = utc_now()
    try:
        return VideoRecord.model_validate(data)
    except ValidationError as e:
        raise RecordPersistenceError(
            metadata={"video_id": record.id, "fields": sorted(changes)},
            debug_message=str(e),
        ) from e


class VideoRepository(ABC):
    """Storage of ``VideoRecord`` plus AI outputs."""

    def __init__(self, change_feed: Optional[ChangeFeed] = None):
        self.change_feed = change_feed

    async def _announce(self, event_type: str, record: VideoRecord) -> None:
        if self.change_feed is None:
            return
        await self.change_feed.publish(
            record.user_id,
            {
                "type": event_type,
                "video_id": record.id,
                "status": record.status.value,
                "thumb_status": record.thumb_status.value,
            },
        )

    @abstractmethod
    async def insert(self, record: VideoRecord) -> VideoRecord:
        """Persist a new record."""

    @abstractmethod
    async def get(self, video_id: str) -> Optional[VideoRecord]:
        """Fetch one record, or None."""

    @abstractmethod
    async def update(self, video_id: str, **changes: Any) -> VideoRecord:
        """
        Apply field changes in a single write.

        Raises:
            NotFoundException: no such record
            RecordPersistenceError: the write failed or broke an invariant
        """

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[VideoRecord]:
        """All records of an owner, newest first."""

    @abstractmethod
    async def delete(self, video_id: str) -> bool:
        """Remove a record. Returns False when it did not exist."""

    @abstractmethod
    async def save_transcript(self, transcript: TranscriptBase) -> None: ...

    @abstractmethod
    async def save_summary(self, summary: SummaryBase) -> None: ...

    @abstractmethod
    async def latest_transcript(self, video_id: str) -> Optional[TranscriptBase]: ...

    @abstractmethod
    async def latest_summary(self, video_id: str) -> Optional[SummaryBase]: ...

    async def update_tags(
        self,
        video_id: str,
        user_tags: Optional[list[str]] = None,
        ai_tags: Optional[list[str]] = None,
    ) -> VideoRecord:
        """Replace one or both tag sources; the merged view follows in the same write."""
        changes: dict[str, Any] = {}
        if user_tags is not None:
            changes["user_tags"] = user_tags
        if ai_tags is not None:
            changes["ai_tags"] = ai_tags
        return await self.update(video_id, **changes)


class BeanieVideoRepository(VideoRepository):
    """MongoDB repository on top of the Beanie documents."""

    async def insert(self, record: VideoRecord) -> VideoRecord:
        try:
            await Video.from_record(record).insert()
        except PyMongoError as e:
            raise RecordPersistenceError(
                metadata={"video_id": record.id},
                debug_message=str(e),
            ) from e
        await self._announce("INSERT", record)
        return record

    async def get(self, video_id: str) -> Optional[VideoRecord]:
        doc = await Video.get(video_id)
        return doc.to_record() if doc else None

    async def update(self, video_id: str, **changes: Any) -> VideoRecord:
        doc = await Video.get(video_id)
        if not doc:
            raise NotFoundException(
                message="Video not found",
                resource_type="video",
                resource_id=video_id,
            )

        updated = apply_changes(doc.to_record(), changes)
        for name, value in updated.model_dump(exclude={"id"}).items():
            setattr(doc, name, value)

        try:
            await doc.save()
        except PyMongoError as e:
            raise RecordPersistenceError(
                metadata={"video_id": video_id},
                debug_message=str(e),
            ) from e

        await self._announce("UPDATE", updated)
        return updated

    async def list_by_owner(self, owner_id: str) -> list[VideoRecord]:
        docs = await Video.find(Video.user_id == owner_id).sort(-Video.created_at).to_list()
        return [doc.to_record() for doc in docs]

    async def delete(self, video_id: str) -> bool:
        doc = await Video.get(video_id)
        if not doc:
            return False
        record = doc.to_record()
        await doc.delete()
        await self._announce("DELETE", record)
        return True

    async def save_transcript(self, transcript: TranscriptBase) -> None:
        await Transcript(**transcript.model_dump()).insert()

    async def save_summary(self, summary: SummaryBase) -> None:
        await Summary(**summary.model_dump()).insert()

    async def latest_transcript(self, video_id: str) -> Optional[Transcript]:
        return await (
            Transcript.find(Transcript.video_id == video_id)
            .sort(-Transcript.created_at)
            .first_or_none()
        )

    async def latest_summary(self, video_id: str) -> Optional[Summary]:
        return await (
            Summary.find(Summary.video_id == video_id)
            .sort(-Summary.created_at)
            .first_or_none()
        )
