"""Transcript and summary models produced by the AI collaborators."""
import uuid
from datetime import datetime
from typing import Optional

from beanie import Document
from pydantic import BaseModel, Field

from .base import utc_now


class TranscriptBase(BaseModel):
    """Speech-to-text output for a video. The newest one is authoritative."""
    video_id: str
    content: str
    language: Optional[str] = None
    confidence_score: Optional[float] = None
    created_at: datetime = Field(default_factory=utc_now)


class Transcript(Document, TranscriptBase):
    """Transcript document in MongoDB."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")

    class Settings:
        name = "transcripts"


class SummaryBase(BaseModel):
    """Prose summary for a video. The newest one is authoritative."""
    video_id: str
    content: str
    model_used: str
    key_points: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)


class Summary(Document, SummaryBase):
    """Summary document in MongoDB."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")

    class Settings:
        name = "summaries"


class TranscriptionResult(BaseModel):
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None


class SummarizationResult(BaseModel):
    summary: str
    tags: list[str] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list)
    model_used: str


class VideoInsightsPublic(BaseModel):
    video_id: str
    transcript: Optional[str] = None
    transcript_language: Optional[str] = None
    summary: Optional[str] = None
    key_points: list[str] = []
