"""Pydantic schemas for LLM structured output extraction."""

from pydantic import BaseModel, Field


class VideoInsights(BaseModel):
    """Schema for summary, tags and key points extracted from a transcript."""

    summary: str = Field(description="Concise summary of the video, 2-3 paragraphs")
    tags: list[str] = Field(
        default_factory=list, description="5-10 short tags for categorization"
    )
    key_points: list[str] = Field(
        default_factory=list, description="3-5 key points or takeaways"
    )
