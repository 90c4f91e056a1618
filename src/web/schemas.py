"""
Pydantic schemas for the Article Insight API.

Request/response models for FastAPI endpoints with validation.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional

from src.utils.constants import QueueConstants
from src.utils.models import ArticleAnalysisResult


# Queue Schemas
class AnalysisTriggerRequest(BaseModel):
    """Request schema for queueing an entry."""

    priority: int = Field(
        default=QueueConstants.DEFAULT_PRIORITY,
        ge=QueueConstants.MIN_PRIORITY,
        le=QueueConstants.MAX_PRIORITY,
    )
    force: bool = Field(default=False)


class UnanalyzedTriggerRequest(BaseModel):
    """Request schema for queueing all entries without a preliminary evaluation."""

    limit: int = Field(default=100, ge=1, le=500)
    priority: int = Field(
        default=QueueConstants.DEFAULT_PRIORITY,
        ge=QueueConstants.MIN_PRIORITY,
        le=QueueConstants.MAX_PRIORITY,
    )


class JobStateResponse(BaseModel):
    """Response schema for a job's state."""

    id: int
    entry_id: int
    queue: str
    status: str
    priority: int
    retry_count: int
    max_attempts: int
    error_message: Optional[str] = None
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    next_retry_at: Optional[str] = None


# Analysis Schemas
class PreliminaryResponse(BaseModel):
    """Preliminary triage fields stored on an entry."""

    ignore: Optional[bool] = None
    reason: Optional[str] = None
    value: Optional[int] = None
    summary: Optional[str] = None
    language: Optional[str] = None
    confidence: Optional[float] = None
    model: Optional[str] = None
    evaluated_at: Optional[str] = None


class AnalysisResponse(BaseModel):
    """Response schema for an entry's analysis state."""

    entry_id: int
    title: str
    preliminary: Optional[PreliminaryResponse] = None
    analysis: Optional[ArticleAnalysisResult] = None
    analyzed_at: Optional[str] = None


# Feedback Schemas
class FeedbackCreate(BaseModel):
    """Request schema for submitting feedback on an analysis."""

    summary_issue: Optional[str] = Field(default=None, max_length=2000)
    tag_suggestions: Optional[list[str]] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    is_helpful: Optional[bool] = None
    comments: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("tag_suggestions")
    @classmethod
    def clean_tags(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        """Drop blank tags and surrounding whitespace."""
        if v is None:
            return None
        return [tag.strip() for tag in v if tag.strip()]
