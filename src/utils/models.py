"""
Base models and data structures
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar
from pydantic import BaseModel, Field, field_validator

from src.utils.constants import AnalysisConstants


class MainPoint(BaseModel):
    point: str
    explanation: str = ""
    importance: float = Field(default=0.5, ge=0.0, le=1.0)


class KeyQuote(BaseModel):
    quote: str
    significance: str = ""


class ScoreDimensions(BaseModel):
    """Per-axis scores, 0-10. Either all four are present or the object is absent."""
    depth: float
    quality: float
    practicality: float
    novelty: float


class OpenSourceInfo(BaseModel):
    is_open_source: bool
    repo: Optional[str] = None
    license: Optional[str] = None
    language: Optional[str] = None


class ArticleAnalysisResult(BaseModel):
    """Structured analysis of one article"""
    one_line_summary: str = ""
    summary: str = ""
    main_points: List[MainPoint] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    domain: str = "unknown"
    subcategory: str = "unknown"
    ai_score: float = 5
    score_dimensions: Optional[ScoreDimensions] = None
    key_quotes: Optional[List[KeyQuote]] = None
    analysis_model: str = ""
    processing_time: int = 0  # milliseconds
    reflection_rounds: int = Field(default=0, ge=0)

    # Derived statistics
    content_length: Optional[int] = None
    word_count: Optional[int] = None
    reading_time_minutes: Optional[int] = None
    open_source: Optional[OpenSourceInfo] = None

    @field_validator("main_points")
    @classmethod
    def cap_main_points(cls, v):
        return v[:AnalysisConstants.MAX_MAIN_POINTS]

    @field_validator("tags")
    @classmethod
    def cap_tags(cls, v):
        return v[:AnalysisConstants.MAX_TAGS]

    @classmethod
    def empty(cls, analysis_model: str = "") -> "ArticleAnalysisResult":
        """Placeholder for a unit that failed: zero scores, empty collections"""
        return cls(
            domain="unknown",
            subcategory="unknown",
            ai_score=0,
            score_dimensions=ScoreDimensions(depth=0, quality=0, practicality=0, novelty=0),
            analysis_model=analysis_model,
        )


class AnalyzeMetadata(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    author: Optional[str] = None
    feed_name: Optional[str] = None
    feed_url: Optional[str] = None
    published_at: Optional[datetime] = None


class ReflectionResult(BaseModel):
    quality: float = 0
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    needs_refinement: bool = False
    scores: Optional[Dict[str, float]] = None


class UserFeedback(BaseModel):
    """User feedback on one analysis; unique per (entry_id, user_id)"""
    entry_id: int
    user_id: int
    summary_issue: Optional[str] = None
    tag_suggestions: Optional[List[str]] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    is_helpful: Optional[bool] = None
    comments: Optional[str] = None


class FeedbackAnalysis(BaseModel):
    needs_improvement: bool = False
    severity: Literal["low", "medium", "high"] = "low"
    feedback_type: Literal["summary", "tags", "general"] = "general"
    suggestions: List[str] = Field(default_factory=list)


class ImprovedResult(ArticleAnalysisResult):
    feedback_applied: int = 0
    feedback_analysis: Optional[FeedbackAnalysis] = None


class RelationType(str, Enum):
    SIMILAR = "similar"
    PREREQUISITE = "prerequisite"
    EXTENSION = "extension"
    CONTRADICTION = "contradiction"


class ArticleRelation(BaseModel):
    source_id: int
    target_id: int
    relation_type: RelationType
    strength: float = Field(ge=0.0, le=1.0)
    reason: Optional[str] = None


class GraphNode(BaseModel):
    id: int
    title: str
    layer: int


class GraphEdge(BaseModel):
    source: int
    target: int
    label: RelationType
    strength: float


class KnowledgeGraph(BaseModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


class PreliminaryEvaluation(BaseModel):
    """Cheap triage verdict"""
    ignore: bool
    reason: str = ""
    value: int = Field(ge=1, le=5)
    summary: str = ""
    language: str = "en"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    model: str = ""


class UserPreferences(BaseModel):
    preferred_domains: List[str] = Field(default_factory=list)
    preferred_tags: List[str] = Field(default_factory=list)
    language: Optional[str] = None


T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """Result of one unit of work (segment, candidate, relation save).

    Exactly one of ``value`` and ``error`` is set.
    """
    index: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class WorkflowContext:
    """Everything one orchestration call needs; built per call"""
    entry_id: int
    content: str
    llm: Any
    metadata: AnalyzeMetadata = field(default_factory=AnalyzeMetadata)
    user_id: Optional[int] = None
    vector_store: Any = None
    user_prefs: Optional[UserPreferences] = None
