"""
Entry service - article lookup and persistence of analysis results.

Entries are created by feed ingestion outside this service. This module
only reads them, checks ownership, and writes the preliminary and deep
analysis fields back onto the row.
"""

import json
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from src.knowledge.relation_extractor import EntrySummary
from src.utils.models import (
    AnalyzeMetadata,
    ArticleAnalysisResult,
    KeyQuote,
    MainPoint,
    OpenSourceInfo,
    PreliminaryEvaluation,
    ScoreDimensions,
)
from src.web.models import Entry


class EntryServiceError(Exception):
    """Base exception for entry service errors."""

    pass


class EntryNotFoundError(EntryServiceError):
    """Raised when an entry does not exist or belongs to another user."""

    pass


class MissingContentError(EntryServiceError):
    """Raised when an entry has no text to analyze."""

    pass


def get_entry(db: Session, entry_id: int) -> Entry:
    """
    Get entry by ID.

    Raises:
        EntryNotFoundError: If entry doesn't exist
    """
    entry = db.query(Entry).filter(Entry.id == entry_id).first()
    if not entry:
        raise EntryNotFoundError(f"Entry {entry_id} not found")
    return entry


def get_owned_entry(db: Session, entry_id: int, user_id: int) -> Entry:
    """
    Get entry by ID, scoped to its owner.

    Another user's entry is reported exactly like a missing one.

    Raises:
        EntryNotFoundError: If entry doesn't exist or isn't owned by user_id
    """
    entry = (
        db.query(Entry)
        .filter(Entry.id == entry_id, Entry.user_id == user_id)
        .first()
    )
    if not entry:
        raise EntryNotFoundError(f"Entry {entry_id} not found")
    return entry


def require_content(entry: Entry) -> str:
    """
    Return the entry's text.

    Raises:
        MissingContentError: If the entry has no content
    """
    if not entry.content or not entry.content.strip():
        raise MissingContentError(f"Entry {entry.id} has no content")
    return entry.content


def entry_metadata(entry: Entry) -> AnalyzeMetadata:
    published_at = None
    if entry.published_at:
        try:
            published_at = datetime.fromisoformat(entry.published_at)
        except ValueError:
            published_at = None

    return AnalyzeMetadata(
        title=entry.title,
        url=entry.url,
        author=entry.author,
        feed_name=entry.feed_name,
        feed_url=entry.feed_url,
        published_at=published_at,
    )


def entry_summary(entry: Entry) -> EntrySummary:
    return EntrySummary(
        id=entry.id,
        title=entry.title,
        summary=entry.ai_summary or entry.prelim_summary,
    )


def save_preliminary(db: Session, entry: Entry, evaluation: PreliminaryEvaluation) -> Entry:
    """Write a preliminary evaluation onto the entry and commit."""
    entry.prelim_ignore = evaluation.ignore
    entry.prelim_reason = evaluation.reason
    entry.prelim_value = evaluation.value
    entry.prelim_summary = evaluation.summary
    entry.prelim_language = evaluation.language
    entry.prelim_confidence = evaluation.confidence
    entry.prelim_model = evaluation.model
    entry.prelim_evaluated_at = datetime.now().isoformat()
    db.commit()
    db.refresh(entry)
    return entry


def save_analysis_result(db: Session, entry: Entry, result: ArticleAnalysisResult) -> Entry:
    """
    Persist a deep analysis onto the entry and stamp analyzed_at.

    List and object fields are stored as JSON text.
    """
    entry.ai_one_line_summary = result.one_line_summary
    entry.ai_summary = result.summary
    entry.ai_main_points = json.dumps([p.model_dump() for p in result.main_points], ensure_ascii=False)
    entry.ai_tags = json.dumps(result.tags, ensure_ascii=False)
    entry.ai_domain = result.domain
    entry.ai_subcategory = result.subcategory
    entry.ai_score = result.ai_score
    entry.ai_score_dimensions = (
        json.dumps(result.score_dimensions.model_dump()) if result.score_dimensions else None
    )
    entry.ai_key_quotes = (
        json.dumps([q.model_dump() for q in result.key_quotes], ensure_ascii=False)
        if result.key_quotes is not None
        else None
    )
    entry.ai_open_source = json.dumps(result.open_source.model_dump()) if result.open_source else None
    entry.ai_analysis_model = result.analysis_model
    entry.ai_processing_time = result.processing_time
    entry.ai_reflection_rounds = result.reflection_rounds
    entry.content_length = result.content_length
    entry.word_count = result.word_count
    entry.reading_time_minutes = result.reading_time_minutes
    entry.analyzed_at = datetime.now().isoformat()
    db.commit()
    db.refresh(entry)
    return entry


def entry_to_result(entry: Entry) -> Optional[ArticleAnalysisResult]:
    """Rebuild the stored analysis, or None if the entry was never analyzed."""
    if not entry.analyzed_at:
        return None

    dimensions = json.loads(entry.ai_score_dimensions) if entry.ai_score_dimensions else None
    quotes = json.loads(entry.ai_key_quotes) if entry.ai_key_quotes else None
    open_source = json.loads(entry.ai_open_source) if entry.ai_open_source else None

    return ArticleAnalysisResult(
        one_line_summary=entry.ai_one_line_summary or "",
        summary=entry.ai_summary or "",
        main_points=[MainPoint(**p) for p in json.loads(entry.ai_main_points or "[]")],
        tags=json.loads(entry.ai_tags or "[]"),
        domain=entry.ai_domain or "unknown",
        subcategory=entry.ai_subcategory or "unknown",
        ai_score=entry.ai_score if entry.ai_score is not None else 5,
        score_dimensions=ScoreDimensions(**dimensions) if dimensions else None,
        key_quotes=[KeyQuote(**q) for q in quotes] if quotes is not None else None,
        analysis_model=entry.ai_analysis_model or "",
        processing_time=entry.ai_processing_time or 0,
        reflection_rounds=entry.ai_reflection_rounds or 0,
        content_length=entry.content_length,
        word_count=entry.word_count,
        reading_time_minutes=entry.reading_time_minutes,
        open_source=OpenSourceInfo(**open_source) if open_source else None,
    )
