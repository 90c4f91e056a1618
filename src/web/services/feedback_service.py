"""
Feedback service - storage of reader feedback on analyses.

One feedback row per (entry, user). Resubmitting replaces the previous
feedback and marks it as not yet applied.
"""

import json
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from src.analyzers.result_parser import round_half_up
from src.utils.constants import RefinementConstants
from src.utils.models import UserFeedback
from src.web.models import AnalysisFeedback, Entry


# Custom Exceptions
class FeedbackServiceError(Exception):
    """Base exception for feedback service errors."""

    pass


class FeedbackValidationError(FeedbackServiceError):
    """Raised when feedback carries nothing to act on."""

    pass


def _is_empty(feedback: UserFeedback) -> bool:
    return (
        not feedback.summary_issue
        and not feedback.tag_suggestions
        and feedback.rating is None
        and feedback.is_helpful is None
        and not feedback.comments
    )


def to_user_feedback(row: AnalysisFeedback) -> UserFeedback:
    return UserFeedback(
        entry_id=row.entry_id,
        user_id=row.user_id,
        summary_issue=row.summary_issue,
        tag_suggestions=json.loads(row.tag_suggestions) if row.tag_suggestions else None,
        rating=row.rating,
        is_helpful=row.is_helpful,
        comments=row.comments,
    )


def save_feedback(db: Session, feedback: UserFeedback) -> AnalysisFeedback:
    """
    Create or replace a user's feedback on an entry.

    Args:
        db: Database session
        feedback: Feedback to store

    Returns:
        Stored AnalysisFeedback row (is_applied reset to False)

    Raises:
        FeedbackValidationError: If every feedback field is empty
    """
    if _is_empty(feedback):
        raise FeedbackValidationError("Feedback must include at least one field")

    now = datetime.now().isoformat()
    row = (
        db.query(AnalysisFeedback)
        .filter(
            AnalysisFeedback.entry_id == feedback.entry_id,
            AnalysisFeedback.user_id == feedback.user_id,
        )
        .first()
    )
    if row is None:
        row = AnalysisFeedback(entry_id=feedback.entry_id, user_id=feedback.user_id, created_at=now)
        db.add(row)

    row.summary_issue = feedback.summary_issue
    row.tag_suggestions = json.dumps(feedback.tag_suggestions or [], ensure_ascii=False)
    row.rating = feedback.rating
    row.is_helpful = feedback.is_helpful
    row.comments = feedback.comments
    row.is_applied = False
    row.applied_at = None
    row.updated_at = now

    db.commit()
    db.refresh(row)
    return row


def get_feedback_for_entry(db: Session, entry_id: int) -> List[UserFeedback]:
    """All feedback on an entry, newest first."""
    rows = (
        db.query(AnalysisFeedback)
        .filter(AnalysisFeedback.entry_id == entry_id)
        .order_by(AnalysisFeedback.created_at.desc(), AnalysisFeedback.id.desc())
        .all()
    )
    return [to_user_feedback(row) for row in rows]


def get_feedback_stats(db: Session, entry_id: int) -> Dict:
    """
    Summarize feedback on an entry.

    Returns:
        Dict with total, helpful, not_helpful, avg_rating (one decimal, 0
        without ratings) and common_issues (top 5 summary issues, keyed by
        their first 50 characters)
    """
    rows = db.query(AnalysisFeedback).filter(AnalysisFeedback.entry_id == entry_id).all()

    ratings = [row.rating for row in rows if row.rating is not None]
    avg_rating = round_half_up(sum(ratings) / len(ratings) * 10) / 10 if ratings else 0

    issues = Counter(
        row.summary_issue[:RefinementConstants.ISSUE_PREFIX_LENGTH]
        for row in rows
        if row.summary_issue
    )

    return {
        "total": len(rows),
        "helpful": sum(1 for row in rows if row.is_helpful is True),
        "not_helpful": sum(1 for row in rows if row.is_helpful is False),
        "avg_rating": avg_rating,
        "common_issues": [
            {"issue": issue, "count": count}
            for issue, count in issues.most_common(RefinementConstants.TOP_ISSUES)
        ],
    }


def mark_feedback_as_applied(
    db: Session, entry_id: int, user_id: int, updated_at: Optional[str] = None
) -> int:
    """
    Flag a user's feedback on an entry as applied.

    Args:
        updated_at: When given, only the submission stamped with this
            updated_at is flagged; a newer resubmission stays unapplied.

    Returns:
        Number of rows updated (0 or 1)
    """
    query = db.query(AnalysisFeedback).filter(
        AnalysisFeedback.entry_id == entry_id, AnalysisFeedback.user_id == user_id
    )
    if updated_at is not None:
        query = query.filter(AnalysisFeedback.updated_at == updated_at)
    updated = query.update({"is_applied": True, "applied_at": datetime.now().isoformat()})
    db.commit()
    return updated


def get_unapplied_feedback(
    db: Session,
    limit: int = RefinementConstants.UNAPPLIED_FEEDBACK_LIMIT,
    analyzed_only: bool = False,
) -> List[AnalysisFeedback]:
    """Oldest feedback not yet applied, optionally only on analyzed entries."""
    query = db.query(AnalysisFeedback).filter(AnalysisFeedback.is_applied.is_(False))
    if analyzed_only:
        query = query.join(Entry, Entry.id == AnalysisFeedback.entry_id).filter(Entry.analyzed_at.isnot(None))
    return (
        query
        .order_by(AnalysisFeedback.created_at.asc(), AnalysisFeedback.id.asc())
        .limit(limit)
        .all()
    )

