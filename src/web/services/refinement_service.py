"""
Applies stored reader feedback to analyses.

Feedback is saved by the API without touching the analysis. This service
picks up unapplied feedback, runs the FeedbackEngine against the entry's
current analysis, stores the improved result, and flags the feedback as
applied.
"""

from sqlalchemy.orm import Session
import logging

from src.analyzers.feedback_engine import FeedbackEngine
from src.analyzers.reflection_engine import ReflectionEngine
from src.utils.models import ArticleAnalysisResult, ImprovedResult
from src.web.models import AnalysisFeedback
from src.web.services import entry_service, feedback_service
from src.web.services.pipeline_factory import Pipeline

logger = logging.getLogger(__name__)


def feedback_engine_for(pipeline: Pipeline, language: str) -> FeedbackEngine:
    reflection = ReflectionEngine(
        pipeline.llm, model=pipeline.model_selector.select_model(language, "reflection")
    )
    return FeedbackEngine(
        pipeline.llm,
        reflection_engine=reflection,
        model=pipeline.model_selector.select_model(language, "analysis"),
    )


async def apply_feedback(db: Session, row: AnalysisFeedback, pipeline: Pipeline) -> ImprovedResult:
    """
    Improve one entry's analysis with one piece of feedback.

    Feedback resubmitted while the improvement runs is left unapplied.

    Raises:
        EntryNotFoundError: If the entry no longer exists
        EntryServiceError: If the entry has not been analyzed yet
    """
    submitted_at = row.updated_at
    entry = entry_service.get_entry(db, row.entry_id)
    current = entry_service.entry_to_result(entry)
    if current is None:
        raise entry_service.EntryServiceError(f"Entry {entry.id} has no analysis to improve")

    language = entry.prelim_language or pipeline.detector.quick_detect(entry.content)
    engine = feedback_engine_for(pipeline, language)
    improved = await engine.improve_with_feedback(
        entry.id, current, feedback_service.to_user_feedback(row), entry.content
    )

    if improved.feedback_applied > 0:
        stored = ArticleAnalysisResult.model_validate(
            improved.model_dump(exclude={"feedback_applied", "feedback_analysis"})
        )
        entry_service.save_analysis_result(db, entry, stored)

    feedback_service.mark_feedback_as_applied(db, row.entry_id, row.user_id, updated_at=submitted_at)
    return improved


async def apply_pending_feedback(db: Session, pipeline: Pipeline, limit: int = 10) -> int:
    """
    Apply the oldest unapplied feedback.

    Returns:
        Number of feedback rows processed
    """
    processed = 0
    for row in feedback_service.get_unapplied_feedback(db, limit, analyzed_only=True):
        try:
            improved = await apply_feedback(db, row, pipeline)
            processed += 1
            logger.info(
                f"Applied feedback {row.id} to entry {row.entry_id} "
                f"({improved.feedback_applied} improvements)"
            )
        except entry_service.EntryServiceError as e:
            logger.warning(f"Skipping feedback {row.id}: {e}")
    return processed
