"""
Preliminary triage job processing.

Each entry gets a cheap 1-5 value score. Entries that pass are queued
for deep analysis at the same priority as their triage job.
"""

from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session
import logging

from src.analyzers.preliminary_evaluator import PreliminaryEvaluator
from src.utils.constants import QueueConstants
from src.utils.models import PreliminaryEvaluation
from src.web.models import AnalysisJob
from src.web.services import entry_service, queue_service
from src.web.services.pipeline_factory import Pipeline

logger = logging.getLogger(__name__)


class PreliminaryResult(BaseModel):
    entry_id: int
    evaluation: Optional[PreliminaryEvaluation] = None
    queued_for_deep_analysis: bool = False


async def evaluate_entry(
    db: Session,
    entry_id: int,
    pipeline: Pipeline,
    force: bool = False,
    user_id: Optional[int] = None,
    priority: int = QueueConstants.DEFAULT_PRIORITY,
) -> PreliminaryResult:
    """
    Triage an entry and queue it for deep analysis if it passes.

    A failure to queue the deep analysis is logged, not raised.

    Raises:
        EntryNotFoundError: If entry doesn't exist
        MissingContentError: If entry has no content
    """
    entry = entry_service.get_entry(db, entry_id)
    content = entry_service.require_content(entry)

    if entry.prelim_evaluated_at and not force:
        logger.info(f"Entry {entry_id} already evaluated, skipping")
        return PreliminaryResult(entry_id=entry_id)

    evaluator = PreliminaryEvaluator(
        pipeline.llm,
        pipeline.model_selector,
        min_value=pipeline.config.queue.preliminary_min_value,
        detector=pipeline.detector,
    )
    evaluation = await evaluator.evaluate(entry.title, content)
    entry_service.save_preliminary(db, entry, evaluation)
    logger.info(
        f"Entry {entry_id} triaged: value={evaluation.value}, ignore={evaluation.ignore}, "
        f"language={evaluation.language}"
    )

    queued = False
    if not evaluation.ignore:
        try:
            enqueued = queue_service.enqueue(
                db,
                entry_id,
                QueueConstants.DEEP_ANALYSIS,
                user_id=user_id,
                priority=priority,
            )
            queued = enqueued.status in ("queued", "already_queued")
        except (queue_service.QueueServiceError, entry_service.EntryServiceError) as e:
            logger.error(f"Failed to queue entry {entry_id} for deep analysis: {e}")

    return PreliminaryResult(entry_id=entry_id, evaluation=evaluation, queued_for_deep_analysis=queued)


async def process_job(db: Session, job: AnalysisJob, pipeline: Pipeline) -> PreliminaryResult:
    """Process one claimed preliminary job."""
    if job.queue != QueueConstants.PRELIMINARY:
        raise ValueError(f"Job {job.id} belongs to the {job.queue} queue")
    return await evaluate_entry(
        db,
        job.entry_id,
        pipeline,
        force=job.force,
        user_id=job.user_id,
        priority=job.priority,
    )
