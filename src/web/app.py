"""FastAPI application for the Article Insight analysis service.

Queues entries for triage and deep analysis, serves stored results,
collects reader feedback, and exposes related-article queries.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm import Session

from src.utils.config import Config
from src.utils.constants import QueueConstants, RelationConstants
from src.utils.logger import setup_logging
from src.utils.models import ArticleRelation, KnowledgeGraph, RelationType, UserFeedback
from src.web.config import settings
from src.web.database import get_db
from src.web.dependencies import get_pipeline, require_user
from src.web.schemas import (
    AnalysisResponse,
    AnalysisTriggerRequest,
    FeedbackCreate,
    JobStateResponse,
    PreliminaryResponse,
    UnanalyzedTriggerRequest,
)
from src.web.models import Entry, User
from src.web.services import (
    entry_service,
    feedback_service,
    queue_service,
    relation_service,
    scheduler_service,
)
from src.web.services.pipeline_factory import Pipeline
from src.web.error_handlers import (
    global_exception_handler,
    validation_exception_handler,
    get_friendly_message,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup/shutdown)."""
    # Disable scheduler during tests to avoid interference with test fixtures
    is_testing = os.getenv("TESTING", "false").lower() == "true"

    if not is_testing:
        analysis_config = Config()
        setup_logging(analysis_config.logging)
        logger.info("Starting Article Insight service")

        config = {
            "SCHEDULER_ENABLED": settings.scheduler_enabled,
            "RETRY_INTERVAL_MINUTES": settings.retry_interval_minutes,
            "CLEANUP_HOUR": settings.cleanup_hour,
            "CLEANUP_MINUTE": settings.cleanup_minute,
        }
        scheduler_service.start_scheduler(config, analysis_config)

    yield

    if not is_testing:
        logger.info("Shutting down Article Insight service")
        scheduler_service.stop_scheduler()


app = FastAPI(title=settings.app_title, lifespan=lifespan)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


def _owned_entry(db: Session, entry_id: int, user: User) -> Entry:
    try:
        return entry_service.get_owned_entry(db, entry_id, user.id)
    except entry_service.EntryNotFoundError as e:
        raise HTTPException(status_code=404, detail=get_friendly_message(e))


def _owned_job_id(db: Session, job_id: int, user: User) -> int:
    try:
        job = queue_service.get_job(db, job_id)
    except queue_service.JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=get_friendly_message(e))
    # Jobs without a user (e.g. created by a worker) are visible through their entry
    owner_id = job.user_id if job.user_id is not None else job.entry.user_id
    if owner_id != user.id:
        raise HTTPException(status_code=404, detail=get_friendly_message(queue_service.JobNotFoundError()))
    return job.id


def _enqueue(db: Session, entry: Entry, queue: str, user: User, request: AnalysisTriggerRequest):
    try:
        return queue_service.enqueue(
            db, entry.id, queue, user_id=user.id, priority=request.priority, force=request.force
        )
    except entry_service.MissingContentError as e:
        raise HTTPException(status_code=400, detail=get_friendly_message(e))
    except queue_service.QueueValidationError as e:
        raise HTTPException(status_code=400, detail=get_friendly_message(e))
    except queue_service.QueueInfrastructureError as e:
        raise HTTPException(status_code=503, detail=get_friendly_message(e))


@app.post("/entries/{entry_id}/preliminary")
async def trigger_preliminary(
    entry_id: int,
    request: AnalysisTriggerRequest = AnalysisTriggerRequest(),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Queue an entry for preliminary triage."""
    entry = _owned_entry(db, entry_id, user)
    return _enqueue(db, entry, QueueConstants.PRELIMINARY, user, request)


@app.post("/entries/{entry_id}/analysis")
async def trigger_deep_analysis(
    entry_id: int,
    request: AnalysisTriggerRequest = AnalysisTriggerRequest(),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Queue an entry for deep analysis."""
    entry = _owned_entry(db, entry_id, user)
    return _enqueue(db, entry, QueueConstants.DEEP_ANALYSIS, user, request)


@app.post("/preliminary/unanalyzed")
async def trigger_unanalyzed(
    request: UnanalyzedTriggerRequest = UnanalyzedTriggerRequest(),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Queue the user's entries that have not been triaged yet."""
    pending = (
        db.query(Entry)
        .filter(
            Entry.user_id == user.id,
            Entry.content.isnot(None),
            Entry.prelim_evaluated_at.is_(None),
        )
        .count()
    )
    if pending == 0:
        return {"added": 0, "remaining": 0}

    added = queue_service.add_unanalyzed_entries(
        db, limit=request.limit, priority=request.priority, user_id=user.id
    )
    return {"added": added, "remaining": max(0, pending - added)}


@app.get("/entries/{entry_id}/analysis", response_model=AnalysisResponse)
async def get_analysis(
    entry_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Stored triage and analysis for an entry."""
    entry = _owned_entry(db, entry_id, user)

    preliminary = None
    if entry.prelim_evaluated_at:
        preliminary = PreliminaryResponse(
            ignore=entry.prelim_ignore,
            reason=entry.prelim_reason,
            value=entry.prelim_value,
            summary=entry.prelim_summary,
            language=entry.prelim_language,
            confidence=entry.prelim_confidence,
            model=entry.prelim_model,
            evaluated_at=entry.prelim_evaluated_at,
        )

    return AnalysisResponse(
        entry_id=entry.id,
        title=entry.title,
        preliminary=preliminary,
        analysis=entry_service.entry_to_result(entry),
        analyzed_at=entry.analyzed_at,
    )


@app.post("/entries/{entry_id}/feedback")
async def submit_feedback(
    entry_id: int,
    feedback: FeedbackCreate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Save (or replace) the user's feedback on an entry's analysis."""
    _owned_entry(db, entry_id, user)

    try:
        feedback_service.save_feedback(
            db,
            UserFeedback(entry_id=entry_id, user_id=user.id, **feedback.model_dump()),
        )
    except feedback_service.FeedbackValidationError as e:
        raise HTTPException(status_code=400, detail=get_friendly_message(e))

    return {"status": "success", "message": "Thanks for your feedback!"}


@app.get("/entries/{entry_id}/feedback/stats")
async def feedback_stats(
    entry_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Feedback summary for an entry."""
    _owned_entry(db, entry_id, user)
    return feedback_service.get_feedback_stats(db, entry_id)


@app.get("/entries/{entry_id}/related", response_model=list[ArticleRelation])
async def related_articles(
    entry_id: int,
    limit: int = Query(default=RelationConstants.DEFAULT_LIMIT, ge=1, le=20),
    relation_type: Optional[RelationType] = None,
    min_similarity: float = Query(default=RelationConstants.DEFAULT_MIN_SIMILARITY, ge=0.0, le=1.0),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Related articles by embedding similarity, optionally confirmed as a relation type."""
    _owned_entry(db, entry_id, user)

    extractor = pipeline.relation_extractor(db, user.id)
    relations = await extractor.find_related_articles(
        entry_id, limit=limit, relation_type=relation_type, min_similarity=min_similarity
    )
    relation_service.save_relations(db, relations)
    return relations


@app.get("/entries/{entry_id}/graph", response_model=KnowledgeGraph)
async def knowledge_graph(
    entry_id: int,
    depth: int = Query(default=RelationConstants.GRAPH_DEFAULT_DEPTH, ge=1, le=3),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Knowledge graph of related articles around an entry."""
    _owned_entry(db, entry_id, user)
    extractor = pipeline.relation_extractor(db, user.id)
    return await extractor.build_knowledge_graph(entry_id, depth=depth)


@app.get("/queues/{queue}/status")
async def queue_status(
    queue: str,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Job counts and success rate for a queue."""
    try:
        return queue_service.get_queue_stats(db, queue)
    except queue_service.QueueValidationError as e:
        raise HTTPException(status_code=404, detail=get_friendly_message(e))


@app.get("/jobs/{job_id}", response_model=JobStateResponse)
async def job_state(
    job_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """State of one job."""
    _owned_job_id(db, job_id, user)
    return queue_service.get_job_state(db, job_id)


@app.post("/jobs/{job_id}/cancel")
async def cancel_job(
    job_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Cancel a pending job."""
    _owned_job_id(db, job_id, user)
    try:
        job = queue_service.cancel_job(db, job_id)
    except queue_service.InvalidJobStateError as e:
        raise HTTPException(status_code=409, detail=get_friendly_message(e))
    return {"status": "success", "job_id": job.id, "job_status": job.status}


@app.post("/jobs/{job_id}/retry")
async def retry_job(
    job_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """Send a failed job back to the queue."""
    _owned_job_id(db, job_id, user)
    try:
        job = queue_service.retry_job(db, job_id)
    except queue_service.InvalidJobStateError as e:
        raise HTTPException(status_code=409, detail=get_friendly_message(e))
    return {
        "status": "success",
        "job_id": job.id,
        "job_status": job.status,
        "retry_count": job.retry_count,
    }


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


@app.get("/health/scheduler")
async def scheduler_health():
    """
    Check scheduler status and jobs.

    Returns scheduler running status and scheduled jobs with their next run times.
    """
    jobs_info = [
        {
            "id": job.id,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "name": str(job.func),
        }
        for job in scheduler_service.scheduler.get_jobs()
    ]

    return {
        "running": scheduler_service.scheduler.running,
        "jobs": jobs_info,
        "job_count": len(jobs_info),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
