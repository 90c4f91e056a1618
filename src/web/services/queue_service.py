"""
Analysis job queue backed by the analysis_jobs table.

Two queues share one table: "preliminary" (cheap triage) and
"deep-analysis" (full SmartAnalyzer run).

Job lifecycle:
1. pending: Created by enqueue(), waiting for a worker
2. processing: Claimed by claim_next_jobs()
3. completed: Worker finished successfully
4. failed: Worker raised; may go back to pending via retry
5. cancelled: Removed from the queue while still pending

At most one pending/processing job exists per (entry, queue). The partial
unique index uq_analysis_jobs_active enforces it; enqueue() recovers from
the IntegrityError a concurrent insert produces.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
import logging

from src.utils.constants import QueueConstants
from src.web.models import AnalysisJob, Entry
from src.web.services import entry_service

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY_SECONDS = 5


# Custom Exceptions
class QueueServiceError(Exception):
    """Base exception for queue service errors."""

    pass


class JobNotFoundError(QueueServiceError):
    """Raised when a job doesn't exist."""

    pass


class InvalidJobStateError(QueueServiceError):
    """Raised when a job can't make the requested transition."""

    pass


class QueueValidationError(QueueServiceError):
    """Raised for an unknown queue name or out-of-range priority."""

    pass


class QueueInfrastructureError(QueueServiceError):
    """Raised when the job store is unavailable; callers may retry."""

    pass


class EnqueueResult(BaseModel):
    entry_id: int
    status: Literal["queued", "already_queued", "already_analyzed"]
    job_id: Optional[int] = None


def max_attempts(queue: str) -> int:
    return QueueConstants.MAX_ATTEMPTS[queue]


def _validate(queue: str, priority: int):
    if queue not in QueueConstants.QUEUES:
        raise QueueValidationError(f"Unknown queue: {queue}")
    if not QueueConstants.MIN_PRIORITY <= priority <= QueueConstants.MAX_PRIORITY:
        raise QueueValidationError(
            f"Priority must be between {QueueConstants.MIN_PRIORITY} and {QueueConstants.MAX_PRIORITY}"
        )


def _is_done(entry: Entry, queue: str) -> bool:
    if queue == QueueConstants.PRELIMINARY:
        return entry.prelim_evaluated_at is not None
    return entry.analyzed_at is not None


def get_active_job(db: Session, entry_id: int, queue: str) -> Optional[AnalysisJob]:
    """Get the pending or processing job for an entry, if any."""
    return (
        db.query(AnalysisJob)
        .filter(
            AnalysisJob.entry_id == entry_id,
            AnalysisJob.queue == queue,
            AnalysisJob.status.in_(QueueConstants.ACTIVE_STATUSES),
        )
        .first()
    )


def enqueue(
    db: Session,
    entry_id: int,
    queue: str,
    user_id: Optional[int] = None,
    priority: int = QueueConstants.DEFAULT_PRIORITY,
    force: bool = False,
) -> EnqueueResult:
    """
    Add an entry to a queue unless it is already done or already queued.

    Args:
        db: Database session
        entry_id: Entry to process
        queue: "preliminary" or "deep-analysis"
        user_id: Requesting user (optional)
        priority: 1-10, higher runs first
        force: Re-run even if the entry was already processed

    Returns:
        EnqueueResult with status queued, already_queued or already_analyzed

    Raises:
        QueueValidationError: If queue or priority is invalid
        EntryNotFoundError: If entry doesn't exist
        MissingContentError: If entry has no content
        QueueInfrastructureError: If the job store can't be written
    """
    _validate(queue, priority)

    entry = entry_service.get_entry(db, entry_id)
    entry_service.require_content(entry)

    if not force and _is_done(entry, queue):
        return EnqueueResult(entry_id=entry_id, status="already_analyzed")

    existing = get_active_job(db, entry_id, queue)
    if existing:
        return EnqueueResult(entry_id=entry_id, status="already_queued", job_id=existing.id)

    job = AnalysisJob(
        entry_id=entry_id,
        user_id=user_id,
        queue=queue,
        status=QueueConstants.PENDING,
        priority=priority,
        retry_count=0,
        force=force,
        created_at=datetime.now().isoformat(),
    )
    db.add(job)

    try:
        db.commit()
    except IntegrityError:
        # Lost the race against a concurrent enqueue for the same entry
        db.rollback()
        existing = get_active_job(db, entry_id, queue)
        if existing:
            return EnqueueResult(entry_id=entry_id, status="already_queued", job_id=existing.id)
        raise QueueInfrastructureError(f"Failed to enqueue entry {entry_id} in {queue}")
    except OperationalError as e:
        db.rollback()
        raise QueueInfrastructureError(f"Job store unavailable: {e}")

    db.refresh(job)
    logger.info(f"Queued entry {entry_id} in {queue} as job {job.id} (priority {priority})")
    return EnqueueResult(entry_id=entry_id, status="queued", job_id=job.id)


def add_jobs_batch(
    db: Session,
    entry_ids: List[int],
    queue: str,
    user_id: Optional[int] = None,
    priority: int = QueueConstants.DEFAULT_PRIORITY,
) -> List[EnqueueResult]:
    """
    Enqueue several entries. An entry that can't be queued is logged and
    left out of the results; the rest still go through.
    """
    results = []
    for entry_id in entry_ids:
        try:
            results.append(enqueue(db, entry_id, queue, user_id=user_id, priority=priority))
        except (entry_service.EntryServiceError, QueueValidationError) as e:
            logger.warning(f"Skipping entry {entry_id} for {queue}: {e}")
    return results


def add_unanalyzed_entries(
    db: Session,
    limit: int = 100,
    priority: int = QueueConstants.DEFAULT_PRIORITY,
    user_id: Optional[int] = None,
) -> int:
    """
    Queue the newest entries that have content but no preliminary evaluation.

    Returns:
        Number of jobs newly created
    """
    query = db.query(Entry.id).filter(
        Entry.content.isnot(None),
        Entry.prelim_evaluated_at.is_(None),
    )
    if user_id is not None:
        query = query.filter(Entry.user_id == user_id)

    entry_ids = [row.id for row in query.order_by(Entry.created_at.desc(), Entry.id.desc()).limit(limit).all()]
    if not entry_ids:
        return 0

    results = add_jobs_batch(db, entry_ids, QueueConstants.PRELIMINARY, user_id=user_id, priority=priority)
    added = sum(1 for r in results if r.status == "queued")
    logger.info(f"Added {added} entries to the preliminary queue")
    return added


def get_job(db: Session, job_id: int) -> AnalysisJob:
    """
    Get job by ID.

    Raises:
        JobNotFoundError: If job doesn't exist
    """
    job = db.query(AnalysisJob).filter(AnalysisJob.id == job_id).first()
    if not job:
        raise JobNotFoundError(f"Job {job_id} not found")
    return job


def claim_next_jobs(db: Session, queue: str, limit: int) -> List[AnalysisJob]:
    """
    Move up to `limit` pending jobs to processing.

    Higher priority first, then oldest first. A job another worker claimed
    in the meantime is skipped.
    """
    candidates = (
        db.query(AnalysisJob)
        .filter(AnalysisJob.queue == queue, AnalysisJob.status == QueueConstants.PENDING)
        .order_by(AnalysisJob.priority.desc(), AnalysisJob.created_at.asc(), AnalysisJob.id.asc())
        .limit(limit)
        .all()
    )

    claimed = []
    for job in candidates:
        updated = (
            db.query(AnalysisJob)
            .filter(AnalysisJob.id == job.id, AnalysisJob.status == QueueConstants.PENDING)
            .update(
                {"status": QueueConstants.PROCESSING, "started_at": datetime.now().isoformat()},
                synchronize_session="fetch",
            )
        )
        if updated:
            claimed.append(job)
    db.commit()

    for job in claimed:
        db.refresh(job)
    return claimed


def _get_processing_job(db: Session, job_id: int) -> AnalysisJob:
    job = get_job(db, job_id)
    if job.status != QueueConstants.PROCESSING:
        raise InvalidJobStateError(f"Only processing jobs can finish (job {job_id} is {job.status})")
    return job


def mark_completed(db: Session, job_id: int) -> AnalysisJob:
    """
    Mark a processing job as completed.

    Raises:
        JobNotFoundError: If job doesn't exist
        InvalidJobStateError: If job isn't processing
    """
    job = _get_processing_job(db, job_id)
    job.status = QueueConstants.COMPLETED
    job.completed_at = datetime.now().isoformat()
    job.error_message = None
    job.next_retry_at = None
    db.commit()
    db.refresh(job)
    return job


def mark_failed(
    db: Session,
    job_id: int,
    error_message: str,
    base_delay_seconds: int = RETRY_BASE_DELAY_SECONDS,
) -> AnalysisJob:
    """
    Mark a processing job as failed and schedule its next retry.

    The delay doubles with every retry: base * 2^retry_count. Once the
    queue's attempt budget is spent next_retry_at stays empty.

    Raises:
        JobNotFoundError: If job doesn't exist
        InvalidJobStateError: If job isn't processing
    """
    job = _get_processing_job(db, job_id)
    now = datetime.now()

    job.status = QueueConstants.FAILED
    job.completed_at = now.isoformat()
    job.error_message = error_message

    if job.retry_count + 1 < max_attempts(job.queue):
        delay = base_delay_seconds * (2**job.retry_count)
        job.next_retry_at = (now + timedelta(seconds=delay)).isoformat()
        logger.warning(
            f"Job {job.id} failed (attempt {job.retry_count + 1}), retrying in {delay}s: {error_message}"
        )
    else:
        job.next_retry_at = None
        logger.error(
            f"Job {job.id} for entry {job.entry_id} failed after {job.retry_count + 1} attempts: {error_message}"
        )

    db.commit()
    db.refresh(job)
    return job


def _requeue(db: Session, job: AnalysisJob) -> bool:
    if get_active_job(db, job.entry_id, job.queue):
        logger.debug(f"Entry {job.entry_id} already has an active {job.queue} job, not retrying job {job.id}")
        return False

    job.status = QueueConstants.PENDING
    job.retry_count += 1
    job.started_at = None
    job.completed_at = None
    job.next_retry_at = None
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def retry_job(db: Session, job_id: int) -> AnalysisJob:
    """
    Send a failed job back to pending.

    Raises:
        JobNotFoundError: If job doesn't exist
        InvalidJobStateError: If job isn't failed, its attempts are used up,
            or the entry already has an active job in the same queue
    """
    job = get_job(db, job_id)
    if job.status != QueueConstants.FAILED:
        raise InvalidJobStateError(f"Only failed jobs can be retried (job {job_id} is {job.status})")
    if job.retry_count + 1 >= max_attempts(job.queue):
        raise InvalidJobStateError(f"Job {job_id} has used all {max_attempts(job.queue)} attempts")
    if not _requeue(db, job):
        raise InvalidJobStateError(f"Entry {job.entry_id} is already queued in {job.queue}")

    db.refresh(job)
    logger.info(f"Job {job_id} requeued (retry {job.retry_count})")
    return job


def retry_failed_jobs(db: Session, queue: Optional[str] = None, limit: int = 10) -> int:
    """
    Requeue failed jobs whose backoff has elapsed.

    Returns:
        Number of jobs requeued
    """
    query = db.query(AnalysisJob).filter(
        AnalysisJob.status == QueueConstants.FAILED,
        AnalysisJob.next_retry_at.isnot(None),
        AnalysisJob.next_retry_at <= datetime.now().isoformat(),
    )
    if queue:
        query = query.filter(AnalysisJob.queue == queue)

    retried = 0
    for job in query.order_by(AnalysisJob.next_retry_at.asc()).limit(limit).all():
        if _requeue(db, job):
            retried += 1

    if retried:
        logger.info(f"Requeued {retried} failed jobs")
    return retried


def cancel_job(db: Session, job_id: int, user_id: Optional[int] = None) -> AnalysisJob:
    """
    Cancel a pending job. Processing jobs run to completion.

    Raises:
        JobNotFoundError: If job doesn't exist or belongs to another user
        InvalidJobStateError: If job isn't pending
    """
    job = get_job(db, job_id)
    if user_id is not None and job.user_id != user_id:
        raise JobNotFoundError(f"Job {job_id} not found")
    if job.status != QueueConstants.PENDING:
        raise InvalidJobStateError(f"Only pending jobs can be cancelled (job {job_id} is {job.status})")

    job.status = QueueConstants.CANCELLED
    job.completed_at = datetime.now().isoformat()
    db.commit()
    db.refresh(job)
    logger.info(f"Job {job_id} cancelled")
    return job


def get_job_state(db: Session, job_id: int) -> Dict:
    """
    Get job state as dictionary.

    Raises:
        JobNotFoundError: If job doesn't exist
    """
    job = get_job(db, job_id)
    return {
        "id": job.id,
        "entry_id": job.entry_id,
        "queue": job.queue,
        "status": job.status,
        "priority": job.priority,
        "retry_count": job.retry_count,
        "max_attempts": max_attempts(job.queue),
        "error_message": job.error_message,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
        "next_retry_at": job.next_retry_at,
    }


def get_queue_status(db: Session, queue: str) -> Dict[str, int]:
    """Count jobs in a queue by status."""
    if queue not in QueueConstants.QUEUES:
        raise QueueValidationError(f"Unknown queue: {queue}")

    counts = {status: 0 for status in QueueConstants.STATUSES}
    jobs = db.query(AnalysisJob.status).filter(AnalysisJob.queue == queue).all()
    for (status,) in jobs:
        counts[status] += 1
    return counts


def get_queue_stats(db: Session, queue: str) -> Dict:
    """Queue status plus total processed and success rate (percent, 2 decimals)."""
    status = get_queue_status(db, queue)
    total_processed = status[QueueConstants.COMPLETED] + status[QueueConstants.FAILED]
    success_rate = (
        status[QueueConstants.COMPLETED] / total_processed * 100 if total_processed > 0 else 0
    )
    return {
        **status,
        "total_processed": total_processed,
        "success_rate": round(success_rate, 2),
    }


def cleanup_completed_jobs(db: Session, days: int = 7) -> int:
    """
    Delete completed jobs finished more than `days` ago.

    Returns:
        Number of jobs deleted
    """
    cutoff = (datetime.now() - timedelta(days=days)).isoformat()
    deleted = (
        db.query(AnalysisJob)
        .filter(
            AnalysisJob.status == QueueConstants.COMPLETED,
            AnalysisJob.completed_at < cutoff,
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Deleted {deleted} completed jobs older than {days} days")
    return deleted


def reset_processing_jobs(db: Session) -> int:
    """
    Return jobs left in processing by a previous shutdown to pending.

    Returns:
        Number of jobs reset
    """
    reset = (
        db.query(AnalysisJob)
        .filter(AnalysisJob.status == QueueConstants.PROCESSING)
        .update({"status": QueueConstants.PENDING, "started_at": None}, synchronize_session=False)
    )
    db.commit()
    if reset:
        logger.info(f"Reset {reset} interrupted jobs to pending")
    return reset
