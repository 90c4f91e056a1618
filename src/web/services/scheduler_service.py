"""
Background workers for the analysis queues.

APScheduler drives everything in-process, no Redis or Celery:
- one interval job per queue claims pending jobs by priority and runs
  them concurrently, up to the queue's concurrency
- an interval job requeues failed jobs whose backoff has elapsed
- an interval job applies reader feedback to stored analyses
- a daily cron job deletes old completed jobs
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from src.providers.ai_provider import AIProvider
from src.utils.config import Config
from src.utils.constants import QueueConstants
from src.web.database import SessionLocal
from src.web.services import deep_analysis_service, preliminary_service, queue_service, refinement_service
from src.web.services.pipeline_factory import build_pipeline

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

PROCESSORS = {
    QueueConstants.PRELIMINARY: preliminary_service.process_job,
    QueueConstants.DEEP_ANALYSIS: deep_analysis_service.process_job,
}


def _record(mark, db: Session, job_id: int, *args) -> bool:
    """Apply a completion transition; a job that left processing meanwhile is only logged."""
    try:
        mark(db, job_id, *args)
    except queue_service.InvalidJobStateError as e:
        logger.warning(f"Could not record outcome of job {job_id}: {e}")
        return False
    return True


async def run_job(
    job_id: int,
    config: Config,
    llm: Optional[AIProvider] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> bool:
    """
    Process one claimed job and record the outcome.

    Returns:
        True if the job completed, False if it failed
    """
    db = session_factory()
    try:
        try:
            job = queue_service.get_job(db, job_id)
        except queue_service.JobNotFoundError:
            logger.warning(f"Job {job_id} disappeared before processing")
            return False

        pipeline = build_pipeline(db, config, llm)
        try:
            await PROCESSORS[job.queue](db, job, pipeline)
        except Exception as e:
            db.rollback()
            logger.error(f"Job {job_id} ({job.queue}) for entry {job.entry_id} failed: {e}", exc_info=True)
            _record(queue_service.mark_failed, db, job_id, str(e), config.queue.retry_base_delay_seconds)
            return False

        return _record(queue_service.mark_completed, db, job_id)
    finally:
        db.close()


async def process_queue(
    queue: str,
    concurrency: int,
    config: Optional[Config] = None,
    llm: Optional[AIProvider] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> int:
    """
    Claim up to `concurrency` jobs from a queue and run them concurrently.

    Returns:
        Number of jobs completed successfully
    """
    config = config or Config()

    db = session_factory()
    try:
        job_ids = [job.id for job in queue_service.claim_next_jobs(db, queue, concurrency)]
    finally:
        db.close()

    if not job_ids:
        return 0

    logger.info(f"Processing {len(job_ids)} {queue} jobs")
    outcomes = await asyncio.gather(
        *[run_job(job_id, config, llm, session_factory) for job_id in job_ids]
    )
    completed = sum(1 for ok in outcomes if ok)
    logger.info(f"{queue}: {completed} completed, {len(job_ids) - completed} failed")
    return completed


def retry_failed_jobs(session_factory: Callable[[], Session] = SessionLocal) -> int:
    db = session_factory()
    try:
        return queue_service.retry_failed_jobs(db)
    except Exception as e:
        logger.error(f"Retry sweep failed: {e}", exc_info=True)
        return 0
    finally:
        db.close()


def cleanup_completed_jobs(days: int, session_factory: Callable[[], Session] = SessionLocal) -> int:
    db = session_factory()
    try:
        return queue_service.cleanup_completed_jobs(db, days)
    except Exception as e:
        logger.error(f"Job cleanup failed: {e}", exc_info=True)
        return 0
    finally:
        db.close()


async def apply_pending_feedback(
    config: Optional[Config] = None,
    llm: Optional[AIProvider] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> int:
    db = session_factory()
    try:
        pipeline = build_pipeline(db, config, llm)
        return await refinement_service.apply_pending_feedback(db, pipeline)
    finally:
        db.close()


def schedule_queue_workers(config: Config, poll_interval_seconds: int):
    """Add one interval job per queue."""
    concurrency = {
        QueueConstants.PRELIMINARY: config.queue.preliminary_concurrency,
        QueueConstants.DEEP_ANALYSIS: config.queue.deep_analysis_concurrency,
    }
    for queue, limit in concurrency.items():
        scheduler.add_job(
            func=process_queue,
            trigger=IntervalTrigger(seconds=poll_interval_seconds),
            kwargs={"queue": queue, "concurrency": limit, "config": config},
            id=f"{queue}_worker",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )


def recover_interrupted_jobs(session_factory: Callable[[], Session] = SessionLocal) -> int:
    """Requeue jobs that were processing when the application last shut down."""
    db = session_factory()
    try:
        return queue_service.reset_processing_jobs(db)
    finally:
        db.close()


def start_scheduler(config: dict, analysis_config: Optional[Config] = None):
    """
    Start scheduler with configuration.

    Args:
        config: Configuration dictionary with keys:
            - SCHEDULER_ENABLED: bool (default True)
            - RETRY_INTERVAL_MINUTES: int (default 5)
            - CLEANUP_HOUR: int (default 3)
            - CLEANUP_MINUTE: int (default 0)
        analysis_config: Queue sizing and LLM settings (defaults to Config())
    """
    if not config.get("SCHEDULER_ENABLED", True):
        logger.info("Scheduler disabled via configuration")
        return

    analysis_config = analysis_config or Config()
    poll_interval = analysis_config.queue.poll_interval_seconds
    retry_minutes = config.get("RETRY_INTERVAL_MINUTES", 5)
    hour = config.get("CLEANUP_HOUR", 3)
    minute = config.get("CLEANUP_MINUTE", 0)

    schedule_queue_workers(analysis_config, poll_interval)

    scheduler.add_job(
        func=retry_failed_jobs,
        trigger=IntervalTrigger(minutes=retry_minutes),
        id="retry_failed_jobs",
        replace_existing=True,
    )

    scheduler.add_job(
        func=apply_pending_feedback,
        trigger=IntervalTrigger(minutes=retry_minutes),
        kwargs={"config": analysis_config},
        id="apply_feedback",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        func=cleanup_completed_jobs,
        trigger=CronTrigger(hour=hour, minute=minute),
        kwargs={"days": analysis_config.queue.cleanup_days},
        id="cleanup_completed_jobs",
        replace_existing=True,
    )

    recover_interrupted_jobs()

    scheduler.start()
    logger.info(
        f"Scheduler started: polling every {poll_interval}s, cleanup at {hour:02d}:{minute:02d}"
    )


def stop_scheduler():
    """Stop scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
