"""
Tests for the background queue workers.

Workers open their own sessions; the tests hand them a session factory
bound to the in-memory test database.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.orm import sessionmaker

from src.utils.config import Config
from src.utils.models import UserFeedback
from src.web.models import AnalysisJob
from src.web.services import feedback_service, queue_service, scheduler_service


@pytest.fixture
def session_factory(db):
    return sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())


@pytest.fixture
def claimed_job(db, make_entry):
    entry = make_entry()
    queued = queue_service.enqueue(db, entry.id, "preliminary")
    [job] = queue_service.claim_next_jobs(db, "preliminary", 1)
    assert job.id == queued.job_id
    return job


@pytest.fixture
def fresh_scheduler(monkeypatch):
    replacement = AsyncIOScheduler()
    monkeypatch.setattr(scheduler_service, "scheduler", replacement)
    monkeypatch.setattr(scheduler_service, "recover_interrupted_jobs", MagicMock(return_value=0))
    yield replacement
    if replacement.running:
        replacement.shutdown(wait=False)


def job_row(db, job_id):
    db.expire_all()
    return db.query(AnalysisJob).filter(AnalysisJob.id == job_id).one()


class TestRunJob:
    """Tests for processing one claimed job."""

    @pytest.mark.asyncio
    async def test_success_marks_completed(self, db, claimed_job, session_factory, make_llm):
        seen = []

        async def processor(job_db, job, pipeline):
            seen.append((job.id, pipeline.llm))

        llm = make_llm()
        with patch.dict(scheduler_service.PROCESSORS, {"preliminary": processor}):
            ok = await scheduler_service.run_job(claimed_job.id, Config(), llm, session_factory)

        assert ok is True
        assert seen == [(claimed_job.id, llm)]
        job = job_row(db, claimed_job.id)
        assert job.status == "completed"
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_failure_marks_failed_with_backoff(self, db, claimed_job, session_factory, make_llm):
        async def processor(job_db, job, pipeline):
            raise RuntimeError("provider down")

        with patch.dict(scheduler_service.PROCESSORS, {"preliminary": processor}):
            ok = await scheduler_service.run_job(claimed_job.id, Config(), make_llm(), session_factory)

        assert ok is False
        job = job_row(db, claimed_job.id)
        assert job.status == "failed"
        assert job.error_message == "provider down"
        assert job.retry_count == 0
        assert job.next_retry_at is not None

    @pytest.mark.asyncio
    async def test_job_reset_during_processing_is_left_alone(self, db, claimed_job, session_factory, make_llm):
        async def processor(job_db, job, pipeline):
            job.status = "pending"
            job_db.commit()

        with patch.dict(scheduler_service.PROCESSORS, {"preliminary": processor}):
            ok = await scheduler_service.run_job(claimed_job.id, Config(), make_llm(), session_factory)

        assert ok is False
        assert job_row(db, claimed_job.id).status == "pending"

    @pytest.mark.asyncio
    async def test_missing_job(self, session_factory, make_llm):
        assert await scheduler_service.run_job(999, Config(), make_llm(), session_factory) is False


class TestProcessQueue:
    """Tests for one worker tick."""

    @pytest.mark.asyncio
    async def test_triage_tick_queues_deep_analysis(self, db, make_entry, session_factory, make_llm):
        entries = [make_entry(title="one"), make_entry(title="two")]
        for entry in entries:
            queue_service.enqueue(db, entry.id, "preliminary")

        completed = await scheduler_service.process_queue(
            "preliminary", 5, Config(), make_llm(default={"value": 4}), session_factory
        )

        assert completed == 2
        db.expire_all()
        assert queue_service.get_queue_status(db, "preliminary")["completed"] == 2
        assert queue_service.get_queue_status(db, "deep-analysis")["pending"] == 2

    @pytest.mark.asyncio
    async def test_claims_at_most_concurrency(self, db, make_entry, session_factory, make_llm):
        for title in ("one", "two", "three"):
            queue_service.enqueue(db, make_entry(title=title).id, "preliminary")

        completed = await scheduler_service.process_queue(
            "preliminary", 1, Config(), make_llm(default={"value": 1}), session_factory
        )

        assert completed == 1
        db.expire_all()
        status = queue_service.get_queue_status(db, "preliminary")
        assert status["completed"] == 1
        assert status["pending"] == 2

    @pytest.mark.asyncio
    async def test_empty_queue(self, session_factory, make_llm):
        assert await scheduler_service.process_queue("deep-analysis", 3, Config(), make_llm(), session_factory) == 0


class TestMaintenanceJobs:
    """Tests for the retry, cleanup, recovery and feedback jobs."""

    def test_retry_sweep_requeues_due_jobs(self, db, make_entry, session_factory):
        job = AnalysisJob(
            entry_id=make_entry().id,
            queue="deep-analysis",
            status="failed",
            retry_count=0,
            created_at=datetime.now().isoformat(),
            next_retry_at=(datetime.now() - timedelta(seconds=1)).isoformat(),
        )
        db.add(job)
        db.commit()

        assert scheduler_service.retry_failed_jobs(session_factory) == 1

        row = job_row(db, job.id)
        assert row.status == "pending"
        assert row.retry_count == 1

    def test_retry_sweep_logs_errors(self, session_factory):
        with patch.object(queue_service, "retry_failed_jobs", side_effect=RuntimeError("database is locked")):
            assert scheduler_service.retry_failed_jobs(session_factory) == 0

    def test_cleanup_deletes_old_completed_jobs(self, db, make_entry, session_factory):
        old = datetime.now() - timedelta(days=10)
        db.add_all([
            AnalysisJob(
                entry_id=make_entry().id,
                queue="preliminary",
                status="completed",
                created_at=old.isoformat(),
                completed_at=old.isoformat(),
            ),
            AnalysisJob(
                entry_id=make_entry().id,
                queue="preliminary",
                status="completed",
                created_at=datetime.now().isoformat(),
                completed_at=datetime.now().isoformat(),
            ),
        ])
        db.commit()

        assert scheduler_service.cleanup_completed_jobs(7, session_factory) == 1
        db.expire_all()
        assert db.query(AnalysisJob).count() == 1

    def test_recover_interrupted_jobs(self, db, claimed_job, session_factory):
        assert scheduler_service.recover_interrupted_jobs(session_factory) == 1

        row = job_row(db, claimed_job.id)
        assert row.status == "pending"
        assert row.started_at is None

    @pytest.mark.asyncio
    async def test_apply_pending_feedback(self, db, user, make_entry, session_factory, make_llm):
        entry = make_entry(analyzed_at=datetime.now().isoformat(), ai_summary="Ownership rules.")
        feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=user.id, rating=5))

        processed = await scheduler_service.apply_pending_feedback(
            Config(), make_llm(default={"quality": 9}), session_factory
        )

        assert processed == 1
        db.expire_all()
        assert feedback_service.get_unapplied_feedback(db) == []


class TestSchedulerLifecycle:
    """Tests for starting and stopping the scheduler."""

    def test_disabled(self, fresh_scheduler):
        scheduler_service.start_scheduler({"SCHEDULER_ENABLED": False})

        assert fresh_scheduler.running is False
        assert fresh_scheduler.get_jobs() == []
        scheduler_service.recover_interrupted_jobs.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, fresh_scheduler):
        scheduler_service.start_scheduler({"CLEANUP_HOUR": 4}, Config())

        assert fresh_scheduler.running is True
        assert {job.id for job in fresh_scheduler.get_jobs()} == {
            "preliminary_worker",
            "deep-analysis_worker",
            "retry_failed_jobs",
            "apply_feedback",
            "cleanup_completed_jobs",
        }
        scheduler_service.recover_interrupted_jobs.assert_called_once_with()

        scheduler_service.stop_scheduler()
        assert fresh_scheduler.running is False
