"""
Unit tests for the analysis API routes.

The database and the analysis pipeline are overridden; the user context
comes from the user_id cookie.
"""

import asyncio
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from src.utils.models import RelationType
from src.web.app import app
from src.web.database import get_db
from src.web.dependencies import get_pipeline
from src.web.models import User
from src.web.services import queue_service, relation_service


@pytest.fixture
def pipeline(make_pipeline):
    return make_pipeline()


@pytest.fixture
def client(db, user, pipeline):
    """Test client acting as the test user."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app, raise_server_exceptions=False) as test_client:
        test_client.cookies.set("user_id", str(user.id))
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def other_user(db):
    other = User(first_name="Bob")
    db.add(other)
    db.commit()
    db.refresh(other)
    return other


class TestSession:
    """Tests for the user session requirement."""

    def test_missing_cookie_is_unauthorized(self, client, make_entry):
        entry = make_entry()
        client.cookies.clear()

        response = client.get(f"/entries/{entry.id}/analysis")

        assert response.status_code == 401
        assert response.json()["detail"] == "No active user session."

    def test_unknown_user_is_unauthorized(self, client, make_entry):
        entry = make_entry()
        client.cookies.set("user_id", "999")

        response = client.post(f"/entries/{entry.id}/preliminary")

        assert response.status_code == 401


class TestTriggerRoutes:
    """Tests for queueing entries."""

    def test_trigger_preliminary(self, client, make_entry):
        entry = make_entry()

        response = client.post(f"/entries/{entry.id}/preliminary")

        assert response.status_code == 200
        data = response.json()
        assert data["entry_id"] == entry.id
        assert data["status"] == "queued"
        assert data["job_id"] is not None

        again = client.post(f"/entries/{entry.id}/preliminary")
        assert again.json() == {"entry_id": entry.id, "status": "already_queued", "job_id": data["job_id"]}

    def test_trigger_with_priority(self, client, db, make_entry):
        entry = make_entry()

        response = client.post(f"/entries/{entry.id}/analysis", json={"priority": 9})

        job = queue_service.get_job(db, response.json()["job_id"])
        assert job.queue == "deep-analysis"
        assert job.priority == 9

    def test_priority_out_of_range(self, client, make_entry):
        entry = make_entry()

        response = client.post(f"/entries/{entry.id}/preliminary", json={"priority": 11})

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"][-1] == "priority"

    def test_already_analyzed_unless_forced(self, client, make_entry):
        entry = make_entry(analyzed_at=datetime.now().isoformat())

        response = client.post(f"/entries/{entry.id}/analysis")
        assert response.json()["status"] == "already_analyzed"

        forced = client.post(f"/entries/{entry.id}/analysis", json={"force": True})
        assert forced.json()["status"] == "queued"

    def test_missing_content(self, client, make_entry):
        entry = make_entry(content="   ")

        response = client.post(f"/entries/{entry.id}/analysis")

        assert response.status_code == 400
        assert response.json()["detail"] == "This article has no content to analyze."

    def test_other_users_entry_is_not_found(self, client, other_user, make_entry):
        entry = make_entry(owner=other_user)

        response = client.post(f"/entries/{entry.id}/preliminary")

        assert response.status_code == 404
        assert response.json()["detail"] == "Article not found."

    def test_trigger_unanalyzed(self, client, other_user, make_entry):
        make_entry(title="one")
        make_entry(title="two")
        make_entry(title="evaluated", prelim_evaluated_at=datetime.now().isoformat())
        make_entry(title="foreign", owner=other_user)

        response = client.post("/preliminary/unanalyzed", json={"limit": 1})
        assert response.json() == {"added": 1, "remaining": 1}

        response = client.post("/preliminary/unanalyzed")
        assert response.json() == {"added": 1, "remaining": 1}

    def test_trigger_unanalyzed_nothing_pending(self, client):
        response = client.post("/preliminary/unanalyzed")

        assert response.json() == {"added": 0, "remaining": 0}


class TestAnalysisRoute:
    """Tests for reading stored results."""

    def test_not_yet_analyzed(self, client, make_entry):
        entry = make_entry()

        response = client.get(f"/entries/{entry.id}/analysis")

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "Rust ownership"
        assert data["preliminary"] is None
        assert data["analysis"] is None

    def test_stored_results(self, client, make_entry):
        now = datetime.now().isoformat()
        entry = make_entry(
            prelim_evaluated_at=now,
            prelim_ignore=False,
            prelim_value=4,
            prelim_language="en",
            analyzed_at=now,
            ai_summary="Rust manages memory through ownership.",
            ai_tags='["rust"]',
            ai_score=8,
        )

        data = client.get(f"/entries/{entry.id}/analysis").json()

        assert data["preliminary"]["value"] == 4
        assert data["preliminary"]["language"] == "en"
        assert data["analysis"]["summary"] == "Rust manages memory through ownership."
        assert data["analysis"]["tags"] == ["rust"]
        assert data["analysis"]["ai_score"] == 8
        assert data["analyzed_at"] == now


class TestFeedbackRoutes:
    """Tests for submitting feedback and reading stats."""

    def test_submit_feedback(self, client, make_entry):
        entry = make_entry()

        response = client.post(f"/entries/{entry.id}/feedback", json={"rating": 2, "summary_issue": "Too vague"})

        assert response.status_code == 200
        assert response.json() == {"status": "success", "message": "Thanks for your feedback!"}

        stats = client.get(f"/entries/{entry.id}/feedback/stats").json()
        assert stats["total"] == 1
        assert stats["avg_rating"] == 2
        assert stats["common_issues"] == [{"issue": "Too vague", "count": 1}]

    def test_empty_feedback(self, client, make_entry):
        entry = make_entry()

        response = client.post(f"/entries/{entry.id}/feedback", json={})

        assert response.status_code == 400
        assert response.json()["detail"] == "Please include a rating, a verdict, tags, or a comment."

    def test_rating_out_of_range(self, client, make_entry):
        entry = make_entry()

        response = client.post(f"/entries/{entry.id}/feedback", json={"rating": 6})

        assert response.status_code == 422


class TestRelationRoutes:
    """Tests for related articles and the knowledge graph."""

    @pytest.fixture
    def embedded(self, make_entry, pipeline):
        async def store(entry, vector):
            await pipeline.vector_store.store(entry.id, vector)

        root = make_entry(title="Ownership")
        close = make_entry(title="Borrowing")
        far = make_entry(title="Gardening")

        async def store_all():
            await store(root, [1.0, 0.0, 0.0])
            await store(close, [1.0, 0.1, 0.0])
            await store(far, [0.0, 1.0, 0.0])

        asyncio.run(store_all())
        return root, close, far

    def test_related_articles_are_returned_and_saved(self, client, db, embedded):
        root, close, _ = embedded

        response = client.get(f"/entries/{root.id}/related")

        assert response.status_code == 200
        data = response.json()
        assert [(r["target_id"], r["relation_type"]) for r in data] == [(close.id, "similar")]
        stored = relation_service.get_relations(db, root.id)
        assert [(r.target_id, r.relation_type) for r in stored] == [(close.id, RelationType.SIMILAR)]

    def test_related_excludes_other_users_articles(self, client, db, pipeline, other_user, make_entry, embedded):
        root, close, _ = embedded
        foreign = make_entry(title="Borrowing, again", owner=other_user)
        asyncio.run(pipeline.vector_store.store(foreign.id, [1.0, 0.05, 0.0]))

        response = client.get(f"/entries/{root.id}/related")

        assert [r["target_id"] for r in response.json()] == [close.id]
        stored = relation_service.get_relations(db, root.id)
        assert [r.target_id for r in stored] == [close.id]

    def test_related_with_confirmation(self, client, pipeline, embedded):
        root, close, _ = embedded
        pipeline.llm.replies = ["true"]

        response = client.get(f"/entries/{root.id}/related", params={"relation_type": "extension"})

        [relation] = response.json()
        assert relation["relation_type"] == "extension"
        assert relation["reason"] == "confirmed as extension"

    def test_related_limit_is_validated(self, client, embedded):
        root, _, _ = embedded

        assert client.get(f"/entries/{root.id}/related", params={"limit": 0}).status_code == 422
        assert client.get(f"/entries/{root.id}/related", params={"limit": 21}).status_code == 422

    def test_graph(self, client, embedded):
        root, close, _ = embedded

        response = client.get(f"/entries/{root.id}/graph", params={"depth": 1})

        assert response.status_code == 200
        data = response.json()
        assert {(n["id"], n["layer"]) for n in data["nodes"]} == {(root.id, 0), (close.id, 1)}
        assert [(e["source"], e["target"]) for e in data["edges"]] == [(root.id, close.id)]

    def test_graph_depth_is_validated(self, client, embedded):
        root, _, _ = embedded

        assert client.get(f"/entries/{root.id}/graph", params={"depth": 4}).status_code == 422


class TestQueueAndJobRoutes:
    """Tests for queue status and job management."""

    def test_queue_status(self, client, make_entry):
        client.post(f"/entries/{make_entry().id}/preliminary")

        response = client.get("/queues/preliminary/status")

        assert response.status_code == 200
        data = response.json()
        assert data["pending"] == 1
        assert data["total_processed"] == 0
        assert data["success_rate"] == 0

    def test_unknown_queue(self, client):
        response = client.get("/queues/summaries/status")

        assert response.status_code == 404

    def test_job_state(self, client, make_entry):
        entry = make_entry()
        job_id = client.post(f"/entries/{entry.id}/preliminary").json()["job_id"]

        response = client.get(f"/jobs/{job_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["entry_id"] == entry.id
        assert data["status"] == "pending"
        assert data["max_attempts"] == 2

    def test_worker_created_job_is_visible_through_entry(self, client, db, make_entry):
        entry = make_entry()
        job_id = queue_service.enqueue(db, entry.id, "deep-analysis").job_id

        assert client.get(f"/jobs/{job_id}").status_code == 200

    def test_other_users_job_is_not_found(self, client, db, other_user, make_entry):
        entry = make_entry(owner=other_user)
        job_id = queue_service.enqueue(db, entry.id, "preliminary", user_id=other_user.id).job_id

        assert client.get(f"/jobs/{job_id}").status_code == 404
        assert client.post(f"/jobs/{job_id}/cancel").status_code == 404
        assert client.get("/jobs/999").json()["detail"] == "Analysis job not found."

    def test_cancel(self, client, make_entry):
        job_id = client.post(f"/entries/{make_entry().id}/preliminary").json()["job_id"]

        response = client.post(f"/jobs/{job_id}/cancel")
        assert response.json() == {"status": "success", "job_id": job_id, "job_status": "cancelled"}

        again = client.post(f"/jobs/{job_id}/cancel")
        assert again.status_code == 409
        assert again.json()["detail"] == "This job can't be changed in its current state."

    def test_retry(self, client, db, make_entry):
        job_id = client.post(f"/entries/{make_entry().id}/preliminary").json()["job_id"]
        queue_service.claim_next_jobs(db, "preliminary", 1)
        queue_service.mark_failed(db, job_id, "provider down")

        response = client.post(f"/jobs/{job_id}/retry")
        assert response.json() == {"status": "success", "job_id": job_id, "job_status": "pending", "retry_count": 1}

        queue_service.claim_next_jobs(db, "preliminary", 1)
        queue_service.mark_failed(db, job_id, "provider down again")

        exhausted = client.post(f"/jobs/{job_id}/retry")
        assert exhausted.status_code == 409
        assert exhausted.json()["detail"] == "This job has already used all of its retry attempts."


class TestHealthRoutes:
    """Tests for health endpoints."""

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_scheduler_health_when_not_started(self, client):
        data = client.get("/health/scheduler").json()

        assert data["running"] is False
        assert data["job_count"] == len(data["jobs"])
