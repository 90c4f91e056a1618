"""
Tests for reader feedback storage and statistics.
"""

from datetime import datetime

import pytest

from src.utils.models import UserFeedback
from src.web.models import AnalysisFeedback, User
from src.web.services import feedback_service


@pytest.fixture
def other_users(db):
    users = [User(first_name=name) for name in ("Bob", "Carol", "Dan")]
    db.add_all(users)
    db.commit()
    return users


class TestSaveFeedback:
    """Tests for creating and replacing feedback."""

    def test_save_feedback(self, db, user, make_entry):
        entry = make_entry()

        row = feedback_service.save_feedback(
            db,
            UserFeedback(entry_id=entry.id, user_id=user.id, rating=4, tag_suggestions=["rust", "内存"]),
        )

        assert row.id is not None
        assert row.is_applied is False
        assert feedback_service.to_user_feedback(row).tag_suggestions == ["rust", "内存"]

    def test_resubmission_replaces_and_resets_applied(self, db, user, make_entry):
        entry = make_entry()
        feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=user.id, rating=2))
        feedback_service.mark_feedback_as_applied(db, entry.id, user.id)

        row = feedback_service.save_feedback(
            db, UserFeedback(entry_id=entry.id, user_id=user.id, is_helpful=True)
        )

        assert db.query(AnalysisFeedback).count() == 1
        assert row.rating is None
        assert row.is_helpful is True
        assert row.is_applied is False
        assert row.applied_at is None

    def test_empty_feedback_is_rejected(self, db, user, make_entry):
        entry = make_entry()

        with pytest.raises(feedback_service.FeedbackValidationError):
            feedback_service.save_feedback(
                db, UserFeedback(entry_id=entry.id, user_id=user.id, tag_suggestions=[], comments="")
            )

    def test_feedback_for_entry_newest_first(self, db, user, other_users, make_entry):
        entry = make_entry()
        feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=user.id, rating=5))
        feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=other_users[0].id, rating=1))

        feedback = feedback_service.get_feedback_for_entry(db, entry.id)

        assert [f.user_id for f in feedback] == [other_users[0].id, user.id]


class TestFeedbackStats:
    """Tests for feedback statistics."""

    def test_stats(self, db, user, other_users, make_entry):
        entry = make_entry()
        submissions = [
            (user, dict(rating=5, is_helpful=True)),
            (other_users[0], dict(rating=4, is_helpful=True, summary_issue="Misses the benchmark section")),
            (other_users[1], dict(rating=2, is_helpful=False, summary_issue="Misses the benchmark section")),
            (other_users[2], dict(summary_issue="Too long")),
        ]
        for author, fields in submissions:
            feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=author.id, **fields))

        stats = feedback_service.get_feedback_stats(db, entry.id)

        assert stats["total"] == 4
        assert stats["helpful"] == 2
        assert stats["not_helpful"] == 1
        assert stats["avg_rating"] == 3.7
        assert stats["common_issues"][0] == {"issue": "Misses the benchmark section", "count": 2}
        assert len(stats["common_issues"]) == 2

    def test_issues_grouped_by_prefix(self, db, user, other_users, make_entry):
        entry = make_entry()
        prefix = "x" * 50
        feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=user.id, summary_issue=prefix + "a"))
        feedback_service.save_feedback(
            db, UserFeedback(entry_id=entry.id, user_id=other_users[0].id, summary_issue=prefix + "b")
        )

        stats = feedback_service.get_feedback_stats(db, entry.id)

        assert stats["common_issues"] == [{"issue": prefix, "count": 2}]

    def test_no_feedback(self, db, make_entry):
        stats = feedback_service.get_feedback_stats(db, make_entry().id)

        assert stats["total"] == 0
        assert stats["avg_rating"] == 0
        assert stats["common_issues"] == []


class TestUnappliedFeedback:
    """Tests for the refinement work list."""

    def test_mark_applied(self, db, user, make_entry):
        entry = make_entry()
        feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=user.id, rating=1))

        assert feedback_service.mark_feedback_as_applied(db, entry.id, user.id) == 1
        assert feedback_service.get_unapplied_feedback(db) == []

    def test_mark_applied_without_feedback(self, db, user, make_entry):
        assert feedback_service.mark_feedback_as_applied(db, make_entry().id, user.id) == 0

    def test_mark_applied_skips_newer_submission(self, db, user, make_entry):
        entry = make_entry()
        row = feedback_service.save_feedback(db, UserFeedback(entry_id=entry.id, user_id=user.id, rating=1))
        seen = row.updated_at
        row.updated_at = "2000-01-01T00:00:00"
        db.commit()

        assert feedback_service.mark_feedback_as_applied(db, entry.id, user.id, updated_at=seen) == 0
        assert len(feedback_service.get_unapplied_feedback(db)) == 1

    def test_unapplied_oldest_first(self, db, user, other_users, make_entry):
        first = make_entry(title="first")
        second = make_entry(title="second")
        feedback_service.save_feedback(db, UserFeedback(entry_id=first.id, user_id=user.id, rating=1))
        feedback_service.save_feedback(db, UserFeedback(entry_id=second.id, user_id=user.id, rating=2))

        rows = feedback_service.get_unapplied_feedback(db, limit=1)

        assert [row.entry_id for row in rows] == [first.id]

    def test_analyzed_only(self, db, user, make_entry):
        pending = make_entry(title="pending")
        analyzed = make_entry(title="analyzed", analyzed_at=datetime.now().isoformat())
        feedback_service.save_feedback(db, UserFeedback(entry_id=pending.id, user_id=user.id, rating=1))
        feedback_service.save_feedback(db, UserFeedback(entry_id=analyzed.id, user_id=user.id, rating=1))

        rows = feedback_service.get_unapplied_feedback(db, analyzed_only=True)

        assert [row.entry_id for row in rows] == [analyzed.id]
        assert len(feedback_service.get_unapplied_feedback(db)) == 2
