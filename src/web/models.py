"""SQLAlchemy ORM models for the Article Insight service.

JSON payloads (main points, tags, dimensions) are stored as Text.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    Boolean,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class User(Base):
    """User model - owner of entries and author of feedback."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String, nullable=False)
    created_at = Column(String, nullable=False, server_default=text("(datetime('now'))"))

    entries = relationship("Entry", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, first_name='{self.first_name}')>"


class Entry(Base):
    """Entry model - one article plus its triage and analysis fields."""

    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    url = Column(String, nullable=True)
    author = Column(String, nullable=True)
    feed_name = Column(String, nullable=True)
    feed_url = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    published_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False, server_default=text("(datetime('now'))"))

    # Preliminary triage
    prelim_ignore = Column(Boolean, nullable=True)
    prelim_reason = Column(Text, nullable=True)
    prelim_value = Column(Integer, nullable=True)
    prelim_summary = Column(Text, nullable=True)
    prelim_language = Column(String, nullable=True)
    prelim_confidence = Column(Float, nullable=True)
    prelim_model = Column(String, nullable=True)
    prelim_evaluated_at = Column(String, nullable=True)

    # Deep analysis
    ai_one_line_summary = Column(Text, nullable=True)
    ai_summary = Column(Text, nullable=True)
    ai_main_points = Column(Text, nullable=True)  # JSON array
    ai_tags = Column(Text, nullable=True)  # JSON array
    ai_domain = Column(String, nullable=True)
    ai_subcategory = Column(String, nullable=True)
    ai_score = Column(Float, nullable=True)
    ai_score_dimensions = Column(Text, nullable=True)  # JSON object
    ai_key_quotes = Column(Text, nullable=True)  # JSON array
    ai_open_source = Column(Text, nullable=True)  # JSON object
    ai_analysis_model = Column(String, nullable=True)
    ai_processing_time = Column(Integer, nullable=True)
    ai_reflection_rounds = Column(Integer, nullable=True)
    content_length = Column(Integer, nullable=True)
    word_count = Column(Integer, nullable=True)
    reading_time_minutes = Column(Integer, nullable=True)
    analyzed_at = Column(String, nullable=True)

    __table_args__ = (
        Index("idx_entries_user_id", "user_id"),
        Index("idx_entries_analyzed_at", "analyzed_at"),
    )

    user = relationship("User", back_populates="entries")
    jobs = relationship("AnalysisJob", back_populates="entry", cascade="all, delete-orphan")
    feedback = relationship("AnalysisFeedback", back_populates="entry", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Entry(id={self.id}, user_id={self.user_id}, title='{self.title}')>"


class AnalysisJob(Base):
    """AnalysisJob model - one queued unit of preliminary or deep analysis work."""

    __tablename__ = "analysis_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Integer, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    queue = Column(String, nullable=False)
    status = Column(String, nullable=False, server_default="pending")
    priority = Column(Integer, nullable=False, server_default="5")
    retry_count = Column(Integer, nullable=False, server_default="0")
    force = Column(Boolean, nullable=False, server_default="0")
    error_message = Column(Text, nullable=True)
    created_at = Column(String, nullable=False)
    started_at = Column(String, nullable=True)
    completed_at = Column(String, nullable=True)
    next_retry_at = Column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name="check_analysis_job_status",
        ),
        CheckConstraint("queue IN ('preliminary', 'deep-analysis')", name="check_analysis_job_queue"),
        CheckConstraint("priority BETWEEN 1 AND 10", name="check_analysis_job_priority"),
        # At most one non-terminal job per (entry, queue)
        Index(
            "uq_analysis_jobs_active",
            "entry_id",
            "queue",
            unique=True,
            sqlite_where=text("status IN ('pending', 'processing')"),
            postgresql_where=text("status IN ('pending', 'processing')"),
        ),
        Index("idx_analysis_jobs_claim", "queue", "status", "priority", "created_at"),
    )

    entry = relationship("Entry", back_populates="jobs")

    def __repr__(self):
        return f"<AnalysisJob(id={self.id}, entry_id={self.entry_id}, queue='{self.queue}', status='{self.status}')>"


class AnalysisFeedback(Base):
    """AnalysisFeedback model - a user's feedback on one entry's analysis."""

    __tablename__ = "analysis_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(Integer, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    summary_issue = Column(Text, nullable=True)
    tag_suggestions = Column(Text, nullable=True)  # JSON array
    rating = Column(Integer, nullable=True)
    is_helpful = Column(Boolean, nullable=True)
    comments = Column(Text, nullable=True)
    is_applied = Column(Boolean, nullable=False, server_default="0")
    applied_at = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("entry_id", "user_id", name="uq_analysis_feedback_entry_user"),
        CheckConstraint("rating IS NULL OR rating BETWEEN 1 AND 5", name="check_feedback_rating"),
        Index("idx_analysis_feedback_unapplied", "is_applied", "created_at"),
    )

    entry = relationship("Entry", back_populates="feedback")

    def __repr__(self):
        return f"<AnalysisFeedback(id={self.id}, entry_id={self.entry_id}, user_id={self.user_id})>"


class ArticleRelationRecord(Base):
    """ArticleRelationRecord model - a typed, weighted link between two entries."""

    __tablename__ = "article_relations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(Integer, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False)
    target_id = Column(Integer, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False)
    relation_type = Column(String, nullable=False)
    strength = Column(Float, nullable=False)
    reason = Column(Text, nullable=True)
    updated_at = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("source_id", "target_id", "relation_type", name="uq_article_relation"),
        CheckConstraint(
            "relation_type IN ('similar', 'prerequisite', 'extension', 'contradiction')",
            name="check_relation_type",
        ),
        Index("idx_article_relations_source", "source_id"),
    )

    def __repr__(self):
        return f"<ArticleRelationRecord(source_id={self.source_id}, target_id={self.target_id}, type='{self.relation_type}')>"


class EntryEmbedding(Base):
    """EntryEmbedding model - one embedding vector per entry."""

    __tablename__ = "entry_embeddings"

    entry_id = Column(Integer, ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True)
    vector = Column(Text, nullable=False)  # JSON array of floats
    dimension = Column(Integer, nullable=False)
    metadata_json = Column(Text, nullable=True)

    __table_args__ = (Index("idx_entry_embeddings_dimension", "dimension"),)

    def __repr__(self):
        return f"<EntryEmbedding(entry_id={self.entry_id}, dimension={self.dimension})>"
