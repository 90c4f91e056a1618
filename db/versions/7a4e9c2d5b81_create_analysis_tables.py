"""create_analysis_tables

Revision ID: 7a4e9c2d5b81
Revises: 3f1c2a7b9d10
Create Date: 2026-10-12 09:41:37.902514

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "7a4e9c2d5b81"
down_revision: Union[str, Sequence[str], None] = "3f1c2a7b9d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create job queue, feedback, relation and embedding tables."""
    op.execute("""
        CREATE TABLE analysis_jobs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entry_id INTEGER NOT NULL,
            user_id INTEGER,
            queue TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            priority INTEGER NOT NULL DEFAULT 5,
            retry_count INTEGER NOT NULL DEFAULT 0,
            force BOOLEAN NOT NULL DEFAULT 0,
            error_message TEXT,
            created_at TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT,
            next_retry_at TEXT,
            FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE SET NULL,
            CONSTRAINT check_analysis_job_status
                CHECK (status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')),
            CONSTRAINT check_analysis_job_queue
                CHECK (queue IN ('preliminary', 'deep-analysis')),
            CONSTRAINT check_analysis_job_priority
                CHECK (priority BETWEEN 1 AND 10)
        )
    """)

    # One in-flight job per entry and queue
    op.execute("""
        CREATE UNIQUE INDEX uq_analysis_jobs_active
        ON analysis_jobs (entry_id, queue)
        WHERE status IN ('pending', 'processing')
    """)
    op.create_index(
        "idx_analysis_jobs_claim",
        "analysis_jobs",
        ["queue", "status", "priority", "created_at"],
        unique=False,
    )

    op.execute("""
        CREATE TABLE analysis_feedback (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entry_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            summary_issue TEXT,
            tag_suggestions TEXT,
            rating INTEGER,
            is_helpful BOOLEAN,
            comments TEXT,
            is_applied BOOLEAN NOT NULL DEFAULT 0,
            applied_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT,
            FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
            CONSTRAINT uq_analysis_feedback_entry_user UNIQUE (entry_id, user_id),
            CONSTRAINT check_feedback_rating CHECK (rating IS NULL OR rating BETWEEN 1 AND 5)
        )
    """)
    op.create_index(
        "idx_analysis_feedback_unapplied",
        "analysis_feedback",
        ["is_applied", "created_at"],
        unique=False,
    )

    op.execute("""
        CREATE TABLE article_relations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source_id INTEGER NOT NULL,
            target_id INTEGER NOT NULL,
            relation_type TEXT NOT NULL,
            strength REAL NOT NULL,
            reason TEXT,
            updated_at TEXT,
            FOREIGN KEY (source_id) REFERENCES entries(id) ON DELETE CASCADE,
            FOREIGN KEY (target_id) REFERENCES entries(id) ON DELETE CASCADE,
            CONSTRAINT uq_article_relation UNIQUE (source_id, target_id, relation_type),
            CONSTRAINT check_relation_type
                CHECK (relation_type IN ('similar', 'prerequisite', 'extension', 'contradiction'))
        )
    """)
    op.create_index("idx_article_relations_source", "article_relations", ["source_id"], unique=False)

    op.execute("""
        CREATE TABLE entry_embeddings (
            entry_id INTEGER PRIMARY KEY,
            vector TEXT NOT NULL,
            dimension INTEGER NOT NULL,
            metadata_json TEXT,
            FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE
        )
    """)
    op.create_index("idx_entry_embeddings_dimension", "entry_embeddings", ["dimension"], unique=False)


def downgrade() -> None:
    """Drop analysis tables."""
    op.drop_index("idx_entry_embeddings_dimension", table_name="entry_embeddings")
    op.execute("DROP TABLE IF EXISTS entry_embeddings")
    op.drop_index("idx_article_relations_source", table_name="article_relations")
    op.execute("DROP TABLE IF EXISTS article_relations")
    op.drop_index("idx_analysis_feedback_unapplied", table_name="analysis_feedback")
    op.execute("DROP TABLE IF EXISTS analysis_feedback")
    op.drop_index("idx_analysis_jobs_claim", table_name="analysis_jobs")
    op.execute("DROP INDEX IF EXISTS uq_analysis_jobs_active")
    op.execute("DROP TABLE IF EXISTS analysis_jobs")
