"""create_users_and_entries_tables

Revision ID: 3f1c2a7b9d10
Revises:
Create Date: 2026-10-12 09:14:02.418223

"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3f1c2a7b9d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users and entries tables."""
    op.execute("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    op.execute("""
        CREATE TABLE entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            url TEXT,
            author TEXT,
            feed_name TEXT,
            feed_url TEXT,
            content TEXT,
            published_at TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            prelim_ignore BOOLEAN,
            prelim_reason TEXT,
            prelim_value INTEGER,
            prelim_summary TEXT,
            prelim_language TEXT,
            prelim_confidence REAL,
            prelim_model TEXT,
            prelim_evaluated_at TEXT,
            ai_one_line_summary TEXT,
            ai_summary TEXT,
            ai_main_points TEXT,
            ai_tags TEXT,
            ai_domain TEXT,
            ai_subcategory TEXT,
            ai_score REAL,
            ai_score_dimensions TEXT,
            ai_key_quotes TEXT,
            ai_open_source TEXT,
            ai_analysis_model TEXT,
            ai_processing_time INTEGER,
            ai_reflection_rounds INTEGER,
            content_length INTEGER,
            word_count INTEGER,
            reading_time_minutes INTEGER,
            analyzed_at TEXT,
            FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
        )
    """)

    op.create_index("idx_entries_user_id", "entries", ["user_id"], unique=False)
    op.create_index("idx_entries_analyzed_at", "entries", ["analyzed_at"], unique=False)


def downgrade() -> None:
    """Drop entries and users tables."""
    op.drop_index("idx_entries_analyzed_at", table_name="entries")
    op.drop_index("idx_entries_user_id", table_name="entries")
    op.execute("DROP TABLE IF EXISTS entries")
    op.execute("DROP TABLE IF EXISTS users")
