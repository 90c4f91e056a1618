"""
Pytest configuration for web unit tests.

Provides an in-memory database with a test user, plus factories for
entries and analysis pipelines. The application lifespan skips the
scheduler under TESTING.
"""

import os

import numpy as np
import pytest

os.environ["TESTING"] = "true"

from src.analyzers.language_detector import LanguageDetector  # noqa: E402
from src.analyzers.model_selector import ModelSelector  # noqa: E402
from src.knowledge.vector_store import MemoryVectorStore  # noqa: E402
from src.utils.config import Config  # noqa: E402
from src.web.database import get_test_db  # noqa: E402
from src.web.models import Entry, User  # noqa: E402
from src.web.services.pipeline_factory import Pipeline  # noqa: E402


@pytest.fixture
def db():
    """Create test database."""
    yield from get_test_db()


@pytest.fixture
def user(db):
    """Create test user."""
    user = User(first_name="Alice")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_entry(db, user):
    """Factory for entries owned by the test user (or another user)."""

    def _make_entry(title="Rust ownership", content="Ownership is how Rust manages memory.", owner=None, **fields):
        entry = Entry(
            user_id=(owner or user).id,
            title=title,
            content=content,
            **fields,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    return _make_entry


class StubEmbedder:
    """Embeds every text as the same vector."""

    def __init__(self, vector=(1.0, 0.0, 0.0)):
        self.vector = vector
        self.texts = []

    async def embed(self, text):
        self.texts.append(text)
        return None if self.vector is None else np.array(self.vector)


@pytest.fixture
def make_pipeline(make_llm):
    """Factory for pipelines with a scripted LLM and an in-memory vector store."""

    def _make_pipeline(replies=None, default=None, config=None, embedder=None, models=None):
        models = models or {"preliminary": "triage-model", "analysis": "analysis-model", "reflection": "critic-model"}
        return Pipeline(
            llm=make_llm(replies, default=default),
            model_selector=ModelSelector({tier: dict(models) for tier in ("chinese", "english", "other")}),
            detector=LanguageDetector(),
            config=config or Config(),
            vector_store=MemoryVectorStore(dimension=3),
            embedder=embedder,
        )

    return _make_pipeline


@pytest.fixture
def make_embedder():
    """Factory for stub embedders."""
    return StubEmbedder
