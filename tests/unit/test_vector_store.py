"""
Tests for the in-memory vector store and the embeddings client.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import numpy as np
import pytest
from openai import APIConnectionError

from src.knowledge.vector_store import (
    MemoryVectorStore,
    VectorStoreError,
    cosine_similarity,
    l2_similarity,
)
from src.providers.embeddings import OpenAIEmbedder
from src.utils.config import EmbeddingConfig


@pytest.fixture
def store():
    return MemoryVectorStore(dimension=3)


class TestSimilarity:
    def test_cosine(self):
        assert cosine_similarity(np.array([1.0, 0, 0]), np.array([2.0, 0, 0])) == pytest.approx(1.0)
        assert cosine_similarity(np.array([1.0, 0, 0]), np.array([0, 1.0, 0])) == pytest.approx(0.0)

    def test_cosine_zero_vector(self):
        assert cosine_similarity(np.zeros(3), np.array([1.0, 0, 0])) == 0.0

    def test_l2_identical_is_one(self):
        assert l2_similarity(np.array([1.0, 2.0]), np.array([1.0, 2.0])) == 1.0

    def test_unknown_metric(self):
        with pytest.raises(VectorStoreError):
            MemoryVectorStore(dimension=3, metric="manhattan")


class TestMemoryVectorStore:
    @pytest.mark.asyncio
    async def test_store_and_get(self, store):
        await store.store(1, [1.0, 0.0, 0.0], {"title": "One"})

        vector = await store.get(1)
        assert vector.tolist() == [1.0, 0.0, 0.0]
        assert await store.get(2) is None
        assert store.size() == 1

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, store):
        with pytest.raises(VectorStoreError):
            await store.store(1, [1.0, 0.0])
        with pytest.raises(VectorStoreError):
            await store.search([1.0, 0.0, 0.0, 0.0], limit=5)

    @pytest.mark.asyncio
    async def test_search_orders_and_thresholds(self, store):
        await store.store(1, [1.0, 0.0, 0.0], {"title": "One"})
        await store.store(2, [1.0, 1.0, 0.0])
        await store.store(3, [0.0, 0.0, 1.0])

        results = await store.search([1.0, 0.1, 0.0], limit=5, threshold=0.5)

        assert [r.entry_id for r in results] == [1, 2]
        assert results[0].metadata == {"title": "One"}
        assert results[1].metadata == {}
        assert results[0].similarity > results[1].similarity

    @pytest.mark.asyncio
    async def test_search_limit(self, store):
        for i in range(1, 5):
            await store.store(i, [1.0, float(i), 0.0])

        assert len(await store.search([1.0, 1.0, 0.0], limit=2)) == 2

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store):
        await store.store(1, [1.0, 0.0, 0.0])
        await store.store(2, [0.0, 1.0, 0.0])

        await store.delete(1)
        await store.delete(99)
        assert store.size() == 1

        store.clear()
        assert store.size() == 0


class TestOpenAIEmbedder:
    def make_embedder(self, create):
        client = MagicMock()
        client.embeddings.create = create
        return OpenAIEmbedder(EmbeddingConfig(model="embed-model", api_key="k"), client=client)

    @pytest.mark.asyncio
    async def test_returns_vector(self):
        create = AsyncMock(return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2, 0.3])]))
        embedder = self.make_embedder(create)

        vector = await embedder.embed("Rust ownership")

        assert vector.tolist() == [0.1, 0.2, 0.3]
        create.assert_awaited_once_with(model="embed-model", input=["Rust ownership"])

    @pytest.mark.asyncio
    async def test_empty_text_skips_the_api(self):
        create = AsyncMock()
        embedder = self.make_embedder(create)

        assert await embedder.embed("   ") is None
        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_api_errors_yield_none(self):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/embeddings"))
        embedder = self.make_embedder(AsyncMock(side_effect=error))

        assert await embedder.embed("text") is None
