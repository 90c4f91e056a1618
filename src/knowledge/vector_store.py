"""
Per-article embedding stores with thresholded nearest-neighbour search
"""
import json
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.utils.logger import logger


class VectorSearchResult(BaseModel):
    entry_id: int
    similarity: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class VectorStoreError(Exception):
    """Raised for invalid vectors (wrong dimension, unknown metric)."""

    pass


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """Computes cosine similarity between two vectors."""
    norm_vec1 = np.linalg.norm(vec1)
    norm_vec2 = np.linalg.norm(vec2)
    if norm_vec1 == 0 or norm_vec2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm_vec1 * norm_vec2))


def l2_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """Maps euclidean distance into (0, 1]; identical vectors score 1."""
    return float(1.0 / (1.0 + np.linalg.norm(vec1 - vec2)))


def inner_product(vec1: np.ndarray, vec2: np.ndarray) -> float:
    return float(np.dot(vec1, vec2))


METRICS = {
    "cosine": cosine_similarity,
    "l2": l2_similarity,
    "innerproduct": inner_product,
}


class BaseVectorStore:
    """Common dimension checks and similarity metric"""

    def __init__(self, dimension: int = 1536, metric: str = "cosine"):
        if metric not in METRICS:
            raise VectorStoreError(f"Unknown similarity metric: {metric}")
        self.dimension = dimension
        self.metric = metric
        self._similarity = METRICS[metric]

    def _as_vector(self, vector: Sequence[float]) -> np.ndarray:
        array = np.asarray(vector, dtype=float)
        if array.ndim != 1 or array.shape[0] != self.dimension:
            raise VectorStoreError(
                f"Vector dimension mismatch: expected {self.dimension}, got {array.shape[-1] if array.ndim else 0}"
            )
        return array

    def _rank(self, query: np.ndarray, candidates, limit: int, threshold: Optional[float]) -> List[VectorSearchResult]:
        results = []
        for entry_id, vector, metadata in candidates:
            similarity = self._similarity(query, vector)
            if threshold is not None and similarity < threshold:
                continue
            results.append(VectorSearchResult(entry_id=entry_id, similarity=similarity, metadata=metadata or {}))
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:limit]

    async def store(self, entry_id: int, vector: Sequence[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError

    async def get(self, entry_id: int) -> Optional[np.ndarray]:
        raise NotImplementedError

    async def search(self, vector: Sequence[float], limit: int, threshold: Optional[float] = None) -> List[VectorSearchResult]:
        raise NotImplementedError

    async def delete(self, entry_id: int) -> None:
        raise NotImplementedError


class MemoryVectorStore(BaseVectorStore):
    """In-process store, for development and tests"""

    def __init__(self, dimension: int = 1536, metric: str = "cosine"):
        super().__init__(dimension, metric)
        self._vectors: Dict[int, np.ndarray] = {}
        self._metadata: Dict[int, Dict[str, Any]] = {}

    async def store(self, entry_id: int, vector: Sequence[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        self._vectors[entry_id] = self._as_vector(vector)
        self._metadata[entry_id] = dict(metadata or {})

    async def get(self, entry_id: int) -> Optional[np.ndarray]:
        return self._vectors.get(entry_id)

    async def search(self, vector: Sequence[float], limit: int, threshold: Optional[float] = None) -> List[VectorSearchResult]:
        query = self._as_vector(vector)
        candidates = ((eid, vec, self._metadata.get(eid)) for eid, vec in self._vectors.items())
        return self._rank(query, candidates, limit, threshold)

    async def delete(self, entry_id: int) -> None:
        self._vectors.pop(entry_id, None)
        self._metadata.pop(entry_id, None)

    def size(self) -> int:
        return len(self._vectors)

    def clear(self) -> None:
        self._vectors.clear()
        self._metadata.clear()


class SqlVectorStore(BaseVectorStore):
    """Embeddings persisted in the entry_embeddings table; search scans in Python"""

    def __init__(self, db: Session, dimension: int = 1536, metric: str = "cosine"):
        super().__init__(dimension, metric)
        self.db = db

    async def store(self, entry_id: int, vector: Sequence[float], metadata: Optional[Dict[str, Any]] = None) -> None:
        from src.web.models import EntryEmbedding

        array = self._as_vector(vector)
        row = self.db.query(EntryEmbedding).filter(EntryEmbedding.entry_id == entry_id).first()
        if row is None:
            row = EntryEmbedding(entry_id=entry_id)
            self.db.add(row)
        row.vector = json.dumps(array.tolist())
        row.dimension = self.dimension
        row.metadata_json = json.dumps(metadata or {})
        self.db.commit()
        logger.debug(f"Stored embedding for entry {entry_id}")

    async def get(self, entry_id: int) -> Optional[np.ndarray]:
        from src.web.models import EntryEmbedding

        row = self.db.query(EntryEmbedding).filter(EntryEmbedding.entry_id == entry_id).first()
        if row is None:
            return None
        return np.asarray(json.loads(row.vector), dtype=float)

    async def search(self, vector: Sequence[float], limit: int, threshold: Optional[float] = None) -> List[VectorSearchResult]:
        from src.web.models import EntryEmbedding

        query = self._as_vector(vector)
        rows = self.db.query(EntryEmbedding).filter(EntryEmbedding.dimension == self.dimension).all()
        candidates = (
            (row.entry_id, np.asarray(json.loads(row.vector), dtype=float), json.loads(row.metadata_json or "{}"))
            for row in rows
        )
        return self._rank(query, candidates, limit, threshold)

    async def delete(self, entry_id: int) -> None:
        from src.web.models import EntryEmbedding

        self.db.query(EntryEmbedding).filter(EntryEmbedding.entry_id == entry_id).delete()
        self.db.commit()
