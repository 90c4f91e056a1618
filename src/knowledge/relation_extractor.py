"""
Related-article discovery and knowledge graph construction
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Protocol, Set, Tuple

from pydantic import BaseModel

from src.providers.ai_provider import user_message
from src.utils.constants import ModelConstants, RelationConstants
from src.utils.llm_prompts import LLMPrompts
from src.utils.logger import logger
from src.utils.models import ArticleRelation, GraphEdge, GraphNode, KnowledgeGraph, Outcome, RelationType


class EntrySummary(BaseModel):
    id: int
    title: str
    summary: Optional[str] = None


class EntryLookup(Protocol):
    async def get_entry(self, entry_id: int) -> Optional[EntrySummary]:
        ...


@dataclass
class GraphState:
    """BFS bookkeeping: node map, edge list, FIFO queue, visited set"""
    nodes: Dict[int, GraphNode] = field(default_factory=dict)
    edges: List[GraphEdge] = field(default_factory=list)
    queue: Deque[Tuple[int, int]] = field(default_factory=deque)
    visited: Set[int] = field(default_factory=set)

    def to_graph(self) -> KnowledgeGraph:
        return KnowledgeGraph(nodes=list(self.nodes.values()), edges=list(self.edges))


def _to_outcome(index: int, value) -> Outcome:
    """Fold one asyncio.gather(return_exceptions=True) slot into an Outcome"""
    if isinstance(value, BaseException):
        if not isinstance(value, Exception):
            raise value
        return Outcome(index=index, error=value)
    return Outcome(index=index, value=value)


class RelationExtractor:
    """Finds related articles through the vector store, optionally confirming the relation type with an LLM

    With scoped=True only neighbours the entry lookup can see are returned,
    so a per-user lookup keeps other users' articles out of the results.
    """

    def __init__(
        self,
        llm,
        vector_store,
        entry_lookup: EntryLookup,
        model: str = ModelConstants.DIRECT_ANALYSIS_MODEL,
        scoped: bool = False,
    ):
        self.llm = llm
        self.vector_store = vector_store
        self.entry_lookup = entry_lookup
        self.model = model
        self.scoped = scoped

    async def find_related_articles(
        self,
        entry_id: int,
        limit: int = RelationConstants.DEFAULT_LIMIT,
        relation_type: Optional[RelationType] = None,
        min_similarity: float = RelationConstants.DEFAULT_MIN_SIMILARITY,
    ) -> List[ArticleRelation]:
        """
        Find articles related to an entry.

        Without a relation_type the nearest neighbours are returned as
        'similar' with strength equal to similarity. With a relation_type
        each candidate is confirmed by one yes/no LLM call.

        Returns:
            Up to `limit` relations; [] when the entry has no embedding
        """
        vector = await self.vector_store.get(entry_id)
        if vector is None:
            logger.warning(f"Entry {entry_id} has no embedding, cannot find related articles")
            return []

        results = await self.vector_store.search(vector, limit * 2, min_similarity)
        candidates = [r for r in results if r.entry_id != entry_id]
        if self.scoped:
            candidates = await self._visible(candidates)
        candidates = candidates[:limit]

        if relation_type is None:
            return [
                ArticleRelation(
                    source_id=entry_id,
                    target_id=r.entry_id,
                    relation_type=RelationType.SIMILAR,
                    strength=max(0.0, min(1.0, r.similarity)),
                )
                for r in candidates
            ]

        source = await self.entry_lookup.get_entry(entry_id)
        if source is None:
            return []

        raw = await asyncio.gather(
            *[
                self._confirm_candidate(source, r.entry_id, RelationType(relation_type), r.similarity)
                for r in candidates
            ],
            return_exceptions=True,
        )
        outcomes = [_to_outcome(index, value) for index, value in enumerate(raw)]
        for outcome in outcomes:
            if not outcome.ok:
                logger.error(
                    f"Confirming candidate {candidates[outcome.index].entry_id} for entry {entry_id} failed: {outcome.error}"
                )
        return [o.value for o in outcomes if o.ok and o.value is not None]

    async def _visible(self, candidates):
        raw = await asyncio.gather(
            *[self.entry_lookup.get_entry(r.entry_id) for r in candidates], return_exceptions=True
        )
        visible = []
        for index, value in enumerate(raw):
            outcome = _to_outcome(index, value)
            if not outcome.ok:
                logger.error(f"Looking up candidate {candidates[index].entry_id} failed: {outcome.error}")
            elif outcome.value is not None:
                visible.append(candidates[index])
        return visible

    async def _confirm_candidate(
        self,
        source: EntrySummary,
        target_id: int,
        relation_type: RelationType,
        similarity: float,
    ) -> Optional[ArticleRelation]:
        target = await self.entry_lookup.get_entry(target_id)
        if target is None:
            return None
        return await self.confirm_relation(source, target, relation_type, similarity)

    async def confirm_relation(
        self,
        source: EntrySummary,
        target: EntrySummary,
        relation_type: RelationType,
        similarity: float,
    ) -> Optional[ArticleRelation]:
        strength = max(0.0, min(1.0, similarity))
        prompt = LLMPrompts.get_relation_confirmation_prompt(
            relation_type.value,
            source.title,
            source.summary or "",
            target.title,
            target.summary or "",
            RelationConstants.SUMMARY_PREVIEW_LENGTH,
        )

        try:
            response = await self.llm.chat(
                model=self.model,
                messages=[user_message(prompt)],
                max_tokens=RelationConstants.CONFIRMATION_MAX_TOKENS,
            )
        except Exception as e:
            logger.error(f"Relation confirmation failed for {source.id} -> {target.id}: {e}")
            if similarity > RelationConstants.FALLBACK_SIMILARITY:
                return ArticleRelation(
                    source_id=source.id,
                    target_id=target.id,
                    relation_type=RelationType.SIMILAR,
                    strength=strength,
                )
            return None

        if "true" in (response.content or "").lower():
            return ArticleRelation(
                source_id=source.id,
                target_id=target.id,
                relation_type=relation_type,
                strength=strength,
                reason=f"confirmed as {relation_type.value}",
            )
        return None

    async def extract_relations_batch(
        self,
        entry_ids: List[int],
        max_relations_per_entry: int = RelationConstants.BATCH_MAX_RELATIONS,
        min_similarity: float = RelationConstants.BATCH_MIN_SIMILARITY,
    ) -> Dict[int, List[ArticleRelation]]:
        relations = {}
        for entry_id in entry_ids:
            relations[entry_id] = await self.find_related_articles(
                entry_id, limit=max_relations_per_entry, min_similarity=min_similarity
            )
        return relations

    async def build_knowledge_graph(self, entry_id: int, depth: int = RelationConstants.GRAPH_DEFAULT_DEPTH) -> KnowledgeGraph:
        """
        Breadth-first graph of related articles around an entry.

        The root sits at layer 0; nodes at layer < depth are expanded.
        Every relation found yields an edge, but each article becomes
        a node at most once, at the layer where it was first reached.

        Returns:
            KnowledgeGraph; empty when the root entry does not exist
        """
        root = await self.entry_lookup.get_entry(entry_id)
        if root is None:
            return KnowledgeGraph()

        state = GraphState()
        state.nodes[entry_id] = GraphNode(id=entry_id, title=root.title, layer=0)
        state.visited.add(entry_id)
        state.queue.append((entry_id, 0))

        while state.queue:
            current_id, layer = state.queue.popleft()
            if layer >= depth:
                continue

            relations = await self.find_related_articles(
                current_id,
                limit=RelationConstants.GRAPH_NEIGHBOUR_LIMIT,
                min_similarity=RelationConstants.GRAPH_MIN_SIMILARITY,
            )

            for relation in relations:
                target_id = relation.target_id
                if target_id not in state.visited:
                    target = await self.entry_lookup.get_entry(target_id)
                    if target is None:
                        logger.warning(f"Related entry {target_id} no longer exists, skipping")
                        continue
                    state.visited.add(target_id)
                    state.nodes[target_id] = GraphNode(id=target_id, title=target.title, layer=layer + 1)
                    state.queue.append((target_id, layer + 1))

                state.edges.append(GraphEdge(
                    source=relation.source_id,
                    target=target_id,
                    label=relation.relation_type,
                    strength=relation.strength,
                ))

        logger.info(f"Knowledge graph for entry {entry_id}: {len(state.nodes)} nodes, {len(state.edges)} edges")
        return state.to_graph()
