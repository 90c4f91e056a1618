"""
Tests for related-article discovery and knowledge graph construction.
"""

import pytest

from src.knowledge.relation_extractor import EntrySummary, RelationExtractor
from src.knowledge.vector_store import MemoryVectorStore
from src.utils.models import RelationType


class DictLookup:
    def __init__(self, entries):
        self.entries = entries

    async def get_entry(self, entry_id):
        return self.entries.get(entry_id)


def summaries(*ids):
    names = {1: "One", 2: "Two", 3: "Three", 4: "Four"}
    return {i: EntrySummary(id=i, title=names[i], summary=f"About {names[i].lower()}") for i in ids}


async def chain_store():
    """1 ~ 2 ~ 4, with 1 and 4 unrelated; 3 is unrelated to everything"""
    store = MemoryVectorStore(dimension=3)
    await store.store(1, [1.0, 0.0, 0.0])
    await store.store(2, [1.0, 1.0, 0.0])
    await store.store(3, [0.0, 0.0, 1.0])
    await store.store(4, [0.0, 1.0, 0.0])
    return store


async def close_store():
    store = MemoryVectorStore(dimension=3)
    await store.store(1, [1.0, 0.0, 0.0])
    await store.store(2, [1.0, 0.1, 0.0])
    await store.store(3, [1.0, 0.3, 0.0])
    return store


class TestFindRelatedArticles:
    @pytest.mark.asyncio
    async def test_entry_without_embedding(self, make_llm):
        extractor = RelationExtractor(make_llm(), MemoryVectorStore(dimension=3), DictLookup({}))
        assert await extractor.find_related_articles(1) == []

    @pytest.mark.asyncio
    async def test_similar_relations_exclude_self(self, make_llm):
        llm = make_llm()
        extractor = RelationExtractor(llm, await close_store(), DictLookup(summaries(1, 2, 3)))

        relations = await extractor.find_related_articles(1, limit=5, min_similarity=0.7)

        assert [r.target_id for r in relations] == [2, 3]
        assert all(r.source_id == 1 for r in relations)
        assert all(r.relation_type == RelationType.SIMILAR for r in relations)
        assert relations[0].strength > relations[1].strength
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_limit(self, make_llm):
        extractor = RelationExtractor(make_llm(), await close_store(), DictLookup(summaries(1, 2, 3)))

        relations = await extractor.find_related_articles(1, limit=1, min_similarity=0.7)

        assert [r.target_id for r in relations] == [2]

    @pytest.mark.asyncio
    async def test_typed_relations_are_confirmed_by_llm(self, make_llm):
        def reply(messages):
            return "True" if "Article B: Two" in messages[0]["content"] else "false"

        llm = make_llm(default=reply)
        extractor = RelationExtractor(llm, await close_store(), DictLookup(summaries(1, 2, 3)), model="judge")

        relations = await extractor.find_related_articles(
            1, relation_type=RelationType.PREREQUISITE, min_similarity=0.7
        )

        assert len(relations) == 1
        assert relations[0].target_id == 2
        assert relations[0].relation_type == RelationType.PREREQUISITE
        assert relations[0].reason == "confirmed as prerequisite"
        assert len(llm.calls) == 2
        assert all(call["max_tokens"] == 10 for call in llm.calls)
        assert llm.models == ["judge", "judge"]


    @pytest.mark.asyncio
    async def test_failed_lookup_only_drops_that_candidate(self, make_llm):
        class FlakyLookup(DictLookup):
            async def get_entry(self, entry_id):
                if entry_id == 3:
                    raise RuntimeError("db hiccup")
                return await super().get_entry(entry_id)

        llm = make_llm(default="true")
        extractor = RelationExtractor(llm, await close_store(), FlakyLookup(summaries(1, 2, 3)))

        relations = await extractor.find_related_articles(
            1, relation_type=RelationType.EXTENSION, min_similarity=0.7
        )

        assert [r.target_id for r in relations] == [2]
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_failed_confirmation_call_falls_back_per_candidate(self, make_llm):
        def reply(messages):
            if "Article B: Three" in messages[0]["content"]:
                return RuntimeError("provider down")
            return "true"

        extractor = RelationExtractor(make_llm(default=reply), await close_store(), DictLookup(summaries(1, 2, 3)))

        relations = await extractor.find_related_articles(
            1, relation_type=RelationType.EXTENSION, min_similarity=0.7
        )

        # 3 is close enough to keep as similar
        assert [(r.target_id, r.relation_type) for r in relations] == [
            (2, RelationType.EXTENSION),
            (3, RelationType.SIMILAR),
        ]

    @pytest.mark.asyncio
    async def test_scoped_extractor_hides_unknown_entries(self, make_llm):
        extractor = RelationExtractor(make_llm(), await close_store(), DictLookup(summaries(1, 3)), scoped=True)

        relations = await extractor.find_related_articles(1, limit=1, min_similarity=0.7)

        assert [r.target_id for r in relations] == [3]

    @pytest.mark.asyncio
    async def test_unscoped_extractor_skips_lookups(self, make_llm):
        extractor = RelationExtractor(make_llm(), await close_store(), DictLookup({}))

        relations = await extractor.find_related_articles(1, min_similarity=0.7)

        assert [r.target_id for r in relations] == [2, 3]


class TestConfirmRelation:
    @pytest.mark.asyncio
    async def test_failure_falls_back_to_similar_for_close_pairs(self, make_llm):
        extractor = RelationExtractor(make_llm([RuntimeError("down")]), None, DictLookup({}))
        source, target = summaries(1, 2).values()

        relation = await extractor.confirm_relation(source, target, RelationType.EXTENSION, 0.9)

        assert relation.relation_type == RelationType.SIMILAR
        assert relation.strength == 0.9

    @pytest.mark.asyncio
    async def test_failure_drops_distant_pairs(self, make_llm):
        extractor = RelationExtractor(make_llm([RuntimeError("down")]), None, DictLookup({}))
        source, target = summaries(1, 2).values()

        assert await extractor.confirm_relation(source, target, RelationType.EXTENSION, 0.8) is None


class TestBatch:
    @pytest.mark.asyncio
    async def test_batch_uses_stricter_threshold(self, make_llm):
        extractor = RelationExtractor(make_llm(), await chain_store(), DictLookup(summaries(1, 2, 3, 4)))

        relations = await extractor.extract_relations_batch([1, 3])

        # 1 and 2 are about 0.71 similar, below the batch threshold
        assert relations == {1: [], 3: []}


class TestKnowledgeGraph:
    @pytest.mark.asyncio
    async def test_missing_root_gives_empty_graph(self, make_llm):
        extractor = RelationExtractor(make_llm(), await chain_store(), DictLookup({}))

        graph = await extractor.build_knowledge_graph(1)

        assert graph.nodes == []
        assert graph.edges == []

    @pytest.mark.asyncio
    async def test_breadth_first_layers(self, make_llm):
        extractor = RelationExtractor(make_llm(), await chain_store(), DictLookup(summaries(1, 2, 3, 4)))

        graph = await extractor.build_knowledge_graph(1, depth=2)

        layers = {node.id: node.layer for node in graph.nodes}
        assert layers == {1: 0, 2: 1, 4: 2}
        edges = {(e.source, e.target) for e in graph.edges}
        # the back edge to the already visited root is kept
        assert edges == {(1, 2), (2, 1), (2, 4)}
        assert len(graph.edges) == 3
        assert all(e.label == RelationType.SIMILAR for e in graph.edges)

    @pytest.mark.asyncio
    async def test_depth_limits_expansion(self, make_llm):
        extractor = RelationExtractor(make_llm(), await chain_store(), DictLookup(summaries(1, 2, 3, 4)))

        graph = await extractor.build_knowledge_graph(1, depth=1)

        assert {node.id for node in graph.nodes} == {1, 2}
        assert [(e.source, e.target) for e in graph.edges] == [(1, 2)]

    @pytest.mark.asyncio
    async def test_vanished_target_is_skipped(self, make_llm):
        extractor = RelationExtractor(make_llm(), await chain_store(), DictLookup(summaries(1, 2)))

        graph = await extractor.build_knowledge_graph(1, depth=2)

        assert {node.id for node in graph.nodes} == {1, 2}
        assert {(e.source, e.target) for e in graph.edges} == {(1, 2), (2, 1)}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("depth", [1, 2, 3])
    async def test_fully_connected_graph_has_unique_nodes(self, make_llm, depth):
        store = MemoryVectorStore(dimension=3)
        for entry_id, vector in {1: [1.0, 0.0, 0.0], 2: [1.0, 0.1, 0.0], 3: [1.0, 0.0, 0.1], 4: [1.0, 0.1, 0.1]}.items():
            await store.store(entry_id, vector)
        extractor = RelationExtractor(make_llm(), store, DictLookup(summaries(1, 2, 3, 4)))

        graph = await extractor.build_knowledge_graph(1, depth=depth)

        ids = [node.id for node in graph.nodes]
        assert sorted(ids) == [1, 2, 3, 4]
        assert len(ids) == len(set(ids))
        assert all(node.layer <= depth for node in graph.nodes)
        assert {node.id: node.layer for node in graph.nodes} == {1: 0, 2: 1, 3: 1, 4: 1}
        # every expanded node links to its three neighbours, cycles included
        expanded = 1 if depth == 1 else 4
        assert len(graph.edges) == 3 * expanded

    @pytest.mark.asyncio
    async def test_cycle_does_not_revisit_nodes(self, make_llm):
        extractor = RelationExtractor(make_llm(), await chain_store(), DictLookup(summaries(1, 2, 3, 4)))

        graph = await extractor.build_knowledge_graph(1, depth=3)

        ids = [node.id for node in graph.nodes]
        assert len(ids) == len(set(ids))
        assert max(node.layer for node in graph.nodes) <= 3
