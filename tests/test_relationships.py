"""Tests for the relationship mapper."""

import numpy as np
import pytest

from browsing_kg.engine.relationships import (
    build_behavioral_relationships,
    build_category_topic_relationships,
    build_semantic_relationships,
    build_temporal_relationships,
    jaccard_matrix,
    overlap_matrices,
    run_relationship_mapping,
)
from browsing_kg.models.entities import EntityKind, RelationshipType, Session


class TestJaccard:
    def test_half_overlap(self):
        sim = jaccard_matrix([{1, 2, 3}, {2, 3, 4}])
        assert sim[0, 1] == pytest.approx(0.5)
        assert sim[1, 0] == pytest.approx(0.5)
        assert sim[0, 0] == pytest.approx(1.0)

    def test_disjoint_and_empty(self):
        inter, sim = overlap_matrices([[1], [2], []])
        assert inter[0, 1] == 0
        assert sim[0, 1] == 0.0
        assert sim[2, 2] == 0.0

    def test_no_sets(self):
        assert jaccard_matrix([]).shape == (0, 0)

    def test_duplicates_do_not_inflate(self):
        inter, sim = overlap_matrices([[1, 1, 2], [1, 2]])
        assert inter[0, 1] == 2
        assert np.isclose(sim[0, 1], 1.0)


class TestTemporal:
    @pytest.mark.asyncio
    async def test_consecutive_pairs(self, store):
        await store.add_session(Session(page_ids=[1, 2, 3]))

        assert await build_temporal_relationships(store) == 2

        rels = await store.list_relationships()
        assert {(r.from_entity_id, r.to_entity_id) for r in rels} == {(1, 2), (2, 3)}
        assert all(r.strength == 0.6 for r in rels)
        assert all(r.relationship_type == RelationshipType.TEMPORAL for r in rels)
        assert rels[0].explanation == "Visited sequentially in session"


class TestSemantic:
    @pytest.mark.asyncio
    async def test_overlapping_topics(self, store):
        a = await store.upsert_topic("A", page_ids=[1, 2, 3])
        b = await store.upsert_topic("B", page_ids=[2, 3, 4])
        await store.upsert_topic("C", page_ids=[9])

        assert await build_semantic_relationships(store) == 1

        (rel,) = await store.list_relationships()
        assert (rel.from_entity_id, rel.to_entity_id) == (a, b)
        assert rel.strength == pytest.approx(0.5)
        assert rel.explanation == "2 shared pages (50% overlap)"

    @pytest.mark.asyncio
    async def test_weak_overlap_skipped(self, store):
        await store.upsert_topic("A", page_ids=list(range(1, 21)))
        await store.upsert_topic("B", page_ids=[1, 100])

        assert await build_semantic_relationships(store) == 0


class TestBehavioral:
    @pytest.mark.asyncio
    async def test_top_dwell_pairs(self, store, make_page):
        for i in range(12):
            await store.add_page(make_page(f"https://site.com/{i}", dwell_ms=i * 1000))

        # 10 highest-dwell pages → C(10, 2) pairs
        assert await build_behavioral_relationships(store) == 45

        rels = await store.list_relationships()
        ids = {r.from_entity_id for r in rels} | {r.to_entity_id for r in rels}
        assert len(ids) == 10
        assert rels[0].explanation == "Same domain: site.com"
        assert rels[0].strength == 0.4

    @pytest.mark.asyncio
    async def test_single_page_domain_skipped(self, store, make_page):
        await store.add_page(make_page("https://solo.com/"))
        assert await build_behavioral_relationships(store) == 0


class TestCategoryTopic:
    @pytest.mark.asyncio
    async def test_links_members(self, store):
        category_id = await store.upsert_category("Software Development", topic_ids=[7, 8])

        assert await build_category_topic_relationships(store) == 2

        rels = await store.relationships_for(EntityKind.CATEGORY, category_id)
        assert {r.to_entity_id for r in rels} == {7, 8}
        assert all(r.strength == 0.9 for r in rels)
        assert rels[0].explanation == 'Topic belongs to category "Software Development"'


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_rerun_keeps_one_row_per_tuple(self, store, make_page):
        await store.add_session(Session(page_ids=[1, 2]))
        await store.add_page(make_page("https://x.com/a"))
        await store.add_page(make_page("https://x.com/b"))

        await run_relationship_mapping(store)
        count = len(await store.list_relationships())
        await run_relationship_mapping(store)

        assert len(await store.list_relationships()) == count

    @pytest.mark.asyncio
    async def test_upsert_keeps_latest_explanation(self, store):
        args = (EntityKind.PAGE, 1, EntityKind.PAGE, 2, RelationshipType.TEMPORAL)
        first = await store.upsert_relationship(*args, strength=0.6, explanation="old")
        second = await store.upsert_relationship(*args, strength=0.7, explanation="new")

        assert first == second
        (rel,) = await store.list_relationships()
        assert rel.explanation == "new"
        assert rel.strength == 0.7
