"""Tests for keyword weighting and concept extraction."""

import pytest

from browsing_kg.engine.concepts import extract_concepts
from browsing_kg.engine.keywords import page_keywords, weighted_keywords
from browsing_kg.models.entities import Concept


class TestPageKeywords:
    def test_title_and_metadata(self, make_page):
        page = make_page(
            "https://a.com/", "Async-Python | Tutorial for beginners",
            keywords=["Concurrency", "io", "x" * 30],
        )
        assert page_keywords(page) == ["concurrency", "async", "python", "tutorial", "beginners"]

    def test_deduplicated(self, make_page):
        page = make_page("https://a.com/", "rust rust", keywords=["rust"])
        assert page_keywords(page) == ["rust"]


class TestWeightedKeywords:
    def test_metadata_weighs_double(self, make_page):
        pages = [
            make_page("https://a.com/1", "Nothing", keywords=["graphs"]),
            make_page("https://a.com/2", "graphs"),
        ]
        assert weighted_keywords(pages) == ["graphs"]

    def test_below_min_count_dropped(self, make_page):
        pages = [make_page("https://a.com/1", "lonely words")]
        assert weighted_keywords(pages) == []

    def test_punctuation_splits_titles(self, make_page):
        pages = [make_page(f"https://a.com/{i}", "Rust: ownership, borrowing!") for i in range(3)]
        assert set(weighted_keywords(pages)) == {"rust", "ownership", "borrowing"}


class TestExtractConcepts:
    @pytest.mark.asyncio
    async def test_cross_topic_keyword(self, store, make_page):
        topic_ids = []
        for name in ("One", "Two"):
            ids = [
                await store.add_page(make_page(f"https://{name}.com/{i}", "Ownership rules"))
                for i in range(3)
            ]
            topic_ids.append(await store.upsert_topic(name, page_ids=ids))

        assert await extract_concepts(store) == 2

        concept = await store.get_concept_by_label("ownership")
        assert concept.explanation == "Cross-topic concept appearing in 2 topics"
        assert concept.derived_from_ids == topic_ids

    @pytest.mark.asyncio
    async def test_create_once(self, store, make_page):
        await store.add_concept(Concept(label="ownership", explanation="kept"))
        for name in ("One", "Two"):
            ids = [
                await store.add_page(make_page(f"https://{name}.com/{i}", "Ownership"))
                for i in range(3)
            ]
            await store.upsert_topic(name, page_ids=ids)

        assert await extract_concepts(store) == 0
        assert (await store.get_concept_by_label("ownership")).explanation == "kept"

    @pytest.mark.asyncio
    async def test_single_topic_yields_nothing(self, store, make_page):
        ids = [await store.add_page(make_page(f"https://a.com/{i}", "Ownership")) for i in range(3)]
        await store.upsert_topic("Solo", page_ids=ids)

        assert await extract_concepts(store) == 0
