"""Tests for deterministic topic inference."""

import pytest

from browsing_kg.config import EngineConfig
from browsing_kg.engine.topics import (
    clean_domain_name,
    compute_lifecycle,
    infer_topics_from_domains,
    infer_topics_from_keywords,
    infer_topics_from_url_patterns,
    run_topic_inference,
    update_topic_lifecycles,
)
from browsing_kg.models.entities import TopicLifecycle


class TestCleanDomainName:
    @pytest.mark.parametrize(
        "domain, expected",
        [
            ("www.github.com", "Github"),
            ("docs.python.org", "Docs Python"),
            ("news.ycombinator.com", "News Ycombinator"),
            ("example.co.uk", "Example Co Uk"),
            ("localhost", "Localhost"),
        ],
    )
    def test_cleans(self, domain, expected):
        assert clean_domain_name(domain) == expected


class TestComputeLifecycle:
    def test_stale_page_is_dormant(self, make_page, now):
        pages = [make_page("https://a.com/1", days_ago=15)]
        assert compute_lifecycle(pages, EngineConfig(), now) == TopicLifecycle.DORMANT

    def test_dormant_regardless_of_size(self, make_page, now):
        pages = [make_page(f"https://a.com/{i}", days_ago=20) for i in range(10)]
        assert compute_lifecycle(pages, EngineConfig(), now) == TopicLifecycle.DORMANT

    def test_exactly_at_window_is_not_dormant(self, make_page, now):
        pages = [make_page("https://a.com/1", days_ago=14)]
        assert compute_lifecycle(pages, EngineConfig(), now) == TopicLifecycle.EMERGING

    def test_active_at_threshold(self, make_page, now):
        pages = [make_page(f"https://a.com/{i}", days_ago=1) for i in range(5)]
        assert compute_lifecycle(pages, EngineConfig(), now) == TopicLifecycle.ACTIVE

    def test_small_recent_topic_is_emerging(self, make_page, now):
        pages = [make_page(f"https://a.com/{i}") for i in range(4)]
        assert compute_lifecycle(pages, EngineConfig(), now) == TopicLifecycle.EMERGING


class TestDomainTopics:
    @pytest.mark.asyncio
    async def test_needs_two_pages(self, store, make_page, now):
        await store.add_page(make_page("https://github.com/a", "Alpha"))
        await store.add_page(make_page("https://github.com/b", "Beta"))
        await store.add_page(make_page("https://lonely.org/x", "Gamma"))

        assert await infer_topics_from_domains(store, EngineConfig(), now) == 1

        topic = await store.get_topic_by_name("Github")
        assert topic is not None
        assert len(topic.page_ids) == 2
        assert topic.description == "Pages from github.com"
        assert topic.confidence_score == pytest.approx(0.1)
        assert await store.get_topic_by_name("Lonely") is None

    @pytest.mark.asyncio
    async def test_excluded_pages_are_ignored(self, store, make_page, now):
        await store.add_page(make_page("https://github.com/a", "Alpha"))
        await store.add_page(make_page("https://github.com/b", "Beta", excluded=True))

        assert await infer_topics_from_domains(store, EngineConfig(), now) == 0

    @pytest.mark.asyncio
    async def test_confidence_is_capped(self, store, make_page, now):
        for i in range(25):
            await store.add_page(make_page(f"https://big.com/{i}", f"Page {i}"))

        await infer_topics_from_domains(store, EngineConfig(), now)

        topic = await store.get_topic_by_name("Big")
        assert topic.confidence_score == 1.0


class TestKeywordTopics:
    @pytest.mark.asyncio
    async def test_shared_keyword_creates_topic(self, store, make_page, now):
        for i, site in enumerate(["a.com", "b.com", "c.com"]):
            await store.add_page(make_page(f"https://{site}/{i}", f"Kubernetes note {i}"))

        await infer_topics_from_keywords(store, EngineConfig(), now)

        topic = await store.get_topic_by_name("Kubernetes")
        assert topic is not None
        assert len(topic.page_ids) == 3
        assert topic.description == 'Pages related to "kubernetes"'
        assert topic.confidence_score == pytest.approx(3 / 15)

    @pytest.mark.asyncio
    async def test_metadata_keywords_count(self, store, make_page, now):
        for i in range(3):
            await store.add_page(make_page(f"https://s{i}.com/", f"Untitled {i}", keywords=[" Rust "]))

        await infer_topics_from_keywords(store, EngineConfig(), now)

        assert await store.get_topic_by_name("Rust") is not None

    @pytest.mark.asyncio
    async def test_stop_words_and_short_tokens_skipped(self, store, make_page, now):
        for i in range(3):
            await store.add_page(make_page(f"https://s{i}.com/", "the home page of abc"))

        assert await infer_topics_from_keywords(store, EngineConfig(), now) == 0

    @pytest.mark.asyncio
    async def test_merges_into_existing_topic(self, store, make_page, now):
        await store.add_page(make_page("https://python.org/", "Welcome"))
        await store.add_page(make_page("https://python.org/downloads", "Downloads"))
        for i, site in enumerate(["x.com", "y.com", "z.com"]):
            await store.add_page(make_page(f"https://{site}/{i}", f"Python trick {i}"))

        config = EngineConfig()
        await infer_topics_from_domains(store, config, now)
        await infer_topics_from_keywords(store, config, now)

        topic = await store.get_topic_by_name("Python")
        assert len(topic.page_ids) == 5
        assert topic.description == "Pages from python.org"


class TestUrlPatternTopics:
    @pytest.mark.asyncio
    async def test_docs_pattern(self, store, make_page, now):
        for i, site in enumerate(["a.io", "b.io", "c.io"]):
            await store.add_page(make_page(f"https://{site}/docs/intro{i}", f"Intro {i}"))

        assert await infer_topics_from_url_patterns(store, EngineConfig(), now) == 1

        topic = await store.get_topic_by_name("Documentation")
        assert len(topic.page_ids) == 3
        assert topic.confidence_score == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_github_repositories(self, store, make_page, now):
        for repo in ["a/one", "b/two", "c/three"]:
            await store.add_page(make_page(f"https://github.com/{repo}", repo))

        await infer_topics_from_url_patterns(store, EngineConfig(), now)

        assert await store.get_topic_by_name("GitHub Projects") is not None

    @pytest.mark.asyncio
    async def test_below_minimum(self, store, make_page, now):
        await store.add_page(make_page("https://a.io/blog/x", "One"))
        await store.add_page(make_page("https://b.io/blog/y", "Two"))

        assert await infer_topics_from_url_patterns(store, EngineConfig(), now) == 0


class TestLifecycleUpdate:
    @pytest.mark.asyncio
    async def test_only_writes_on_change(self, store, make_page, now):
        ids = [await store.add_page(make_page(f"https://old.com/{i}", days_ago=30)) for i in range(2)]
        topic_id = await store.upsert_topic(
            "Old", page_ids=ids, lifecycle_state=TopicLifecycle.ACTIVE,
        )
        config = EngineConfig()

        assert await update_topic_lifecycles(store, config, now) == 1
        assert (await store.get_topics([topic_id]))[0].lifecycle_state == TopicLifecycle.DORMANT
        assert await update_topic_lifecycles(store, config, now) == 0


class TestRunTopicInference:
    @pytest.mark.asyncio
    async def test_idempotent(self, store, make_page, now):
        await store.add_page(make_page("https://github.com/a", "Alpha"))
        await store.add_page(make_page("https://github.com/b", "Beta"))
        config = EngineConfig()

        await run_topic_inference(store, config, now)
        first = await store.list_topics()
        await run_topic_inference(store, config, now)
        second = await store.list_topics()

        assert [t.name for t in first] == [t.name for t in second]
        assert [t.name for t in second].count("Github") == 1
        assert second[0].page_ids == first[0].page_ids
