"""Tests for the category builder."""

import pytest

from browsing_kg.engine.categories import CATEGORY_RULES, build_categories, compute_trend
from browsing_kg.models.entities import CategoryTrend


async def _topic_with_pages(store, make_page, name, urls, *, description="", days_ago=0):
    ids = [await store.add_page(make_page(url, name, days_ago=days_ago)) for url in urls]
    return await store.upsert_topic(name, description=description, page_ids=ids)


class TestCategoryRules:
    def test_ten_rules_in_order(self):
        assert [r.name for r in CATEGORY_RULES] == [
            "Software Development",
            "Design & Creative",
            "Learning & Education",
            "News & Media",
            "Social & Communication",
            "Shopping & Commerce",
            "Entertainment",
            "Productivity & Tools",
            "Career & Professional",
            "Research & Reference",
        ]

    def test_patterns_are_case_insensitive(self):
        software = CATEGORY_RULES[0]
        assert software.matches("Stack Overflow questions")
        assert software.matches("GITHUB")
        assert not software.matches("gardening")


class TestBuildCategories:
    @pytest.mark.asyncio
    async def test_confirmed_topic_joins_category(self, store, make_page, now):
        topic_id = await _topic_with_pages(
            store, make_page, "Github", ["https://github.com/a/b", "https://github.com/c/d"],
            description="Pages from github.com",
        )

        written = await build_categories(store, now)

        assert written >= 1
        categories = {c.name: c for c in await store.list_categories()}
        software = categories["Software Development"]
        assert software.topic_ids == [topic_id]
        assert software.description == "Programming, code, developer tools"
        assert software.system_generated

    @pytest.mark.asyncio
    async def test_name_match_without_page_match_is_rejected(self, store, make_page, now):
        # Description matches "python" but no sampled page matches any pattern.
        await _topic_with_pages(
            store, make_page, "Monty", ["https://circus.example/flying"],
            description="python",
        )

        await build_categories(store, now)

        names = [c.name for c in await store.list_categories()]
        assert "Software Development" not in names

    @pytest.mark.asyncio
    async def test_no_topics_no_categories(self, store, now):
        assert await build_categories(store, now) == 0
        assert await store.list_categories() == []

    @pytest.mark.asyncio
    async def test_membership_is_replaced(self, store, make_page, now):
        first = await _topic_with_pages(
            store, make_page, "Github", ["https://github.com/a/b"], description="code",
        )
        await build_categories(store, now)

        await store.update_topic(first, name="Gardening", description="plants", page_ids=[])
        second = await _topic_with_pages(
            store, make_page, "Gitlab", ["https://gitlab.com/x/y"], description="code",
        )
        await build_categories(store, now)

        software = {c.name: c for c in await store.list_categories()}["Software Development"]
        assert software.topic_ids == [second]


class TestComputeTrend:
    @pytest.mark.asyncio
    async def test_up(self, store, make_page, now):
        recent = [await store.add_page(make_page(f"https://r.com/{i}", days_ago=1)) for i in range(10)]
        prior = [await store.add_page(make_page(f"https://p.com/{i}", days_ago=10)) for i in range(5)]
        topic_id = await store.upsert_topic("T", page_ids=recent + prior)

        assert await compute_trend(store, [topic_id], now) == CategoryTrend.UP

    @pytest.mark.asyncio
    async def test_down(self, store, make_page, now):
        recent = [await store.add_page(make_page(f"https://r.com/{i}", days_ago=1)) for i in range(2)]
        prior = [await store.add_page(make_page(f"https://p.com/{i}", days_ago=10)) for i in range(5)]
        topic_id = await store.upsert_topic("T", page_ids=recent + prior)

        assert await compute_trend(store, [topic_id], now) == CategoryTrend.DOWN

    @pytest.mark.asyncio
    async def test_flat_when_similar(self, store, make_page, now):
        recent = [await store.add_page(make_page(f"https://r.com/{i}", days_ago=1)) for i in range(5)]
        prior = [await store.add_page(make_page(f"https://p.com/{i}", days_ago=10)) for i in range(5)]
        topic_id = await store.upsert_topic("T", page_ids=recent + prior)

        assert await compute_trend(store, [topic_id], now) == CategoryTrend.FLAT

    @pytest.mark.asyncio
    async def test_flat_without_pages(self, store, now):
        topic_id = await store.upsert_topic("Empty")
        assert await compute_trend(store, [topic_id], now) == CategoryTrend.FLAT
