"""Tests for the page summarization stage."""

import pytest

from browsing_kg.tasks.summarization import summarize_page, summarize_pending_pages


class TestSummarizePage:
    @pytest.mark.asyncio
    async def test_prompt_and_options(self, fake_provider, make_page):
        provider = fake_provider(["  A concise summary.  \n"])
        page = make_page(
            "https://docs.rs/tokio", "Tokio docs",
            dwell_ms=12_400, keywords=["async", "runtime"], description="Async runtime",
        )

        assert await summarize_page(provider, page) == "A concise summary."

        prompt = provider.prompts[0]
        assert "Title: Tokio docs" in prompt
        assert "Domain: docs.rs" in prompt
        assert "Keywords: async, runtime" in prompt
        assert "Time spent: 12s" in prompt
        _, options = provider.calls[0]
        assert options.max_tokens == 200
        assert options.temperature == 0.3


class TestSummarizePending:
    @pytest.mark.asyncio
    async def test_skips_failures_and_ineligible(self, store, fake_provider, make_page, now):
        ok = await store.add_page(make_page("https://a.com/1", "First"))
        bad = await store.add_page(make_page("https://a.com/2", "Second"))
        await store.add_page(make_page("https://a.com/3", ""))
        await store.add_page(make_page("https://a.com/4", "Hidden", excluded=True))
        await store.add_page(make_page("https://a.com/5", "Done", summary="already"))
        provider = fake_provider(["Summary one.", RuntimeError("boom")])

        assert await summarize_pending_pages(store, provider, batch_size=10, now=now) == 1

        first, second = await store.get_pages([ok, bad])
        assert first.ai_summary == "Summary one."
        assert first.ai_summary_generated_at == now
        assert second.ai_summary is None
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_batch_size(self, store, fake_provider, make_page):
        for i in range(5):
            await store.add_page(make_page(f"https://a.com/{i}", f"Page {i}"))
        provider = fake_provider(["s"] * 5)

        assert await summarize_pending_pages(store, provider, batch_size=3) == 3
