"""Per-page AI summaries, the first stage of the AI pass."""

from __future__ import annotations

import logging
from datetime import datetime

from browsing_kg.ai.prompts import PAGE_SUMMARY_SYSTEM, PAGE_SUMMARY_USER, format_page_details
from browsing_kg.ai.providers import AIProvider, CompletionOptions
from browsing_kg.models.entities import Page, utcnow
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)

SUMMARY_OPTIONS = CompletionOptions(
    max_tokens=200,
    temperature=0.3,
    system_prompt=PAGE_SUMMARY_SYSTEM,
)


async def summarize_page(provider: AIProvider, page: Page) -> str:
    """Return a 2–3 sentence plain-text summary of *page*."""
    prompt = PAGE_SUMMARY_USER.format(page_details=format_page_details(page))
    response = await provider.complete(prompt, SUMMARY_OPTIONS)
    return response.strip()


async def summarize_pending_pages(
    store: EntityStore,
    provider: AIProvider,
    batch_size: int = 10,
    now: datetime | None = None,
) -> int:
    """Summarize up to *batch_size* pages that have no summary yet.

    Pages are processed one at a time; a failure on one page is logged
    and the rest of the batch continues.

    Returns:
        Number of pages summarized.
    """
    pages = await store.unsummarized_pages(batch_size)
    if not pages:
        return 0

    done = 0
    for page in pages:
        if page.id is None:
            continue
        try:
            summary = await summarize_page(provider, page)
        except Exception:
            logger.exception("Failed to summarize page %d (%s).", page.id, page.url)
            continue
        if not summary:
            continue
        await store.set_page_summary(page.id, summary, now or utcnow())
        done += 1

    logger.info("Summarized %d/%d pages.", done, len(pages))
    return done
