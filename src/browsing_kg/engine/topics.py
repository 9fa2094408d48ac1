"""Topic inference — deterministic clustering of pages into topics.

Three independent strategies run on every pass, each upserting topics
by ``name`` so that re-running them is idempotent:

1. **Domain clustering** — one topic per domain with ≥2 pages.
2. **Keyword co-occurrence** — one topic per keyword shared by ≥3
   pages.  Page sets are *merged* into an existing topic of the same
   name rather than replacing it.
3. **URL-path patterns** — a fixed table of content-type regexes.

Lifecycle reclassification runs last, over every topic, and is a pure
function of current membership (see ``compute_lifecycle``).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from browsing_kg.config import EngineConfig
from browsing_kg.engine.keywords import page_keywords
from browsing_kg.models.entities import Page, TopicLifecycle, utcnow
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)


# ── Constants ───────────────────────────────────────────────────────
_MIN_DOMAIN_PAGES = 2
_MIN_KEYWORD_PAGES = 3
_MIN_PATTERN_PAGES = 3

_WWW_PREFIX = re.compile(r"^www\.")
_TLD_SUFFIX = re.compile(r"\.(com|org|net|io|co|dev|app)$")


@dataclass(frozen=True)
class UrlPattern:
    """A content-type pattern matched against page URLs."""

    name: str
    description: str
    pattern: re.Pattern[str]


URL_PATTERNS: list[UrlPattern] = [
    UrlPattern("Documentation", "Documentation pages", re.compile(r"/docs?/", re.I)),
    UrlPattern("Blog Reading", "Blog posts and articles", re.compile(r"/blog/", re.I)),
    UrlPattern("API Reference", "API documentation and references", re.compile(r"/api/", re.I)),
    UrlPattern("Learning", "Educational content", re.compile(r"/learn|/tutorial|/course", re.I)),
    UrlPattern("News & Articles", "News and article pages", re.compile(r"/news|/article", re.I)),
    UrlPattern("Video Content", "Video content pages", re.compile(r"/video|/watch", re.I)),
    UrlPattern("Shopping", "Shopping and product pages", re.compile(r"/shop|/product|/buy", re.I)),
    UrlPattern("GitHub Projects", "GitHub repository pages", re.compile(r"github\.com/[^/]+/[^/]+", re.I)),
    UrlPattern("Stack Overflow", "Programming Q&A", re.compile(r"stackoverflow\.com/questions", re.I)),
]


# =====================================================================
# Helpers
# =====================================================================

def clean_domain_name(domain: str) -> str:
    """``www.docs.python.org`` → ``Docs Python``."""
    stripped = _TLD_SUFFIX.sub("", _WWW_PREFIX.sub("", domain))
    return " ".join(part[:1].upper() + part[1:] for part in stripped.split("."))


def compute_lifecycle(
    pages: list[Page],
    config: EngineConfig,
    now: datetime,
) -> TopicLifecycle:
    """Classify a topic from its member pages.

    ``dormant`` when the most recent visit is older than the dormancy
    window (regardless of size), else ``active`` at or above the active
    threshold, else ``emerging``.
    """
    if not pages:
        return TopicLifecycle.EMERGING

    dormant_before = now - timedelta(days=config.topic_dormant_days)
    most_recent = max(p.last_seen_at for p in pages)

    if most_recent < dormant_before:
        return TopicLifecycle.DORMANT
    if len(pages) >= config.topic_active_threshold:
        return TopicLifecycle.ACTIVE
    return TopicLifecycle.EMERGING


def _page_ids(pages: list[Page]) -> list[int]:
    return [p.id for p in pages if p.id is not None]


# =====================================================================
# Strategies
# =====================================================================

async def infer_topics_from_domains(
    store: EntityStore,
    config: EngineConfig,
    now: datetime | None = None,
) -> int:
    """Create/refresh one topic per domain with enough pages.

    Returns:
        Number of topics upserted.
    """
    now = now or utcnow()
    pages = await store.list_pages()
    if not pages:
        return 0

    by_domain: dict[str, list[Page]] = {}
    for page in pages:
        by_domain.setdefault(page.domain, []).append(page)

    upserted = 0
    for domain, domain_pages in by_domain.items():
        if len(domain_pages) < _MIN_DOMAIN_PAGES:
            continue
        await store.upsert_topic(
            clean_domain_name(domain),
            description=f"Pages from {domain}",
            page_ids=_page_ids(domain_pages),
            lifecycle_state=compute_lifecycle(domain_pages, config, now),
            confidence_score=min(1.0, len(domain_pages) / 20),
        )
        upserted += 1

    logger.info("Domain clustering: %d pages → %d topics.", len(pages), upserted)
    return upserted


async def infer_topics_from_keywords(
    store: EntityStore,
    config: EngineConfig,
    now: datetime | None = None,
) -> int:
    """Create topics from keywords shared by several pages.

    When a topic with the keyword's name already exists (for instance a
    domain topic), its page set is unioned with the keyword's pages.
    """
    now = now or utcnow()
    pages = await store.list_pages()
    if not pages:
        return 0

    keyword_pages: dict[str, dict[int, Page]] = {}
    for page in pages:
        if page.id is None:
            continue
        for keyword in page_keywords(page):
            keyword_pages.setdefault(keyword, {})[page.id] = page

    touched = 0
    for keyword, members in keyword_pages.items():
        if len(members) < _MIN_KEYWORD_PAGES:
            continue

        name = keyword[:1].upper() + keyword[1:]
        existing = await store.get_topic_by_name(name)
        if existing is not None and existing.id is not None:
            merged = list(dict.fromkeys([*existing.page_ids, *members]))
            await store.update_topic(existing.id, page_ids=merged)
        else:
            await store.upsert_topic(
                name,
                description=f'Pages related to "{keyword}"',
                page_ids=list(members),
                lifecycle_state=compute_lifecycle(list(members.values()), config, now),
                confidence_score=min(1.0, len(members) / 15),
            )
        touched += 1

    logger.info("Keyword co-occurrence: %d keywords → %d topics.", len(keyword_pages), touched)
    return touched


async def infer_topics_from_url_patterns(
    store: EntityStore,
    config: EngineConfig,
    now: datetime | None = None,
) -> int:
    """Create topics for content types recognised from URL paths."""
    now = now or utcnow()
    pages = await store.list_pages()
    if not pages:
        return 0

    upserted = 0
    for entry in URL_PATTERNS:
        matching = [p for p in pages if entry.pattern.search(p.url)]
        if len(matching) < _MIN_PATTERN_PAGES:
            continue
        await store.upsert_topic(
            entry.name,
            description=entry.description,
            page_ids=_page_ids(matching),
            lifecycle_state=compute_lifecycle(matching, config, now),
            confidence_score=min(1.0, len(matching) / 10),
        )
        upserted += 1

    logger.info("URL patterns: %d topics.", upserted)
    return upserted


async def update_topic_lifecycles(
    store: EntityStore,
    config: EngineConfig,
    now: datetime | None = None,
) -> int:
    """Recompute ``lifecycle_state`` for every topic.

    Returns:
        Number of topics whose state changed.
    """
    now = now or utcnow()
    changed = 0
    for topic in await store.list_topics():
        if not topic.page_ids or topic.id is None:
            continue
        pages = await store.get_pages(topic.page_ids)
        if not pages:
            continue
        state = compute_lifecycle(pages, config, now)
        if state != topic.lifecycle_state:
            await store.update_topic(topic.id, lifecycle_state=state)
            changed += 1

    logger.info("Lifecycle update: %d topics changed state.", changed)
    return changed


async def run_topic_inference(
    store: EntityStore,
    config: EngineConfig,
    now: datetime | None = None,
) -> None:
    """Run every strategy, then reclassify lifecycles."""
    now = now or utcnow()
    logger.info("Running topic inference...")
    await infer_topics_from_domains(store, config, now)
    await infer_topics_from_keywords(store, config, now)
    await infer_topics_from_url_patterns(store, config, now)
    await update_topic_lifecycles(store, config, now)
    logger.info("Topic inference complete.")
