"""Category builder — rolls topics up into a fixed set of categories.

Each ``CategoryRule`` carries a list of case-insensitive patterns.  A
topic joins a category only when:

1. its name or description matches a pattern (coarse filter), **and**
2. at least one of its first 10 member pages matches a pattern on
   domain, title or URL (confirmation).

Confirmed topic ids fully replace the category's previous membership.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from browsing_kg.models.entities import CategoryTrend, Page, Topic, utcnow
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)

_CONFIRMATION_SAMPLE = 10
_TREND_WINDOW = timedelta(days=7)
_TREND_UP = 1.2
_TREND_DOWN = 0.8


@dataclass
class CategoryRule:
    """Named category with its matching patterns."""

    name: str
    description: str
    patterns: list[re.Pattern[str]] = field(default_factory=list)

    @classmethod
    def from_terms(cls, name: str, description: str, terms: list[str]) -> CategoryRule:
        return cls(name, description, [re.compile(t, re.IGNORECASE) for t in terms])

    def matches(self, *texts: str) -> bool:
        return any(p.search(text) for p in self.patterns for text in texts if text)

    def matches_topic(self, topic: Topic) -> bool:
        return self.matches(topic.name, topic.description)

    def matches_page(self, page: Page) -> bool:
        return self.matches(page.domain, page.title, page.url)


CATEGORY_RULES: list[CategoryRule] = [
    CategoryRule.from_terms(
        "Software Development",
        "Programming, code, developer tools",
        ["github", "gitlab", r"stack\s?overflow", "developer", "programming", "code",
         "javascript", "typescript", "python", "react", "node", "api", "documentation",
         "npm", "package", "library", "framework"],
    ),
    CategoryRule.from_terms(
        "Design & Creative",
        "Design tools, inspiration, creative resources",
        ["figma", "dribbble", "behance", "design", "creative", "illustrat", "photoshop",
         "sketch", r"ui\s?ux", "color", "typography", "font"],
    ),
    CategoryRule.from_terms(
        "Learning & Education",
        "Courses, tutorials, educational content",
        ["learn", "tutorial", "course", "academy", "education", "university", "lecture",
         "udemy", "coursera", "edx", "khan"],
    ),
    CategoryRule.from_terms(
        "News & Media",
        "News, articles, media consumption",
        ["news", "article", "times", "post", "journal", "medium", "substack", "blog",
         "bbc", "cnn", "reuters"],
    ),
    CategoryRule.from_terms(
        "Social & Communication",
        "Social media, messaging, community",
        ["twitter", "reddit", "discord", "slack", "linkedin", "facebook", "instagram",
         "social", "community", "forum"],
    ),
    CategoryRule.from_terms(
        "Shopping & Commerce",
        "Online shopping, products, reviews",
        ["amazon", "shop", "buy", "product", "price", "review", "store", "cart", "deal",
         "sale", "ebay"],
    ),
    CategoryRule.from_terms(
        "Entertainment",
        "Videos, music, games, streaming",
        ["youtube", "netflix", "spotify", "twitch", "game", "music", "video", "stream",
         "movie", "show", "play"],
    ),
    CategoryRule.from_terms(
        "Productivity & Tools",
        "Productivity apps, utilities, workflow tools",
        ["notion", "trello", "asana", "jira", "calendar", "email", "drive", "docs",
         "spreadsheet", "project", "manage"],
    ),
    CategoryRule.from_terms(
        "Career & Professional",
        "Job search, career development, networking",
        ["linkedin", "job", "career", "resume", "hire", "interview", "salary", "recruit",
         "glassdoor", "indeed"],
    ),
    CategoryRule.from_terms(
        "Research & Reference",
        "Academic research, reference materials, knowledge bases",
        ["wikipedia", "research", "paper", "arxiv", "scholar", "journal", "reference",
         "wiki", "encyclopedia", "definition"],
    ),
]


async def compute_trend(
    store: EntityStore,
    topic_ids: list[int],
    now: datetime | None = None,
) -> CategoryTrend:
    """Compare last-7-day page activity with the 7 days before that."""
    now = now or utcnow()
    topics = await store.get_topics(topic_ids)
    page_ids = list(dict.fromkeys(pid for t in topics for pid in t.page_ids))
    if not page_ids:
        return CategoryTrend.FLAT

    pages = await store.get_pages(page_ids)
    recent_start = now - _TREND_WINDOW
    prior_start = now - 2 * _TREND_WINDOW

    recent = sum(1 for p in pages if recent_start <= p.last_seen_at <= now)
    prior = sum(1 for p in pages if prior_start <= p.last_seen_at < recent_start)

    if recent > prior * _TREND_UP:
        return CategoryTrend.UP
    if recent < prior * _TREND_DOWN:
        return CategoryTrend.DOWN
    return CategoryTrend.FLAT


async def _confirmed_topic_ids(
    store: EntityStore,
    rule: CategoryRule,
    topics: list[Topic],
) -> list[int]:
    confirmed: list[int] = []
    for topic in topics:
        if topic.id is None or not topic.page_ids or not rule.matches_topic(topic):
            continue
        sample = await store.get_pages(topic.page_ids[:_CONFIRMATION_SAMPLE])
        if any(rule.matches_page(page) for page in sample):
            confirmed.append(topic.id)
    return confirmed


async def build_categories(
    store: EntityStore,
    now: datetime | None = None,
    rules: list[CategoryRule] | None = None,
) -> int:
    """Upsert one category per rule that has at least one confirmed topic.

    Returns:
        Number of categories written.
    """
    now = now or utcnow()
    rules = rules if rules is not None else CATEGORY_RULES
    topics = await store.list_topics()
    if not topics:
        logger.info("No topics yet, skipping category build.")
        return 0

    written = 0
    for rule in rules:
        topic_ids = await _confirmed_topic_ids(store, rule, topics)
        if not topic_ids:
            continue
        await store.upsert_category(
            rule.name,
            description=rule.description,
            system_generated=True,
            topic_ids=topic_ids,
            trend=await compute_trend(store, topic_ids, now),
        )
        written += 1
        logger.debug("Category %r ← %d topics.", rule.name, len(topic_ids))

    logger.info("Category build: %d categories from %d topics.", written, len(topics))
    return written
