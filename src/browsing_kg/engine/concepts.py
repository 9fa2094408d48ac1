"""Concept extraction — keywords that recur across several topics."""

from __future__ import annotations

import logging

from browsing_kg.engine.keywords import weighted_keywords
from browsing_kg.models.entities import Concept
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)

_PAGES_PER_TOPIC = 20
_MIN_TOPICS = 2


async def extract_concepts(store: EntityStore) -> int:
    """Create a concept for every frequent keyword shared by ≥2 topics.

    Concepts are created once per label and never updated afterwards.

    Returns:
        Number of new concepts.
    """
    topics = await store.list_topics()
    if not topics:
        return 0

    keyword_topics: dict[str, list[int]] = {}
    for topic in topics:
        if topic.id is None:
            continue
        pages = await store.get_pages(topic.page_ids[:_PAGES_PER_TOPIC])
        for keyword in weighted_keywords(pages):
            keyword_topics.setdefault(keyword, []).append(topic.id)

    created = 0
    for label, topic_ids in keyword_topics.items():
        if len(topic_ids) < _MIN_TOPICS:
            continue
        if await store.get_concept_by_label(label) is not None:
            continue
        await store.add_concept(Concept(
            label=label,
            explanation=f"Cross-topic concept appearing in {len(topic_ids)} topics",
            derived_from_ids=topic_ids,
        ))
        created += 1

    logger.info("Concept extraction: %d new concepts from %d topics.", created, len(topics))
    return created
