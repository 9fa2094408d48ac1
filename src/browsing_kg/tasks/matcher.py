"""Constellation matcher — assigns recent pages and topics to user goals.

One AI call per run: the prompt lists the active constellations, the
candidate pages and the most recent topics, each by index; the reply
maps constellation indices to page/topic indices.  Indices are
resolved back to ids here and never trusted blindly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pydantic import ValidationError

from browsing_kg.ai.parsing import ParseError, parse_json_response
from browsing_kg.ai.prompts import (
    CONSTELLATION_MATCH_SYSTEM,
    CONSTELLATION_MATCH_USER,
    format_candidate_pages,
    format_constellations,
    format_indexed_topics,
)
from browsing_kg.ai.providers import AIProvider, CompletionOptions
from browsing_kg.models.entities import BoxStatus, KnowledgeBox, Page, Topic, utcnow
from browsing_kg.models.plans import ConstellationAssignment, MatchResult
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = timedelta(hours=24)

MATCH_OPTIONS = CompletionOptions(
    max_tokens=1500,
    temperature=0.2,
    system_prompt=CONSTELLATION_MATCH_SYSTEM,
)


async def candidate_pages(
    store: EntityStore,
    boxes: list[KnowledgeBox],
    since: datetime,
    max_pages: int = 50,
) -> list[Page]:
    """Recent, titled, non-excluded pages not yet linked to every box."""
    linked_everywhere = set.intersection(*(set(b.related_page_ids) for b in boxes)) if boxes else set()
    pages = [
        p for p in await store.pages_seen_since(since)
        if not p.excluded and p.title and p.id not in linked_everywhere
    ]
    return pages[:max_pages]


def valid_assignments(
    result: MatchResult,
    n_boxes: int,
    n_pages: int,
    n_topics: int,
) -> list[ConstellationAssignment]:
    """Drop malformed entries and out-of-range indices.

    An assignment left with no valid page or topic index is dropped.
    """
    valid: list[ConstellationAssignment] = []
    for raw in result.assignments:
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object assignment %r.", raw)
            continue
        try:
            assignment = ConstellationAssignment.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping malformed assignment %r: %s", raw, exc)
            continue

        if not 0 <= assignment.constellation_index < n_boxes:
            continue
        assignment.page_indices = [i for i in assignment.page_indices if 0 <= i < n_pages]
        assignment.topic_indices = [i for i in assignment.topic_indices if 0 <= i < n_topics]
        if assignment.page_indices or assignment.topic_indices:
            valid.append(assignment)
    return valid


async def match_pages_to_constellations(
    store: EntityStore,
    provider: AIProvider,
    since: datetime | None = None,
    now: datetime | None = None,
    max_pages: int = 50,
    max_topics: int = 50,
) -> int:
    """Assign candidate pages/topics to active constellations.

    Returns:
        Number of page ids newly added to a constellation.
    """
    now = now or utcnow()
    boxes = [b for b in await store.boxes_by_status(BoxStatus.ACTIVE) if b.id is not None]
    if not boxes:
        logger.info("No active constellations to match against.")
        return 0

    pages = await candidate_pages(store, boxes, since or now - DEFAULT_LOOKBACK, max_pages)
    if not pages:
        logger.info("No new pages to match.")
        return 0

    topics: list[Topic] = await store.recent_topics(max_topics)

    prompt = CONSTELLATION_MATCH_USER.format(
        constellations=format_constellations(boxes),
        pages=format_candidate_pages(pages),
        topics_section=format_indexed_topics(topics),
    )
    response = await provider.complete(prompt, MATCH_OPTIONS)

    parsed = parse_json_response(response, MatchResult)
    if isinstance(parsed, ParseError):
        logger.error("Failed to parse constellation matching result: %s", parsed.reason)
        return 0

    added = 0
    for assignment in valid_assignments(parsed.value, len(boxes), len(pages), len(topics)):
        box_id = boxes[assignment.constellation_index].id
        for idx in assignment.page_indices:
            page_id = pages[idx].id
            if page_id is not None and await store.add_page_to_box(box_id, page_id):
                added += 1
        for idx in assignment.topic_indices:
            topic_id = topics[idx].id
            if topic_id is not None:
                await store.add_topic_to_box(box_id, topic_id)

    logger.info("Constellation matcher: %d new page assignments.", added)
    return added
