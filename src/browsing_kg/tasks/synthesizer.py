"""Living document synthesizer.

Keeps one Markdown document per constellation up to date:

- **Bootstrap** (no chunks yet): a single AI call produces the whole
  section set, each section stored as a version-1 chunk.
- **Incremental**: only pages/topics not yet covered by any chunk's
  provenance are sent, together with a compact index of the existing
  sections; the model returns just the sections that need to change.

Nothing new to cover means no AI call at all.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import ValidationError

from browsing_kg.ai.parsing import ParseError, parse_json_response
from browsing_kg.ai.prompts import (
    DOCUMENT_BOOTSTRAP_SYSTEM,
    DOCUMENT_BOOTSTRAP_USER,
    DOCUMENT_UPDATE_SYSTEM,
    DOCUMENT_UPDATE_USER,
    format_chunk_preview,
    format_document_pages,
    format_notes,
    format_topic_list,
)
from browsing_kg.ai.providers import AIProvider, CompletionOptions
from browsing_kg.documents.chunks import apply_section_update, covered_ids
from browsing_kg.models.entities import DocumentChunk, KnowledgeBox, Page, Topic, utcnow
from browsing_kg.models.plans import SectionUpdate, UpdatePlan
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)

BOOTSTRAP_OPTIONS = CompletionOptions(
    max_tokens=4000,
    temperature=0.4,
    system_prompt=DOCUMENT_BOOTSTRAP_SYSTEM,
)
INCREMENTAL_OPTIONS = CompletionOptions(
    max_tokens=3000,
    temperature=0.3,
    system_prompt=DOCUMENT_UPDATE_SYSTEM,
)


def format_document_index(chunks: list[DocumentChunk]) -> str:
    return "\n\n".join(
        f'[{c.section_key}] (v{c.version}) "{c.title}" — {format_chunk_preview(c.content)}'
        for c in chunks
    )


# =====================================================================
# Prompt builders
# =====================================================================

def build_bootstrap_prompt(
    box: KnowledgeBox,
    pages: list[Page],
    topics: list[Topic],
    now: datetime,
) -> str:
    return DOCUMENT_BOOTSTRAP_USER.format(
        title=box.title,
        goal=box.goal_statement,
        status=box.status.value,
        started=box.start_date.strftime("%Y-%m-%d"),
        page_count=len(pages),
        topic_count=len(topics),
        pages=format_document_pages(pages),
        topics_section=format_topic_list(topics),
        notes_section=format_notes(box.notes),
        today=now.strftime("%Y-%m-%d"),
    )


def build_incremental_prompt(
    box: KnowledgeBox,
    chunks: list[DocumentChunk],
    new_pages: list[Page],
    new_topics: list[Topic],
) -> str:
    return DOCUMENT_UPDATE_USER.format(
        title=box.title,
        goal=box.goal_statement,
        document_index=format_document_index(chunks),
        page_count=len(new_pages),
        pages=format_document_pages(new_pages),
        topics_section=format_topic_list(new_topics, heading="NEW TOPICS ADDED:"),
    )


# =====================================================================
# Plan application
# =====================================================================

async def apply_update_plan(
    store: EntityStore,
    box: KnowledgeBox,
    response: str,
    *,
    scope_pages: list[Page],
    scope_topics: list[Topic],
    now: datetime,
) -> int:
    """Parse *response* and apply each update independently.

    Returns:
        Number of chunks written.
    """
    parsed = parse_json_response(response, UpdatePlan)
    if isinstance(parsed, ParseError):
        logger.error("Failed to parse document update plan for constellation %s: %s", box.id, parsed.reason)
        return 0

    member_pages = set(box.related_page_ids)
    member_topics = set(box.related_topic_ids)

    applied = 0
    for raw in parsed.value.updates:
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object section update %r.", raw)
            continue
        try:
            update = SectionUpdate.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping invalid section update %r: %s", raw.get("section_key"), exc)
            continue
        try:
            await apply_section_update(
                store, box.id, update,
                scope_pages=scope_pages,
                scope_topics=scope_topics,
                member_page_ids=member_pages,
                member_topic_ids=member_topics,
                now=now,
            )
        except Exception:
            logger.exception("Failed to apply document update for section %r.", update.section_key)
            continue
        applied += 1

    logger.info("Document updated for constellation %s: %d sections modified.", box.id, applied)
    return applied


# =====================================================================
# Entry point
# =====================================================================

async def update_constellation_document(
    store: EntityStore,
    provider: AIProvider,
    box: KnowledgeBox,
    now: datetime | None = None,
) -> bool:
    """Bring *box*'s living document up to date.

    Returns:
        ``True`` iff at least one chunk was created or changed.
    """
    if box.id is None:
        return False
    now = now or utcnow()

    pages = await store.get_pages(box.related_page_ids) if box.related_page_ids else []
    if not pages:
        return False
    topics = await store.get_topics(box.related_topic_ids) if box.related_topic_ids else []

    chunks = await store.chunks_for(box.id)

    if not chunks:
        prompt = build_bootstrap_prompt(box, pages, topics, now)
        response = await provider.complete(prompt, BOOTSTRAP_OPTIONS)
        applied = await apply_update_plan(
            store, box, response, scope_pages=pages, scope_topics=topics, now=now,
        )
        return applied > 0

    covered_pages, covered_topics = covered_ids(chunks)
    new_pages = [p for p in pages if p.id not in covered_pages]
    new_topics = [t for t in topics if t.id not in covered_topics]
    if not new_pages and not new_topics:
        logger.debug("Constellation %d document already covers all pages and topics.", box.id)
        return False

    prompt = build_incremental_prompt(box, chunks, new_pages, new_topics)
    response = await provider.complete(prompt, INCREMENTAL_OPTIONS)
    applied = await apply_update_plan(
        store, box, response, scope_pages=new_pages, scope_topics=new_topics, now=now,
    )
    return applied > 0
