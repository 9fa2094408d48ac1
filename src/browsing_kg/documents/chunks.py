"""Section-chunked living documents.

A constellation's document is a set of ``DocumentChunk`` rows, one per
``section_key``, each versioned independently.  Synthesis never rewrites
the whole document: it applies a list of ``SectionUpdate`` actions.

Actions:
    create  — new chunk at version 1 (an existing key is updated instead)
    update  — full content replace, ``version + 1``
    append  — ``old + "\\n\\n" + new``, ``version + 1``, provenance unioned

Provenance (``source_page_ids`` / ``source_topic_ids``) records which
pages and topics a chunk already reflects; the union across chunks is
the document's *coverage*, which drives incremental synthesis.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from browsing_kg.models.entities import (
    SECTION_ORDER,
    DocumentChunk,
    Page,
    SectionType,
    Topic,
    utcnow,
)
from browsing_kg.models.plans import SectionUpdate, UpdateAction
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)

_SOURCE_KEY = re.compile(r"^source:(.+)$")


# =====================================================================
# Coverage and rendering
# =====================================================================

def covered_ids(chunks: list[DocumentChunk]) -> tuple[set[int], set[int]]:
    """Union of page and topic provenance across *chunks*."""
    pages: set[int] = set()
    topics: set[int] = set()
    for chunk in chunks:
        pages.update(chunk.source_page_ids)
        topics.update(chunk.source_topic_ids)
    return pages, topics


def render_document(chunks: list[DocumentChunk]) -> str:
    """Concatenate chunk contents in render order."""
    ordered = sorted(chunks, key=lambda c: c.order_index)
    return "\n\n".join(c.content for c in ordered if c.content)


# =====================================================================
# Provenance inference
# =====================================================================

def infer_source_page_ids(update: SectionUpdate, pages: list[Page]) -> list[int]:
    """Pages a section is about when the model did not say.

    ``source_analysis`` sections keyed ``source:<domain>`` claim the pages
    whose domain contains ``<domain>``; everything else claims every page
    in scope.
    """
    if update.section_type == SectionType.SOURCE_ANALYSIS:
        match = _SOURCE_KEY.match(update.section_key)
        if match:
            domain = match.group(1)
            return [p.id for p in pages if p.id is not None and domain in p.domain]
    return [p.id for p in pages if p.id is not None]


def infer_source_topic_ids(update: SectionUpdate, topics: list[Topic]) -> list[int]:
    return [t.id for t in topics if t.id is not None]


def _resolve(supplied: list[int] | None, members: set[int], inferred: list[int]) -> list[int]:
    # Ids the model supplies are kept only when they belong to the constellation.
    if supplied is None:
        return inferred
    valid = [i for i in dict.fromkeys(supplied) if i in members]
    return valid if valid or not supplied else inferred


# =====================================================================
# Chunk writes
# =====================================================================

async def upsert_chunk(
    store: EntityStore,
    constellation_id: int,
    section_key: str,
    *,
    section_type: SectionType,
    order_index: int,
    title: str,
    content: str,
    source_page_ids: list[int],
    source_topic_ids: list[int],
    now: datetime | None = None,
) -> DocumentChunk:
    """Create a chunk at version 1, or replace an existing one's content."""
    now = now or utcnow()
    existing = await store.get_chunk(constellation_id, section_key)

    if existing is None:
        chunk = DocumentChunk(
            constellation_id=constellation_id,
            section_type=section_type,
            section_key=section_key,
            order_index=order_index,
            title=title,
            content=content,
            source_page_ids=source_page_ids,
            source_topic_ids=source_topic_ids,
            created_at=now,
            updated_at=now,
        )
    else:
        chunk = existing.model_copy(update={
            "order_index": order_index,
            "title": title,
            "content": content,
            "source_page_ids": source_page_ids,
            "source_topic_ids": source_topic_ids,
            "version": existing.version + 1,
            "updated_at": now,
        })

    chunk.id = await store.save_chunk(chunk)
    return chunk


async def append_to_chunk(
    store: EntityStore,
    constellation_id: int,
    section_key: str,
    content: str,
    *,
    source_page_ids: list[int],
    source_topic_ids: list[int],
    section_type: SectionType = SectionType.PROGRESS_LOG,
    order_index: int | None = None,
    title: str = "",
    now: datetime | None = None,
) -> DocumentChunk:
    """Append *content* to a chunk, creating it if absent."""
    now = now or utcnow()
    existing = await store.get_chunk(constellation_id, section_key)

    if existing is None:
        chunk = DocumentChunk(
            constellation_id=constellation_id,
            section_type=section_type,
            section_key=section_key,
            order_index=order_index if order_index is not None else SECTION_ORDER[section_type],
            title=title or "Progress Log",
            content=content,
            source_page_ids=source_page_ids,
            source_topic_ids=source_topic_ids,
            created_at=now,
            updated_at=now,
        )
    else:
        combined = f"{existing.content}\n\n{content}" if existing.content else content
        chunk = existing.model_copy(update={
            "content": combined,
            "source_page_ids": list(dict.fromkeys([*existing.source_page_ids, *source_page_ids])),
            "source_topic_ids": list(dict.fromkeys([*existing.source_topic_ids, *source_topic_ids])),
            "version": existing.version + 1,
            "updated_at": now,
        })

    chunk.id = await store.save_chunk(chunk)
    return chunk


async def apply_section_update(
    store: EntityStore,
    constellation_id: int,
    update: SectionUpdate,
    *,
    scope_pages: list[Page],
    scope_topics: list[Topic],
    member_page_ids: set[int],
    member_topic_ids: set[int],
    now: datetime | None = None,
) -> DocumentChunk:
    """Apply one validated update.

    ``scope_*`` are the pages/topics this synthesis run is about (all of
    them on bootstrap, only the new ones on incremental runs) and feed
    provenance inference.  ``member_*`` are the constellation's full
    membership, used to vet ids the model supplies itself.
    """
    page_ids = _resolve(
        update.source_page_ids, member_page_ids, infer_source_page_ids(update, scope_pages),
    )
    topic_ids = _resolve(
        update.source_topic_ids, member_topic_ids, infer_source_topic_ids(update, scope_topics),
    )
    order_index = update.order_index if update.order_index is not None else SECTION_ORDER[update.section_type]

    if update.action == UpdateAction.APPEND:
        return await append_to_chunk(
            store, constellation_id, update.section_key, update.content,
            source_page_ids=page_ids,
            source_topic_ids=topic_ids,
            section_type=update.section_type,
            order_index=order_index,
            title=update.title,
            now=now,
        )

    # ``create`` on an existing key behaves like ``update``.
    return await upsert_chunk(
        store, constellation_id, update.section_key,
        section_type=update.section_type,
        order_index=order_index,
        title=update.title,
        content=update.content,
        source_page_ids=page_ids,
        source_topic_ids=topic_ids,
        now=now,
    )
