"""In-process implementation of the entity store.

Backs tests and small embedded deployments.  Tables are plain dicts
keyed by auto-increment ids.  Relationships carry a secondary index on
their natural key; the other natural keys (topic name, category name,
concept label, chunk section key) are resolved by scan.

Every read returns deep copies so callers cannot mutate stored rows
without going through a write method.
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel

from browsing_kg.models.entities import (
    BoxStatus,
    Category,
    Concept,
    DocumentChunk,
    EntityKind,
    KnowledgeBox,
    Page,
    Relationship,
    RelationshipKey,
    RelationshipType,
    Session,
    Topic,
    utcnow,
)

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


def _copy(model: _M) -> _M:
    return model.model_copy(deep=True)


class InMemoryStore:
    """Dict-backed ``EntityStore``."""

    def __init__(self) -> None:
        self._last_id = 0
        self._pages: dict[int, Page] = {}
        self._sessions: dict[int, Session] = {}
        self._topics: dict[int, Topic] = {}
        self._categories: dict[int, Category] = {}
        self._concepts: dict[int, Concept] = {}
        self._relationships: dict[int, Relationship] = {}
        self._boxes: dict[int, KnowledgeBox] = {}
        self._chunks: dict[int, DocumentChunk] = {}
        self._cursors: dict[str, datetime] = {}

        # Secondary indexes
        self._relationship_index: dict[RelationshipKey, int] = {}

    def _next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def _claim_id(self, entity_id: int | None) -> int:
        # An explicit id advances the counter past it.
        if entity_id is None:
            return self._next_id()
        self._last_id = max(self._last_id, entity_id)
        return entity_id

    # ── Pages ───────────────────────────────────────────────────────

    async def add_page(self, page: Page) -> int:
        page_id = self._claim_id(page.id)
        self._pages[page_id] = page.model_copy(update={"id": page_id}, deep=True)
        return page_id

    async def get_pages(self, ids: list[int]) -> list[Page]:
        return [_copy(self._pages[i]) for i in dict.fromkeys(ids) if i in self._pages]

    async def list_pages(self, *, include_excluded: bool = False) -> list[Page]:
        return [
            _copy(p) for p in self._pages.values()
            if include_excluded or not p.excluded
        ]

    async def pages_seen_since(self, since: datetime) -> list[Page]:
        return [_copy(p) for p in self._pages.values() if p.last_seen_at > since]

    async def unsummarized_pages(self, limit: int) -> list[Page]:
        pending = (
            p for p in self._pages.values()
            if not p.excluded and not p.ai_summary and p.title
        )
        return [_copy(p) for p in itertools.islice(pending, limit)]

    async def set_page_summary(self, page_id: int, summary: str, at: datetime) -> None:
        page = self._pages.get(page_id)
        if page is None:
            return
        page.ai_summary = summary
        page.ai_summary_generated_at = at

    # ── Sessions ────────────────────────────────────────────────────

    async def add_session(self, session: Session) -> int:
        session_id = self._claim_id(session.id)
        self._sessions[session_id] = session.model_copy(update={"id": session_id}, deep=True)
        return session_id

    async def recent_sessions(self, limit: int) -> list[Session]:
        ordered = sorted(self._sessions.values(), key=lambda s: s.start_time, reverse=True)
        return [_copy(s) for s in ordered[:limit]]

    # ── Topics ──────────────────────────────────────────────────────

    async def list_topics(self) -> list[Topic]:
        return [_copy(t) for t in self._topics.values()]

    async def get_topics(self, ids: list[int]) -> list[Topic]:
        return [_copy(self._topics[i]) for i in dict.fromkeys(ids) if i in self._topics]

    async def get_topic_by_name(self, name: str) -> Topic | None:
        for topic in self._topics.values():
            if topic.name == name:
                return _copy(topic)
        return None

    async def recent_topics(self, limit: int) -> list[Topic]:
        ordered = sorted(self._topics.values(), key=lambda t: t.updated_at, reverse=True)
        return [_copy(t) for t in ordered[:limit]]

    async def upsert_topic(self, name: str, **fields: Any) -> int:
        existing = await self.get_topic_by_name(name)
        if existing is not None and existing.id is not None:
            await self.update_topic(existing.id, **fields)
            return existing.id
        topic_id = self._next_id()
        self._topics[topic_id] = Topic(id=topic_id, name=name, **fields)
        return topic_id

    async def update_topic(self, topic_id: int, **fields: Any) -> None:
        topic = self._topics.get(topic_id)
        if topic is None:
            raise KeyError(f"Unknown topic id: {topic_id}")
        self._topics[topic_id] = Topic.model_validate(
            {**topic.model_dump(), **fields, "updated_at": utcnow()}
        )

    # ── Categories ──────────────────────────────────────────────────

    async def list_categories(self) -> list[Category]:
        return [_copy(c) for c in self._categories.values()]

    async def upsert_category(self, name: str, **fields: Any) -> int:
        for category_id, category in self._categories.items():
            if category.name == name:
                self._categories[category_id] = Category.model_validate(
                    {**category.model_dump(), **fields, "updated_at": utcnow()}
                )
                return category_id
        category_id = self._next_id()
        self._categories[category_id] = Category(id=category_id, name=name, **fields)
        return category_id

    # ── Concepts ────────────────────────────────────────────────────

    async def list_concepts(self) -> list[Concept]:
        return [_copy(c) for c in self._concepts.values()]

    async def get_concept_by_label(self, label: str) -> Concept | None:
        for concept in self._concepts.values():
            if concept.label == label:
                return _copy(concept)
        return None

    async def add_concept(self, concept: Concept) -> int:
        if await self.get_concept_by_label(concept.label) is not None:
            raise ValueError(f"Concept label already exists: {concept.label!r}")
        concept_id = self._next_id()
        self._concepts[concept_id] = concept.model_copy(update={"id": concept_id}, deep=True)
        return concept_id

    # ── Relationships ───────────────────────────────────────────────

    async def upsert_relationship(
        self,
        from_type: EntityKind,
        from_id: int,
        to_type: EntityKind,
        to_id: int,
        relationship_type: RelationshipType,
        *,
        strength: float,
        explanation: str,
    ) -> int:
        key: RelationshipKey = (from_type, from_id, to_type, to_id, relationship_type)
        existing_id = self._relationship_index.get(key)
        if existing_id is not None:
            rel = self._relationships[existing_id]
            rel.strength = strength
            rel.explanation = explanation
            return existing_id

        rel_id = self._next_id()
        self._relationships[rel_id] = Relationship(
            id=rel_id,
            from_entity_type=from_type,
            from_entity_id=from_id,
            to_entity_type=to_type,
            to_entity_id=to_id,
            relationship_type=relationship_type,
            strength=strength,
            explanation=explanation,
        )
        self._relationship_index[key] = rel_id
        return rel_id

    async def list_relationships(self) -> list[Relationship]:
        return [_copy(r) for r in self._relationships.values()]

    async def relationships_for(self, entity_type: EntityKind, entity_id: int) -> list[Relationship]:
        outgoing = [
            r for r in self._relationships.values()
            if r.from_entity_type == entity_type and r.from_entity_id == entity_id
        ]
        incoming = [
            r for r in self._relationships.values()
            if r.to_entity_type == entity_type and r.to_entity_id == entity_id
        ]
        return [_copy(r) for r in (*outgoing, *incoming)]

    # ── Knowledge boxes ─────────────────────────────────────────────

    async def add_box(self, box: KnowledgeBox) -> int:
        box_id = self._claim_id(box.id)
        self._boxes[box_id] = box.model_copy(update={"id": box_id}, deep=True)
        return box_id

    async def get_box(self, box_id: int) -> KnowledgeBox | None:
        box = self._boxes.get(box_id)
        return _copy(box) if box is not None else None

    async def boxes_by_status(self, status: BoxStatus) -> list[KnowledgeBox]:
        return [_copy(b) for b in self._boxes.values() if b.status == status]

    async def add_page_to_box(self, box_id: int, page_id: int) -> bool:
        box = self._boxes.get(box_id)
        if box is None or page_id in box.related_page_ids:
            return False
        box.related_page_ids.append(page_id)
        box.updated_at = utcnow()
        return True

    async def add_topic_to_box(self, box_id: int, topic_id: int) -> bool:
        box = self._boxes.get(box_id)
        if box is None or topic_id in box.related_topic_ids:
            return False
        box.related_topic_ids.append(topic_id)
        box.updated_at = utcnow()
        return True

    async def delete_box(self, box_id: int) -> None:
        await self.delete_chunks_for(box_id)
        self._boxes.pop(box_id, None)

    # ── Document chunks ─────────────────────────────────────────────

    async def chunks_for(self, constellation_id: int) -> list[DocumentChunk]:
        chunks = [c for c in self._chunks.values() if c.constellation_id == constellation_id]
        return [_copy(c) for c in sorted(chunks, key=lambda c: c.order_index)]

    async def get_chunk(self, constellation_id: int, section_key: str) -> DocumentChunk | None:
        for chunk in self._chunks.values():
            if chunk.constellation_id == constellation_id and chunk.section_key == section_key:
                return _copy(chunk)
        return None

    async def save_chunk(self, chunk: DocumentChunk) -> int:
        if chunk.id is None:
            if await self.get_chunk(chunk.constellation_id, chunk.section_key) is not None:
                raise ValueError(
                    f"Section {chunk.section_key!r} already exists "
                    f"for constellation {chunk.constellation_id}"
                )
            chunk_id = self._next_id()
        else:
            chunk_id = self._claim_id(chunk.id)
        self._chunks[chunk_id] = chunk.model_copy(update={"id": chunk_id}, deep=True)
        return chunk_id

    async def delete_chunks_for(self, constellation_id: int) -> None:
        doomed = [cid for cid, c in self._chunks.items() if c.constellation_id == constellation_id]
        for chunk_id in doomed:
            del self._chunks[chunk_id]
        if doomed:
            logger.info("Deleted %d chunks for constellation %d.", len(doomed), constellation_id)

    # ── Cursors ─────────────────────────────────────────────────────

    async def get_cursor(self, name: str) -> datetime | None:
        return self._cursors.get(name)

    async def set_cursor(self, name: str, value: datetime) -> None:
        self._cursors[name] = value
