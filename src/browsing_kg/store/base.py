"""Entity store contract consumed by the engine.

The engine never talks to a storage engine directly; it only relies on
the primitives below: lookup by id (single and ``anyOf`` batches),
equality/range queries on indexed fields, upsert by natural key, and
set-union helpers for array-valued fields.  Any backend that provides
these can host the knowledge graph.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from browsing_kg.models.entities import (
    BoxStatus,
    Category,
    Concept,
    DocumentChunk,
    EntityKind,
    KnowledgeBox,
    Page,
    Relationship,
    RelationshipType,
    Session,
    Topic,
)


class EntityStore(Protocol):
    """Async CRUD surface over the knowledge-graph tables."""

    # ── Pages ───────────────────────────────────────────────────────
    async def add_page(self, page: Page) -> int: ...
    async def get_pages(self, ids: list[int]) -> list[Page]: ...
    async def list_pages(self, *, include_excluded: bool = False) -> list[Page]: ...
    async def pages_seen_since(self, since: datetime) -> list[Page]: ...
    async def unsummarized_pages(self, limit: int) -> list[Page]: ...
    async def set_page_summary(self, page_id: int, summary: str, at: datetime) -> None: ...

    # ── Sessions ────────────────────────────────────────────────────
    async def add_session(self, session: Session) -> int: ...
    async def recent_sessions(self, limit: int) -> list[Session]: ...

    # ── Topics ──────────────────────────────────────────────────────
    async def list_topics(self) -> list[Topic]: ...
    async def get_topics(self, ids: list[int]) -> list[Topic]: ...
    async def get_topic_by_name(self, name: str) -> Topic | None: ...
    async def recent_topics(self, limit: int) -> list[Topic]: ...
    async def upsert_topic(self, name: str, **fields: Any) -> int: ...
    async def update_topic(self, topic_id: int, **fields: Any) -> None: ...

    # ── Categories ──────────────────────────────────────────────────
    async def list_categories(self) -> list[Category]: ...
    async def upsert_category(self, name: str, **fields: Any) -> int: ...

    # ── Concepts ────────────────────────────────────────────────────
    async def list_concepts(self) -> list[Concept]: ...
    async def get_concept_by_label(self, label: str) -> Concept | None: ...
    async def add_concept(self, concept: Concept) -> int: ...

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
    ) -> int: ...
    async def list_relationships(self) -> list[Relationship]: ...
    async def relationships_for(self, entity_type: EntityKind, entity_id: int) -> list[Relationship]: ...

    # ── Knowledge boxes ─────────────────────────────────────────────
    async def add_box(self, box: KnowledgeBox) -> int: ...
    async def get_box(self, box_id: int) -> KnowledgeBox | None: ...
    async def boxes_by_status(self, status: BoxStatus) -> list[KnowledgeBox]: ...
    async def add_page_to_box(self, box_id: int, page_id: int) -> bool: ...
    async def add_topic_to_box(self, box_id: int, topic_id: int) -> bool: ...
    async def delete_box(self, box_id: int) -> None: ...

    # ── Document chunks ─────────────────────────────────────────────
    async def chunks_for(self, constellation_id: int) -> list[DocumentChunk]: ...
    async def get_chunk(self, constellation_id: int, section_key: str) -> DocumentChunk | None: ...
    async def save_chunk(self, chunk: DocumentChunk) -> int: ...
    async def delete_chunks_for(self, constellation_id: int) -> None: ...

    # ── Cursors ─────────────────────────────────────────────────────
    async def get_cursor(self, name: str) -> datetime | None: ...
    async def set_cursor(self, name: str, value: datetime) -> None: ...
