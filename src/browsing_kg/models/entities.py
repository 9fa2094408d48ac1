"""Core data models for the browsing knowledge graph.

Entities fall into three layers:

1. **Captured** — ``Page`` and ``Session``, written by the capture layer
   and only read here (plus the AI page summary).
2. **Derived** — ``Topic``, ``Category``, ``Concept`` and ``Relationship``,
   rebuilt by the deterministic knowledge pass.
3. **Goal-scoped** — ``KnowledgeBox`` (shown to users as a
   "constellation") and the ``DocumentChunk`` sections of its living
   document.

Ids are assigned by the store; models fresh from a constructor carry
``id=None`` until saved.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =====================================================================
# Enumerations
# =====================================================================

class TopicLifecycle(str, Enum):
    """Derived activity classification of a topic."""

    EMERGING = "emerging"
    ACTIVE = "active"
    DORMANT = "dormant"


class CategoryTrend(str, Enum):
    UP = "up"
    FLAT = "flat"
    DOWN = "down"


class EntityKind(str, Enum):
    """Entity types that can sit at either end of a ``Relationship``."""

    PAGE = "page"
    SESSION = "session"
    TOPIC = "topic"
    CATEGORY = "category"
    CONCEPT = "concept"
    KNOWLEDGE_BOX = "knowledge_box"


class RelationshipType(str, Enum):
    TEMPORAL = "temporal"
    SEMANTIC = "semantic"
    BEHAVIORAL = "behavioral"
    USER_DEFINED = "user_defined"


class BoxStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class SectionType(str, Enum):
    """Kinds of section in a living document."""

    OVERVIEW = "overview"
    KEY_FINDINGS = "key_findings"
    SOURCE_ANALYSIS = "source_analysis"
    TOPIC_SYNTHESIS = "topic_synthesis"
    PROGRESS_LOG = "progress_log"
    NEXT_STEPS = "next_steps"


# Render order bands. ``source_analysis`` chunks occupy 200–299.
SECTION_ORDER: dict[SectionType, int] = {
    SectionType.OVERVIEW: 0,
    SectionType.KEY_FINDINGS: 100,
    SectionType.SOURCE_ANALYSIS: 200,
    SectionType.TOPIC_SYNTHESIS: 300,
    SectionType.PROGRESS_LOG: 400,
    SectionType.NEXT_STEPS: 500,
}


# =====================================================================
# Captured entities
# =====================================================================

class PageMetadata(BaseModel):
    """Free-form metadata scraped from the page head."""

    description: str = ""
    og_title: str = ""
    og_description: str = ""
    keywords: list[str] = Field(default_factory=list)
    author: str = ""

    @property
    def best_description(self) -> str:
        return self.description or self.og_description


class Page(BaseModel):
    """A single visited URL."""

    id: int | None = None
    url: str
    domain: str
    title: str = ""
    first_seen_at: datetime = Field(default_factory=utcnow)
    last_seen_at: datetime = Field(default_factory=utcnow)
    total_dwell_time: int = Field(default=0, ge=0, description="Cumulative dwell time (ms).")
    excluded: bool = False
    metadata: PageMetadata = Field(default_factory=PageMetadata)
    ai_summary: str | None = None
    ai_summary_generated_at: datetime | None = None


class Session(BaseModel):
    """A continuous browsing period; ``page_ids`` is the visit order."""

    id: int | None = None
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime = Field(default_factory=utcnow)
    page_ids: list[int] = Field(default_factory=list)


# =====================================================================
# Derived entities
# =====================================================================

class Topic(BaseModel):
    """A named cluster of pages. ``name`` is the upsert key."""

    id: int | None = None
    name: str
    description: str = ""
    page_ids: list[int] = Field(default_factory=list)
    lifecycle_state: TopicLifecycle = TopicLifecycle.EMERGING
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Category(BaseModel):
    """A coarse rollup of topics matching one category rule."""

    id: int | None = None
    name: str
    description: str = ""
    system_generated: bool = True
    topic_ids: list[int] = Field(default_factory=list)
    trend: CategoryTrend = CategoryTrend.FLAT
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Concept(BaseModel):
    """A keyword that recurs across several topics. Created once per label."""

    id: int | None = None
    label: str
    explanation: str = ""
    derived_from_ids: list[int] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


RelationshipKey = tuple[EntityKind, int, EntityKind, int, RelationshipType]


class Relationship(BaseModel):
    """A typed, directed, weighted edge between two entities.

    At most one relationship exists per ``key``; writers go through the
    store's upsert-by-tuple primitive.
    """

    id: int | None = None
    from_entity_type: EntityKind
    from_entity_id: int
    to_entity_type: EntityKind
    to_entity_id: int
    relationship_type: RelationshipType
    strength: float = Field(default=0.5, ge=0.0, le=1.0)
    explanation: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> RelationshipKey:
        return (
            self.from_entity_type,
            self.from_entity_id,
            self.to_entity_type,
            self.to_entity_id,
            self.relationship_type,
        )


# =====================================================================
# Goal-scoped entities
# =====================================================================

class KnowledgeBoxNote(BaseModel):
    id: str
    text: str
    timestamp: datetime = Field(default_factory=utcnow)


class KnowledgeBox(BaseModel):
    """A user-declared goal ("constellation").

    The surrounding application owns creation and status changes; the
    engine only grows ``related_page_ids`` / ``related_topic_ids``.
    """

    id: int | None = None
    title: str
    goal_statement: str = ""
    start_date: datetime = Field(default_factory=utcnow)
    related_page_ids: list[int] = Field(default_factory=list)
    related_topic_ids: list[int] = Field(default_factory=list)
    notes: list[KnowledgeBoxNote] = Field(default_factory=list)
    status: BoxStatus = BoxStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DocumentChunk(BaseModel):
    """One independently versioned section of a living document."""

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = None
    constellation_id: int
    section_type: SectionType
    section_key: str = Field(..., description="Unique within a constellation, e.g. 'source:github.com'.")
    order_index: int = 0
    title: str = ""
    content: str = ""
    source_page_ids: list[int] = Field(default_factory=list)
    source_topic_ids: list[int] = Field(default_factory=list)
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
