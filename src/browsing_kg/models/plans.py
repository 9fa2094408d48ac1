"""Response shapes expected from the AI capability.

The model is asked to embed JSON in its reply; ``ai.parsing`` pulls the
first balanced object out of the text and validates it against one of
these models.

``MatchResult.assignments`` and ``UpdatePlan.updates`` are left as raw
JSON values: each entry must be an object and is validated into a
``ConstellationAssignment`` or ``SectionUpdate`` on its own, so that one
malformed item cannot invalidate the whole response.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from browsing_kg.models.entities import SECTION_ORDER, SectionType


# =====================================================================
# Constellation matching
# =====================================================================

class ConstellationAssignment(BaseModel):
    """Pages/topics the model assigns to one constellation (by prompt index)."""

    constellation_index: int
    page_indices: list[int] = Field(default_factory=list)
    topic_indices: list[int] = Field(default_factory=list)

    @field_validator("page_indices", "topic_indices", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class MatchResult(BaseModel):
    assignments: list[Any] = Field(default_factory=list)

    @field_validator("assignments", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


# =====================================================================
# Living-document updates
# =====================================================================

class UpdateAction(str, Enum):
    """How a returned section is applied to the stored document."""

    CREATE = "create"
    UPDATE = "update"
    APPEND = "append"


class SectionUpdate(BaseModel):
    """A single section change proposed by the model."""

    section_key: str = Field(..., min_length=1)
    section_type: SectionType
    action: UpdateAction
    order_index: int | None = None
    title: str = ""
    content: str = ""
    source_page_ids: list[int] | None = None
    source_topic_ids: list[int] | None = None

    @field_validator("section_key", mode="after")
    @classmethod
    def _strip_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("section_key must not be blank")
        return v

    @model_validator(mode="after")
    def _default_order(self) -> SectionUpdate:
        if self.order_index is None:
            self.order_index = SECTION_ORDER[self.section_type]
        return self


class UpdatePlan(BaseModel):
    updates: list[Any]

    @field_validator("updates", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v
