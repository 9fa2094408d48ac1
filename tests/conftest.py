"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from browsing_kg.ai.providers import AIProvider, AIProviderError, ChatMessage, CompletionOptions
from browsing_kg.models.entities import KnowledgeBox, Page, PageMetadata
from browsing_kg.store.memory import InMemoryStore

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeProvider(AIProvider):
    """Scripted provider: replies are returned (or raised) in order."""

    name = "Fake"

    def __init__(self, replies: list[str | Exception] | None = None, configured: bool = True) -> None:
        self.replies = list(replies or [])
        self.configured = configured
        self.calls: list[tuple[list[ChatMessage], CompletionOptions | None]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def chat(self, messages, options=None) -> str:
        self.calls.append((messages, options))
        if not self.replies:
            raise AIProviderError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def prompts(self) -> list[str]:
        return [messages[-1].content for messages, _ in self.calls]


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fake_provider():
    """Factory for scripted providers."""
    return FakeProvider


@pytest.fixture
def make_page():
    """Factory for pages; ``days_ago`` sets ``last_seen_at`` relative to ``NOW``."""

    def _make(
        url: str,
        title: str = "",
        *,
        domain: str | None = None,
        days_ago: float = 0,
        dwell_ms: int = 0,
        keywords: list[str] | None = None,
        description: str = "",
        excluded: bool = False,
        summary: str | None = None,
        page_id: int | None = None,
    ) -> Page:
        seen = NOW - timedelta(days=days_ago)
        return Page(
            id=page_id,
            url=url,
            domain=domain or url.split("/")[2],
            title=title,
            first_seen_at=seen,
            last_seen_at=seen,
            total_dwell_time=dwell_ms,
            excluded=excluded,
            metadata=PageMetadata(keywords=keywords or [], description=description),
            ai_summary=summary,
        )

    return _make


@pytest.fixture
def make_box():
    def _make(title: str = "Learn Rust", goal: str = "Understand ownership", **fields) -> KnowledgeBox:
        return KnowledgeBox(title=title, goal_statement=goal, start_date=NOW, **fields)

    return _make


@pytest.fixture
def bootstrap_reply() -> str:
    """A full six-section bootstrap plan wrapped in prose."""
    updates = [
        {"section_key": "overview", "section_type": "overview", "action": "create",
         "order_index": 0, "title": "Overview", "content": "## Rust\n\nOverview."},
        {"section_key": "key_findings", "section_type": "key_findings", "action": "create",
         "order_index": 100, "title": "Key Findings", "content": "## Key Findings\n\n- Borrowing"},
        {"section_key": "source:doc.rust-lang.org", "section_type": "source_analysis",
         "action": "create", "order_index": 200, "title": "The Book",
         "content": "## The Book\n\nOfficial docs."},
        {"section_key": "topic_synthesis", "section_type": "topic_synthesis", "action": "create",
         "order_index": 300, "title": "Topic Connections", "content": "## Topic Connections"},
        {"section_key": "progress_log", "section_type": "progress_log", "action": "create",
         "order_index": 400, "title": "Progress Log", "content": "## Progress Log\n\nCreated."},
        {"section_key": "next_steps", "section_type": "next_steps", "action": "create",
         "order_index": 500, "title": "Next Steps", "content": "## Next Steps\n\n- Lifetimes"},
    ]
    return "Here is the document:\n```json\n" + json.dumps({"updates": updates}) + "\n```"
