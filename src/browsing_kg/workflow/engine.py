"""Knowledge engine — thin async orchestrator over the build stages.

Two independently scheduled passes:

1. **Engine pass** (deterministic, no network):
   Topics → Categories → Relationships → Concepts
2. **AI pass** (only when a provider is configured):
   Summarize pages → Match constellations → Synthesize documents

Every stage entry point catches and logs its own failure so that the
next stage still runs.  The AI pass is single-flight: a trigger that
arrives while a run is in progress is skipped, not queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from browsing_kg.ai.providers import AIProvider, ProviderCache
from browsing_kg.config import EngineConfig
from browsing_kg.engine.categories import build_categories
from browsing_kg.engine.concepts import extract_concepts
from browsing_kg.engine.relationships import run_relationship_mapping
from browsing_kg.engine.topics import run_topic_inference
from browsing_kg.models.entities import BoxStatus, utcnow
from browsing_kg.models.graph import GraphExporter, build_graph_elements
from browsing_kg.store.base import EntityStore
from browsing_kg.tasks.matcher import match_pages_to_constellations
from browsing_kg.tasks.summarization import summarize_pending_pages
from browsing_kg.tasks.synthesizer import update_constellation_document

logger = logging.getLogger(__name__)

AI_CURSOR = "ai_last_run"


@dataclass
class EngineState:
    """Mutable driver state, owned by one ``KnowledgeEngine``."""

    ai_running: bool = False
    provider_cache: ProviderCache = field(default_factory=ProviderCache)
    last_ai_run: datetime | None = None


class KnowledgeEngine:
    """Runs the knowledge and AI passes against an ``EntityStore``.

    Args:
        store: Entity store backing every stage.
        config: Engine configuration.
        state: Driver state (a fresh one by default).
    """

    def __init__(
        self,
        store: EntityStore,
        config: EngineConfig | None = None,
        state: EngineState | None = None,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.state = state or EngineState()

    # ── Configuration ───────────────────────────────────────────────

    def on_config_changed(self, config: EngineConfig) -> None:
        """Swap in new settings and drop the cached provider."""
        self.config = config
        self.state.provider_cache.invalidate()
        logger.info("Configuration changed; AI provider cache invalidated.")

    def provider(self) -> AIProvider | None:
        return self.state.provider_cache.get(self.config)

    # ── Deterministic stages ────────────────────────────────────────

    async def infer_topics(self) -> None:
        try:
            await run_topic_inference(self.store, self.config)
        except Exception:
            logger.exception("Topic inference failed.")

    async def build_categories(self) -> int:
        try:
            return await build_categories(self.store)
        except Exception:
            logger.exception("Category build failed.")
            return 0

    async def map_relationships(self) -> None:
        try:
            await run_relationship_mapping(self.store)
        except Exception:
            logger.exception("Relationship mapping failed.")

    async def extract_concepts(self) -> int:
        try:
            return await extract_concepts(self.store)
        except Exception:
            logger.exception("Concept extraction failed.")
            return 0

    async def run_engine_pass(self) -> None:
        logger.info("Knowledge engine pass starting...")
        await self.infer_topics()
        await self.build_categories()
        await self.map_relationships()
        await self.extract_concepts()
        logger.info("Knowledge engine pass complete.")

    # ── AI stages ───────────────────────────────────────────────────

    async def summarize_pages(self, provider: AIProvider | None = None) -> int:
        provider = provider or self.provider()
        if provider is None:
            return 0
        try:
            return await summarize_pending_pages(
                self.store, provider, self.config.summary_batch_size,
            )
        except Exception:
            logger.exception("Page summarization batch failed.")
            return 0

    async def match_constellations(self, provider: AIProvider | None = None) -> int:
        provider = provider or self.provider()
        if provider is None:
            return 0
        try:
            since = await self.store.get_cursor(AI_CURSOR) or (
                utcnow() - timedelta(hours=self.config.matcher_lookback_hours)
            )
            return await match_pages_to_constellations(
                self.store,
                provider,
                since=since,
                max_pages=self.config.matcher_max_pages,
                max_topics=self.config.matcher_max_topics,
            )
        except Exception:
            logger.exception("Constellation matching failed.")
            return 0

    async def synthesize_documents(self, provider: AIProvider | None = None) -> int:
        """Update the living document of every active box that has pages."""
        provider = provider or self.provider()
        if provider is None:
            return 0
        try:
            boxes = await self.store.boxes_by_status(BoxStatus.ACTIVE)
        except Exception:
            logger.exception("Could not load constellations for document updates.")
            return 0

        with_pages = [b for b in boxes if b.related_page_ids]
        if not with_pages:
            logger.info("No constellations with pages to document.")
            return 0

        updated = 0
        for box in with_pages:
            try:
                if await update_constellation_document(self.store, provider, box):
                    updated += 1
            except Exception:
                logger.exception("Document update failed for constellation %s.", box.id)
        logger.info("Living documents: %d/%d updated.", updated, len(with_pages))
        return updated

    async def run_ai_pass(self) -> bool:
        """Run the AI stages once.

        Returns:
            ``True`` if the pass completed, ``False`` if it was skipped or
            failed (the cursor is then left unchanged).
        """
        if self.state.ai_running:
            logger.info("AI pass already running, skipping.")
            return False

        self.state.ai_running = True
        started = utcnow()
        try:
            provider = self.provider()
            if provider is None or not provider.is_configured():
                logger.info("AI not configured, skipping AI pass.")
                return False

            logger.info("AI pass starting with provider %s...", provider.name)
            await self.summarize_pages(provider)
            await self.match_constellations(provider)
            await self.synthesize_documents(provider)

            await self.store.set_cursor(AI_CURSOR, started)
            self.state.last_ai_run = started
            logger.info("AI pass complete.")
            return True
        except Exception:
            logger.exception("AI pass failed.")
            return False
        finally:
            self.state.ai_running = False

    # ── Scheduling ──────────────────────────────────────────────────

    async def _every(
        self,
        name: str,
        initial_delay: float,
        interval: float,
        job: Callable[[], Awaitable[object]],
    ) -> None:
        await asyncio.sleep(initial_delay)
        while True:
            try:
                await job()
            except Exception:
                logger.exception("Scheduled %s failed.", name)
            await asyncio.sleep(interval)

    async def run_forever(self) -> None:
        """Run both passes on their own timers until cancelled."""
        cfg = self.config
        await asyncio.gather(
            self._every(
                "engine pass", cfg.engine_initial_delay_seconds,
                cfg.engine_interval_seconds, self.run_engine_pass,
            ),
            self._every(
                "AI pass", cfg.ai_initial_delay_seconds,
                cfg.ai_interval_seconds, self.run_ai_pass,
            ),
        )

    # ── Export ──────────────────────────────────────────────────────

    async def export_graph(self, exporter: GraphExporter) -> tuple[int, int]:
        """Push topics, categories, concepts and their edges to *exporter*.

        Returns:
            ``(node_count, edge_count)``.
        """
        nodes, edges = build_graph_elements(
            await self.store.list_topics(),
            await self.store.list_categories(),
            await self.store.list_concepts(),
            await self.store.list_relationships(),
        )
        exporter.export(nodes, edges)
        return len(nodes), len(edges)
