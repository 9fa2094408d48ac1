"""Relationship mapper — typed, weighted edges between entities.

Four builders, each writing through the store's upsert-by-tuple
primitive so a full re-run never duplicates an edge:

- **temporal**   page → page, consecutive visits within a session
- **semantic**   topic → topic, Jaccard overlap of member pages
- **behavioral** page → page, high-dwell pages on the same domain
- **semantic**   category → topic, category membership
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable

import numpy as np
from sklearn.preprocessing import MultiLabelBinarizer

from browsing_kg.models.entities import EntityKind, Page, RelationshipType
from browsing_kg.store.base import EntityStore

logger = logging.getLogger(__name__)


# ── Tunables ────────────────────────────────────────────────────────
RECENT_SESSION_LIMIT = 20
TEMPORAL_STRENGTH = 0.6
MIN_TOPIC_SIMILARITY = 0.1
BEHAVIORAL_STRENGTH = 0.4
BEHAVIORAL_MAX_DOMAIN_PAGES = 50
BEHAVIORAL_TOP_PAGES = 10
CATEGORY_TOPIC_STRENGTH = 0.9


# =====================================================================
# Set similarity
# =====================================================================

def overlap_matrices(sets: list[Iterable[int]]) -> tuple[np.ndarray, np.ndarray]:
    """Pairwise intersection sizes and Jaccard similarities.

    Each input is turned into a row of a binary incidence matrix, so
    intersections are a single matrix product.

    Returns:
        ``(intersections, similarity)``, both ``(N, N)`` arrays.  Pairs
        whose union is empty get similarity ``0``.
    """
    n = len(sets)
    if n == 0:
        return np.zeros((0, 0), dtype=np.int64), np.zeros((0, 0), dtype=np.float64)

    binarizer = MultiLabelBinarizer()
    incidence = binarizer.fit_transform([sorted(set(s)) for s in sets]).astype(np.int64)

    intersections = incidence @ incidence.T
    sizes = incidence.sum(axis=1)
    unions = sizes[:, None] + sizes[None, :] - intersections

    similarity = np.divide(
        intersections,
        unions,
        out=np.zeros((n, n), dtype=np.float64),
        where=unions > 0,
    )
    return intersections, similarity


def jaccard_matrix(sets: list[Iterable[int]]) -> np.ndarray:
    """``|A ∩ B| / |A ∪ B|`` for every pair of *sets*."""
    return overlap_matrices(sets)[1]


# =====================================================================
# Builders
# =====================================================================

async def build_temporal_relationships(store: EntityStore) -> int:
    """Link consecutive pages of the most recent sessions."""
    written = 0
    for session in await store.recent_sessions(RECENT_SESSION_LIMIT):
        for from_id, to_id in itertools.pairwise(session.page_ids):
            await store.upsert_relationship(
                EntityKind.PAGE, from_id, EntityKind.PAGE, to_id,
                RelationshipType.TEMPORAL,
                strength=TEMPORAL_STRENGTH,
                explanation="Visited sequentially in session",
            )
            written += 1
    logger.info("Temporal relationships: %d upserted.", written)
    return written


async def build_semantic_relationships(store: EntityStore) -> int:
    """Link topics whose page sets overlap meaningfully.

    Edges point from the earlier topic to the later one in store order.
    """
    topics = [t for t in await store.list_topics() if t.id is not None]
    if len(topics) < 2:
        return 0

    intersections, similarity = overlap_matrices([t.page_ids for t in topics])

    written = 0
    for i, j in zip(*np.triu_indices(len(topics), k=1)):
        shared = int(intersections[i, j])
        score = float(similarity[i, j])
        if shared == 0 or score < MIN_TOPIC_SIMILARITY:
            continue
        await store.upsert_relationship(
            EntityKind.TOPIC, topics[i].id, EntityKind.TOPIC, topics[j].id,
            RelationshipType.SEMANTIC,
            strength=score,
            explanation=f"{shared} shared pages ({round(score * 100)}% overlap)",
        )
        written += 1
    logger.info("Semantic relationships: %d upserted across %d topics.", written, len(topics))
    return written


async def build_behavioral_relationships(store: EntityStore) -> int:
    """Pairwise-link the highest-dwell pages of each mid-sized domain."""
    by_domain: dict[str, list[Page]] = {}
    for page in await store.list_pages():
        if page.id is not None:
            by_domain.setdefault(page.domain, []).append(page)

    written = 0
    for domain, pages in by_domain.items():
        if len(pages) < 2 or len(pages) > BEHAVIORAL_MAX_DOMAIN_PAGES:
            continue
        top = sorted(pages, key=lambda p: p.total_dwell_time, reverse=True)[:BEHAVIORAL_TOP_PAGES]
        for a, b in itertools.combinations(top, 2):
            await store.upsert_relationship(
                EntityKind.PAGE, a.id, EntityKind.PAGE, b.id,
                RelationshipType.BEHAVIORAL,
                strength=BEHAVIORAL_STRENGTH,
                explanation=f"Same domain: {domain}",
            )
            written += 1
    logger.info("Behavioral relationships: %d upserted.", written)
    return written


async def build_category_topic_relationships(store: EntityStore) -> int:
    """Link every category to each of its member topics."""
    written = 0
    for category in await store.list_categories():
        if category.id is None:
            continue
        for topic_id in category.topic_ids:
            await store.upsert_relationship(
                EntityKind.CATEGORY, category.id, EntityKind.TOPIC, topic_id,
                RelationshipType.SEMANTIC,
                strength=CATEGORY_TOPIC_STRENGTH,
                explanation=f'Topic belongs to category "{category.name}"',
            )
            written += 1
    logger.info("Category-topic relationships: %d upserted.", written)
    return written


async def run_relationship_mapping(store: EntityStore) -> None:
    logger.info("Running relationship mapping...")
    await build_temporal_relationships(store)
    await build_semantic_relationships(store)
    await build_behavioral_relationships(store)
    await build_category_topic_relationships(store)
    logger.info("Relationship mapping complete.")
