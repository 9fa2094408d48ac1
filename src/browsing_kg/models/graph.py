"""Graph view of the knowledge store, plus a Neo4j exporter.

Topics, categories and concepts become nodes; stored relationships
become edges when both endpoints are present as nodes, and each concept
gets a ``DERIVED_FROM`` edge to every topic it was extracted from.

Graph topology::

    (Category)──SEMANTIC──►(Topic)──SEMANTIC──►(Topic)
    (Concept)──DERIVED_FROM──►(Topic)

Node ids are ``"<entity kind>-<store id>"`` so they are stable across
exports and the Neo4j ``MERGE`` stays idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from browsing_kg.models.entities import (
    Category,
    Concept,
    EntityKind,
    Relationship,
    Topic,
)

logger = logging.getLogger(__name__)


# =====================================================================
# Graph primitives
# =====================================================================

@dataclass
class GraphNode:
    """A topic, category or concept node, keyed by ``node_id``."""

    id: str
    labels: list[str]
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    """A typed, directed edge between two exported nodes."""

    source_id: str
    target_id: str
    relation_type: str
    properties: dict[str, Any] = field(default_factory=dict)


def node_id(kind: EntityKind, entity_id: int) -> str:
    return f"{kind.value}-{entity_id}"


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


# =====================================================================
# Graph element generation
# =====================================================================

def _topic_node(topic: Topic) -> GraphNode:
    return GraphNode(
        id=node_id(EntityKind.TOPIC, topic.id),
        labels=["Topic"],
        properties={
            "entity_id": topic.id,
            "name": topic.name,
            "description": topic.description,
            "lifecycle": topic.lifecycle_state.value,
            "confidence": topic.confidence_score,
            "page_count": len(topic.page_ids),
            "size": _clamp(len(topic.page_ids), 4, 16),
        },
    )


def _category_node(category: Category) -> GraphNode:
    return GraphNode(
        id=node_id(EntityKind.CATEGORY, category.id),
        labels=["Category"],
        properties={
            "entity_id": category.id,
            "name": category.name,
            "description": category.description,
            "trend": category.trend.value,
            "topic_count": len(category.topic_ids),
            "size": _clamp(len(category.topic_ids) * 3, 6, 20),
        },
    )


def _concept_node(concept: Concept) -> GraphNode:
    return GraphNode(
        id=node_id(EntityKind.CONCEPT, concept.id),
        labels=["Concept"],
        properties={
            "entity_id": concept.id,
            "name": concept.label,
            "explanation": concept.explanation,
        },
    )


def build_graph_elements(
    topics: list[Topic],
    categories: list[Category],
    concepts: list[Concept],
    relationships: list[Relationship],
) -> tuple[list[GraphNode], list[GraphEdge]]:
    """Convert stored entities into graph nodes and edges.

    Returns:
        Tuple of ``(nodes, edges)`` ready for export.
    """
    nodes: dict[str, GraphNode] = {}
    edges: list[GraphEdge] = []

    for topic in topics:
        if topic.id is not None:
            node = _topic_node(topic)
            nodes[node.id] = node
    for category in categories:
        if category.id is not None:
            node = _category_node(category)
            nodes[node.id] = node
    for concept in concepts:
        if concept.id is None:
            continue
        node = _concept_node(concept)
        nodes[node.id] = node
        for topic_id in concept.derived_from_ids:
            target = node_id(EntityKind.TOPIC, topic_id)
            if target in nodes:
                edges.append(GraphEdge(node.id, target, "DERIVED_FROM"))

    for rel in relationships:
        source = node_id(rel.from_entity_type, rel.from_entity_id)
        target = node_id(rel.to_entity_type, rel.to_entity_id)
        if source in nodes and target in nodes:
            edges.append(GraphEdge(
                source_id=source,
                target_id=target,
                relation_type=rel.relationship_type.value.upper(),
                properties={"strength": rel.strength, "explanation": rel.explanation},
            ))

    return list(nodes.values()), edges


# =====================================================================
# Neo4j exporter
# =====================================================================

_LABELS: dict[EntityKind, str] = {
    EntityKind.TOPIC: "Topic",
    EntityKind.CATEGORY: "Category",
    EntityKind.CONCEPT: "Concept",
}


def label_for(graph_id: str) -> str:
    """Neo4j label of a node id built by ``node_id``."""
    return _LABELS[EntityKind(graph_id.split("-", 1)[0])]


class GraphExporter(Protocol):
    """Protocol for graph export backends."""

    def export(self, nodes: list[GraphNode], edges: list[GraphEdge]) -> None: ...
    def clear(self) -> None: ...


class Neo4jExporter:
    """Batch exporter of the knowledge graph to Neo4j.

    Each label gets a uniqueness constraint on ``id`` before the first
    export.  Nodes are merged per label and edges per
    ``(type, source label, target label)``, so endpoint lookups use the
    constraint index.  ``clear`` removes only knowledge-graph labels.

    Args:
        uri: Neo4j bolt URI (e.g. ``bolt://localhost:7687``).
        auth: Tuple of ``(username, password)``.
        database: Neo4j database name.
        driver: An existing driver to use instead of opening one.
    """

    def __init__(
        self,
        uri: str = "",
        auth: tuple[str, str] | None = None,
        database: str = "neo4j",
        driver: Any = None,
    ) -> None:
        if driver is None:
            from neo4j import GraphDatabase

            driver = GraphDatabase.driver(uri, auth=auth)
        self._driver = driver
        self._database = database
        self._constraints_ready = False

    def close(self) -> None:
        self._driver.close()

    def ensure_constraints(self) -> None:
        with self._driver.session(database=self._database) as session:
            for query in constraint_queries():
                session.run(query)
        self._constraints_ready = True

    def clear(self) -> None:
        """Delete every topic, category and concept node with its edges."""
        labels = " OR ".join(f"n:`{label}`" for label in _LABELS.values())
        with self._driver.session(database=self._database) as session:
            session.run(f"MATCH (n) WHERE {labels} DETACH DELETE n")
        logger.info("Cleared knowledge graph from Neo4j.")

    def export(self, nodes: list[GraphNode], edges: list[GraphEdge]) -> None:
        if not self._constraints_ready:
            self.ensure_constraints()
        with self._driver.session(database=self._database) as session:
            for query, items in node_batches(nodes):
                session.run(query, items=items)
            for query, items in edge_batches(edges):
                session.run(query, items=items)
        logger.info("Exported %d nodes, %d edges to Neo4j.", len(nodes), len(edges))


def constraint_queries() -> list[str]:
    return [
        f"CREATE CONSTRAINT {label.lower()}_id IF NOT EXISTS "
        f"FOR (n:`{label}`) REQUIRE n.id IS UNIQUE"
        for label in _LABELS.values()
    ]


def node_batches(nodes: list[GraphNode]) -> list[tuple[str, list[dict[str, Any]]]]:
    """``(cypher, items)`` pairs, one per distinct label set."""
    grouped: dict[tuple[str, ...], list[dict[str, Any]]] = {}
    for node in nodes:
        key = tuple(sorted(node.labels)) or ("Node",)
        grouped.setdefault(key, []).append({"id": node.id, "props": node.properties})

    batches = []
    for labels, items in grouped.items():
        label_expr = ":".join(f"`{label}`" for label in labels)
        batches.append((
            f"UNWIND $items AS item MERGE (n:{label_expr} {{id: item.id}}) SET n += item.props",
            items,
        ))
    return batches


def edge_batches(edges: list[GraphEdge]) -> list[tuple[str, list[dict[str, Any]]]]:
    """``(cypher, items)`` pairs, one per relationship type and endpoint labels."""
    grouped: dict[tuple[str, str, str], list[dict[str, Any]]] = {}
    for edge in edges:
        key = (edge.relation_type, label_for(edge.source_id), label_for(edge.target_id))
        grouped.setdefault(key, []).append({
            "src": edge.source_id,
            "tgt": edge.target_id,
            "props": edge.properties,
        })

    return [
        (
            "UNWIND $items AS item "
            f"MATCH (a:`{source}` {{id: item.src}}) MATCH (b:`{target}` {{id: item.tgt}}) "
            f"MERGE (a)-[r:`{rel_type}`]->(b) SET r += item.props",
            items,
        )
        for (rel_type, source, target), items in grouped.items()
    ]
