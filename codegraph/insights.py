"""
Insight extraction over a query's result subgraph.

Every detector takes ``(nodes, relationships)`` and nothing else, so the
insights for a fixed query result are reproducible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import networkx as nx

from .models import Node, Relationship, RelationshipType

logger = logging.getLogger(__name__)

HUB_MIN_CONNECTIONS = 5     # strictly more than this many
MAX_CYCLES = 10

# part_of runs entity -> file while exports and calls run file -> entity, so
# following containment would report every such pair as a two-node cycle
_CONTAINMENT_TYPES = frozenset({RelationshipType.PART_OF, RelationshipType.EXPORTS})


class InsightType:
    PATTERN = "pattern"
    ANOMALY = "anomaly"
    OPTIMIZATION = "optimization"
    VULNERABILITY = "vulnerability"
    ARCHITECTURE = "architecture"


@dataclass
class GraphInsight:
    """A derived observation about part of the graph."""

    type: str
    title: str
    description: str
    confidence: float
    actionable: bool = True
    suggestion: str = ""
    affected_nodes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "actionable": self.actionable,
            "suggestion": self.suggestion,
            "affected_nodes": list(self.affected_nodes),
        }


def _connection_counts(relationships: Sequence[Relationship]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for rel in relationships:
        counts[rel.from_node_id] = counts.get(rel.from_node_id, 0) + 1
        counts[rel.to_node_id] = counts.get(rel.to_node_id, 0) + 1
    return counts


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------

def connectivity_insights(
    nodes: Sequence[Node],
    relationships: Sequence[Relationship],
    lookup: Optional[Callable[[str], Optional[Node]]] = None,
) -> list[GraphInsight]:
    """
    One insight per node id with more than five incident relationships.

    Every endpoint of *relationships* is counted, not only *nodes*, so a
    module shared by many results is reported too.  Endpoints outside
    *nodes* are resolved through *lookup* and skipped when it knows no such
    node; without a lookup they are reported under their id.  Ids are
    visited in order of first appearance.
    """
    counts = _connection_counts(relationships)
    known = {n.id: n for n in nodes}
    insights: list[GraphInsight] = []
    for node_id, count in counts.items():
        if count <= HUB_MIN_CONNECTIONS:
            continue
        node = known.get(node_id)
        if node is None and lookup is not None:
            node = lookup(node_id)
            if node is None:
                continue
        name = node.name if node is not None else node_id
        insights.append(GraphInsight(
            type=InsightType.ARCHITECTURE,
            title="Highly Connected Component",
            description=(
                f"{name} has {count} connections and may be a central "
                "architectural component"
            ),
            confidence=min(0.9, count / 20),
            suggestion="Consider reviewing for single responsibility principle",
            affected_nodes=[node_id],
        ))
    return insights


def find_cycles(
    nodes: Sequence[Node],
    relationships: Sequence[Relationship],
    limit: int = MAX_CYCLES,
) -> list[list[str]]:
    """
    Depth-first search for directed cycles.

    Bidirectional relationships and the containment edges between an
    entity and its file (``part_of``, ``exports``) are not followed.  Each
    back-edge into the current path yields the path from the repeated node
    onwards, closed with that node again, e.g. ``[A, B, C, A]``.

    Parameters
    ----------
    nodes:
        DFS roots, visited in order.
    relationships:
        The edges available to the traversal.
    limit:
        Stop after this many cycles.
    """
    graph = nx.DiGraph()
    graph.add_nodes_from(n.id for n in nodes)
    graph.add_edges_from(
        (r.from_node_id, r.to_node_id) for r in relationships
        if not r.bidirectional and r.type not in _CONTAINMENT_TYPES
    )

    cycles: list[list[str]] = []
    visited: set[str] = set()
    for node in nodes:
        root = node.id
        if root in visited:
            continue
        visited.add(root)
        path = [root]
        on_path = {root}
        stack = [iter(graph.successors(root))]
        while stack:
            if len(cycles) >= limit:
                return cycles
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                cycles.append(path[path.index(nxt):] + [nxt])
                continue
            if nxt in visited:
                continue
            visited.add(nxt)
            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter(graph.successors(nxt)))
    return cycles


def cycle_insights(
    nodes: Sequence[Node], relationships: Sequence[Relationship]
) -> list[GraphInsight]:
    """A single insight summarising every detected cycle."""
    cycles = find_cycles(nodes, relationships)
    if not cycles:
        return []
    affected: list[str] = []
    for cycle in cycles:
        for node_id in cycle:
            if node_id not in affected:
                affected.append(node_id)
    return [GraphInsight(
        type=InsightType.VULNERABILITY,
        title="Circular Dependencies Detected",
        description=f"Found {len(cycles)} potential circular dependencies",
        confidence=0.8,
        suggestion="Refactor to break circular dependencies",
        affected_nodes=affected,
    )]


def isolation_insights(
    nodes: Sequence[Node], relationships: Sequence[Relationship]
) -> list[GraphInsight]:
    """A single insight listing nodes with no incident relationship."""
    counts = _connection_counts(relationships)
    orphans = [n.id for n in nodes if counts.get(n.id, 0) == 0]
    if not orphans:
        return []
    return [GraphInsight(
        type=InsightType.ANOMALY,
        title="Isolated Components",
        description=f"Found {len(orphans)} isolated components",
        confidence=0.7,
        suggestion="Review if these components are still needed",
        affected_nodes=orphans,
    )]


def extract_insights(
    nodes: Sequence[Node],
    relationships: Sequence[Relationship],
    lookup: Optional[Callable[[str], Optional[Node]]] = None,
) -> list[GraphInsight]:
    """Run every detector: connectivity, then cycles, then isolation."""
    insights = connectivity_insights(nodes, relationships, lookup)
    insights += cycle_insights(nodes, relationships)
    insights += isolation_insights(nodes, relationships)
    return insights
