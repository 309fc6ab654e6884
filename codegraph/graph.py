"""
NetworkX-backed graph store for the code knowledge graph.

One :class:`GraphStore` owns every node, relationship and concept produced
by a single build, plus the vectorizer that embedded its nodes.  It is
populated by the build phases and then frozen; queries only ever read it.
A new build creates a new store and the engine swaps it in.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import networkx as nx

from .models import Concept, Node, Relationship
from .vectorizer import SemanticVectorizer

logger = logging.getLogger(__name__)


class GraphStore:
    """
    Directed multigraph of :class:`Node` objects joined by :class:`Relationship` edges.

    Edges are keyed by relationship type, so at most one edge of a given
    type exists between an ordered pair of nodes.

    Parameters
    ----------
    vectorizer:
        The vectorizer used to embed this graph's nodes; queries against the
        graph must use the same instance.
    """

    def __init__(self, vectorizer: Optional[SemanticVectorizer] = None) -> None:
        self._g: nx.MultiDiGraph = nx.MultiDiGraph()
        self._concepts: dict[str, Concept] = {}
        self._by_name: dict[tuple[str, str], list[str]] = {}
        self.vectorizer = vectorizer or SemanticVectorizer()
        self.term_index: dict[str, set[str]] = {}
        self._frozen = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _check_writable(self) -> None:
        if self._frozen:
            raise RuntimeError("GraphStore is frozen; build a new graph instead")

    def add_node(self, node: Node) -> Node:
        """
        Insert *node* unless a node with the same id exists.

        Returns the stored node (the existing one on a duplicate id).
        """
        self._check_writable()
        if self._g.has_node(node.id):
            return self._g.nodes[node.id]["node"]
        self._g.add_node(node.id, node=node)
        self._by_name.setdefault((node.type, node.name), []).append(node.id)
        return node

    def add_relationship(self, rel: Relationship) -> bool:
        """
        Insert *rel* keyed by ``(from, type, to)``.

        Returns False (and stores nothing) for a duplicate key or when either
        endpoint is not in the graph.
        """
        self._check_writable()
        if not self._g.has_node(rel.from_node_id) or not self._g.has_node(rel.to_node_id):
            logger.debug("Skipping %s edge with missing endpoint: %s -> %s",
                         rel.type, rel.from_node_id, rel.to_node_id)
            return False
        if self._g.has_edge(rel.from_node_id, rel.to_node_id, key=rel.type):
            return False
        self._g.add_edge(rel.from_node_id, rel.to_node_id, key=rel.type, rel=rel)
        return True

    def add_concept(self, concept: Concept) -> None:
        """Insert or replace *concept* by id."""
        self._check_writable()
        self._concepts[concept.id] = concept

    def index_terms(self, node_id: str, terms: Iterable[str]) -> None:
        self._check_writable()
        for term in terms:
            self.term_index.setdefault(term, set()).add(node_id)

    def freeze(self) -> "GraphStore":
        """Make the store read-only."""
        if not self._frozen:
            nx.freeze(self._g)
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def has_node(self, node_id: str) -> bool:
        return self._g.has_node(node_id)

    def get_node(self, node_id: str) -> Optional[Node]:
        if not self._g.has_node(node_id):
            return None
        return self._g.nodes[node_id]["node"]

    def has_relationship(self, from_node_id: str, rel_type: str, to_node_id: str) -> bool:
        return self._g.has_edge(from_node_id, to_node_id, key=rel_type)

    def nodes(self) -> list[Node]:
        """All nodes in insertion order."""
        return [attrs["node"] for _, attrs in self._g.nodes(data=True)]

    def relationships(self) -> list[Relationship]:
        """All relationships, grouped by source node in node insertion order."""
        return [attrs["rel"] for _, _, attrs in self._g.edges(data=True)]

    def concepts(self) -> list[Concept]:
        return list(self._concepts.values())

    def get_concept(self, concept_id: str) -> Optional[Concept]:
        return self._concepts.get(concept_id)

    def find_nodes(self, node_type: str, name: str) -> list[Node]:
        """All nodes of *node_type* called exactly *name*."""
        return [self._g.nodes[nid]["node"] for nid in self._by_name.get((node_type, name), [])]

    def relationships_for(self, node_ids: Iterable[str]) -> list[Relationship]:
        """
        Return every relationship touching any of *node_ids*.

        Each relationship appears once, in the order of :meth:`relationships`.
        """
        wanted = {nid for nid in node_ids if self._g.has_node(nid)}
        if not wanted:
            return []
        return [
            attrs["rel"] for src, dst, attrs in self._g.edges(data=True)
            if src in wanted or dst in wanted
        ]

    def degree(self, node_id: str) -> int:
        if not self._g.has_node(node_id):
            return 0
        return self._g.degree(node_id)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return self._g.number_of_nodes()

    @property
    def relationship_count(self) -> int:
        return self._g.number_of_edges()

    @property
    def concept_count(self) -> int:
        return len(self._concepts)

    def stats(self) -> dict:
        """
        Return aggregate statistics about the graph.

        Returns
        -------
        dict
            Keys: node_count, relationship_count, concept_count,
            node_type_distribution, relationship_type_distribution.
        """
        by_node: dict[str, int] = {}
        for _, attrs in self._g.nodes(data=True):
            nt = attrs["node"].type
            by_node[nt] = by_node.get(nt, 0) + 1

        by_rel: dict[str, int] = {}
        for _, _, key in self._g.edges(keys=True):
            by_rel[key] = by_rel.get(key, 0) + 1

        return {
            "node_count": self.node_count,
            "relationship_count": self.relationship_count,
            "concept_count": self.concept_count,
            "node_type_distribution": by_node,
            "relationship_type_distribution": by_rel,
        }

    def __repr__(self) -> str:
        return (
            f"GraphStore(nodes={self.node_count}, "
            f"relationships={self.relationship_count}, concepts={self.concept_count})"
        )
