"""
Core data model for the code knowledge graph.

Nodes, relationships and concepts are plain dataclasses.  Identifiers are
content-addressed: a node id is derived from ``(type, identifier)`` and a
relationship id from ``(from, type, to)``, so re-inserting the same entity
is always a no-op and rebuilding an unchanged tree yields identical ids.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

# Values allowed in node metadata / attribute maps
Scalar = Union[str, int, float, bool, datetime, None]

# ---------------------------------------------------------------------------
# Type constants
# ---------------------------------------------------------------------------

class NodeType:
    FILE = "file"
    FUNCTION = "function"
    CLASS = "class"
    INTERFACE = "interface"
    VARIABLE = "variable"
    MODULE = "module"
    CONCEPT = "concept"


NODE_TYPES: frozenset[str] = frozenset({
    NodeType.FILE, NodeType.FUNCTION, NodeType.CLASS, NodeType.INTERFACE,
    NodeType.VARIABLE, NodeType.MODULE, NodeType.CONCEPT,
})


class RelationshipType:
    IMPORTS = "imports"
    EXPORTS = "exports"
    CALLS = "calls"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    USES = "uses"
    DEPENDS_ON = "depends_on"
    SIMILAR_TO = "similar_to"
    PART_OF = "part_of"


RELATIONSHIP_TYPES: frozenset[str] = frozenset({
    RelationshipType.IMPORTS, RelationshipType.EXPORTS, RelationshipType.CALLS,
    RelationshipType.EXTENDS, RelationshipType.IMPLEMENTS, RelationshipType.USES,
    RelationshipType.DEPENDS_ON, RelationshipType.SIMILAR_TO,
    RelationshipType.PART_OF,
})


class ConceptCategory:
    DESIGN_PATTERN = "design_pattern"
    ARCHITECTURE = "architecture"
    ALGORITHM = "algorithm"
    DATA_STRUCTURE = "data_structure"
    BUSINESS_LOGIC = "business_logic"


CONCEPT_CATEGORIES: frozenset[str] = frozenset({
    ConceptCategory.DESIGN_PATTERN, ConceptCategory.ARCHITECTURE,
    ConceptCategory.ALGORITHM, ConceptCategory.DATA_STRUCTURE,
    ConceptCategory.BUSINESS_LOGIC,
})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def clamp01(value: float) -> float:
    """Clamp *value* into the closed interval [0, 1]."""
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, float(value)))


def make_node_id(node_type: str, identifier: str) -> str:
    """
    Return the deterministic id for a node of *node_type* named by *identifier*.

    Parameters
    ----------
    node_type:
        One of the :class:`NodeType` constants.
    identifier:
        File path, ``"{path}:{name}"`` for entities, or a module reference.
    """
    digest = hashlib.sha1(identifier.encode("utf-8")).hexdigest()[:12]
    return f"{node_type}_{digest}"


def make_relationship_id(from_node_id: str, rel_type: str, to_node_id: str) -> str:
    return f"{from_node_id}_{rel_type}_{to_node_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _scalar_to_json(value: Scalar):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# Graph entities
# ---------------------------------------------------------------------------

@dataclass
class Node:
    """A typed graph entity."""

    id: str
    type: str
    name: str
    source_location: Optional[str] = None
    metadata: dict[str, Scalar] = field(default_factory=dict)
    attributes: dict[str, Scalar] = field(default_factory=dict)
    semantic_vector: Optional[tuple[float, ...]] = None
    importance: float = 0.5
    last_updated: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.type not in NODE_TYPES:
            raise ValueError(f"Unknown node type: {self.type!r}")
        self.importance = clamp01(self.importance)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "source_location": self.source_location,
            "metadata": {k: _scalar_to_json(v) for k, v in self.metadata.items()},
            "attributes": {k: _scalar_to_json(v) for k, v in self.attributes.items()},
            "semantic_vector": list(self.semantic_vector) if self.semantic_vector else None,
            "importance": self.importance,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass
class Relationship:
    """A typed, weighted edge keyed by ``(from_node_id, type, to_node_id)``."""

    from_node_id: str
    to_node_id: str
    type: str
    weight: float = 0.5
    confidence: float = 0.8
    bidirectional: bool = False
    metadata: dict[str, Scalar] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.type not in RELATIONSHIP_TYPES:
            raise ValueError(f"Unknown relationship type: {self.type!r}")
        self.weight = clamp01(self.weight)
        self.confidence = clamp01(self.confidence)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.from_node_id, self.type, self.to_node_id)

    @property
    def id(self) -> str:
        return make_relationship_id(self.from_node_id, self.type, self.to_node_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_node_id": self.from_node_id,
            "to_node_id": self.to_node_id,
            "type": self.type,
            "weight": self.weight,
            "confidence": self.confidence,
            "bidirectional": self.bidirectional,
            "metadata": {k: _scalar_to_json(v) for k, v in self.metadata.items()},
        }


@dataclass
class Concept:
    """A named, categorised pattern or domain term detected across the graph."""

    id: str
    name: str
    description: str
    category: str
    keywords: frozenset[str] = frozenset()
    related_concepts: frozenset[str] = frozenset()
    code_patterns: frozenset[str] = frozenset()
    confidence: float = 0.8

    def __post_init__(self) -> None:
        if self.category not in CONCEPT_CATEGORIES:
            raise ValueError(f"Unknown concept category: {self.category!r}")
        self.keywords = frozenset(self.keywords)
        self.related_concepts = frozenset(self.related_concepts)
        self.code_patterns = frozenset(self.code_patterns)
        self.confidence = clamp01(self.confidence)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "keywords": sorted(self.keywords),
            "related_concepts": sorted(self.related_concepts),
            "code_patterns": sorted(self.code_patterns),
            "confidence": self.confidence,
        }


def default_concepts() -> list[Concept]:
    """Concepts every build starts from."""
    return [
        Concept(
            id="concept_mvc",
            name="Model-View-Controller",
            description="Architectural pattern separating concerns",
            category=ConceptCategory.ARCHITECTURE,
            keywords=frozenset({"mvc", "model", "view", "controller"}),
            related_concepts=frozenset({"separation_of_concerns"}),
            code_patterns=frozenset({"*Controller", "*Model", "*View"}),
            confidence=1.0,
        ),
        Concept(
            id="concept_solid",
            name="SOLID Principles",
            description="Five design principles for maintainable software",
            category=ConceptCategory.DESIGN_PATTERN,
            keywords=frozenset({"solid", "srp", "ocp", "lsp", "isp", "dip"}),
            related_concepts=frozenset({"design_principles"}),
            code_patterns=frozenset({"interface", "abstract"}),
            confidence=1.0,
        ),
    ]
