"""
codegraph — code knowledge-graph engine.

Public API for library usage::

    from codegraph import KnowledgeGraphEngine, SemanticQuery

    engine = KnowledgeGraphEngine()
    engine.build_graph("path/to/project")
    result = engine.query(SemanticQuery(text="payment service", intent="analysis"))
"""

from .config import EngineConfig
from .engine import KnowledgeGraphEngine
from .errors import (
    BuildCancelled,
    CodeGraphError,
    DimensionMismatch,
    ExtractionAmbiguity,
    GraphBuildError,
    QueryError,
)
from .indexer import BuildStats, CancellationToken
from .insights import GraphInsight
from .models import Concept, Node, NodeType, Relationship, RelationshipType
from .relationships import ExactSimilarityIndex, SimilarityIndex
from .searcher import QueryFilters, QueryResult, SemanticQuery

__all__ = [
    "KnowledgeGraphEngine",
    "EngineConfig",
    "SemanticQuery",
    "QueryFilters",
    "QueryResult",
    "GraphInsight",
    "BuildStats",
    "CancellationToken",
    "Node",
    "NodeType",
    "Relationship",
    "RelationshipType",
    "Concept",
    "SimilarityIndex",
    "ExactSimilarityIndex",
    "CodeGraphError",
    "GraphBuildError",
    "BuildCancelled",
    "ExtractionAmbiguity",
    "DimensionMismatch",
    "QueryError",
]
