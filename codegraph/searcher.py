"""
Semantic query engine over a built :class:`~codegraph.graph.GraphStore`.

A query's text is vectorized with the graph's own vectorizer and compared
against every node vector.  Results above the similarity floor are ranked,
their incident relationships gathered, and suggestions and insights derived
from the result set.  Nothing here mutates the store, so any number of
queries may run against the same graph concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

from .errors import QueryError
from .insights import GraphInsight, extract_insights
from .models import NODE_TYPES, Concept, Node, Relationship
from .vectorizer import cosine_similarity

if TYPE_CHECKING:
    from .graph import GraphStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIMILARITY = 0.3
DEFAULT_MAX_RESULTS = 20
DEFAULT_MAX_SUGGESTIONS = 5

BROADEN_SUGGESTIONS = ("Try a broader search term", "Check spelling and try synonyms")

# query word -> suggestion
_TRIGGER_SUGGESTIONS = (
    (("function", "method"), "Search for related functions"),
    (("class", "component"), "Find similar classes"),
    (("pattern",), "Explore design patterns"),
)


class Intent:
    SEARCH = "search"
    ANALYSIS = "analysis"
    SUGGESTION = "suggestion"
    PATTERN_RECOGNITION = "pattern_recognition"


INTENTS: frozenset[str] = frozenset({
    Intent.SEARCH, Intent.ANALYSIS, Intent.SUGGESTION, Intent.PATTERN_RECOGNITION,
})

_FILTER_KEYS = ("node_types", "file_paths", "concepts")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class QueryFilters:
    """
    Hard excludes applied before ranking.

    Attributes
    ----------
    node_types:
        Keep only nodes whose type is listed.
    file_paths:
        Keep only nodes whose ``source_location`` contains one of these strings.
    concepts:
        Concept ids or names; keep only nodes matching one of their keywords.
    """

    node_types: Optional[list[str]] = None
    file_paths: Optional[list[str]] = None
    concepts: Optional[list[str]] = None


@dataclass
class SemanticQuery:
    """A structured query: free text plus intent, filters and caller context."""

    text: str
    intent: str = Intent.SEARCH
    filters: Optional[Union[QueryFilters, dict]] = None
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryResult:
    """
    Ranked answer to a :class:`SemanticQuery`.

    ``scores`` maps each result node id to its cosine similarity with the
    query text.
    """

    nodes: list[Node] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    relevance_score: float = 0.0
    suggestions: list[str] = field(default_factory=list)
    insights: list[GraphInsight] = field(default_factory=list)
    scores: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "relationships": [r.to_dict() for r in self.relationships],
            "relevance_score": self.relevance_score,
            "suggestions": list(self.suggestions),
            "insights": [i.to_dict() for i in self.insights],
            "scores": dict(self.scores),
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _string_list(value, key: str) -> Optional[list[str]]:
    if value is None:
        return None
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise QueryError(f"filter {key!r} must be a list of strings")
    if not all(isinstance(v, str) for v in value):
        raise QueryError(f"filter {key!r} must contain only strings")
    return sorted(value) if isinstance(value, (set, frozenset)) else list(value)


def _coerce_filters(filters) -> Optional[QueryFilters]:
    if filters is None:
        return None
    if isinstance(filters, QueryFilters):
        raw = {k: getattr(filters, k) for k in _FILTER_KEYS}
    elif isinstance(filters, dict):
        unknown = sorted(set(filters) - set(_FILTER_KEYS))
        if unknown:
            raise QueryError(f"unknown filter keys: {', '.join(map(str, unknown))}")
        raw = filters
    else:
        raise QueryError("filters must be a mapping")

    coerced = QueryFilters(**{k: _string_list(raw.get(k), k) for k in _FILTER_KEYS})
    if coerced.node_types:
        bad = sorted(set(coerced.node_types) - NODE_TYPES)
        if bad:
            raise QueryError(f"unknown node types in filter: {', '.join(bad)}")
    return coerced


def validate_query(request: Union[SemanticQuery, str]) -> SemanticQuery:
    """
    Normalise *request* into a :class:`SemanticQuery`.

    Raises
    ------
    QueryError
        Empty text, unknown intent or malformed filters.
    """
    if isinstance(request, str):
        request = SemanticQuery(text=request)
    if not isinstance(request, SemanticQuery):
        raise QueryError("query must be a string or SemanticQuery")
    if not isinstance(request.text, str) or not request.text.strip():
        raise QueryError("query text is empty")
    if request.intent not in INTENTS:
        raise QueryError(f"unknown intent: {request.intent!r}")
    return SemanticQuery(
        text=request.text,
        intent=request.intent,
        filters=_coerce_filters(request.filters),
        context=dict(request.context or {}),
    )


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------

def relevance_score(nodes: list[Node]) -> float:
    """
    ``(mean importance + distinct types / count) / 2``; 0.0 for no nodes.
    """
    if not nodes:
        return 0.0
    mean_importance = sum(n.importance for n in nodes) / len(nodes)
    diversity = len({n.type for n in nodes}) / len(nodes)
    return (mean_importance + diversity) / 2


def _concept_keywords(store: "GraphStore", refs: list[str]) -> set[str]:
    keywords: set[str] = set()
    for ref in refs:
        concept = store.get_concept(ref)
        if concept is None:
            concept = next((c for c in store.concepts() if c.name == ref), None)
        if concept is None:
            logger.debug("Concept filter %r matches no known concept", ref)
            continue
        keywords.update(k.lower() for k in concept.keywords)
    return keywords


def _matches_concepts(store: "GraphStore", node: Node, keywords: set[str]) -> bool:
    name = node.name.lower()
    for keyword in keywords:
        if keyword in name or node.id in store.term_index.get(keyword, ()):
            return True
    return False


def _passes_filters(
    store: "GraphStore", node: Node, filters: Optional[QueryFilters], keywords: Optional[set[str]]
) -> bool:
    if filters is None:
        return True
    if filters.node_types is not None and node.type not in filters.node_types:
        return False
    if filters.file_paths is not None:
        location = node.source_location or ""
        if not any(path in location for path in filters.file_paths):
            return False
    if keywords is not None and not _matches_concepts(store, node, keywords):
        return False
    return True


def build_suggestions(
    query: SemanticQuery,
    nodes: list[Node],
    concepts: list[Concept],
    limit: int = DEFAULT_MAX_SUGGESTIONS,
) -> list[str]:
    """
    Follow-up suggestions for a query result.

    Related concepts of any concept whose keyword appears in a result node
    name come first (search intent only), then broaden / spelling hints for
    an empty result, then hints triggered by words in the query.
    """
    suggestions: list[str] = []

    def _add(text: str) -> None:
        if text not in suggestions:
            suggestions.append(text)

    if query.intent == Intent.SEARCH:
        for node in nodes:
            name = node.name.lower()
            for concept in concepts:
                if any(k.lower() in name for k in concept.keywords):
                    for related in sorted(concept.related_concepts):
                        _add(f"Search for: {related}")

    if not nodes:
        for hint in BROADEN_SUGGESTIONS:
            _add(hint)

    words = query.text.lower().split()
    for triggers, hint in _TRIGGER_SUGGESTIONS:
        if any(t in words for t in triggers):
            _add(hint)

    return suggestions[:limit]


# ---------------------------------------------------------------------------
# Query execution
# ---------------------------------------------------------------------------

def execute_query(
    store: "GraphStore",
    request: Union[SemanticQuery, str],
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    max_results: int = DEFAULT_MAX_RESULTS,
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
) -> QueryResult:
    """
    Run *request* against *store*.

    Parameters
    ----------
    store:
        A built (normally frozen) graph.
    request:
        Query text or a full :class:`SemanticQuery`.
    min_similarity:
        Nodes must score strictly above this value.
    max_results:
        Maximum number of result nodes.
    max_suggestions:
        Maximum number of suggestions.

    Returns
    -------
    QueryResult
        Never raises for a bad request; a :class:`QueryError` becomes an
        empty result whose suggestions explain the problem.
    """
    try:
        query = validate_query(request)
    except QueryError as exc:
        logger.debug("Rejected query: %s", exc)
        return QueryResult(suggestions=[f"Invalid query: {exc}", BROADEN_SUGGESTIONS[0]])

    filters = query.filters
    keywords = None
    if filters is not None and filters.concepts is not None:
        keywords = _concept_keywords(store, filters.concepts)

    query_vector = store.vectorizer.vectorize(query.text)
    scored: list[tuple[float, Node]] = []
    for node in store.nodes():
        if node.semantic_vector is None:
            continue
        if not _passes_filters(store, node, filters, keywords):
            continue
        similarity = cosine_similarity(query_vector, node.semantic_vector)
        if similarity > min_similarity:
            scored.append((similarity, node))

    scored.sort(key=lambda pair: (-pair[0], pair[1].id))
    scored = scored[:max_results]
    nodes = [node for _, node in scored]
    relationships = store.relationships_for(node.id for node in nodes)

    return QueryResult(
        nodes=nodes,
        relationships=relationships,
        relevance_score=relevance_score(nodes),
        suggestions=build_suggestions(query, nodes, store.concepts(), max_suggestions),
        insights=extract_insights(nodes, relationships, store.get_node),
        scores={node.id: similarity for similarity, node in scored},
    )
