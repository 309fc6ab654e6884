"""
KnowledgeGraphEngine — the library's public entry point.

Usage::

    engine = KnowledgeGraphEngine()
    engine.add_listener("graph_built", print)
    engine.build_graph("path/to/project")
    result = engine.query("user authentication service")

The engine holds one published :class:`~codegraph.graph.GraphStore`.  A build
assembles a new store off to the side and swaps it in when complete, so
queries always see either the previous graph or the new one, never a
partial build.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from .config import EngineConfig
from .graph import GraphStore
from .indexer import BuildStats, CancellationToken, GraphBuilder
from .models import NodeType
from .relationships import SimilarityIndex
from .searcher import QueryResult, SemanticQuery, execute_query

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"

GRAPH_BUILT = "graph_built"
QUERY_EXECUTED = "query_executed"
EVENTS = frozenset({GRAPH_BUILT, QUERY_EXECUTED})

NODE_COLORS: dict[str, str] = {
    NodeType.FILE: "#3498db",
    NodeType.FUNCTION: "#2ecc71",
    NodeType.CLASS: "#e74c3c",
    NodeType.INTERFACE: "#f39c12",
    NodeType.VARIABLE: "#9b59b6",
    NodeType.MODULE: "#1abc9c",
    NodeType.CONCEPT: "#e67e22",
}
DEFAULT_COLOR = "#95a5a6"
SIZE_SCALE = 20


class KnowledgeGraphEngine:
    """
    Build, query and export a code knowledge graph.

    Parameters
    ----------
    config:
        Engine settings; :meth:`EngineConfig.load` is used when omitted.
    similarity_index:
        Replacement for the exact pairwise ``similar_to`` pass.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        similarity_index: Optional[SimilarityIndex] = None,
    ) -> None:
        self.config = config or EngineConfig.load()
        self._builder = GraphBuilder(self.config, similarity_index)
        self._store = GraphStore(vectorizer=None).freeze()
        self._store_lock = threading.Lock()
        self._build_lock = threading.Lock()
        self._listeners: dict[str, list[Callable[[dict], None]]] = {e: [] for e in EVENTS}
        self._listeners_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_listener(self, event: str, callback: Callable[[dict], None]) -> None:
        """
        Register *callback* for *event* (``"graph_built"`` or ``"query_executed"``).

        The callback receives the event payload dict.  Exceptions raised by a
        callback are logged and do not reach the caller of the operation.
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event!r}")
        with self._listeners_lock:
            self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable[[dict], None]) -> None:
        with self._listeners_lock:
            callbacks = self._listeners.get(event, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def _emit(self, event: str, payload: dict) -> None:
        with self._listeners_lock:
            callbacks = list(self._listeners[event])
        for callback in callbacks:
            try:
                callback(dict(payload))
            except Exception:
                logger.exception("Listener for %s failed", event)

    # ------------------------------------------------------------------
    # Graph access
    # ------------------------------------------------------------------

    @property
    def graph(self) -> GraphStore:
        """The currently published graph."""
        with self._store_lock:
            return self._store

    def _publish(self, store: GraphStore) -> None:
        with self._store_lock:
            self._store = store

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build_graph(
        self,
        root_path: str,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> BuildStats:
        """
        Rebuild the graph from *root_path* and publish it.

        Builds are serialised; queries keep using the previous graph until
        the new one is complete.

        Raises
        ------
        GraphBuildError
            *root_path* is not a directory.
        BuildCancelled
            The build was cancelled; the previous graph stays published.
        """
        with self._build_lock:
            store, stats = self._builder.build(root_path, cancel_token, progress_callback)
            self._publish(store)
        self._emit(GRAPH_BUILT, {
            "node_count": stats.node_count,
            "relationship_count": stats.relationship_count,
            "concept_count": stats.concept_count,
        })
        return stats

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(self, request: Union[SemanticQuery, str]) -> QueryResult:
        """
        Run a semantic query against the published graph.

        Accepts plain text (search intent) or a :class:`SemanticQuery`.
        Never raises for a malformed request; see
        :func:`~codegraph.searcher.execute_query`.
        """
        start = time.perf_counter()
        store = self.graph
        result = execute_query(
            store,
            request,
            min_similarity=self.config.QUERY_MIN_SIMILARITY,
            max_results=self.config.QUERY_MAX_RESULTS,
            max_suggestions=self.config.MAX_SUGGESTIONS,
        )
        duration = time.perf_counter() - start

        text = request if isinstance(request, str) else getattr(request, "text", "")
        logger.debug("Query %r returned %d nodes in %.3fs", text, len(result.nodes), duration)
        self._emit(QUERY_EXECUTED, {
            "query_text": text,
            "result_count": len(result.nodes),
            "duration": duration,
            "relevance_score": result.relevance_score,
        })
        return result

    # ------------------------------------------------------------------
    # Export / visualisation / stats
    # ------------------------------------------------------------------

    def export(self) -> dict:
        """
        JSON-serialisable snapshot of the published graph.

        Returns
        -------
        dict
            ``{nodes, relationships, concepts, metadata: {export_date, version}}``.
        """
        store = self.graph
        return {
            "nodes": [n.to_dict() for n in store.nodes()],
            "relationships": [r.to_dict() for r in store.relationships()],
            "concepts": [c.to_dict() for c in store.concepts()],
            "metadata": {
                "export_date": datetime.now(timezone.utc).isoformat(),
                "version": EXPORT_VERSION,
            },
        }

    def visualize(self) -> dict:
        """
        Node/edge lists for a rendering collaborator.

        Node size is ``importance * 20``; colour depends on node type only.
        """
        store = self.graph
        return {
            "nodes": [
                {
                    "id": n.id,
                    "label": n.name,
                    "type": n.type,
                    "size": n.importance * SIZE_SCALE,
                    "color": NODE_COLORS.get(n.type, DEFAULT_COLOR),
                }
                for n in store.nodes()
            ],
            "edges": [
                {
                    "id": r.id,
                    "source": r.from_node_id,
                    "target": r.to_node_id,
                    "label": r.type,
                    "weight": r.weight,
                }
                for r in store.relationships()
            ],
        }

    def stats(self) -> dict:
        """Counts and type distributions of the published graph."""
        return self.graph.stats()
