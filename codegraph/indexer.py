"""
Indexer — builds a complete :class:`~codegraph.graph.GraphStore` from a
source tree.

Phases run strictly in sequence:
  1. Discovery      walk the tree, apply extension / directory filters
  2. Extraction     lexical extraction, one worker-pool task per file
  3. Vectorization  fit the vocabulary, embed every node
  4. Relationships  structural edges, then pairwise similarity edges
  5. Patterns       architectural / design / domain concepts
  6. Indexing       inverted term index, then freeze

Each phase finishes before the next starts.  The new store is returned to
the caller and is never visible to queries while it is being built.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from tqdm import tqdm

from .config import EngineConfig
from .errors import BuildCancelled, GraphBuildError
from .graph import GraphStore
from .models import default_concepts
from .parser import ExtractedFile, discover, extract_file
from .patterns import recognize_patterns, split_terms
from .relationships import RelationshipBuilder, SimilarityIndex
from .vectorizer import SemanticVectorizer, node_text, tokenize

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a build.

    The build checks the token once per file and once per loop iteration of
    every later phase.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise BuildCancelled("graph build cancelled")


# ---------------------------------------------------------------------------
# Build statistics
# ---------------------------------------------------------------------------

@dataclass
class BuildStats:
    """Counters collected while building one graph."""

    root_path: str
    files_discovered: int = 0
    files_extracted: int = 0
    files_skipped: int = 0
    ambiguities: int = 0
    unresolved_dependencies: int = 0
    dimension_mismatches: int = 0
    node_count: int = 0
    relationship_count: int = 0
    concept_count: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class GraphBuilder:
    """
    Runs the build phases for one source tree.

    Parameters
    ----------
    config:
        Engine settings; defaults are loaded when omitted.
    similarity_index:
        Strategy for the ``similar_to`` pass.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        similarity_index: Optional[SimilarityIndex] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.similarity_index = similarity_index

    def build(
        self,
        root_path: str,
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> tuple[GraphStore, BuildStats]:
        """
        Build a frozen graph for *root_path*.

        Parameters
        ----------
        root_path:
            Directory to scan.
        cancel_token:
            Checked throughout the build.
        progress_callback:
            Optional callable called with (current, total, filename) as each
            file finishes extraction.

        Returns
        -------
        tuple[GraphStore, BuildStats]

        Raises
        ------
        GraphBuildError
            *root_path* is not a directory.
        BuildCancelled
            *cancel_token* was cancelled before the build finished.
        """
        root = os.path.abspath(root_path)
        if not os.path.isdir(root):
            raise GraphBuildError(f"Root path is not a directory: {root_path}")

        token = cancel_token or CancellationToken()
        cfg = self.config
        start_time = time.time()
        stats = BuildStats(root_path=root)

        # 1. Discovery
        token.raise_if_cancelled()
        paths = discover(root, cfg.EXTENSIONS, cfg.EXCLUDE_DIRS)
        stats.files_discovered = len(paths)
        logger.info("Discovered %d source files under %s", len(paths), root)

        # 2. Extraction
        extracted = self._extract_all(root, paths, token, stats, progress_callback)
        stats.ambiguities = sum(f.ambiguities for f in extracted)

        store = GraphStore(SemanticVectorizer(cfg.VECTOR_DIMENSIONS))
        builder = RelationshipBuilder(store, self.similarity_index, cfg.SIMILARITY_THRESHOLD)
        builder.create_nodes(extracted, token)
        logger.info("Extraction complete: %d files, %d nodes",
                    stats.files_extracted, store.node_count)

        # 3. Vectorization
        self._vectorize(store, token)
        logger.info("Vectorized %d nodes (%d terms in vocabulary)",
                    store.node_count, len(store.vectorizer.vocabulary))

        # 4. Relationships
        builder.build_structural(extracted, token)
        similar = builder.link_similar(store.nodes(), store.vectorizer.dimensions, token)
        stats.ambiguities += builder.ambiguities
        stats.unresolved_dependencies = builder.unresolved_dependencies
        stats.dimension_mismatches = builder.dimension_mismatches
        logger.info("Built %d relationships (%d similarity edges)",
                    store.relationship_count, similar)

        # 5. Patterns
        token.raise_if_cancelled()
        for concept in default_concepts() + recognize_patterns(store.nodes()):
            store.add_concept(concept)
        logger.info("Recognised %d concepts", store.concept_count)

        # 6. Indexing
        for node in store.nodes():
            token.raise_if_cancelled()
            terms = set(tokenize(node_text(node))) | set(split_terms(node.name))
            store.index_terms(node.id, terms)
        store.freeze()

        stats.node_count = store.node_count
        stats.relationship_count = store.relationship_count
        stats.concept_count = store.concept_count
        stats.elapsed_seconds = round(time.time() - start_time, 2)
        logger.info(
            "Graph build complete: %d nodes, %d relationships, %d concepts in %.1fs",
            stats.node_count, stats.relationship_count, stats.concept_count,
            stats.elapsed_seconds,
        )
        return store, stats

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _extract_all(
        self,
        root: str,
        paths: list[str],
        token: CancellationToken,
        stats: BuildStats,
        progress_callback: Optional[Callable[[int, int, str], None]],
    ) -> list[ExtractedFile]:
        """Extract *paths* on the worker pool; results come back in path order."""
        if not paths:
            return []

        def _work(rel_path: str) -> Optional[ExtractedFile]:
            token.raise_if_cancelled()
            return extract_file(root, rel_path)

        results: dict[str, ExtractedFile] = {}
        total = len(paths)
        done = 0
        workers = min(self.config.MAX_WORKERS, total)
        with tqdm(total=total, unit="file", desc="Extracting",
                  disable=not self.config.SHOW_PROGRESS) as pbar:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {pool.submit(_work, p): p for p in paths}
                try:
                    for future in as_completed(futures):
                        rel_path = futures[future]
                        done += 1
                        pbar.update(1)
                        if progress_callback:
                            progress_callback(done, total, rel_path)
                        token.raise_if_cancelled()
                        try:
                            extracted = future.result()
                        except BuildCancelled:
                            raise
                        except Exception as exc:
                            logger.warning("Unexpected error extracting %s: %s", rel_path, exc)
                            extracted = None
                        if extracted is None:
                            stats.files_skipped += 1
                            continue
                        results[rel_path] = extracted
                except BuildCancelled:
                    for f in futures:
                        f.cancel()
                    raise

        stats.files_extracted = len(results)
        return [results[p] for p in paths if p in results]

    @staticmethod
    def _vectorize(store: GraphStore, token: CancellationToken) -> None:
        nodes = store.nodes()
        store.vectorizer.fit(node_text(n) for n in nodes)
        for node in nodes:
            token.raise_if_cancelled()
            node.semantic_vector = store.vectorizer.vectorize_node(node)
