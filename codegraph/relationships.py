"""
Relationship builder — turns extractor output into graph nodes and edges.

Creates File / entity / Module nodes from :class:`ExtractedFile` records,
then the structural edges (``part_of``, ``exports``, ``depends_on``,
``imports``, ``extends``, ``implements``, ``calls``) and finally
``similar_to`` edges from pairwise vector similarity.

The similarity pass compares every pair of vectorized nodes and is O(n²).
It sits behind :class:`SimilarityIndex` so an approximate nearest-neighbour
index can replace :class:`ExactSimilarityIndex` without touching callers.
"""

from __future__ import annotations

import logging
import os
import posixpath
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

import numpy as np

from .errors import ExtractionAmbiguity
from .models import Node, NodeType, Relationship, RelationshipType, make_node_id
from .parser import EXTENSION_TO_LANGUAGE, ExtractedDependency, ExtractedFile

if TYPE_CHECKING:
    from .graph import GraphStore
    from .indexer import CancellationToken

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Edge weights
# ---------------------------------------------------------------------------

PART_OF_WEIGHT = 0.9
DEPENDS_ON_WEIGHT = 0.8
INHERITANCE_WEIGHT = 0.8
IMPORTS_WEIGHT = 0.7
EXPORTS_WEIGHT = 0.7
CALLS_WEIGHT = 0.6
MODULE_IMPORTANCE = 0.4
DEFAULT_SIMILARITY_THRESHOLD = 0.7

_ENTITY_TYPES = (NodeType.FUNCTION, NodeType.CLASS, NodeType.INTERFACE, NodeType.VARIABLE)


# ---------------------------------------------------------------------------
# Node constructors
# ---------------------------------------------------------------------------

def file_node_id(path: str) -> str:
    return make_node_id(NodeType.FILE, path)


def entity_node_id(entity_type: str, path: str, name: str) -> str:
    return make_node_id(entity_type, f"{path}:{name}")


def module_node_id(reference: str) -> str:
    return make_node_id(NodeType.MODULE, reference)


def make_file_node(extracted: ExtractedFile) -> Node:
    return Node(
        id=file_node_id(extracted.path),
        type=NodeType.FILE,
        name=posixpath.basename(extracted.path),
        source_location=extracted.path,
        metadata={
            "size": extracted.size,
            "extension": extracted.extension,
            "last_modified": extracted.last_modified,
            "line_count": extracted.line_count,
        },
        attributes={
            "language": extracted.language,
            "complexity": extracted.complexity,
        },
        importance=extracted.importance,
    )


# ---------------------------------------------------------------------------
# Relative reference resolution
# ---------------------------------------------------------------------------

def resolve_relative(from_path: str, reference: str, known_paths: set[str]) -> str:
    """
    Resolve a relative *reference* made by *from_path* to a known file.

    Tries the exact path, then every known source extension (the importer's
    own extension first), then ``index.*`` and ``__init__.py`` inside a
    directory of that name.

    Returns
    -------
    str
        The repo-relative path of the target.

    Raises
    ------
    ExtractionAmbiguity
        The reference leaves the project root or matches no known file.
    """
    joined = posixpath.join(posixpath.dirname(from_path), reference)
    base = posixpath.normpath(joined)
    if base.startswith(".."):
        raise ExtractionAmbiguity(f"{reference!r} from {from_path} leaves the project root")
    own_ext = os.path.splitext(from_path)[1].lower()
    extensions = [own_ext] + sorted(e for e in EXTENSION_TO_LANGUAGE if e != own_ext)
    candidates = [base]
    candidates += [base + ext for ext in extensions]
    if base == ".":
        base = ""
    candidates += [posixpath.join(base, "index" + ext) for ext in extensions]
    candidates.append(posixpath.join(base, "__init__.py"))
    for candidate in candidates:
        if candidate in known_paths:
            return candidate
    raise ExtractionAmbiguity(f"{reference!r} from {from_path} matches no known file")


# ---------------------------------------------------------------------------
# Similarity index
# ---------------------------------------------------------------------------

class SimilarityIndex:
    """Finds pairs of vectors whose cosine similarity exceeds a threshold."""

    def pairs(
        self,
        ids: Sequence[str],
        vectors: Sequence[Sequence[float]],
        threshold: float,
        cancel_token: Optional["CancellationToken"] = None,
    ) -> list[tuple[str, str, float]]:
        """
        Return ``(id_a, id_b, similarity)`` for every unordered pair above *threshold*.

        ``id_a`` always precedes ``id_b`` in *ids*.
        """
        raise NotImplementedError


class ExactSimilarityIndex(SimilarityIndex):
    """
    Exhaustive pairwise cosine similarity with numpy.

    Rows are processed in blocks of *block_size* so memory stays at
    ``block_size × n`` instead of ``n × n``.
    """

    def __init__(self, block_size: int = 512) -> None:
        self.block_size = max(1, block_size)

    def pairs(
        self,
        ids: Sequence[str],
        vectors: Sequence[Sequence[float]],
        threshold: float,
        cancel_token: Optional["CancellationToken"] = None,
    ) -> list[tuple[str, str, float]]:
        n = len(ids)
        if n < 2:
            return []
        matrix = np.asarray(vectors, dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = 1.0
        normalized = matrix / norms[:, None]

        found: list[tuple[str, str, float]] = []
        for start in range(0, n, self.block_size):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            block = normalized[start:start + self.block_size] @ normalized.T
            rows, cols = np.nonzero(block > threshold)
            for r, c in zip(rows.tolist(), cols.tolist()):
                i = start + r
                if c <= i:
                    continue
                found.append((ids[i], ids[c], min(1.0, float(block[r, c]))))
        return found


# ---------------------------------------------------------------------------
# RelationshipBuilder
# ---------------------------------------------------------------------------

class RelationshipBuilder:
    """
    Populates a :class:`~codegraph.graph.GraphStore` from extractor output.

    Parameters
    ----------
    store:
        The graph being built.
    similarity_index:
        Strategy for the ``similar_to`` pass; defaults to
        :class:`ExactSimilarityIndex`.
    similarity_threshold:
        Pairs with similarity strictly above this value are linked.
    """

    def __init__(
        self,
        store: "GraphStore",
        similarity_index: Optional[SimilarityIndex] = None,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self.store = store
        self.similarity_index = similarity_index or ExactSimilarityIndex()
        self.similarity_threshold = similarity_threshold
        self.ambiguities = 0
        self.unresolved_dependencies = 0
        self.dimension_mismatches = 0
        self._known_paths: set[str] = set()

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def create_nodes(
        self,
        files: Sequence[ExtractedFile],
        cancel_token: Optional["CancellationToken"] = None,
    ) -> None:
        """
        Create File nodes for all *files*, then their entity and Module nodes.

        All File nodes exist before any relative reference is resolved.
        """
        for extracted in files:
            self.store.add_node(make_file_node(extracted))
            self._known_paths.add(extracted.path)

        for extracted in files:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            for entity in extracted.entities:
                node = Node(
                    id=entity_node_id(entity.type, extracted.path, entity.name),
                    type=entity.type,
                    name=entity.name,
                    source_location=extracted.path,
                    metadata=dict(entity.metadata),
                    attributes=dict(entity.attributes),
                    importance=entity.importance,
                )
                stored = self.store.add_node(node)
                if stored is not node:
                    logger.debug("Duplicate %s %s in %s collapsed",
                                 entity.type, entity.name, extracted.path)
            for dep in extracted.dependencies:
                if not dep.is_relative:
                    self._module_node(dep)

    def _module_node(self, dep: ExtractedDependency) -> Node:
        return self.store.add_node(Node(
            id=module_node_id(dep.module),
            type=NodeType.MODULE,
            name=dep.module,
            metadata={"is_external": True, "import_type": dep.kind},
            importance=MODULE_IMPORTANCE,
        ))

    # ------------------------------------------------------------------
    # Structural edges
    # ------------------------------------------------------------------

    def _link(self, from_id: str, to_id: str, rel_type: str, weight: float,
              bidirectional: bool = False, **metadata) -> bool:
        return self.store.add_relationship(Relationship(
            from_node_id=from_id,
            to_node_id=to_id,
            type=rel_type,
            weight=weight,
            bidirectional=bidirectional,
            metadata=metadata,
        ))

    def build_structural(
        self,
        files: Sequence[ExtractedFile],
        cancel_token: Optional["CancellationToken"] = None,
    ) -> None:
        """Create every non-similarity edge for *files*."""
        for extracted in files:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            self.link_entities(extracted)
            self.link_dependencies(extracted)
            self.link_inheritance(extracted)
            self.link_usages(extracted)

    def link_entities(self, extracted: ExtractedFile) -> None:
        """``part_of`` entity → file, and ``exports`` file → entity."""
        fid = file_node_id(extracted.path)
        for entity in extracted.entities:
            eid = entity_node_id(entity.type, extracted.path, entity.name)
            self._link(eid, fid, RelationshipType.PART_OF, PART_OF_WEIGHT)
            if entity.exported:
                self._link(fid, eid, RelationshipType.EXPORTS, EXPORTS_WEIGHT)

    def link_dependencies(self, extracted: ExtractedFile) -> None:
        """``depends_on`` to files / modules, ``imports`` to named entities."""
        fid = file_node_id(extracted.path)
        for dep in extracted.dependencies:
            if not dep.is_relative:
                self._link(fid, module_node_id(dep.module), RelationshipType.DEPENDS_ON,
                           DEPENDS_ON_WEIGHT, line=dep.line)
                continue

            try:
                target = resolve_relative(extracted.path, dep.module, self._known_paths)
            except ExtractionAmbiguity as exc:
                logger.debug("Unresolved dependency in %s:%d: %s", extracted.path, dep.line, exc)
                self.unresolved_dependencies += 1
                self.ambiguities += 1
                continue
            if target == extracted.path:
                continue
            self._link(fid, file_node_id(target), RelationshipType.DEPENDS_ON,
                       DEPENDS_ON_WEIGHT, line=dep.line)
            for name in dep.names:
                for entity_type in _ENTITY_TYPES:
                    eid = entity_node_id(entity_type, target, name)
                    if self.store.has_node(eid):
                        self._link(fid, eid, RelationshipType.IMPORTS, IMPORTS_WEIGHT)

    def _resolve_type(self, node_type: str, name: str, path: str) -> Optional[Node]:
        """Find a *node_type* node called *name*: same file first, then anywhere."""
        candidates = self.store.find_nodes(node_type, name)
        for node in candidates:
            if node.source_location == path:
                return node
        return candidates[0] if candidates else None

    def link_inheritance(self, extracted: ExtractedFile) -> None:
        """``extends`` class → class and ``implements`` class → interface."""
        for entity in extracted.entities:
            if entity.type != NodeType.CLASS:
                continue
            cid = entity_node_id(NodeType.CLASS, extracted.path, entity.name)
            base = entity.metadata.get("extends")
            if isinstance(base, str) and base:
                target = self._resolve_type(NodeType.CLASS, base.split(".")[-1], extracted.path)
                if target is not None and target.id != cid:
                    self._link(cid, target.id, RelationshipType.EXTENDS, INHERITANCE_WEIGHT)
            implemented = entity.metadata.get("implements")
            if isinstance(implemented, str) and implemented:
                for name in implemented.split(","):
                    name = name.split("<")[0].strip().split(".")[-1]
                    target = self._resolve_type(NodeType.INTERFACE, name, extracted.path)
                    if target is not None:
                        self._link(cid, target.id, RelationshipType.IMPLEMENTS,
                                   INHERITANCE_WEIGHT)

    def link_usages(self, extracted: ExtractedFile) -> None:
        """
        ``calls`` file → function for every usage name.

        Links to every Function node with that name, wherever it lives.
        """
        fid = file_node_id(extracted.path)
        for usage in extracted.usages:
            for fn in self.store.find_nodes(NodeType.FUNCTION, usage.name):
                self._link(fid, fn.id, RelationshipType.CALLS, CALLS_WEIGHT)

    # ------------------------------------------------------------------
    # Similarity edges
    # ------------------------------------------------------------------

    def link_similar(
        self,
        nodes: Iterable[Node],
        dimensions: int,
        cancel_token: Optional["CancellationToken"] = None,
    ) -> int:
        """
        Add bidirectional ``similar_to`` edges between similar *nodes*.

        Nodes without a vector are ignored; vectors whose length is not
        *dimensions* are counted as mismatches and ignored.

        Returns
        -------
        int
            Number of edges created.
        """
        ids: list[str] = []
        vectors: list[Sequence[float]] = []
        for node in nodes:
            if node.semantic_vector is None:
                continue
            if len(node.semantic_vector) != dimensions:
                self.dimension_mismatches += 1
                logger.debug("Vector of %s has %d dimensions, expected %d",
                             node.id, len(node.semantic_vector), dimensions)
                continue
            ids.append(node.id)
            vectors.append(node.semantic_vector)

        created = 0
        for id_a, id_b, similarity in self.similarity_index.pairs(
            ids, vectors, self.similarity_threshold, cancel_token
        ):
            if self._link(id_a, id_b, RelationshipType.SIMILAR_TO, similarity,
                          bidirectional=True):
                created += 1
        return created
