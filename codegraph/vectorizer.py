"""
Term-frequency vectorizer for graph nodes and query text.

Text is tokenised on non-alphanumeric boundaries, lower-cased, and tokens
shorter than three characters are dropped.  The most frequent terms are
projected into a fixed number of slots with their term frequency
(``count / total_tokens``) as the value.  There is no trained model and no
IDF weighting, so similarity is lexical only.

A vectorizer that has been :meth:`~SemanticVectorizer.fit` on a corpus gives
each of the corpus' top terms its own slot and hashes every other term into
a reserved tail of the vector, so rare names still match themselves.  An
unfitted vectorizer hashes every term into a slot.
"""

from __future__ import annotations

import hashlib
import logging
import math
import os
import re
import threading
from collections import Counter, OrderedDict
from typing import Iterable, Optional, Sequence

from .errors import DimensionMismatch
from .models import Node, NodeType

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 100
DEFAULT_CACHE_SIZE = 4096
HASHED_SLOT_FRACTION = 4     # 1/4 of the slots are kept for unseen terms
MIN_TOKEN_LENGTH = 3

_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def tokenize(text: str) -> list[str]:
    """Split *text* into lower-case alphanumeric terms of length >= 3."""
    return [t for t in _SPLIT_RE.split(text.lower()) if len(t) >= MIN_TOKEN_LENGTH]


def node_text(node: Node) -> str:
    """
    Synthesize the text that represents *node* in vector space.

    The node name is always included; files add their basename and
    language, functions their complexity and path, classes their
    superclass and path.
    """
    parts = [node.name]
    location = node.source_location or ""
    if node.type == NodeType.FILE:
        parts += [os.path.basename(location), str(node.attributes.get("language") or "")]
    elif node.type == NodeType.FUNCTION:
        parts += ["function", str(node.attributes.get("complexity") or ""), location]
    elif node.type == NodeType.CLASS:
        parts += ["class", str(node.metadata.get("extends") or ""), location]
    return " ".join(p for p in parts if p)


def cosine_similarity(a: Sequence[float], b: Sequence[float], strict: bool = False) -> float:
    """
    Cosine similarity of *a* and *b*.

    Returns 0.0 when either vector is all zeros.  Vectors of different
    length also give 0.0 unless *strict* is set, in which case
    :class:`DimensionMismatch` is raised.
    """
    if len(a) != len(b):
        if strict:
            raise DimensionMismatch(len(a), len(b))
        logger.debug("Dimension mismatch in cosine similarity: %d != %d", len(a), len(b))
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


class SemanticVectorizer:
    """
    Deterministic text → fixed-length vector projection with a content-hash cache.

    Parameters
    ----------
    dimensions:
        Length of every produced vector.
    cache_size:
        Most recently used vectors kept in the cache; older entries are
        evicted first.
    """

    def __init__(self, dimensions: int = DEFAULT_DIMENSIONS,
                 cache_size: int = DEFAULT_CACHE_SIZE) -> None:
        if dimensions < 1:
            raise ValueError("dimensions must be >= 1")
        if cache_size < 1:
            raise ValueError("cache_size must be >= 1")
        self.dimensions = dimensions
        self.cache_limit = cache_size
        self._vocabulary: Optional[dict[str, int]] = None
        self._cache: OrderedDict[str, tuple[float, ...]] = OrderedDict()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Vocabulary
    # ------------------------------------------------------------------

    @property
    def vocabulary_capacity(self) -> int:
        """Slots available to fitted terms; the rest take hashed terms."""
        return self.dimensions - max(1, self.dimensions // HASHED_SLOT_FRACTION)

    def fit(self, texts: Iterable[str]) -> "SemanticVectorizer":
        """
        Give the most frequent terms of *texts* their own slots.

        Ties are broken alphabetically so the vocabulary only depends on the
        corpus content.  Clears the cache.
        """
        counts: Counter = Counter()
        for text in texts:
            counts.update(tokenize(text))
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        ranked = ranked[: self.vocabulary_capacity]
        with self._lock:
            self._vocabulary = {term: slot for slot, (term, _) in enumerate(ranked)}
            self._cache.clear()
        logger.debug("Vectorizer fitted: %d of %d distinct terms in vocabulary",
                     len(ranked), len(counts))
        return self

    @property
    def is_fitted(self) -> bool:
        return self._vocabulary is not None

    @property
    def vocabulary(self) -> dict[str, int]:
        return dict(self._vocabulary or {})

    def _slot(self, term: str) -> int:
        digest = int(hashlib.md5(term.encode("utf-8")).hexdigest()[:8], 16)
        if self._vocabulary is None:
            return digest % self.dimensions
        slot = self._vocabulary.get(term)
        if slot is not None:
            return slot
        offset = self.vocabulary_capacity
        return offset + digest % (self.dimensions - offset)

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def vectorize(self, text: str) -> tuple[float, ...]:
        """Return the vector for *text* (cached by content hash)."""
        key = hashlib.sha1(text.encode("utf-8")).hexdigest()
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                return cached

        vector = self._project(text)
        with self._lock:
            self._cache[key] = vector
            self._cache.move_to_end(key)
            while len(self._cache) > self.cache_limit:
                self._cache.popitem(last=False)
        return vector

    def vectorize_node(self, node: Node) -> tuple[float, ...]:
        return self.vectorize(node_text(node))

    def _project(self, text: str) -> tuple[float, ...]:
        tokens = tokenize(text)
        vector = [0.0] * self.dimensions
        if not tokens:
            return tuple(vector)
        total = len(tokens)
        ranked = sorted(Counter(tokens).items(), key=lambda kv: (-kv[1], kv[0]))
        for term, count in ranked[: self.dimensions]:
            vector[self._slot(term)] += count / total
        return tuple(vector)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)
