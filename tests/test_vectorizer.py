"""
Unit tests for codegraph.vectorizer
"""

from __future__ import annotations

import hashlib

import pytest

from codegraph.errors import DimensionMismatch
from codegraph.models import Node, NodeType
from codegraph.vectorizer import SemanticVectorizer, cosine_similarity, node_text, tokenize


class TestTokenize:
    def test_lowercases_and_drops_short_tokens(self):
        assert tokenize("Hello, World! ab") == ["hello", "world"]

    def test_splits_on_underscores_and_dots(self):
        assert tokenize("user_account.service") == ["user", "account", "service"]


class TestVectorize:
    def setup_method(self):
        self.vec = SemanticVectorizer(dimensions=32)

    def test_fixed_length(self):
        assert len(self.vec.vectorize("alpha beta gamma")) == 32

    def test_deterministic_cold_and_cached(self):
        first = self.vec.vectorize("parse the config file")
        second = self.vec.vectorize("parse the config file")
        fresh = SemanticVectorizer(dimensions=32).vectorize("parse the config file")
        assert first == second == fresh

    def test_cache_by_content(self):
        self.vec.vectorize("one text")
        self.vec.vectorize("one text")
        self.vec.vectorize("another text")
        assert self.vec.cache_size == 2
        self.vec.clear_cache()
        assert self.vec.cache_size == 0

    def test_empty_text_is_zero_vector(self):
        assert not any(self.vec.vectorize("a b"))

    def test_rejects_zero_dimensions(self):
        with pytest.raises(ValueError):
            SemanticVectorizer(dimensions=0)


class TestFittedVectorizer:
    def setup_method(self):
        self.vec = SemanticVectorizer(dimensions=4).fit(["alpha beta", "alpha"])

    def test_vocabulary_ranked_by_frequency(self):
        assert self.vec.vocabulary == {"alpha": 0, "beta": 1}
        assert self.vec.is_fitted

    def test_term_frequency_values(self):
        vector = self.vec.vectorize("alpha alpha beta")
        assert vector[0] == pytest.approx(2 / 3)
        assert vector[1] == pytest.approx(1 / 3)

    def test_unknown_terms_hash_into_reserved_slots(self):
        vector = self.vec.vectorize("gamma delta")
        assert vector[:3] == (0.0, 0.0, 0.0)
        assert vector[3] == pytest.approx(1.0)

    def test_unknown_term_still_matches_itself(self):
        node_vector = self.vec.vectorize("settleinvoice alpha")
        query_vector = self.vec.vectorize("settleinvoice")
        assert cosine_similarity(node_vector, query_vector) > 0.5

    def test_vocabulary_leaves_room_for_hashed_terms(self):
        vec = SemanticVectorizer(dimensions=4).fit(["aaa bbb ccc ddd", "ccc"])
        assert vec.vocabulary_capacity == 3
        assert vec.vocabulary == {"ccc": 0, "aaa": 1, "bbb": 2}


class TestCacheBound:
    def test_least_recently_used_evicted(self):
        vec = SemanticVectorizer(dimensions=8, cache_size=2)
        vec.vectorize("first text")
        vec.vectorize("second text")
        vec.vectorize("first text")
        vec.vectorize("third text")
        assert vec.cache_size == 2
        assert set(vec._cache) == {
            hashlib.sha1(b"first text").hexdigest(),
            hashlib.sha1(b"third text").hexdigest(),
        }

    def test_evicted_vector_recomputed_identically(self):
        vec = SemanticVectorizer(dimensions=8, cache_size=1)
        first = vec.vectorize("parse config")
        vec.vectorize("other text")
        assert vec.vectorize("parse config") == first

    def test_rejects_zero_cache(self):
        with pytest.raises(ValueError):
            SemanticVectorizer(cache_size=0)


class TestCosine:
    def test_symmetric(self):
        a, b = (1.0, 2.0, 0.0), (2.0, 1.0, 1.0)
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_identical(self):
        assert cosine_similarity((0.3, 0.4), (0.3, 0.4)) == pytest.approx(1.0)

    def test_zero_vector(self):
        assert cosine_similarity((0.0, 0.0), (1.0, 2.0)) == 0.0

    def test_mismatch_returns_zero(self):
        assert cosine_similarity((1.0,), (1.0, 2.0)) == 0.0

    def test_mismatch_strict_raises(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity((1.0,), (1.0, 2.0), strict=True)


class TestNodeText:
    def test_file_includes_language(self):
        node = Node(id="f", type=NodeType.FILE, name="app.ts",
                    source_location="src/app.ts", attributes={"language": "typescript"})
        assert "typescript" in node_text(node)

    def test_class_includes_superclass(self):
        node = Node(id="c", type=NodeType.CLASS, name="Dog",
                    source_location="zoo.py", metadata={"extends": "Animal"})
        assert node_text(node) == "Dog class Animal zoo.py"

    def test_variable_is_name_only(self):
        node = Node(id="v", type=NodeType.VARIABLE, name="MAX_SIZE", source_location="a.py")
        assert node_text(node) == "MAX_SIZE"
