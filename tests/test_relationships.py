"""
Unit tests for codegraph.relationships

Relative reference resolution, the similarity index and every edge the
RelationshipBuilder creates from extractor output.
"""

from __future__ import annotations

import textwrap

import pytest

from codegraph.errors import ExtractionAmbiguity
from codegraph.graph import GraphStore
from codegraph.models import Node, NodeType, RelationshipType
from codegraph.parser import extract_source
from codegraph.relationships import (
    ExactSimilarityIndex,
    RelationshipBuilder,
    SimilarityIndex,
    entity_node_id,
    file_node_id,
    module_node_id,
    resolve_relative,
)


class _NoSimilarity(SimilarityIndex):
    def pairs(self, ids, vectors, threshold, cancel_token=None):
        return []


def _build(sources: dict[str, str]):
    """Extract *sources* and run node creation plus structural linking."""
    files = [extract_source(path, textwrap.dedent(src)) for path, src in sorted(sources.items())]
    store = GraphStore()
    builder = RelationshipBuilder(store, similarity_index=_NoSimilarity())
    builder.create_nodes(files)
    builder.build_structural(files)
    return store, builder


def _count(store, rel_type):
    return store.stats()["relationship_type_distribution"].get(rel_type, 0)


# ---------------------------------------------------------------------------
# Relative resolution
# ---------------------------------------------------------------------------

class TestResolveRelative:
    def test_adds_extension(self):
        assert resolve_relative("b.js", "./a", {"a.js", "b.js"}) == "a.js"

    def test_exact_path(self):
        assert resolve_relative("b.js", "./a.js", {"a.js", "a.js.js"}) == "a.js"

    def test_parent_directory(self):
        assert resolve_relative("src/x.ts", "../lib/y", {"lib/y.ts"}) == "lib/y.ts"

    def test_prefers_importer_extension(self):
        assert resolve_relative("app.ts", "./util", {"util.js", "util.ts"}) == "util.ts"

    def test_index_file(self):
        assert resolve_relative("app.js", "./components", {"components/index.js"}) == "components/index.js"

    def test_python_package(self):
        assert resolve_relative("pkg/mod.py", "./sub", {"pkg/sub/__init__.py"}) == "pkg/sub/__init__.py"

    def test_outside_root(self):
        with pytest.raises(ExtractionAmbiguity):
            resolve_relative("a.js", "../elsewhere", {"a.js"})

    def test_no_match(self):
        with pytest.raises(ExtractionAmbiguity):
            resolve_relative("a.js", "./missing", {"a.js"})


# ---------------------------------------------------------------------------
# Similarity index
# ---------------------------------------------------------------------------

class TestExactSimilarityIndex:
    IDS = ["a", "b", "c", "d"]
    VECTORS = [(1.0, 0.0), (1.0, 0.0), (0.0, 1.0), (0.0, 0.0)]

    def test_pairs_above_threshold(self):
        pairs = ExactSimilarityIndex().pairs(self.IDS, self.VECTORS, 0.7)
        assert [(a, b) for a, b, _ in pairs] == [("a", "b")]
        assert pairs[0][2] == pytest.approx(1.0)

    def test_block_size_does_not_change_result(self):
        full = ExactSimilarityIndex().pairs(self.IDS, self.VECTORS, 0.7)
        blocked = ExactSimilarityIndex(block_size=1).pairs(self.IDS, self.VECTORS, 0.7)
        assert [(a, b) for a, b, _ in full] == [(a, b) for a, b, _ in blocked]

    def test_threshold_is_strict(self):
        ids, vectors = ["a", "b"], [(1.0, 0.0), (1.0, 1.0)]
        assert len(ExactSimilarityIndex().pairs(ids, vectors, 0.7)) == 1
        assert ExactSimilarityIndex().pairs(ids, vectors, 0.71) == []

    def test_fewer_than_two_vectors(self):
        assert ExactSimilarityIndex().pairs(["a"], [(1.0,)], 0.5) == []


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class TestEndToEndEdges:
    """a.js exports foo; b.js imports a and calls foo."""

    def setup_method(self):
        self.store, self.builder = _build({
            "a.js": """\
                export function foo() {
                  return 1;
                }
            """,
            "b.js": """\
                import { foo } from './a';

                foo();
            """,
        })
        self.a = file_node_id("a.js")
        self.b = file_node_id("b.js")
        self.foo = entity_node_id(NodeType.FUNCTION, "a.js", "foo")

    def test_nodes(self):
        dist = self.store.stats()["node_type_distribution"]
        assert dist == {"file": 2, "function": 1}

    def test_part_of_points_at_file(self):
        assert self.store.has_relationship(self.foo, RelationshipType.PART_OF, self.a)
        assert _count(self.store, RelationshipType.PART_OF) == 1

    def test_depends_on(self):
        assert self.store.has_relationship(self.b, RelationshipType.DEPENDS_ON, self.a)
        assert _count(self.store, RelationshipType.DEPENDS_ON) == 1

    def test_calls(self):
        assert self.store.has_relationship(self.b, RelationshipType.CALLS, self.foo)
        assert _count(self.store, RelationshipType.CALLS) == 1

    def test_imports_and_exports(self):
        assert self.store.has_relationship(self.b, RelationshipType.IMPORTS, self.foo)
        assert self.store.has_relationship(self.a, RelationshipType.EXPORTS, self.foo)

    def test_edge_weights(self):
        rels = {r.type: r for r in self.store.relationships()}
        assert rels[RelationshipType.PART_OF].weight == 0.9
        assert rels[RelationshipType.DEPENDS_ON].weight == 0.8
        assert rels[RelationshipType.CALLS].weight == 0.6

    def test_no_ambiguities(self):
        assert self.builder.ambiguities == 0


class TestModules:
    def test_module_created_once(self):
        store, _ = _build({
            "c.js": "import React from 'react';\n",
            "d.js": "const React = require('react');\n",
        })
        modules = [n for n in store.nodes() if n.type == NodeType.MODULE]
        assert len(modules) == 1
        module = modules[0]
        assert module.id == module_node_id("react")
        assert module.importance == 0.4
        assert module.metadata == {"is_external": True, "import_type": "import"}
        assert _count(store, RelationshipType.DEPENDS_ON) == 2

    def test_unresolved_relative_reference(self):
        store, builder = _build({"e.js": "import x from './missing';\n"})
        assert builder.unresolved_dependencies == 1
        assert builder.ambiguities == 1
        assert _count(store, RelationshipType.DEPENDS_ON) == 0


class TestInheritance:
    def test_extends_and_implements(self):
        store, _ = _build({
            "animals.ts": "export class Animal {}\nexport interface Pet {}\n",
            "dog.ts": "class Dog extends Animal implements Pet {\n}\n",
        })
        dog = entity_node_id(NodeType.CLASS, "dog.ts", "Dog")
        animal = entity_node_id(NodeType.CLASS, "animals.ts", "Animal")
        pet = entity_node_id(NodeType.INTERFACE, "animals.ts", "Pet")
        assert store.has_relationship(dog, RelationshipType.EXTENDS, animal)
        assert store.has_relationship(dog, RelationshipType.IMPLEMENTS, pet)

    def test_unknown_base_is_ignored(self):
        store, _ = _build({"dog.ts": "class Dog extends Animal {\n}\n"})
        assert _count(store, RelationshipType.EXTENDS) == 0


class TestCalls:
    def test_links_every_function_with_the_name(self):
        store, _ = _build({
            "x.js": "function init() {}\n",
            "y.js": "function init() {}\n",
            "z.js": "init();\n",
        })
        z = file_node_id("z.js")
        targets = {r.to_node_id for r in store.relationships() if r.type == RelationshipType.CALLS}
        assert targets == {
            entity_node_id(NodeType.FUNCTION, "x.js", "init"),
            entity_node_id(NodeType.FUNCTION, "y.js", "init"),
        }
        assert all(r.from_node_id == z for r in store.relationships()
                   if r.type == RelationshipType.CALLS)


class TestLinkSimilar:
    def setup_method(self):
        self.store = GraphStore()
        vectors = {
            "n1": (1.0, 0.0),
            "n2": (1.0, 0.0),
            "n3": (0.0, 1.0),
            "n4": (1.0,),
            "n5": None,
        }
        for node_id, vector in vectors.items():
            self.store.add_node(Node(id=node_id, type=NodeType.VARIABLE, name=node_id,
                                     semantic_vector=vector))
        self.builder = RelationshipBuilder(self.store)

    def test_creates_bidirectional_edge(self):
        created = self.builder.link_similar(self.store.nodes(), dimensions=2)
        assert created == 1
        rel = self.store.relationships()[0]
        assert (rel.from_node_id, rel.to_node_id) == ("n1", "n2")
        assert rel.type == RelationshipType.SIMILAR_TO
        assert rel.bidirectional is True
        assert rel.weight == pytest.approx(1.0)

    def test_counts_dimension_mismatches(self):
        self.builder.link_similar(self.store.nodes(), dimensions=2)
        assert self.builder.dimension_mismatches == 1
