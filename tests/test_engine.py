"""
End-to-end tests for codegraph.engine.KnowledgeGraphEngine

Builds real graphs from small source trees written into tmp_path.
"""

from __future__ import annotations

import json
import textwrap

import pytest

from codegraph.config import EngineConfig
from codegraph.engine import NODE_COLORS, KnowledgeGraphEngine
from codegraph.errors import BuildCancelled, GraphBuildError
from codegraph.indexer import CancellationToken
from codegraph.models import NodeType, RelationshipType
from codegraph.relationships import SimilarityIndex, entity_node_id, file_node_id


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def project(tmp_path):
    """a.js exports foo; b.js imports a and calls foo."""
    (tmp_path / "a.js").write_text(textwrap.dedent("""\
        export function foo() {
          return 1;
        }
    """))
    (tmp_path / "b.js").write_text(textwrap.dedent("""\
        import { foo } from './a';

        foo();
    """))
    return tmp_path


@pytest.fixture()
def cyclic_project(tmp_path):
    """a.js -> b.js -> c.js -> a.js through side-effect imports."""
    (tmp_path / "a.js").write_text("import './b';\n")
    (tmp_path / "b.js").write_text("import './c';\n")
    (tmp_path / "c.js").write_text("import './a';\n")
    return tmp_path


@pytest.fixture()
def engine():
    return KnowledgeGraphEngine(EngineConfig({"max_workers": 2}))


def _rel_counts(engine):
    return engine.stats()["relationship_type_distribution"]


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------

class TestBuildGraph:
    def test_end_to_end_scenario(self, engine, project):
        engine.build_graph(str(project))
        stats = engine.stats()
        assert stats["node_type_distribution"] == {"file": 2, "function": 1}
        counts = _rel_counts(engine)
        assert counts[RelationshipType.PART_OF] == 1
        assert counts[RelationshipType.DEPENDS_ON] == 1
        assert counts[RelationshipType.CALLS] == 1

    def test_edge_directions(self, engine, project):
        engine.build_graph(str(project))
        graph = engine.graph
        a, b = file_node_id("a.js"), file_node_id("b.js")
        foo = entity_node_id(NodeType.FUNCTION, "a.js", "foo")
        assert graph.has_relationship(foo, RelationshipType.PART_OF, a)
        assert graph.has_relationship(b, RelationshipType.DEPENDS_ON, a)
        assert graph.has_relationship(b, RelationshipType.CALLS, foo)

    def test_build_stats(self, engine, project):
        stats = engine.build_graph(str(project))
        assert stats.files_discovered == 2
        assert stats.files_extracted == 2
        assert stats.files_skipped == 0
        assert stats.node_count == 3
        assert stats.concept_count == engine.stats()["concept_count"]

    def test_published_graph_is_frozen(self, engine, project):
        engine.build_graph(str(project))
        assert engine.graph.frozen

    def test_rebuild_is_idempotent(self, engine, project):
        engine.build_graph(str(project))
        first = engine.export()
        engine.build_graph(str(project))
        second = engine.export()
        assert [n["id"] for n in first["nodes"]] == [n["id"] for n in second["nodes"]]
        assert [r["id"] for r in first["relationships"]] == [r["id"] for r in second["relationships"]]
        assert [c["id"] for c in first["concepts"]] == [c["id"] for c in second["concepts"]]

    def test_missing_root(self, engine, tmp_path):
        with pytest.raises(GraphBuildError):
            engine.build_graph(str(tmp_path / "nope"))

    def test_skipped_file_counted(self, engine, project, monkeypatch):
        from codegraph import indexer

        real_extract = indexer.extract_file

        def _flaky(root, rel_path):
            if rel_path == "b.js":
                return None
            return real_extract(root, rel_path)

        monkeypatch.setattr(indexer, "extract_file", _flaky)
        stats = engine.build_graph(str(project))
        assert stats.files_skipped == 1
        assert engine.stats()["node_type_distribution"] == {"file": 1, "function": 1}

    def test_custom_similarity_index(self, project):
        class NoSimilarity(SimilarityIndex):
            def pairs(self, ids, vectors, threshold, cancel_token=None):
                return []

        engine = KnowledgeGraphEngine(EngineConfig(), similarity_index=NoSimilarity())
        engine.build_graph(str(project))
        assert RelationshipType.SIMILAR_TO not in _rel_counts(engine)

    def test_progress_callback(self, engine, project):
        seen = []
        engine.build_graph(str(project), progress_callback=lambda i, n, p: seen.append((i, n)))
        assert sorted(seen) == [(1, 2), (2, 2)]


class TestCancellation:
    def test_cancelled_before_start(self, engine, project):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(BuildCancelled):
            engine.build_graph(str(project), cancel_token=token)
        assert engine.stats()["node_count"] == 0

    def test_cancelled_mid_build_keeps_previous_graph(self, engine, project, cyclic_project):
        engine.build_graph(str(project))
        before = engine.stats()

        token = CancellationToken()
        with pytest.raises(BuildCancelled):
            engine.build_graph(str(cyclic_project), cancel_token=token,
                               progress_callback=lambda *_: token.cancel())
        assert engine.stats() == before


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

class TestQuery:
    def test_finds_function(self, engine, project):
        engine.build_graph(str(project))
        result = engine.query("foo")
        assert [n.name for n in result.nodes] == ["foo"]

    def test_no_lexical_overlap(self, engine, project):
        engine.build_graph(str(project))
        result = engine.query("zzz_no_such_token")
        assert result.nodes == []
        assert result.suggestions

    def test_before_any_build(self, engine):
        result = engine.query("anything")
        assert result.nodes == []
        assert result.suggestions

    def test_rare_name_outside_vocabulary(self, engine, tmp_path):
        for i in range(150):
            (tmp_path / f"mod_{i}.js").write_text(f"export function helper{i}() {{}}\n")
        (tmp_path / "pay.js").write_text("export function settleInvoice() {}\n")
        engine.build_graph(str(tmp_path))
        assert "settleinvoice" not in engine.graph.vectorizer.vocabulary

        result = engine.query("settleInvoice")
        assert "settleInvoice" in [n.name for n in result.nodes]
        assert "Check spelling and try synonyms" not in result.suggestions

    def test_cycle_reported_once(self, engine, cyclic_project):
        engine.build_graph(str(cyclic_project))
        result = engine.query("javascript")
        assert len(result.nodes) == 3
        cycles = [i for i in result.insights if i.title == "Circular Dependencies Detected"]
        assert len(cycles) == 1
        expected = {file_node_id(p) for p in ("a.js", "b.js", "c.js")}
        assert set(cycles[0].affected_nodes) == expected


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class TestEvents:
    def test_graph_built_payload(self, engine, project):
        events = []
        engine.add_listener("graph_built", events.append)
        engine.build_graph(str(project))
        assert len(events) == 1
        stats = engine.stats()
        assert events[0] == {
            "node_count": stats["node_count"],
            "relationship_count": stats["relationship_count"],
            "concept_count": stats["concept_count"],
        }

    def test_query_executed_payload(self, engine, project):
        events = []
        engine.add_listener("query_executed", events.append)
        engine.build_graph(str(project))
        engine.query("foo")
        assert len(events) == 1
        assert events[0]["query_text"] == "foo"
        assert events[0]["result_count"] == 1
        assert events[0]["duration"] >= 0
        assert 0 <= events[0]["relevance_score"] <= 1

    def test_failing_listener_does_not_propagate(self, engine, project):
        def _boom(payload):
            raise RuntimeError("listener failure")

        engine.add_listener("graph_built", _boom)
        engine.build_graph(str(project))
        assert engine.stats()["node_count"] == 3

    def test_remove_listener(self, engine, project):
        events = []
        engine.add_listener("graph_built", events.append)
        engine.remove_listener("graph_built", events.append)
        engine.build_graph(str(project))
        assert events == []

    def test_unknown_event(self, engine):
        with pytest.raises(ValueError):
            engine.add_listener("graph_exploded", print)


# ---------------------------------------------------------------------------
# Export / visualize
# ---------------------------------------------------------------------------

class TestExport:
    def test_json_serialisable(self, engine, project):
        engine.build_graph(str(project))
        snapshot = engine.export()
        json.dumps(snapshot)
        assert snapshot["metadata"]["version"] == "1.0.0"
        assert "export_date" in snapshot["metadata"]
        assert len(snapshot["nodes"]) == 3
        assert {c["id"] for c in snapshot["concepts"]} >= {"concept_mvc", "concept_solid"}

    def test_visualize(self, engine, project):
        engine.build_graph(str(project))
        view = engine.visualize()
        foo = next(n for n in view["nodes"] if n["label"] == "foo")
        assert foo["type"] == NodeType.FUNCTION
        assert foo["color"] == NODE_COLORS[NodeType.FUNCTION]
        assert foo["size"] == pytest.approx(engine.graph.get_node(foo["id"]).importance * 20)
        assert len(view["edges"]) == engine.stats()["relationship_count"]
        edge = view["edges"][0]
        assert set(edge) == {"id", "source", "target", "label", "weight"}
