"""
Unit tests for codegraph.patterns
"""

from __future__ import annotations

import pytest

from codegraph.models import ConceptCategory, Node, NodeType, make_node_id
from codegraph.patterns import (
    detect_anti_patterns,
    detect_architecture,
    detect_design_patterns,
    detect_domain_concepts,
    recognize_patterns,
    split_terms,
)


def _node(name, node_type=NodeType.CLASS, **metadata):
    return Node(id=make_node_id(node_type, name), type=node_type, name=name, metadata=metadata)


def _ids(concepts):
    return [c.id for c in concepts]


class TestArchitecture:
    def test_mvc(self):
        nodes = [_node("UserController"), _node("UserModel"), _node("UserView")]
        concepts = detect_architecture(nodes)
        assert _ids(concepts) == ["pattern_mvc"]
        assert concepts[0].confidence == 0.8
        assert concepts[0].category == ConceptCategory.ARCHITECTURE

    def test_component_counts_as_view(self):
        nodes = [_node("OrderController"), _node("OrderModel"), _node("OrderComponent")]
        assert _ids(detect_architecture(nodes)) == ["pattern_mvc"]

    def test_mvc_needs_all_three(self):
        nodes = [_node("UserController"), _node("UserModel")]
        assert detect_architecture(nodes) == []

    def test_microservices_needs_more_than_three(self):
        names = ["AuthService", "UserService", "MailService"]
        assert detect_architecture([_node(n) for n in names]) == []
        concepts = detect_architecture([_node(n) for n in names + ["BillingService"]])
        assert _ids(concepts) == ["pattern_microservices"]
        assert concepts[0].confidence == 0.7


class TestDesignPatterns:
    def test_singleton_by_name(self):
        node = _node("ConfigSingleton")
        concepts = detect_design_patterns([node])
        assert _ids(concepts) == [f"pattern_singleton_{node.id}"]
        assert concepts[0].confidence == 0.8

    def test_singleton_by_flag(self):
        node = _node("Registry", is_singleton=True)
        assert _ids(detect_design_patterns([node])) == [f"pattern_singleton_{node.id}"]

    def test_singleton_only_for_classes(self):
        assert detect_design_patterns([_node("singletonHelper", NodeType.FUNCTION)]) == []

    def test_factory_any_node_type(self):
        node = _node("widgetFactory", NodeType.FUNCTION)
        concepts = detect_design_patterns([node])
        assert _ids(concepts) == [f"pattern_factory_{node.id}"]
        assert concepts[0].confidence == 0.7


class TestAntiPatterns:
    def test_god_object_over_500_lines(self):
        big = _node("Everything", line_count=501)
        concepts = detect_anti_patterns([big, _node("Small", line_count=500)])
        assert _ids(concepts) == [f"antipattern_god_object_{big.id}"]
        assert concepts[0].confidence == 0.6

    def test_ignores_non_classes(self):
        assert detect_anti_patterns([_node("huge", NodeType.FUNCTION, line_count=900)]) == []


class TestDomainConcepts:
    def test_split_terms(self):
        assert split_terms("UserAccountService") == ["user", "account", "service"]
        assert split_terms("order_item-db.js") == ["order", "item"]

    def test_terms_above_two_occurrences(self):
        nodes = [_node("UserController"), _node("UserModel"), _node("UserView")]
        concepts = detect_domain_concepts(nodes)
        assert _ids(concepts) == ["domain_user"]
        assert concepts[0].confidence == pytest.approx(0.3)
        assert concepts[0].category == ConceptCategory.BUSINESS_LOGIC

    def test_confidence_capped(self):
        nodes = [_node(f"OrderItem{i}") for i in range(12)]
        concepts = detect_domain_concepts(nodes)
        assert concepts[0].confidence == 0.9


class TestRecognizePatterns:
    def test_idempotent(self):
        nodes = [
            _node("UserController"), _node("UserModel"), _node("UserView"),
            _node("SessionFactory"), _node("Cache", is_singleton=True),
        ]
        first = recognize_patterns(nodes)
        second = recognize_patterns(nodes)
        assert _ids(first) == _ids(second)
        assert len(set(_ids(first))) == len(first)

    def test_empty(self):
        assert recognize_patterns([]) == []
