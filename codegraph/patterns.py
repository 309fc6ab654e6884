"""
Pattern recognizer — detects architectural styles, design patterns,
anti-patterns and recurring domain terms from node names and metadata.

Every detector is a pure function of the node list and returns
:class:`~codegraph.models.Concept` objects with deterministic ids, so
running detection twice over the same graph yields the same concept set.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Iterable

from .models import Concept, ConceptCategory, Node, NodeType

logger = logging.getLogger(__name__)

MICROSERVICES_MIN_SERVICES = 3      # strictly more than this many
GOD_OBJECT_MIN_LINES = 500          # strictly more than this many
DOMAIN_TERM_MIN_FREQUENCY = 2       # strictly more than this many
DOMAIN_TERM_MIN_LENGTH = 3

_TERM_SPLIT_RE = re.compile(r"(?=[A-Z])|[_\-.]")


# ---------------------------------------------------------------------------
# Architectural patterns
# ---------------------------------------------------------------------------

def detect_architecture(nodes: list[Node]) -> list[Concept]:
    """MVC when controller, model and view/component names coexist; microservices."""
    names = [n.name.lower() for n in nodes]
    concepts: list[Concept] = []

    has_controller = any("controller" in n for n in names)
    has_model = any("model" in n for n in names)
    has_view = any("view" in n or "component" in n for n in names)
    if has_controller and has_model and has_view:
        concepts.append(Concept(
            id="pattern_mvc",
            name="MVC Architecture",
            description="Model-View-Controller architectural pattern detected",
            category=ConceptCategory.ARCHITECTURE,
            keywords=frozenset({"mvc", "controller", "model", "view"}),
            related_concepts=frozenset({"separation_of_concerns"}),
            code_patterns=frozenset({"*Controller.*", "*Model.*", "*View.*"}),
            confidence=0.8,
        ))

    services = sum(1 for n in names if "service" in n)
    if services > MICROSERVICES_MIN_SERVICES:
        concepts.append(Concept(
            id="pattern_microservices",
            name="Microservices Architecture",
            description=f"Microservices pattern with {services} service components",
            category=ConceptCategory.ARCHITECTURE,
            keywords=frozenset({"microservices", "service", "api"}),
            related_concepts=frozenset({"distributed_systems"}),
            code_patterns=frozenset({"*Service.*"}),
            confidence=0.7,
        ))
    return concepts


# ---------------------------------------------------------------------------
# Design patterns / anti-patterns
# ---------------------------------------------------------------------------

def _is_singleton(node: Node) -> bool:
    if node.type != NodeType.CLASS:
        return False
    return "singleton" in node.name.lower() or node.metadata.get("is_singleton") is True


def detect_design_patterns(nodes: list[Node]) -> list[Concept]:
    """Per-node Singleton (classes) and Factory (any node) concepts."""
    concepts: list[Concept] = []
    for node in nodes:
        if _is_singleton(node):
            concepts.append(Concept(
                id=f"pattern_singleton_{node.id}",
                name="Singleton Pattern",
                description=f"Singleton pattern in {node.name}",
                category=ConceptCategory.DESIGN_PATTERN,
                keywords=frozenset({"singleton", "instance", "private"}),
                related_concepts=frozenset({"creational_patterns"}),
                code_patterns=frozenset({"getInstance", "private constructor"}),
                confidence=0.8,
            ))
        if "factory" in node.name.lower():
            concepts.append(Concept(
                id=f"pattern_factory_{node.id}",
                name="Factory Pattern",
                description=f"Factory pattern in {node.name}",
                category=ConceptCategory.DESIGN_PATTERN,
                keywords=frozenset({"factory", "create", "instance"}),
                related_concepts=frozenset({"creational_patterns"}),
                code_patterns=frozenset({"create*", "*Factory"}),
                confidence=0.7,
            ))
    return concepts


def detect_anti_patterns(nodes: list[Node]) -> list[Concept]:
    """God Object for every class longer than :data:`GOD_OBJECT_MIN_LINES`."""
    concepts: list[Concept] = []
    for node in nodes:
        if node.type != NodeType.CLASS:
            continue
        line_count = node.metadata.get("line_count")
        if not isinstance(line_count, (int, float)) or isinstance(line_count, bool):
            continue
        if line_count > GOD_OBJECT_MIN_LINES:
            concepts.append(Concept(
                id=f"antipattern_god_object_{node.id}",
                name="God Object Anti-pattern",
                description=f"{node.name} has {int(line_count)} lines and may have too many responsibilities",
                category=ConceptCategory.DESIGN_PATTERN,
                keywords=frozenset({"god object", "large class", "complexity"}),
                related_concepts=frozenset({"code_smells"}),
                code_patterns=frozenset({node.name}),
                confidence=0.6,
            ))
    return concepts


# ---------------------------------------------------------------------------
# Domain terms
# ---------------------------------------------------------------------------

def split_terms(name: str) -> list[str]:
    """
    Split an identifier on case boundaries, ``_``, ``-`` and ``.``.

    >>> split_terms("UserAccountService")
    ['user', 'account', 'service']
    """
    return [
        t.lower() for t in _TERM_SPLIT_RE.split(name)
        if len(t) >= DOMAIN_TERM_MIN_LENGTH
    ]


def detect_domain_concepts(nodes: list[Node]) -> list[Concept]:
    """Promote terms that occur in more than two node names to domain concepts."""
    frequency: Counter = Counter()
    for node in nodes:
        frequency.update(split_terms(node.name))

    concepts: list[Concept] = []
    for term in sorted(frequency):
        count = frequency[term]
        if count <= DOMAIN_TERM_MIN_FREQUENCY:
            continue
        concepts.append(Concept(
            id=f"domain_{term}",
            name=term,
            description=f"Domain concept: {term}",
            category=ConceptCategory.BUSINESS_LOGIC,
            keywords=frozenset({term}),
            code_patterns=frozenset({f"*{term}*"}),
            confidence=min(0.9, count / 10),
        ))
    return concepts


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

DETECTORS = (
    detect_architecture,
    detect_design_patterns,
    detect_anti_patterns,
    detect_domain_concepts,
)


def recognize_patterns(nodes: Iterable[Node]) -> list[Concept]:
    """
    Run every detector over *nodes*.

    Returns
    -------
    list[Concept]
        Concepts in detector order; ids are unique within the list.
    """
    node_list = list(nodes)
    seen: set[str] = set()
    concepts: list[Concept] = []
    for detector in DETECTORS:
        for concept in detector(node_list):
            if concept.id in seen:
                continue
            seen.add(concept.id)
            concepts.append(concept)
    logger.debug("Pattern recognition produced %d concepts", len(concepts))
    return concepts
