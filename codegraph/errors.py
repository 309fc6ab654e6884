"""
Error taxonomy for the knowledge-graph engine.

Only :class:`GraphBuildError` and :class:`BuildCancelled` ever reach a
caller.  The others are raised and caught inside the engine: per-file and
per-entity failures are logged and counted, query failures degrade to an
empty result.
"""

from __future__ import annotations


class CodeGraphError(Exception):
    """Base class for all engine errors."""


class GraphBuildError(CodeGraphError):
    """The build could not start (e.g. the root path does not exist)."""


class BuildCancelled(CodeGraphError):
    """The build was cancelled through its :class:`CancellationToken`."""


class ExtractionAmbiguity(CodeGraphError):
    """A lexical pattern matched but could not be turned into an entity or edge."""


class DimensionMismatch(CodeGraphError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vector dimensions differ: {left} != {right}")
        self.left = left
        self.right = right


class QueryError(CodeGraphError):
    """A query was empty or carried malformed filters."""
