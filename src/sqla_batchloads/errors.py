"""Exception hierarchy for sqla_batchloads.

Every error raised by the library inherits from ``QueryComposerError`` so
callers can catch the base class.  Executor failures are never wrapped:
whatever the executor raises reaches the awaiting caller unchanged.
"""

from __future__ import annotations


class QueryComposerError(Exception):
    """Base exception for all sqla_batchloads errors."""


class RelationNotFoundError(QueryComposerError):
    """Raised when a relation name is not declared on a model.

    Args:
        relation: The requested relation name.
        model: Name of the model that was searched.
    """

    def __init__(self, relation: str, model: str) -> None:
        super().__init__(f"Relation '{relation}' not found on model '{model}'")
        self.relation = relation
        self.model = model


class InvalidColumnError(QueryComposerError):
    """Raised when a column reference cannot be resolved to ``table.column``."""

    def __init__(self, column: str, reason: str) -> None:
        super().__init__(f"Invalid column '{column}': {reason}")
        self.column = column
        self.reason = reason
