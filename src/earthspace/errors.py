"""
earthspace - Exceptions

Errors raised by the coordination engine.

Only caller misuse is exceptional here. Outcomes such as "no route between
these nodes" or "this task does not fit in the window" are ordinary return
values and never raise.
"""

from typing import Optional, Dict, Any, Iterable


class EarthSpaceError(Exception):
    """Base exception for all earthspace errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(EarthSpaceError):
    """Raised when a value fails validation at construction time."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Validation error on '{field}': {message}")
        self.field = field


class TopologyError(EarthSpaceError):
    """Raised when an operation references nodes the topology doesn't hold."""

    def __init__(self, message: str, node_ids: Iterable[str] = ()):
        node_ids = list(node_ids)
        super().__init__(message, {"node_ids": node_ids} if node_ids else None)
        self.node_ids = node_ids


class AggregationError(EarthSpaceError):
    """Raised when the aggregator is asked to combine nothing."""

    pass
