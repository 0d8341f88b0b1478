"""Failures raised by the service layer on top of the engine's own taxonomy."""
from decisions.engine.errors import DecisionError


class NotFound(DecisionError):
    kind = "NotFound"


class ConcurrentModification(DecisionError):
    """Another writer changed the aggregate first; re-fetch and retry."""

    kind = "ConcurrentModification"
