"""Typed failures raised by the decision engine.

Every engine operation checks its preconditions before touching state, so
when one of these is raised the aggregate is exactly as it was before the
call. The HTTP layer maps ``kind`` to a status code; the engine itself does
not know about transports.
"""


class DecisionError(Exception):
    """Base class for every failure surfaced by the engine and service layer."""

    kind = "DecisionError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DecisionError):
    """Malformed input: empty title, wrong option count, unknown patch field."""

    kind = "ValidationError"


class Forbidden(DecisionError):
    """A non-creator attempted a creator-only action."""

    kind = "Forbidden"


class InvalidTransition(DecisionError):
    """A lifecycle transition was attempted from a terminal or incompatible state."""

    kind = "InvalidTransition"


class AggregateLocked(DecisionError):
    """A vote or RSVP arrived after the aggregate stopped accepting them."""

    kind = "AggregateLocked"


class InvalidReference(DecisionError):
    """An option id that does not belong to the target aggregate."""

    kind = "InvalidReference"
