"""Pure group decision engine: tallies, response ledger, lifecycle and aggregates.

Nothing in this package performs I/O or holds module-level state.
"""
from decisions.engine.aggregates import Event, OptionSpec, Poll, create_event, create_poll
from decisions.engine.errors import (
    AggregateLocked,
    DecisionError,
    Forbidden,
    InvalidReference,
    InvalidTransition,
    ValidationError,
)
from decisions.engine.ledger import ResponseLedger
from decisions.engine.lifecycle import EventStatus, PollStatus
from decisions.engine.records import EventType, Option, OptionKind, Response, RSVPType
from decisions.engine.tally import TalliedOption, leader, leaders, tally, tally_by_kind

__all__ = [
    "AggregateLocked",
    "DecisionError",
    "Event",
    "EventStatus",
    "EventType",
    "Forbidden",
    "InvalidReference",
    "InvalidTransition",
    "Option",
    "OptionKind",
    "OptionSpec",
    "Poll",
    "PollStatus",
    "Response",
    "ResponseLedger",
    "RSVPType",
    "TalliedOption",
    "ValidationError",
    "create_event",
    "create_poll",
    "leader",
    "leaders",
    "tally",
    "tally_by_kind",
]
