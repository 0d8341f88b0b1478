"""Event and poll lifecycle: status enums, the transition table, and guards.

``proposed`` and ``voting`` are both open states. They differ only in the
label shown to people; every gate below treats them the same.
"""
import enum
import logging
from typing import Optional

from decisions.engine.errors import AggregateLocked, Forbidden, InvalidTransition

logger = logging.getLogger(__name__)


class EventStatus(str, enum.Enum):
    proposed = "proposed"
    voting = "voting"
    confirmed = "confirmed"
    cancelled = "cancelled"


class PollStatus(str, enum.Enum):
    open = "open"
    closed = "closed"


OPEN_EVENT_STATUSES = frozenset({EventStatus.proposed, EventStatus.voting})
TERMINAL_EVENT_STATUSES = frozenset({EventStatus.confirmed, EventStatus.cancelled})

EVENT_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.proposed: frozenset({EventStatus.voting, EventStatus.confirmed, EventStatus.cancelled}),
    EventStatus.voting: frozenset({EventStatus.proposed, EventStatus.confirmed, EventStatus.cancelled}),
    EventStatus.confirmed: frozenset(),
    EventStatus.cancelled: frozenset(),
}


def is_terminal(status: EventStatus) -> bool:
    return status in TERMINAL_EVENT_STATUSES


def can_transition(current: EventStatus, target: EventStatus) -> bool:
    return target in EVENT_TRANSITIONS[current]


def ensure_creator(creator_id: Optional[str], user_id: str, action: str) -> None:
    """Only the creator may finalize, cancel, close, edit or delete."""
    if creator_id is None or creator_id != user_id:
        raise Forbidden(f"Only the creator may {action}.")


def ensure_event_transition(current: EventStatus, target: EventStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot move event from '{current.value}' to '{target.value}'.")
    logger.debug("Event transition %s -> %s", current.value, target.value)


def ensure_event_editable(current: EventStatus) -> None:
    if is_terminal(current):
        raise InvalidTransition(f"Event is {current.value} and can no longer be edited.")


def ensure_event_accepts_votes(current: EventStatus) -> None:
    if current not in OPEN_EVENT_STATUSES:
        raise AggregateLocked(f"Event is {current.value}; voting is closed.")


def ensure_event_accepts_rsvps(current: EventStatus) -> None:
    # Late RSVPs are fine after confirmation; only cancellation locks them.
    if current == EventStatus.cancelled:
        raise AggregateLocked("Event is cancelled; RSVPs are closed.")


def ensure_poll_accepts_votes(current: PollStatus) -> None:
    if current != PollStatus.open:
        raise AggregateLocked("Poll is closed.")


def ensure_poll_closable(current: PollStatus) -> None:
    if current == PollStatus.closed:
        raise InvalidTransition("Poll is already closed.")
    logger.debug("Poll transition open -> closed")
