"""Leaf records shared by the tally, the ledger and the aggregates."""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

RSVP_AXIS = "rsvp"
POLL_AXIS = "poll"


class OptionKind(str, enum.Enum):
    datetime = "datetime"
    location = "location"
    activity = "activity"


class RSVPType(str, enum.Enum):
    yes = "yes"
    no = "no"
    maybe = "maybe"


class EventType(str, enum.Enum):
    meeting = "meeting"
    hangout = "hangout"
    meal = "meal"
    activity = "activity"
    other = "other"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Option:
    """One choice on an event or poll. Poll options carry no kind."""

    option_id: str
    aggregate_id: str
    value: str
    kind: Optional[OptionKind] = None
    sort_order: int = 0
    created_at: datetime = field(default_factory=utc_now)

    @property
    def axis(self) -> str:
        """The voting dimension this option competes on."""
        return self.kind.value if self.kind else POLL_AXIS


@dataclass
class Response:
    """A vote (``option_id`` set) or an RSVP (``response_type`` set)."""

    response_id: str
    aggregate_id: str
    user_id: str
    axis: str
    option_id: Optional[str] = None
    response_type: Optional[RSVPType] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_vote(self) -> bool:
        return self.option_id is not None
