"""Event and Poll aggregates and the operations people perform on them.

Each operation validates everything it needs before it changes anything, so a
raised ``DecisionError`` always leaves the aggregate untouched. Operations
return the aggregate itself so callers can chain or re-read derived state.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

import pytz

from decisions.engine import lifecycle
from decisions.engine.errors import InvalidReference, ValidationError
from decisions.engine.ledger import ResponseLedger
from decisions.engine.lifecycle import EventStatus, PollStatus
from decisions.engine.tally import AxisSummary, TalliedOption, summarize, tally_by_kind
from decisions.engine.tally import tally as tally_options
from decisions.engine.records import (
    POLL_AXIS,
    EventType,
    Option,
    OptionKind,
    Response,
    RSVPType,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
QUESTION_MAX_LENGTH = 500
OPTION_VALUE_MAX_LENGTH = 500
POLL_OPTION_MAX_LENGTH = 200
POLL_MIN_OPTIONS = 2
POLL_MAX_OPTIONS = 4
MIN_OPTIONS_PER_KIND = 2

EDITABLE_EVENT_FIELDS = frozenset(
    {"title", "description", "event_date", "timezone", "event_type", "status", "options"}
)


@dataclass(frozen=True)
class OptionSpec:
    """Input shape for an event option. ``option_id`` is set only when editing an existing one."""

    kind: Any
    value: str
    option_id: Optional[str] = None


# ── Input validation ───────────────────────────────────────────────
def _require_text(value: Optional[str], field_name: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} must not be empty.")
    if len(text) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters.")
    return text


def _optional_text(value: Optional[str], field_name: str, max_length: int) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters.")
    return text or None


def _coerce_enum(enum_cls, value: Any, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field_name} '{value}'. Expected one of: {allowed}.")


def _validate_timezone(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone '{name}'.")
    return name


def _normalize_event_date(value: Optional[datetime], tz_name: Optional[str]) -> Optional[datetime]:
    """Store event dates in UTC. Naive datetimes are read in ``tz_name`` (UTC when unset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        zone = pytz.timezone(tz_name) if tz_name else pytz.utc
        value = zone.localize(value)
    return value.astimezone(pytz.utc)


def _validate_option_groups(options: Sequence[Option]) -> None:
    per_kind = Counter(opt.axis for opt in options)
    thin = sorted(kind for kind, count in per_kind.items() if count < MIN_OPTIONS_PER_KIND)
    if thin:
        raise ValidationError(
            f"Each voted option group needs at least {MIN_OPTIONS_PER_KIND} options: {', '.join(thin)}."
        )


# ── Event ──────────────────────────────────────────────────────────
@dataclass
class Event:
    event_id: str
    chat_id: str
    creator_id: str
    title: str
    event_type: EventType = EventType.other
    status: EventStatus = EventStatus.proposed
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    timezone: Optional[str] = None
    finalized_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int = 1
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    options: list[Option] = field(default_factory=list)
    ledger: Optional[ResponseLedger] = None

    def __post_init__(self):
        if self.ledger is None:
            self.ledger = ResponseLedger(self.event_id)

    @property
    def responses(self) -> list[Response]:
        return self.ledger.responses

    @property
    def is_locked(self) -> bool:
        return lifecycle.is_terminal(self.status)

    def option(self, option_id: str) -> Option:
        for opt in self.options:
            if opt.option_id == option_id:
                return opt
        raise InvalidReference(f"Option {option_id} does not belong to event {self.event_id}.")

    # ── Derived views ──────────────────────────────────────────────
    def tallies(self) -> dict[str, list[TalliedOption]]:
        return tally_by_kind(self.options, self.ledger.votes())

    def axis_summaries(self) -> dict[str, AxisSummary]:
        return {kind: summarize(group) for kind, group in self.tallies().items()}

    def find_user_vote(self, user_id: str, kind: Optional[str] = None) -> Optional[Response]:
        return self.ledger.find_user_vote(user_id, kind)

    def find_user_rsvp(self, user_id: str) -> Optional[Response]:
        return self.ledger.find_user_rsvp(user_id)

    def count_rsvp_by_type(self) -> dict[str, int]:
        return self.ledger.count_rsvp_by_type()

    # ── Operations ─────────────────────────────────────────────────
    def vote(self, user_id: str, option_id: str, now: Optional[datetime] = None) -> "Event":
        lifecycle.ensure_event_accepts_votes(self.status)
        option = self.option(option_id)
        self.ledger.submit_vote(user_id, option, now)
        return self

    def retract_vote(self, user_id: str, option_id: str) -> "Event":
        lifecycle.ensure_event_accepts_votes(self.status)
        option = self.option(option_id)
        self.ledger.retract_vote(user_id, option.axis)
        return self

    def rsvp(self, user_id: str, response_type: Any, now: Optional[datetime] = None) -> "Event":
        lifecycle.ensure_event_accepts_rsvps(self.status)
        kind = _coerce_enum(RSVPType, response_type, "response type")
        self.ledger.submit_rsvp(user_id, kind, now)
        return self

    def finalize(self, user_id: str, now: Optional[datetime] = None) -> "Event":
        """Lock voting and mark the event confirmed. Votes are not required."""
        lifecycle.ensure_creator(self.creator_id, user_id, "finalize this event")
        lifecycle.ensure_event_transition(self.status, EventStatus.confirmed)
        now = now or utc_now()
        self.status = EventStatus.confirmed
        self.finalized_at = now
        self.updated_at = now
        return self

    def cancel(self, user_id: str, now: Optional[datetime] = None) -> "Event":
        lifecycle.ensure_creator(self.creator_id, user_id, "cancel this event")
        lifecycle.ensure_event_transition(self.status, EventStatus.cancelled)
        now = now or utc_now()
        self.status = EventStatus.cancelled
        self.cancelled_at = now
        self.updated_at = now
        return self

    def ensure_deletable(self, user_id: str) -> None:
        lifecycle.ensure_creator(self.creator_id, user_id, "delete this event")

    def edit(self, user_id: str, updates: dict[str, Any], now: Optional[datetime] = None) -> "Event":
        """Apply a partial update from the creator while the event is still open.

        An ``options`` entry replaces the whole option list. Options missing
        from it are removed together with the votes that referenced them.
        """
        lifecycle.ensure_creator(self.creator_id, user_id, "edit this event")
        lifecycle.ensure_event_editable(self.status)

        unknown = set(updates) - EDITABLE_EVENT_FIELDS
        if unknown:
            raise ValidationError(f"Cannot edit field(s): {', '.join(sorted(unknown))}.")

        changes: dict[str, Any] = {}
        if "title" in updates:
            changes["title"] = _require_text(updates["title"], "Title", TITLE_MAX_LENGTH)
        if "description" in updates:
            changes["description"] = _optional_text(updates["description"], "Description", DESCRIPTION_MAX_LENGTH)
        if "event_type" in updates:
            changes["event_type"] = _coerce_enum(EventType, updates["event_type"], "event type")
        if "timezone" in updates:
            changes["timezone"] = _validate_timezone(updates["timezone"])
        if "event_date" in updates:
            tz_name = changes.get("timezone", self.timezone)
            changes["event_date"] = _normalize_event_date(updates["event_date"], tz_name)
        if "status" in updates:
            target = _coerce_enum(EventStatus, updates["status"], "status")
            if target not in lifecycle.OPEN_EVENT_STATUSES:
                raise ValidationError(f"Use finalize or cancel to move an event to '{target.value}'.")
            if target != self.status:
                lifecycle.ensure_event_transition(self.status, target)
            changes["status"] = target

        removed_ids: set[str] = set()
        if "options" in updates:
            if updates["options"] is None:
                raise ValidationError("options must be the full option list; send [] to remove every option.")
            new_options, removed_ids = self._replan_options(updates["options"])
            changes["options"] = new_options

        for name, value in changes.items():
            setattr(self, name, value)
        if removed_ids:
            dropped = self.ledger.drop_votes_for(removed_ids)
            logger.debug("Dropped %d vote(s) for %d removed option(s)", len(dropped), len(removed_ids))
        self.updated_at = now or utc_now()
        return self

    def _replan_options(self, specs: Iterable[OptionSpec]) -> tuple[list[Option], set[str]]:
        current = {opt.option_id: opt for opt in self.options}
        planned: list[Option] = []
        seen: set[str] = set()
        for index, spec in enumerate(specs):
            kind = _coerce_enum(OptionKind, spec.kind, "option type")
            value = _require_text(spec.value, "Option value", OPTION_VALUE_MAX_LENGTH)
            if spec.option_id is None:
                planned.append(Option(new_id(), self.event_id, value, kind, index))
                continue
            if spec.option_id in seen:
                raise ValidationError(f"Option {spec.option_id} is listed twice.")
            existing = current.get(spec.option_id)
            if existing is None:
                raise InvalidReference(f"Option {spec.option_id} does not belong to event {self.event_id}.")
            if existing.kind != kind:
                raise ValidationError(f"Option {spec.option_id} cannot change type.")
            seen.add(spec.option_id)
            planned.append(Option(existing.option_id, self.event_id, value, kind, index, existing.created_at))
        _validate_option_groups(planned)
        return planned, set(current) - seen


def create_event(
    chat_id: str,
    creator_id: str,
    title: str,
    event_type: Any = EventType.other,
    options: Optional[Iterable[OptionSpec]] = None,
    description: Optional[str] = None,
    event_date: Optional[datetime] = None,
    timezone: Optional[str] = None,
    status: Any = EventStatus.proposed,
    now: Optional[datetime] = None,
) -> Event:
    """Build a new open event, validating every input before anything is created."""
    _require_text(chat_id, "Chat id", 64)
    _require_text(creator_id, "Creator id", 64)
    clean_title = _require_text(title, "Title", TITLE_MAX_LENGTH)
    kind = _coerce_enum(EventType, event_type, "event type")
    initial = _coerce_enum(EventStatus, status, "status")
    if initial not in lifecycle.OPEN_EVENT_STATUSES:
        raise ValidationError("New events start as 'proposed' or 'voting'.")
    tz_name = _validate_timezone(timezone)

    now = now or utc_now()
    event_id = new_id()
    built: list[Option] = []
    for index, spec in enumerate(options or []):
        built.append(Option(
            option_id=new_id(),
            aggregate_id=event_id,
            value=_require_text(spec.value, "Option value", OPTION_VALUE_MAX_LENGTH),
            kind=_coerce_enum(OptionKind, spec.kind, "option type"),
            sort_order=index,
            created_at=now,
        ))
    _validate_option_groups(built)

    return Event(
        event_id=event_id,
        chat_id=chat_id,
        creator_id=creator_id,
        title=clean_title,
        event_type=kind,
        status=initial,
        description=_optional_text(description, "Description", DESCRIPTION_MAX_LENGTH),
        event_date=_normalize_event_date(event_date, tz_name),
        timezone=tz_name,
        created_at=now,
        updated_at=now,
        options=built,
    )


# ── Poll ───────────────────────────────────────────────────────────
@dataclass
class Poll:
    poll_id: str
    chat_id: str
    question: str
    creator_id: Optional[str] = None
    status: PollStatus = PollStatus.open
    member_count: Optional[int] = None
    closed_at: Optional[datetime] = None
    version: int = 1
    created_at: datetime = field(default_factory=utc_now)
    options: list[Option] = field(default_factory=list)
    ledger: Optional[ResponseLedger] = None

    def __post_init__(self):
        if self.ledger is None:
            self.ledger = ResponseLedger(self.poll_id)

    @property
    def responses(self) -> list[Response]:
        return self.ledger.responses

    @property
    def is_locked(self) -> bool:
        return self.status == PollStatus.closed

    @property
    def total_votes(self) -> int:
        return len(self.ledger.votes())

    @property
    def all_voted(self) -> bool:
        """True once every expected voter has voted. Unknown audience never counts as complete."""
        return self.member_count is not None and self.total_votes >= self.member_count

    def option(self, option_id: str) -> Option:
        for opt in self.options:
            if opt.option_id == option_id:
                return opt
        raise InvalidReference(f"Option {option_id} does not belong to poll {self.poll_id}.")

    def tally(self) -> list[TalliedOption]:
        return tally_options(self.options, self.ledger.votes())

    def summary(self) -> AxisSummary:
        return summarize(self.tally())

    def find_user_vote(self, user_id: str) -> Optional[Response]:
        return self.ledger.find_user_vote(user_id)

    def vote(self, user_id: str, option_id: str, now: Optional[datetime] = None) -> "Poll":
        """Record or move the user's vote; closes the poll when everyone expected has voted."""
        lifecycle.ensure_poll_accepts_votes(self.status)
        option = self.option(option_id)
        now = now or utc_now()
        self.ledger.submit_vote(user_id, option, now)
        if self.all_voted:
            self.status = PollStatus.closed
            self.closed_at = now
            logger.debug("Poll %s closed automatically after %d votes", self.poll_id, self.total_votes)
        return self

    def retract_vote(self, user_id: str) -> "Poll":
        lifecycle.ensure_poll_accepts_votes(self.status)
        self.ledger.retract_vote(user_id, POLL_AXIS)
        return self

    def close(self, user_id: str, now: Optional[datetime] = None) -> "Poll":
        lifecycle.ensure_creator(self.creator_id, user_id, "close this poll")
        lifecycle.ensure_poll_closable(self.status)
        self.status = PollStatus.closed
        self.closed_at = now or utc_now()
        return self

    # Closing is the poll form of cancellation.
    cancel = close

    def ensure_deletable(self, user_id: str) -> None:
        lifecycle.ensure_creator(self.creator_id, user_id, "delete this poll")


def create_poll(
    chat_id: str,
    question: str,
    options: Sequence[str],
    creator_id: Optional[str] = None,
    member_count: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Poll:
    _require_text(chat_id, "Chat id", 64)
    clean_question = _require_text(question, "Question", QUESTION_MAX_LENGTH)
    options = list(options or [])
    if not POLL_MIN_OPTIONS <= len(options) <= POLL_MAX_OPTIONS:
        raise ValidationError(
            f"A poll needs between {POLL_MIN_OPTIONS} and {POLL_MAX_OPTIONS} options, got {len(options)}."
        )
    texts = [_require_text(text, "Option", POLL_OPTION_MAX_LENGTH) for text in options]
    if member_count is not None and member_count < 1:
        raise ValidationError("member_count must be at least 1.")

    now = now or utc_now()
    poll_id = new_id()
    return Poll(
        poll_id=poll_id,
        chat_id=chat_id,
        question=clean_question,
        creator_id=creator_id,
        member_count=member_count,
        created_at=now,
        options=[
            Option(new_id(), poll_id, text, None, index, now)
            for index, text in enumerate(texts)
        ],
    )
