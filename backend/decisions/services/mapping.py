"""Translate between ORM rows and engine aggregates.

Loading builds a fresh engine aggregate from the rows. Writing back only
touches what differs, so a vote never issues an UPDATE against the event row
and never bumps its version.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from decisions.engine import Event, Option, Poll, Response, ResponseLedger
from decisions.engine.records import POLL_AXIS
from decisions.models.event import Event as EventRow, EventOption, EventResponse
from decisions.models.poll import Poll as PollRow, PollOption, PollVote


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _same(current: Any, new: Any) -> bool:
    if isinstance(current, datetime) and isinstance(new, datetime):
        return as_utc(current) == as_utc(new)
    return current == new


def _assign(row: Any, name: str, value: Any) -> None:
    if not _same(getattr(row, name), value):
        setattr(row, name, value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


# ── Events ─────────────────────────────────────────────────────────
def event_to_domain(row: EventRow) -> Event:
    options = [
        Option(
            option_id=o.option_id,
            aggregate_id=row.event_id,
            value=o.value,
            kind=o.option_type,
            sort_order=o.sort_order,
            created_at=as_utc(o.created_at),
        )
        for o in row.options
    ]
    responses = [
        Response(
            response_id=r.response_id,
            aggregate_id=row.event_id,
            user_id=r.user_id,
            axis=r.axis,
            option_id=r.option_id,
            response_type=r.response_type,
            created_at=as_utc(r.created_at),
            updated_at=as_utc(r.updated_at),
        )
        for r in row.responses
    ]
    return Event(
        event_id=row.event_id,
        chat_id=row.chat_id,
        creator_id=row.creator_id,
        title=row.title,
        event_type=row.event_type,
        status=row.status,
        description=row.description,
        event_date=as_utc(row.event_date),
        timezone=row.timezone,
        finalized_at=as_utc(row.finalized_at),
        cancelled_at=as_utc(row.cancelled_at),
        version=row.version,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        options=options,
        ledger=ResponseLedger(row.event_id, responses),
    )


def new_event_row(event: Event) -> EventRow:
    row = EventRow(
        event_id=event.event_id,
        chat_id=event.chat_id,
        creator_id=event.creator_id,
        created_at=event.created_at,
    )
    apply_event(row, event)
    return row


def apply_event(row: EventRow, event: Event) -> None:
    """Copy the aggregate's state onto its rows, adding and orphaning children as needed."""
    for name in ("title", "description", "event_type", "status", "event_date",
                 "timezone", "finalized_at", "cancelled_at", "updated_at"):
        _assign(row, name, getattr(event, name))

    existing_options = {o.option_id: o for o in row.options}
    options = []
    for opt in event.options:
        orow = existing_options.get(opt.option_id)
        if orow is None:
            orow = EventOption(
                option_id=opt.option_id,
                option_type=opt.kind,
                value=opt.value,
                sort_order=opt.sort_order,
                created_at=opt.created_at,
            )
        else:
            _assign(orow, "value", opt.value)
            _assign(orow, "sort_order", opt.sort_order)
        options.append(orow)
    if [o.option_id for o in row.options] != [o.option_id for o in options]:
        row.options = options

    existing_responses = {r.response_id: r for r in row.responses}
    responses = []
    for resp in event.responses:
        rrow = existing_responses.get(resp.response_id)
        if rrow is None:
            rrow = EventResponse(
                response_id=resp.response_id,
                user_id=resp.user_id,
                axis=resp.axis,
                option_id=resp.option_id,
                response_type=resp.response_type,
                created_at=resp.created_at,
                updated_at=resp.updated_at,
            )
        else:
            _assign(rrow, "option_id", resp.option_id)
            _assign(rrow, "response_type", resp.response_type)
            _assign(rrow, "updated_at", resp.updated_at)
        responses.append(rrow)
    if set(existing_responses) != {r.response_id for r in responses}:
        row.responses = responses


def event_snapshot(event: Event) -> dict[str, Any]:
    """Serialize an event to a JSON-safe dict for the mutation ledger."""
    return {
        "event_id": event.event_id,
        "title": event.title,
        "status": event.status.value,
        "event_type": event.event_type.value,
        "event_date": _iso(event.event_date),
        "timezone": event.timezone,
        "options": [
            {"option_id": o.option_id, "option_type": o.axis, "value": o.value}
            for o in event.options
        ],
        "votes": {
            kind: {t.option_id: t.vote_count for t in group}
            for kind, group in event.tallies().items()
        },
        "rsvp_counts": event.count_rsvp_by_type(),
        "version": event.version,
    }


# ── Polls ──────────────────────────────────────────────────────────
def poll_to_domain(row: PollRow) -> Poll:
    options = [
        Option(
            option_id=o.option_id,
            aggregate_id=row.poll_id,
            value=o.option_text,
            sort_order=o.sort_order,
            created_at=as_utc(o.created_at),
        )
        for o in row.options
    ]
    votes = [
        Response(
            response_id=v.vote_id,
            aggregate_id=row.poll_id,
            user_id=v.user_id,
            axis=POLL_AXIS,
            option_id=v.option_id,
            created_at=as_utc(v.created_at),
            updated_at=as_utc(v.updated_at),
        )
        for v in row.votes
    ]
    return Poll(
        poll_id=row.poll_id,
        chat_id=row.chat_id,
        question=row.question,
        creator_id=row.creator_id,
        status=row.status,
        member_count=row.member_count,
        closed_at=as_utc(row.closed_at),
        version=row.version,
        created_at=as_utc(row.created_at),
        options=options,
        ledger=ResponseLedger(row.poll_id, votes),
    )


def new_poll_row(poll: Poll) -> PollRow:
    row = PollRow(
        poll_id=poll.poll_id,
        chat_id=poll.chat_id,
        creator_id=poll.creator_id,
        question=poll.question,
        member_count=poll.member_count,
        created_at=poll.created_at,
        options=[
            PollOption(
                option_id=o.option_id,
                option_text=o.value,
                sort_order=o.sort_order,
                created_at=o.created_at,
            )
            for o in poll.options
        ],
    )
    apply_poll(row, poll)
    return row


def apply_poll(row: PollRow, poll: Poll) -> None:
    """Poll options are fixed at creation, so only status and votes can change."""
    _assign(row, "status", poll.status)
    _assign(row, "closed_at", poll.closed_at)

    existing = {v.vote_id: v for v in row.votes}
    votes = []
    for resp in poll.responses:
        vrow = existing.get(resp.response_id)
        if vrow is None:
            vrow = PollVote(
                vote_id=resp.response_id,
                option_id=resp.option_id,
                user_id=resp.user_id,
                created_at=resp.created_at,
                updated_at=resp.updated_at,
            )
        else:
            _assign(vrow, "option_id", resp.option_id)
            _assign(vrow, "updated_at", resp.updated_at)
        votes.append(vrow)
    if set(existing) != {v.vote_id for v in votes}:
        row.votes = votes


def poll_snapshot(poll: Poll) -> dict[str, Any]:
    return {
        "poll_id": poll.poll_id,
        "question": poll.question,
        "status": poll.status.value,
        "votes": {t.option_id: t.vote_count for t in poll.tally()},
        "total_votes": poll.total_votes,
        "version": poll.version,
    }
