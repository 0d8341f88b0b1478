"""Event decision service — loads an event, runs the engine, persists the diff.

Responsibilities:
- Map rows to an engine aggregate and back (see ``mapping``)
- Optimistic locking: optional client version on edit, version column on status changes
- At most one response per (user, axis), backed by a unique key
- Mutation ledger (DecisionMutations) for every write
"""
import logging
import uuid
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from decisions.engine import AggregateLocked, Event, EventStatus, OptionSpec, Response
from decisions.engine import lifecycle
from decisions.engine import create_event as build_event
from decisions.models.decision_mutation import ActionType, AggregateType, DecisionMutation
from decisions.models.event import Event as EventRow
from decisions.services.errors import ConcurrentModification, NotFound
from decisions.services.mapping import apply_event, event_snapshot, event_to_domain, new_event_row

logger = logging.getLogger(__name__)


def _load_event(db: Session, event_id: str) -> EventRow:
    row = db.query(EventRow).filter(EventRow.event_id == str(event_id)).first()
    if not row:
        raise NotFound("Event not found")
    return row


def _option_specs(raw: Optional[list[Any]]) -> list[OptionSpec]:
    """Accept OptionSpec objects or plain dicts shaped like the API payload."""
    specs = []
    for item in raw or []:
        if isinstance(item, OptionSpec):
            specs.append(item)
        else:
            specs.append(OptionSpec(
                kind=item.get("option_type"),
                value=item.get("value"),
                option_id=item.get("option_id"),
            ))
    return specs


def _stored_status(db: Session, event_id: str) -> EventStatus:
    """Status as committed by other writers, locking the event row where the backend supports it."""
    status = (
        db.query(EventRow.status)
        .filter(EventRow.event_id == event_id)
        .with_for_update()
        .scalar()
    )
    if status is None:
        raise NotFound("Event not found")
    return status


def _persist(
    db: Session,
    row: EventRow,
    event: Event,
    actor_user_id: str,
    action: ActionType,
    before: Optional[dict[str, Any]],
    guard: Optional[Callable[[EventStatus], None]] = None,
) -> Event:
    """Write the aggregate back plus one ledger entry; return the refreshed aggregate.

    Response-only writes never touch the event row, so its version cannot
    catch a finalize or cancel that committed after the load. For those,
    ``guard`` is re-run against the stored status inside the write transaction.
    """
    try:
        apply_event(row, event)
        db.add(row)
        db.flush()
        if guard is not None:
            guard(_stored_status(db, row.event_id))
        db.add(DecisionMutation(
            aggregate_type=AggregateType.event,
            aggregate_id=row.event_id,
            actor_user_id=actor_user_id,
            action_type=action,
            before_snapshot=before,
            after_snapshot=event_snapshot(event_to_domain(row)),
            idempotency_key=str(uuid.uuid4()),
        ))
        db.commit()
    except (AggregateLocked, NotFound):
        db.rollback()
        logger.warning("%s on event %s rejected: locked or deleted by a concurrent writer", action.value, event.event_id)
        raise
    except (IntegrityError, StaleDataError) as exc:
        db.rollback()
        logger.warning("Concurrent %s on event %s rejected: %s", action.value, event.event_id, exc)
        raise ConcurrentModification(
            "The event changed while this request was being applied. Re-fetch and retry."
        ) from exc
    db.refresh(row)
    return event_to_domain(row)


def create_event(
    db: Session,
    chat_id: str,
    creator_id: str,
    title: str,
    event_type: str = "other",
    options: Optional[list[Any]] = None,
    description: Optional[str] = None,
    event_date=None,
    timezone: Optional[str] = None,
    event_status: str = "proposed",
) -> Event:
    """Validate and create an event with its option set."""
    event = build_event(
        chat_id=chat_id,
        creator_id=creator_id,
        title=title,
        event_type=event_type,
        options=_option_specs(options),
        description=description,
        event_date=event_date,
        timezone=timezone,
        status=event_status,
    )
    row = new_event_row(event)
    result = _persist(db, row, event, creator_id, ActionType.create, None)
    logger.info("Created event '%s' (%s) in chat %s by %s", result.title, result.event_id, chat_id, creator_id)
    return result


def get_event(db: Session, event_id: str) -> Event:
    return event_to_domain(_load_event(db, event_id))


def list_events(db: Session, chat_id: Optional[str] = None, include_cancelled: bool = False) -> list[Event]:
    """Newest first, optionally scoped to one chat."""
    query = db.query(EventRow)
    if chat_id:
        query = query.filter(EventRow.chat_id == chat_id)
    if not include_cancelled:
        query = query.filter(EventRow.status != EventStatus.cancelled)
    return [event_to_domain(row) for row in query.order_by(EventRow.created_at.desc()).all()]


def vote(db: Session, event_id: str, user_id: str, option_id: str) -> Event:
    row = _load_event(db, event_id)
    event = event_to_domain(row)
    before = event_snapshot(event)
    event.vote(user_id, option_id)
    result = _persist(db, row, event, user_id, ActionType.vote, before,
                      guard=lifecycle.ensure_event_accepts_votes)
    logger.info("User %s voted for option %s on event %s", user_id, option_id, event_id)
    return result


def retract_vote(db: Session, event_id: str, user_id: str, option_id: str) -> Event:
    row = _load_event(db, event_id)
    event = event_to_domain(row)
    before = event_snapshot(event)
    event.retract_vote(user_id, option_id)
    result = _persist(db, row, event, user_id, ActionType.retract, before,
                      guard=lifecycle.ensure_event_accepts_votes)
    logger.info("User %s retracted their vote on the axis of option %s (event %s)", user_id, option_id, event_id)
    return result


def rsvp(db: Session, event_id: str, user_id: str, response_type: str) -> Event:
    row = _load_event(db, event_id)
    event = event_to_domain(row)
    before = event_snapshot(event)
    event.rsvp(user_id, response_type)
    result = _persist(db, row, event, user_id, ActionType.rsvp, before,
                      guard=lifecycle.ensure_event_accepts_rsvps)
    logger.info("User %s RSVP'd '%s' to event %s", user_id, response_type, event_id)
    return result


def finalize_event(db: Session, event_id: str, actor_user_id: str) -> Event:
    """Confirm the event and lock voting (creator only)."""
    row = _load_event(db, event_id)
    event = event_to_domain(row)
    before = event_snapshot(event)
    event.finalize(actor_user_id)
    result = _persist(db, row, event, actor_user_id, ActionType.finalize, before)
    logger.info("Finalized event %s by %s", event_id, actor_user_id)
    return result


def cancel_event(db: Session, event_id: str, actor_user_id: str) -> Event:
    """Cancel the event; it stays readable but rejects every later change."""
    row = _load_event(db, event_id)
    event = event_to_domain(row)
    before = event_snapshot(event)
    event.cancel(actor_user_id)
    result = _persist(db, row, event, actor_user_id, ActionType.cancel, before)
    logger.info("Cancelled event %s by %s", event_id, actor_user_id)
    return result


def update_event(
    db: Session,
    event_id: str,
    actor_user_id: str,
    updates: dict[str, Any],
    version: Optional[int] = None,
) -> Event:
    """Edit an open event (creator only), with optional optimistic locking."""
    row = _load_event(db, event_id)
    event = event_to_domain(row)
    before = event_snapshot(event)

    updates = dict(updates)
    if updates.get("options") is not None:
        updates["options"] = _option_specs(updates["options"])
    event.edit(actor_user_id, updates)

    if version is not None and row.version != version:
        raise ConcurrentModification(
            f"Version mismatch: expected {row.version}, got {version}. Re-fetch and retry."
        )

    result = _persist(db, row, event, actor_user_id, ActionType.update, before)
    logger.info("Updated event %s to version %d", event_id, result.version)
    return result


def delete_event(db: Session, event_id: str, actor_user_id: str) -> None:
    """Hard-delete an event with its options and responses (creator only)."""
    row = _load_event(db, event_id)
    event = event_to_domain(row)
    event.ensure_deletable(actor_user_id)
    db.add(DecisionMutation(
        aggregate_type=AggregateType.event,
        aggregate_id=row.event_id,
        actor_user_id=actor_user_id,
        action_type=ActionType.delete,
        before_snapshot=event_snapshot(event),
        after_snapshot=None,
        idempotency_key=str(uuid.uuid4()),
    ))
    db.delete(row)
    db.commit()
    logger.info("Deleted event %s by %s", event_id, actor_user_id)


def find_user_vote(db: Session, event_id: str, user_id: str, kind: Optional[str] = None) -> Optional[Response]:
    return get_event(db, event_id).find_user_vote(user_id, kind)


def find_user_rsvp(db: Session, event_id: str, user_id: str) -> Optional[Response]:
    return get_event(db, event_id).find_user_rsvp(user_id)


def count_rsvp_by_type(db: Session, event_id: str) -> dict[str, int]:
    return get_event(db, event_id).count_rsvp_by_type()
