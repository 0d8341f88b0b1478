"""Poll decision service — same load / engine / persist cycle as events, for polls."""
import logging
import uuid
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from decisions.engine import AggregateLocked, Poll, PollStatus, Response
from decisions.engine import lifecycle
from decisions.engine import create_poll as build_poll
from decisions.models.decision_mutation import ActionType, AggregateType, DecisionMutation
from decisions.models.poll import Poll as PollRow
from decisions.services.errors import ConcurrentModification, NotFound
from decisions.services.mapping import apply_poll, new_poll_row, poll_snapshot, poll_to_domain

logger = logging.getLogger(__name__)


def _load_poll(db: Session, poll_id: str) -> PollRow:
    row = db.query(PollRow).filter(PollRow.poll_id == str(poll_id)).first()
    if not row:
        raise NotFound("Poll not found")
    return row


def _stored_status(db: Session, poll_id: str) -> PollStatus:
    status = (
        db.query(PollRow.status)
        .filter(PollRow.poll_id == poll_id)
        .with_for_update()
        .scalar()
    )
    if status is None:
        raise NotFound("Poll not found")
    return status


def _persist(
    db: Session,
    row: PollRow,
    poll: Poll,
    actor_user_id: str,
    action: ActionType,
    before: Optional[dict[str, Any]],
    guard: Optional[Callable[[PollStatus], None]] = None,
) -> Poll:
    """Same write cycle as events; ``guard`` re-checks the stored status for vote-only writes."""
    try:
        apply_poll(row, poll)
        db.add(row)
        db.flush()
        if guard is not None:
            guard(_stored_status(db, row.poll_id))
        db.add(DecisionMutation(
            aggregate_type=AggregateType.poll,
            aggregate_id=row.poll_id,
            actor_user_id=actor_user_id,
            action_type=action,
            before_snapshot=before,
            after_snapshot=poll_snapshot(poll_to_domain(row)),
            idempotency_key=str(uuid.uuid4()),
        ))
        db.commit()
    except (AggregateLocked, NotFound):
        db.rollback()
        logger.warning("%s on poll %s rejected: closed or deleted by a concurrent writer", action.value, poll.poll_id)
        raise
    except (IntegrityError, StaleDataError) as exc:
        db.rollback()
        logger.warning("Concurrent %s on poll %s rejected: %s", action.value, poll.poll_id, exc)
        raise ConcurrentModification(
            "The poll changed while this request was being applied. Re-fetch and retry."
        ) from exc
    db.refresh(row)
    return poll_to_domain(row)


def create_poll(
    db: Session,
    chat_id: str,
    creator_id: Optional[str],
    question: str,
    options: list[str],
    member_count: Optional[int] = None,
) -> Poll:
    poll = build_poll(
        chat_id=chat_id,
        question=question,
        options=options,
        creator_id=creator_id,
        member_count=member_count,
    )
    result = _persist(db, new_poll_row(poll), poll, creator_id or "system", ActionType.create, None)
    logger.info("Created poll '%s' (%s) with %d options in chat %s", result.question, result.poll_id,
                len(result.options), chat_id)
    return result


def get_poll(db: Session, poll_id: str) -> Poll:
    return poll_to_domain(_load_poll(db, poll_id))


def list_polls(db: Session, chat_id: Optional[str] = None) -> list[Poll]:
    query = db.query(PollRow)
    if chat_id:
        query = query.filter(PollRow.chat_id == chat_id)
    return [poll_to_domain(row) for row in query.order_by(PollRow.created_at.desc()).all()]


def vote(db: Session, poll_id: str, user_id: str, option_id: str) -> Poll:
    """Record or move a vote. The returned poll is closed if everyone expected has now voted."""
    row = _load_poll(db, poll_id)
    poll = poll_to_domain(row)
    before = poll_snapshot(poll)
    poll.vote(user_id, option_id)
    # An auto-closing vote updates the poll row, so its version check covers the race.
    guard = lifecycle.ensure_poll_accepts_votes if poll.status == PollStatus.open else None
    result = _persist(db, row, poll, user_id, ActionType.vote, before, guard=guard)
    logger.info("User %s voted for option %s on poll %s", user_id, option_id, poll_id)
    if result.all_voted:
        logger.info("All %d expected voters have voted; poll %s closed", result.member_count, poll_id)
    return result


def retract_vote(db: Session, poll_id: str, user_id: str) -> Poll:
    row = _load_poll(db, poll_id)
    poll = poll_to_domain(row)
    before = poll_snapshot(poll)
    poll.retract_vote(user_id)
    result = _persist(db, row, poll, user_id, ActionType.retract, before,
                      guard=lifecycle.ensure_poll_accepts_votes)
    logger.info("User %s retracted their vote on poll %s", user_id, poll_id)
    return result


def close_poll(db: Session, poll_id: str, actor_user_id: str) -> Poll:
    """Close the poll manually (creator only)."""
    row = _load_poll(db, poll_id)
    poll = poll_to_domain(row)
    before = poll_snapshot(poll)
    poll.close(actor_user_id)
    result = _persist(db, row, poll, actor_user_id, ActionType.close, before)
    logger.info("Closed poll %s by %s", poll_id, actor_user_id)
    return result


def delete_poll(db: Session, poll_id: str, actor_user_id: str) -> None:
    row = _load_poll(db, poll_id)
    poll = poll_to_domain(row)
    poll.ensure_deletable(actor_user_id)
    db.add(DecisionMutation(
        aggregate_type=AggregateType.poll,
        aggregate_id=row.poll_id,
        actor_user_id=actor_user_id,
        action_type=ActionType.delete,
        before_snapshot=poll_snapshot(poll),
        after_snapshot=None,
        idempotency_key=str(uuid.uuid4()),
    ))
    db.delete(row)
    db.commit()
    logger.info("Deleted poll %s by %s", poll_id, actor_user_id)


def find_user_vote(db: Session, poll_id: str, user_id: str) -> Optional[Response]:
    return get_poll(db, poll_id).find_user_vote(user_id)
