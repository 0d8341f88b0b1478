"""Event API routes — delegates to event_service for every rule."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from decisions.database import get_db
from decisions.schemas.event import (
    ActorPayload,
    EventCreate,
    EventOut,
    EventUpdate,
    ResponseOut,
    RSVPCounts,
    RSVPPayload,
    UserResponsesOut,
    VotePayload,
)
from decisions.services import event_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Create a new event with its (optional) option set."""
    event = event_service.create_event(
        db=db,
        chat_id=payload.chat_id,
        creator_id=payload.creator_id,
        title=payload.title,
        event_type=payload.event_type,
        options=[o.model_dump() for o in payload.options],
        description=payload.description,
        event_date=payload.event_date,
        timezone=payload.timezone,
        event_status=payload.status,
    )
    return EventOut.from_aggregate(event)


@router.get("/", response_model=list[EventOut])
def list_events(
    chat_id: Optional[str] = Query(None),
    include_cancelled: bool = Query(False),
    db: Session = Depends(get_db),
):
    """List events, newest first."""
    events = event_service.list_events(db, chat_id=chat_id, include_cancelled=include_cancelled)
    return [EventOut.from_aggregate(e) for e in events]


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    return EventOut.from_aggregate(event_service.get_event(db, event_id))


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    actor_user_id: str = Query(..., description="ID of the user performing the update"),
    db: Session = Depends(get_db),
):
    """Edit an open event (creator only). Removing an option drops its votes."""
    updates = payload.model_dump(exclude_unset=True, exclude={"version"})
    event = event_service.update_event(
        db=db,
        event_id=event_id,
        actor_user_id=actor_user_id,
        updates=updates,
        version=payload.version,
    )
    return EventOut.from_aggregate(event)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: str,
    actor_user_id: str = Query(..., description="ID of the user deleting the event"),
    db: Session = Depends(get_db),
):
    """Delete an event and everything attached to it (creator only)."""
    event_service.delete_event(db, event_id, actor_user_id)


@router.post("/{event_id}/vote", response_model=EventOut)
def vote(event_id: str, payload: VotePayload, db: Session = Depends(get_db)):
    """Vote for an option; replaces the user's earlier vote on the same option type."""
    event = event_service.vote(db, event_id, payload.user_id, payload.option_id)
    return EventOut.from_aggregate(event)


@router.delete("/{event_id}/vote", response_model=EventOut)
def retract_vote(
    event_id: str,
    user_id: str = Query(...),
    option_id: str = Query(...),
    db: Session = Depends(get_db),
):
    event = event_service.retract_vote(db, event_id, user_id, option_id)
    return EventOut.from_aggregate(event)


@router.post("/{event_id}/rsvp", response_model=EventOut)
def rsvp(event_id: str, payload: RSVPPayload, db: Session = Depends(get_db)):
    """Set or update a user's RSVP. Still accepted after the event is confirmed."""
    event = event_service.rsvp(db, event_id, payload.user_id, payload.response_type)
    return EventOut.from_aggregate(event)


@router.get("/{event_id}/rsvp-counts", response_model=RSVPCounts)
def rsvp_counts(event_id: str, db: Session = Depends(get_db)):
    return RSVPCounts(**event_service.count_rsvp_by_type(db, event_id))


@router.get("/{event_id}/responses/{user_id}", response_model=UserResponsesOut)
def user_responses(event_id: str, user_id: str, db: Session = Depends(get_db)):
    """A single user's current votes (one per option type) and RSVP."""
    event = event_service.get_event(db, event_id)
    rsvp_response = event.find_user_rsvp(user_id)
    return UserResponsesOut(
        user_id=user_id,
        votes=[ResponseOut.from_response(r) for r in event.ledger.find_user_votes(user_id)],
        rsvp=ResponseOut.from_response(rsvp_response) if rsvp_response else None,
    )


@router.post("/{event_id}/finalize", response_model=EventOut)
def finalize_event(event_id: str, payload: ActorPayload, db: Session = Depends(get_db)):
    """Confirm the event and lock voting (creator only)."""
    return EventOut.from_aggregate(event_service.finalize_event(db, event_id, payload.user_id))


@router.post("/{event_id}/cancel", response_model=EventOut)
def cancel_event(event_id: str, payload: ActorPayload, db: Session = Depends(get_db)):
    """Cancel the event (creator only). It remains readable."""
    return EventOut.from_aggregate(event_service.cancel_event(db, event_id, payload.user_id))
