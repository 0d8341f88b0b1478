"""Poll API routes."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from decisions.database import get_db
from decisions.schemas.event import ActorPayload, ResponseOut
from decisions.schemas.poll import PollCreate, PollOut, PollVotePayload, PollVoteResult
from decisions.services import poll_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=PollOut, status_code=status.HTTP_201_CREATED)
def create_poll(payload: PollCreate, db: Session = Depends(get_db)):
    """Create a poll with 2-4 options."""
    poll = poll_service.create_poll(
        db=db,
        chat_id=payload.chat_id,
        creator_id=payload.creator_id,
        question=payload.question,
        options=payload.options,
        member_count=payload.member_count,
    )
    return PollOut.from_aggregate(poll)


@router.get("/", response_model=list[PollOut])
def list_polls(chat_id: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return [PollOut.from_aggregate(p) for p in poll_service.list_polls(db, chat_id=chat_id)]


@router.get("/{poll_id}", response_model=PollOut)
def get_poll(poll_id: str, db: Session = Depends(get_db)):
    return PollOut.from_aggregate(poll_service.get_poll(db, poll_id))


@router.post("/{poll_id}/vote", response_model=PollVoteResult)
def vote(poll_id: str, payload: PollVotePayload, db: Session = Depends(get_db)):
    """Vote or change vote. ``all_voted`` is true when this vote closed the poll."""
    poll = poll_service.vote(db, poll_id, payload.user_id, payload.option_id)
    current = poll.find_user_vote(payload.user_id)
    return PollVoteResult(
        poll=PollOut.from_aggregate(poll),
        vote=ResponseOut.from_response(current) if current else None,
        all_voted=poll.all_voted,
    )


@router.delete("/{poll_id}/vote", response_model=PollOut)
def retract_vote(poll_id: str, user_id: str = Query(...), db: Session = Depends(get_db)):
    return PollOut.from_aggregate(poll_service.retract_vote(db, poll_id, user_id))


@router.post("/{poll_id}/close", response_model=PollOut)
def close_poll(poll_id: str, payload: ActorPayload, db: Session = Depends(get_db)):
    """Close the poll manually (creator only)."""
    return PollOut.from_aggregate(poll_service.close_poll(db, poll_id, payload.user_id))


@router.delete("/{poll_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_poll(
    poll_id: str,
    actor_user_id: str = Query(..., description="ID of the user deleting the poll"),
    db: Session = Depends(get_db),
):
    poll_service.delete_poll(db, poll_id, actor_user_id)
