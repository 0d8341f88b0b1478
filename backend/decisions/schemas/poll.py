"""Pydantic schemas for Polls."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from decisions.engine import Poll
from decisions.schemas.event import ResponseOut


class PollCreate(BaseModel):
    chat_id: str
    creator_id: Optional[str] = None
    question: str
    options: list[str]
    member_count: Optional[int] = None


class PollVotePayload(BaseModel):
    user_id: str
    option_id: str


class PollOptionOut(BaseModel):
    option_id: str
    option_text: str
    sort_order: int
    vote_count: int
    percentage: int
    is_leader: bool


class PollOut(BaseModel):
    poll_id: str
    chat_id: str
    creator_id: Optional[str] = None
    question: str
    status: str
    member_count: Optional[int] = None
    closed_at: Optional[datetime] = None
    version: int
    created_at: datetime
    options: list[PollOptionOut] = []
    votes: list[ResponseOut] = []
    total_votes: int
    leader_option_id: Optional[str] = None
    has_tie: bool
    all_voted: bool

    @classmethod
    def from_aggregate(cls, poll: Poll) -> PollOut:
        tallied = poll.tally()
        summary = poll.summary()
        return cls(
            poll_id=poll.poll_id,
            chat_id=poll.chat_id,
            creator_id=poll.creator_id,
            question=poll.question,
            status=poll.status.value,
            member_count=poll.member_count,
            closed_at=poll.closed_at,
            version=poll.version,
            created_at=poll.created_at,
            options=[
                PollOptionOut(
                    option_id=t.option_id,
                    option_text=t.option.value,
                    sort_order=t.option.sort_order,
                    vote_count=t.vote_count,
                    percentage=t.percentage,
                    is_leader=t.option_id == summary.leader_option_id,
                )
                for t in tallied
            ],
            votes=[ResponseOut.from_response(r) for r in poll.responses],
            total_votes=summary.total_votes,
            leader_option_id=summary.leader_option_id,
            has_tie=summary.has_tie,
            all_voted=poll.all_voted,
        )


class PollVoteResult(BaseModel):
    poll: PollOut
    vote: Optional[ResponseOut] = None
    all_voted: bool
