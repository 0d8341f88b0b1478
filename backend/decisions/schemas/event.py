"""Pydantic schemas for Events."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from decisions.engine import Event, Response


class OptionIn(BaseModel):
    option_type: str  # datetime, location, activity
    value: str


class OptionPatch(BaseModel):
    option_id: Optional[str] = None  # omit for a new option
    option_type: str
    value: str


class EventCreate(BaseModel):
    chat_id: str
    creator_id: str
    title: str
    event_type: str = "other"
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    timezone: Optional[str] = None
    status: str = "proposed"
    options: list[OptionIn] = []


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    event_type: Optional[str] = None
    event_date: Optional[datetime] = None
    timezone: Optional[str] = None
    status: Optional[str] = None
    options: Optional[list[OptionPatch]] = None
    version: Optional[int] = None  # optimistic locking when supplied


class VotePayload(BaseModel):
    user_id: str
    option_id: str


class RSVPPayload(BaseModel):
    user_id: str
    response_type: str  # yes, no, maybe


class ActorPayload(BaseModel):
    user_id: str


class OptionOut(BaseModel):
    option_id: str
    option_type: str
    value: str
    sort_order: int
    vote_count: int
    percentage: int
    is_leader: bool


class ResponseOut(BaseModel):
    response_id: str
    user_id: str
    axis: str
    option_id: Optional[str] = None
    response_type: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_response(cls, resp: Response) -> ResponseOut:
        return cls(
            response_id=resp.response_id,
            user_id=resp.user_id,
            axis=resp.axis,
            option_id=resp.option_id,
            response_type=resp.response_type.value if resp.response_type else None,
            created_at=resp.created_at,
            updated_at=resp.updated_at,
        )


class AxisOut(BaseModel):
    option_type: str
    total_votes: int
    leader_option_id: Optional[str] = None
    has_tie: bool


class RSVPCounts(BaseModel):
    yes: int = 0
    no: int = 0
    maybe: int = 0


class UserResponsesOut(BaseModel):
    user_id: str
    votes: list[ResponseOut] = []
    rsvp: Optional[ResponseOut] = None


class EventOut(BaseModel):
    event_id: str
    chat_id: str
    creator_id: str
    title: str
    description: Optional[str] = None
    event_type: str
    status: str
    event_date: Optional[datetime] = None
    timezone: Optional[str] = None
    finalized_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime
    options: list[OptionOut] = []
    axes: list[AxisOut] = []
    responses: list[ResponseOut] = []
    rsvp_counts: RSVPCounts

    @classmethod
    def from_aggregate(cls, event: Event) -> EventOut:
        """Vote counts, percentages and leaders are derived here, never read from storage."""
        tallies = event.tallies()
        summaries = event.axis_summaries()
        leaders = {s.leader_option_id for s in summaries.values() if s.leader_option_id}
        tallied = {t.option_id: t for group in tallies.values() for t in group}
        return cls(
            event_id=event.event_id,
            chat_id=event.chat_id,
            creator_id=event.creator_id,
            title=event.title,
            description=event.description,
            event_type=event.event_type.value,
            status=event.status.value,
            event_date=event.event_date,
            timezone=event.timezone,
            finalized_at=event.finalized_at,
            cancelled_at=event.cancelled_at,
            version=event.version,
            created_at=event.created_at,
            updated_at=event.updated_at,
            options=[
                OptionOut(
                    option_id=opt.option_id,
                    option_type=opt.axis,
                    value=opt.value,
                    sort_order=opt.sort_order,
                    vote_count=tallied[opt.option_id].vote_count,
                    percentage=tallied[opt.option_id].percentage,
                    is_leader=opt.option_id in leaders,
                )
                for opt in event.options
            ],
            axes=[
                AxisOut(
                    option_type=kind,
                    total_votes=s.total_votes,
                    leader_option_id=s.leader_option_id,
                    has_tie=s.has_tie,
                )
                for kind, s in summaries.items()
            ],
            responses=[ResponseOut.from_response(r) for r in event.responses],
            rsvp_counts=RSVPCounts(**event.count_rsvp_by_type()),
        )

