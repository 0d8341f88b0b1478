"""Event, EventOption and EventResponse ORM models."""
import uuid
from sqlalchemy import (
    Column, String, Text, DateTime, Integer, ForeignKey, UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from decisions.database import Base
from decisions.engine.lifecycle import EventStatus
from decisions.engine.records import EventType, OptionKind, RSVPType


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_id = Column(String(64), nullable=False, index=True)
    creator_id = Column(String(64), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    event_type = Column(SAEnum(EventType), nullable=False, default=EventType.other)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.proposed)
    event_date = Column(DateTime(timezone=True), nullable=True)
    timezone = Column(String(64), nullable=True)  # IANA tz
    finalized_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    options = relationship(
        "EventOption",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventOption.sort_order",
    )
    responses = relationship("EventResponse", back_populates="event", cascade="all, delete-orphan")

    # Status changes race on this column; response rows never touch it.
    __mapper_args__ = {"version_id_col": version}


class EventOption(Base):
    __tablename__ = "event_options"

    option_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    option_type = Column(SAEnum(OptionKind), nullable=False)
    value = Column(String(500), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="options")


class EventResponse(Base):
    """A vote (option_id set, axis = option type) or an RSVP (axis = 'rsvp')."""

    __tablename__ = "event_responses"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", "axis", name="uq_event_responses_user_axis"),
    )

    response_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    axis = Column(String(20), nullable=False)
    option_id = Column(String(36), ForeignKey("event_options.option_id", ondelete="CASCADE"), nullable=True)
    response_type = Column(SAEnum(RSVPType), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="responses")
    option = relationship("EventOption")
