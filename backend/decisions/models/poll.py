"""Poll, PollOption and PollVote ORM models."""
import uuid
from sqlalchemy import (
    Column, String, DateTime, Integer, ForeignKey, UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from decisions.database import Base
from decisions.engine.lifecycle import PollStatus


class Poll(Base):
    __tablename__ = "polls"

    poll_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_id = Column(String(64), nullable=False, index=True)
    creator_id = Column(String(64), nullable=True)
    question = Column(String(500), nullable=False)
    status = Column(SAEnum(PollStatus), nullable=False, default=PollStatus.open)
    member_count = Column(Integer, nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    options = relationship(
        "PollOption",
        back_populates="poll",
        cascade="all, delete-orphan",
        order_by="PollOption.sort_order",
    )
    votes = relationship("PollVote", back_populates="poll", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class PollOption(Base):
    __tablename__ = "poll_options"

    option_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    poll_id = Column(String(36), ForeignKey("polls.poll_id", ondelete="CASCADE"), nullable=False, index=True)
    option_text = Column(String(200), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    poll = relationship("Poll", back_populates="options")


class PollVote(Base):
    __tablename__ = "poll_votes"
    __table_args__ = (
        UniqueConstraint("poll_id", "user_id", name="uq_poll_votes_user"),
    )

    vote_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    poll_id = Column(String(36), ForeignKey("polls.poll_id", ondelete="CASCADE"), nullable=False, index=True)
    option_id = Column(String(36), ForeignKey("poll_options.option_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    poll = relationship("Poll", back_populates="votes")
    option = relationship("PollOption")
