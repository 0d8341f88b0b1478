"""DecisionMutation ORM model — append-only ledger of every write to an event or poll."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, JSON, Enum as SAEnum
from sqlalchemy.sql import func
from decisions.database import Base


class AggregateType(str, enum.Enum):
    event = "event"
    poll = "poll"


class ActionType(str, enum.Enum):
    create = "create"
    update = "update"
    vote = "vote"
    retract = "retract"
    rsvp = "rsvp"
    finalize = "finalize"
    cancel = "cancel"
    close = "close"
    delete = "delete"


class DecisionMutation(Base):
    __tablename__ = "decision_mutations"

    mutation_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    aggregate_type = Column(SAEnum(AggregateType), nullable=False)
    # No foreign key: ledger rows outlive deleted aggregates.
    aggregate_id = Column(String(36), nullable=False, index=True)
    actor_user_id = Column(String(64), nullable=False)
    action_type = Column(SAEnum(ActionType), nullable=False)
    before_snapshot = Column(JSON, nullable=True)
    after_snapshot = Column(JSON, nullable=True)
    idempotency_key = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
