"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates all tables for the group decision service:
events, event_options, event_responses, polls, poll_options,
poll_votes, decision_mutations.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EVENT_TYPE = sa.Enum("meeting", "hangout", "meal", "activity", "other", name="eventtype")
EVENT_STATUS = sa.Enum("proposed", "voting", "confirmed", "cancelled", name="eventstatus")
OPTION_KIND = sa.Enum("datetime", "location", "activity", name="optionkind")
RSVP_TYPE = sa.Enum("yes", "no", "maybe", name="rsvptype")
POLL_STATUS = sa.Enum("open", "closed", name="pollstatus")
AGGREGATE_TYPE = sa.Enum("event", "poll", name="aggregatetype")
ACTION_TYPE = sa.Enum(
    "create", "update", "vote", "retract", "rsvp", "finalize", "cancel", "close", "delete",
    name="actiontype",
)


def upgrade() -> None:
    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(36), primary_key=True),
        sa.Column("chat_id", sa.String(64), nullable=False, index=True),
        sa.Column("creator_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("event_type", EVENT_TYPE, nullable=False, server_default="other"),
        sa.Column("status", EVENT_STATUS, nullable=False, server_default="proposed"),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- event_options ---
    op.create_table(
        "event_options",
        sa.Column("option_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("option_type", OPTION_KIND, nullable=False),
        sa.Column("value", sa.String(500), nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- event_responses ---
    op.create_table(
        "event_responses",
        sa.Column("response_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.event_id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("axis", sa.String(20), nullable=False),
        sa.Column("option_id", sa.String(36), sa.ForeignKey("event_options.option_id", ondelete="CASCADE"),
                  nullable=True),
        sa.Column("response_type", RSVP_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", "axis", name="uq_event_responses_user_axis"),
    )

    # --- polls ---
    op.create_table(
        "polls",
        sa.Column("poll_id", sa.String(36), primary_key=True),
        sa.Column("chat_id", sa.String(64), nullable=False, index=True),
        sa.Column("creator_id", sa.String(64), nullable=True),
        sa.Column("question", sa.String(500), nullable=False),
        sa.Column("status", POLL_STATUS, nullable=False, server_default="open"),
        sa.Column("member_count", sa.Integer, nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- poll_options ---
    op.create_table(
        "poll_options",
        sa.Column("option_id", sa.String(36), primary_key=True),
        sa.Column("poll_id", sa.String(36), sa.ForeignKey("polls.poll_id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("option_text", sa.String(200), nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- poll_votes ---
    op.create_table(
        "poll_votes",
        sa.Column("vote_id", sa.String(36), primary_key=True),
        sa.Column("poll_id", sa.String(36), sa.ForeignKey("polls.poll_id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("option_id", sa.String(36), sa.ForeignKey("poll_options.option_id", ondelete="CASCADE"),
                  nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("poll_id", "user_id", name="uq_poll_votes_user"),
    )

    # --- decision_mutations ---
    op.create_table(
        "decision_mutations",
        sa.Column("mutation_id", sa.String(36), primary_key=True),
        sa.Column("aggregate_type", AGGREGATE_TYPE, nullable=False),
        sa.Column("aggregate_id", sa.String(36), nullable=False, index=True),
        sa.Column("actor_user_id", sa.String(64), nullable=False),
        sa.Column("action_type", ACTION_TYPE, nullable=False),
        sa.Column("before_snapshot", sa.JSON, nullable=True),
        sa.Column("after_snapshot", sa.JSON, nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("decision_mutations")
    op.drop_table("poll_votes")
    op.drop_table("poll_options")
    op.drop_table("polls")
    op.drop_table("event_responses")
    op.drop_table("event_options")
    op.drop_table("events")
    for enum_type in (ACTION_TYPE, AGGREGATE_TYPE, POLL_STATUS, RSVP_TYPE, OPTION_KIND, EVENT_STATUS, EVENT_TYPE):
        enum_type.drop(op.get_bind(), checkfirst=True)
