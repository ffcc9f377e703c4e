"""Add checkout intents, webhook bookkeeping and tasks

Revision ID: 002_intents_tasks
Revises: 001_initial
Create Date: 2026-10-18

- Checkout intents carried through the payment redirect
- Processed webhook events for idempotency
- Team tasks
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "002_intents_tasks"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create intent, webhook event and task tables."""

    # Checkout intents
    op.create_table(
        "checkout_intents",
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("kind", sa.Enum("MEMBER_JOIN", "OWNER_CREATION", name="intentkind"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("OPEN", "PAID", "CONSUMED", "EXPIRED", name="intentstatus"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(36), nullable=True),
        sa.Column("team_name", sa.String(255), nullable=True),
        sa.Column("tier", sa.String(20), nullable=True),
        sa.Column("tier_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("joining_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("materialized_team_id", sa.String(36), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("stripe_session_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("consumed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("token"),
        sa.UniqueConstraint("stripe_session_id"),
    )
    op.create_index("ix_checkout_intents_status", "checkout_intents", ["status"])
    op.create_index("ix_checkout_intents_user_id", "checkout_intents", ["user_id"])

    # Processed webhook events
    op.create_table(
        "processed_webhook_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_processed_webhook_events_event_id", "processed_webhook_events", ["event_id"], unique=True)

    # Tasks
    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.String(36), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("PENDING", "IN_PROGRESS", "COMPLETED", name="taskstatus"),
            nullable=False,
        ),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_team_id", "tasks", ["team_id"])


def downgrade() -> None:
    """Drop intent, webhook event and task tables."""
    op.drop_table("tasks")
    op.drop_index("ix_processed_webhook_events_event_id", table_name="processed_webhook_events")
    op.drop_table("processed_webhook_events")
    op.drop_table("checkout_intents")
    sa.Enum(name="taskstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="intentstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="intentkind").drop(op.get_bind(), checkfirst=True)
