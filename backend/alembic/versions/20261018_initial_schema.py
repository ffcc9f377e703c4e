"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Creates the membership core:
- User profiles mirrored from the identity provider
- Teams with access mode, tier and joining fee
- Team members, unique per (team, user)
- Subscription ledger, unique per (team, user)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create core tables."""

    # User profiles
    op.create_table(
        "user_accounts",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_accounts_email", "user_accounts", ["email"])

    # Teams table
    op.create_table(
        "teams",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("access_mode", sa.Enum("FREE", "PAID", name="accessmode"), nullable=False),
        sa.Column("tier", sa.Enum("FREE", "BASIC", "PRO", "ENTERPRISE", name="teamtier"), nullable=False),
        sa.Column("tier_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("joining_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("owner_subscription_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["created_by"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_teams_created_by", "teams", ["created_by"])

    # Team members table
    op.create_table(
        "team_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.Enum("ADMIN", "MEMBER", name="teamrole"), nullable=False),
        sa.Column("joined_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])

    # Subscription ledger
    op.create_table(
        "team_subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("stripe_session_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "ACTIVE", "CANCELLED", name="subscriptionstatus"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_subscriptions_team_user"),
    )
    op.create_index("ix_team_subscriptions_team_id", "team_subscriptions", ["team_id"])
    op.create_index("ix_team_subscriptions_user_id", "team_subscriptions", ["user_id"])
    op.create_index("ix_team_subscriptions_stripe_session_id", "team_subscriptions", ["stripe_session_id"])
    op.create_index(
        "ix_team_subscriptions_stripe_subscription_id",
        "team_subscriptions",
        ["stripe_subscription_id"],
    )


def downgrade() -> None:
    """Drop core tables."""
    op.drop_table("team_subscriptions")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("user_accounts")
    sa.Enum(name="subscriptionstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="teamrole").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="teamtier").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="accessmode").drop(op.get_bind(), checkfirst=True)
