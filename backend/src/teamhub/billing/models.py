"""Subscription ledger, checkout intent and webhook bookkeeping models."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from teamhub.storage.models import Base, utcnow


class SubscriptionStatus(str, Enum):
    """Payment state of a (team, user) pair."""
    PENDING = "pending"      # Checkout started, not confirmed
    ACTIVE = "active"        # Paid; membership exists
    CANCELLED = "cancelled"  # Ended; membership removed


class TeamSubscription(Base):
    """Ledger row correlating a (team, user) pair to a recurring charge.

    Upserted in place; there is never more than one row per pair.
    """
    __tablename__ = "team_subscriptions"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_subscriptions_team_user"),
    )

    id = Column(Integer, primary_key=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("user_accounts.id"), nullable=False, index=True)

    # Stripe references
    stripe_session_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True)

    # Payment
    amount_paid = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    status = Column(SQLEnum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.PENDING)
    expires_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    team = relationship("Team")

    def __repr__(self):
        return f"<TeamSubscription(team={self.team_id}, user={self.user_id}, status={self.status})>"


class IntentKind(str, Enum):
    """What a checkout intent will do once payment is confirmed."""
    MEMBER_JOIN = "member_join"
    OWNER_CREATION = "owner_creation"


class IntentStatus(str, Enum):
    OPEN = "open"            # Waiting for the user to pay
    PAID = "paid"            # Processor confirmed payment
    CONSUMED = "consumed"    # Redirect or sweep acted on it
    EXPIRED = "expired"


class CheckoutIntent(Base):
    """Short-lived record of what a checkout redirect is for.

    The token travels through the processor's success redirect, so the
    pending join/creation survives navigation without client-side storage.
    """
    __tablename__ = "checkout_intents"

    token = Column(String(64), primary_key=True)
    kind = Column(SQLEnum(IntentKind), nullable=False)
    status = Column(SQLEnum(IntentStatus), nullable=False, default=IntentStatus.OPEN, index=True)
    user_id = Column(String(64), ForeignKey("user_accounts.id"), nullable=False, index=True)

    # Member join
    team_id = Column(String(36), nullable=True)

    # Owner creation
    team_name = Column(String(255), nullable=True)
    tier = Column(String(20), nullable=True)
    tier_price = Column(Numeric(10, 2), nullable=True)
    joining_fee = Column(Numeric(10, 2), nullable=True)
    materialized_team_id = Column(String(36), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    stripe_session_id = Column(String(255), nullable=True, unique=True)
    stripe_subscription_id = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    consumed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<CheckoutIntent(kind={self.kind}, status={self.status}, user={self.user_id})>"


class ProcessedWebhookEvent(Base):
    """Tracks processed webhook events for idempotency.

    Prevents duplicate processing of webhook events (e.g., Stripe payments).
    Stored in database to survive server restarts and work across multiple processes.
    """
    __tablename__ = "processed_webhook_events"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)  # e.g., "checkout.session.completed"
    source = Column(String(50), nullable=False)  # e.g., "stripe"
    processed_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<ProcessedWebhookEvent(id={self.event_id}, type={self.event_type})>"
