"""Subscription ledger: payment state per (team, user) pair."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from teamhub.billing.models import SubscriptionStatus, TeamSubscription
from teamhub.logging_config import get_logger
from teamhub.storage.db import conflict_insert
from teamhub.storage.models import utcnow

logger = get_logger(__name__)

_PAIR = ["team_id", "user_id"]


class SubscriptionLedger:
    """Repository for TeamSubscription rows.

    Every write is an upsert on (team_id, user_id) or an update guarded by
    the current status, never a blind insert.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, team_id: str, user_id: str) -> TeamSubscription | None:
        return self.session.scalar(
            select(TeamSubscription).where(
                TeamSubscription.team_id == team_id,
                TeamSubscription.user_id == user_id,
            )
        )

    def list_for_user(self, user_id: str) -> list[TeamSubscription]:
        return list(self.session.scalars(
            select(TeamSubscription)
            .where(TeamSubscription.user_id == user_id)
            .order_by(TeamSubscription.updated_at.desc())
        ))

    def upsert_pending(
        self,
        team_id: str,
        user_id: str,
        session_id: str,
        amount: Decimal,
    ) -> bool:
        """Record a started checkout.

        An active row is left untouched; a pending or cancelled row is reset
        to pending with the new session.

        Returns:
            True if the row was written
        """
        now = utcnow()
        values = {
            "team_id": team_id,
            "user_id": user_id,
            "stripe_session_id": session_id,
            "amount_paid": amount,
            "status": SubscriptionStatus.PENDING,
            "created_at": now,
            "updated_at": now,
        }
        stmt = conflict_insert(self.session, TeamSubscription, values)
        stmt = stmt.on_conflict_do_update(
            index_elements=_PAIR,
            set_={
                "stripe_session_id": session_id,
                "stripe_subscription_id": None,
                "stripe_customer_id": None,
                "amount_paid": amount,
                "status": SubscriptionStatus.PENDING,
                "expires_at": None,
                "cancelled_at": None,
                "updated_at": now,
            },
            where=TeamSubscription.status != SubscriptionStatus.ACTIVE,
        )
        written = self.session.execute(stmt).rowcount == 1
        logger.info("ledger_pending", team_id=team_id, user_id=user_id, session_id=session_id, written=written)
        return written

    def activate(
        self,
        team_id: str,
        user_id: str,
        session_id: str | None,
        subscription_id: str | None,
        customer_id: str | None = None,
        amount: Decimal | None = None,
        expires_at: datetime | None = None,
    ) -> bool:
        """Mark the pair active, inserting the row if the pending upsert has not landed yet.

        A row already cancelled for this same subscription is never
        resurrected by a late or redelivered completion event.

        Returns:
            True if the row is now active because of this call
        """
        now = utcnow()
        values = {
            "team_id": team_id,
            "user_id": user_id,
            "stripe_session_id": session_id,
            "stripe_subscription_id": subscription_id,
            "stripe_customer_id": customer_id,
            "amount_paid": amount if amount is not None else Decimal("0"),
            "status": SubscriptionStatus.ACTIVE,
            "expires_at": expires_at,
            "created_at": now,
            "updated_at": now,
        }
        changes = {
            "stripe_subscription_id": subscription_id,
            "stripe_customer_id": customer_id,
            "status": SubscriptionStatus.ACTIVE,
            "expires_at": expires_at,
            "cancelled_at": None,
            "updated_at": now,
        }
        if session_id is not None:
            changes["stripe_session_id"] = session_id
        if amount is not None:
            changes["amount_paid"] = amount

        guard = None
        if subscription_id is not None:
            guard = or_(
                TeamSubscription.status != SubscriptionStatus.CANCELLED,
                TeamSubscription.stripe_subscription_id.is_(None),
                TeamSubscription.stripe_subscription_id != subscription_id,
            )

        stmt = conflict_insert(self.session, TeamSubscription, values)
        stmt = stmt.on_conflict_do_update(index_elements=_PAIR, set_=changes, where=guard)
        activated = self.session.execute(stmt).rowcount == 1
        logger.info(
            "ledger_activated" if activated else "ledger_activation_skipped",
            team_id=team_id,
            user_id=user_id,
            subscription_id=subscription_id,
        )
        return activated

    def cancel(self, team_id: str, user_id: str, expected: SubscriptionStatus | None = None) -> bool:
        """Cancel the pair if it is pending or active.

        With `expected`, the row is only cancelled while it still has that
        status, so a caller acting on an earlier read cannot cancel a row
        that moved on in the meantime.

        Returns:
            True if this call performed the transition
        """
        allowed = [SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE]
        if expected is not None:
            allowed = [expected] if expected in allowed else []

        now = utcnow()
        result = self.session.execute(
            update(TeamSubscription)
            .where(
                TeamSubscription.team_id == team_id,
                TeamSubscription.user_id == user_id,
                TeamSubscription.status.in_(allowed),
            )
            .values(status=SubscriptionStatus.CANCELLED, cancelled_at=now, updated_at=now)
        )
        cancelled = result.rowcount > 0
        if cancelled:
            logger.info("ledger_cancelled", team_id=team_id, user_id=user_id)
        return cancelled

    def cancel_by_subscription(self, subscription_id: str) -> list[tuple[str, str]]:
        """Cancel active rows for an external subscription id.

        Returns:
            The (team_id, user_id) pairs this call transitioned; empty when
            nothing active matched
        """
        rows = self.session.execute(
            select(TeamSubscription.team_id, TeamSubscription.user_id).where(
                TeamSubscription.stripe_subscription_id == subscription_id,
                TeamSubscription.status == SubscriptionStatus.ACTIVE,
            )
        ).all()

        now = utcnow()
        transitioned = []
        for team_id, user_id in rows:
            result = self.session.execute(
                update(TeamSubscription)
                .where(
                    TeamSubscription.team_id == team_id,
                    TeamSubscription.user_id == user_id,
                    TeamSubscription.stripe_subscription_id == subscription_id,
                    TeamSubscription.status == SubscriptionStatus.ACTIVE,
                )
                .values(status=SubscriptionStatus.CANCELLED, cancelled_at=now, updated_at=now)
            )
            if result.rowcount > 0:
                transitioned.append((team_id, user_id))
                logger.info("ledger_cancelled", team_id=team_id, user_id=user_id, subscription_id=subscription_id)
        return transitioned
