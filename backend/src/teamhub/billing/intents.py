"""Server-side checkout intents carried through the payment redirect."""

import secrets
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from teamhub.billing.models import CheckoutIntent, IntentKind, IntentStatus
from teamhub.errors import IntentError
from teamhub.logging_config import get_logger
from teamhub.settings import settings
from teamhub.storage.models import utcnow

logger = get_logger(__name__)


class IntentStore:
    """Repository for CheckoutIntent rows.

    Status changes are compare-and-swap updates, so an intent is acted on
    at most once even when a success page is reloaded.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        kind: IntentKind,
        user_id: str,
        amount: Decimal,
        team_id: str | None = None,
        team_name: str | None = None,
        tier: str | None = None,
        tier_price: Decimal | None = None,
        joining_fee: Decimal | None = None,
        ttl: timedelta | None = None,
    ) -> CheckoutIntent:
        now = utcnow()
        intent = CheckoutIntent(
            token=secrets.token_urlsafe(32),
            kind=kind,
            status=IntentStatus.OPEN,
            user_id=user_id,
            team_id=team_id,
            team_name=team_name,
            tier=tier,
            tier_price=tier_price,
            joining_fee=joining_fee,
            amount=amount,
            created_at=now,
            expires_at=now + (ttl or timedelta(minutes=settings.intent_ttl_minutes)),
        )
        self.session.add(intent)
        self.session.flush()
        return intent

    def get(self, token: str) -> CheckoutIntent | None:
        return self.session.get(CheckoutIntent, token)

    def get_by_session(self, session_id: str) -> CheckoutIntent | None:
        return self.session.scalar(
            select(CheckoutIntent).where(CheckoutIntent.stripe_session_id == session_id)
        )

    def mark_paid(self, session_id: str, subscription_id: str | None = None) -> bool:
        """Record processor confirmation for an open or expired intent.

        Expiry only ends our wait for the redirect; the processor session
        stays payable for longer, and a collected payment must still be
        honoured.

        Returns:
            True if the intent moved to paid
        """
        now = utcnow()
        result = self.session.execute(
            update(CheckoutIntent)
            .where(
                CheckoutIntent.stripe_session_id == session_id,
                CheckoutIntent.status.in_([IntentStatus.OPEN, IntentStatus.EXPIRED]),
            )
            .values(status=IntentStatus.PAID, paid_at=now, stripe_subscription_id=subscription_id)
        )
        return result.rowcount > 0

    def consume(self, token: str, user_id: str, kind: IntentKind) -> CheckoutIntent:
        """Claim an intent for its single use.

        Open intents must not be past their expiry; paid intents stay
        claimable because the payment has already been collected.

        Raises:
            IntentError: Unknown token, wrong user/kind, expired or already used
        """
        now = utcnow()
        result = self.session.execute(
            update(CheckoutIntent)
            .where(
                CheckoutIntent.token == token,
                CheckoutIntent.user_id == user_id,
                CheckoutIntent.kind == kind,
                or_(
                    CheckoutIntent.status == IntentStatus.PAID,
                    and_(
                        CheckoutIntent.status == IntentStatus.OPEN,
                        CheckoutIntent.expires_at > now,
                    ),
                ),
            )
            .values(status=IntentStatus.CONSUMED, consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise IntentError("Checkout intent is unknown, expired or already used")

        intent = self.session.get(CheckoutIntent, token)
        self.session.refresh(intent)
        logger.info("intent_consumed", kind=kind.value, user_id=user_id)
        return intent

    def expire_stale(self, now: datetime | None = None) -> int:
        """Mark open intents past their expiry as expired.

        An expired intent can still be revived by `mark_paid`.
        """
        now = now or utcnow()
        result = self.session.execute(
            update(CheckoutIntent)
            .where(
                CheckoutIntent.status == IntentStatus.OPEN,
                CheckoutIntent.expires_at <= now,
            )
            .values(status=IntentStatus.EXPIRED)
        )
        return result.rowcount

    def paid_unconsumed(self, kind: IntentKind, paid_before: datetime) -> list[CheckoutIntent]:
        return list(self.session.scalars(
            select(CheckoutIntent).where(
                CheckoutIntent.kind == kind,
                CheckoutIntent.status == IntentStatus.PAID,
                CheckoutIntent.paid_at <= paid_before,
            )
        ))
