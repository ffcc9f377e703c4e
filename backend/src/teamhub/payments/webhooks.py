"""Webhook reconciliation: processor events into ledger and membership state."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete, select

from teamhub.billing.intents import IntentStore
from teamhub.billing.ledger import SubscriptionLedger
from teamhub.billing.models import IntentKind, ProcessedWebhookEvent
from teamhub.errors import IntentError, MalformedEventError, NotFoundError, PaymentProviderError, ValidationError
from teamhub.logging_config import get_logger
from teamhub.payments.checkout import OWNER_CHECKOUT, materialize_owner_team
from teamhub.payments.stripe_service import StripeService, from_cents, from_timestamp, stripe_service
from teamhub.settings import settings
from teamhub.storage.db import Database, conflict_insert, db as default_db
from teamhub.storage.models import utcnow
from teamhub.teams.membership import MembershipStore
from teamhub.teams.models import Team, TeamRole
from teamhub.teams.registry import TeamRegistry

logger = get_logger(__name__)

SOURCE = "stripe"
ENDED_SUBSCRIPTION_STATUSES = ("canceled", "incomplete_expired")


@dataclass
class WebhookOutcome:
    event_id: str
    event_type: str
    action: str
    duplicate: bool = False


def _object_id(value) -> str | None:
    """Stripe sends either an id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def period_end(subscription: dict) -> datetime | None:
    """Current period end of a subscription.

    Newer API versions carry it on the subscription items instead of the
    subscription itself.
    """
    end = subscription.get("current_period_end")
    if end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            end = items[0].get("current_period_end")
    return from_timestamp(end)


class WebhookReconciler:
    """Applies verified processor events.

    This is the trusted system-to-system writer: it does not check the
    per-user permissions the gateway enforces. Every handler is idempotent,
    the processed-event table only saves repeated work.
    """

    def __init__(
        self,
        database: Database | None = None,
        processor: StripeService | None = None,
        registry: TeamRegistry | None = None,
    ):
        self.db = database or default_db
        self.processor = processor or stripe_service
        self.registry = registry or TeamRegistry(self.db)
        self.logger = get_logger(__name__)

    def is_event_processed(self, event_id: str, source: str = SOURCE) -> bool:
        with self.db.session() as session:
            existing = session.scalar(
                select(ProcessedWebhookEvent.id).where(
                    ProcessedWebhookEvent.event_id == event_id,
                    ProcessedWebhookEvent.source == source,
                )
            )
            return existing is not None

    def mark_event_processed(self, event_id: str, event_type: str, source: str = SOURCE) -> None:
        with self.db.session() as session:
            stmt = conflict_insert(
                session,
                ProcessedWebhookEvent,
                {
                    "event_id": event_id,
                    "event_type": event_type,
                    "source": source,
                    "processed_at": utcnow(),
                },
            ).on_conflict_do_nothing(index_elements=["event_id"])
            session.execute(stmt)

    def cleanup_old_events(self, days: int | None = None) -> int:
        """Remove processed-event records older than `days`.

        Returns:
            Number of deleted records
        """
        days = settings.processed_event_retention_days if days is None else days
        cutoff = utcnow() - timedelta(days=days)
        with self.db.session() as session:
            result = session.execute(
                delete(ProcessedWebhookEvent).where(ProcessedWebhookEvent.processed_at < cutoff)
            )
            deleted = result.rowcount
        self.logger.info("webhook_events_cleaned", deleted=deleted, days=days)
        return deleted

    def handle(self, payload: bytes, sig_header: str) -> WebhookOutcome:
        """Verify, deduplicate and apply one webhook delivery.

        Raises:
            SignatureError: Bad signature; nothing was read or written
            MalformedEventError: Verified but unusable; acknowledge without retry
        """
        event = self.processor.verify_webhook(payload, sig_header)

        event_id = event.get("id")
        event_type = event.get("type")
        if not event_id or not event_type:
            raise MalformedEventError("Event is missing its id or type")

        if self.is_event_processed(event_id):
            self.logger.info("stripe_webhook_duplicate", event_id=event_id, event_type=event_type)
            return WebhookOutcome(event_id, event_type, "duplicate", duplicate=True)

        action = self.process_event(event)

        # Mark as processed AFTER successful handling
        self.mark_event_processed(event_id, event_type)
        self.logger.info("stripe_webhook_processed", event_id=event_id, event_type=event_type, action=action)
        return WebhookOutcome(event_id, event_type, action)

    def process_event(self, event: dict) -> str:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object")
        if not isinstance(obj, dict):
            raise MalformedEventError("Event has no data object")

        if event_type == "checkout.session.completed":
            return self.on_checkout_completed(obj)
        if event_type == "customer.subscription.deleted":
            return self.on_subscription_deleted(obj)

        self.logger.info("stripe_webhook_unhandled", event_type=event_type)
        return "ignored"

    def on_checkout_completed(self, checkout: dict) -> str:
        metadata = checkout.get("metadata") or {}
        session_id = checkout.get("id")
        subscription_id = _object_id(checkout.get("subscription"))

        if metadata.get("type") == OWNER_CHECKOUT:
            # The team is created by the success redirect or the sweep
            if not session_id:
                raise MalformedEventError("Owner checkout event has no session id")
            with self.db.session() as session:
                recorded = IntentStore(session).mark_paid(session_id, subscription_id)
            self.logger.info("owner_checkout_paid", session_id=session_id, recorded=recorded)
            return "owner_checkout_recorded"

        team_id = metadata.get("teamId")
        user_id = metadata.get("userId")
        if not team_id or not user_id:
            self.logger.warning("stripe_webhook_missing_metadata", session_id=session_id)
            raise MalformedEventError("Checkout session is missing teamId/userId metadata")

        expires_at = None
        if subscription_id:
            try:
                subscription = self.processor.retrieve_subscription(subscription_id)
            except PaymentProviderError:
                subscription = None
                self.logger.warning("subscription_lookup_skipped", subscription_id=subscription_id)
            if subscription:
                if subscription.get("status") in ENDED_SUBSCRIPTION_STATUSES:
                    self.logger.info(
                        "checkout_completed_after_cancel",
                        team_id=team_id,
                        user_id=user_id,
                        subscription_id=subscription_id,
                    )
                    return "subscription_already_ended"
                expires_at = period_end(subscription)

        granted = self.apply_member_completion(
            team_id=team_id,
            user_id=user_id,
            session_id=session_id,
            subscription_id=subscription_id,
            customer_id=_object_id(checkout.get("customer")),
            amount=from_cents(checkout.get("amount_total")),
            expires_at=expires_at,
        )
        return "membership_granted" if granted else "noop"

    def apply_member_completion(
        self,
        team_id: str,
        user_id: str,
        session_id: str | None,
        subscription_id: str | None,
        customer_id: str | None = None,
        amount: Decimal | None = None,
        expires_at: datetime | None = None,
    ) -> bool:
        """Activate the ledger row and grant membership in one transaction.

        Safe to repeat: activation is an upsert and the membership insert
        ignores an existing row. The tier member cap is not checked here
        because the payment has already been collected.

        Returns:
            False when activation was refused because the same subscription
            was already cancelled
        """
        with self.db.session() as session:
            if session.get(Team, team_id) is None:
                raise MalformedEventError(f"Team {team_id} does not exist")

            if not SubscriptionLedger(session).activate(
                team_id,
                user_id,
                session_id=session_id,
                subscription_id=subscription_id,
                customer_id=customer_id,
                amount=amount,
                expires_at=expires_at,
            ):
                return False

            MembershipStore(session).add(team_id, user_id, TeamRole.MEMBER)
            if session_id:
                IntentStore(session).mark_paid(session_id, subscription_id)
        return True

    def on_subscription_deleted(self, subscription: dict) -> str:
        subscription_id = subscription.get("id")
        if not subscription_id:
            raise MalformedEventError("Subscription event has no id")

        with self.db.session() as session:
            pairs = SubscriptionLedger(session).cancel_by_subscription(subscription_id)
            store = MembershipStore(session)
            for team_id, user_id in pairs:
                store.remove(team_id, user_id)

        if not pairs:
            self.logger.info("subscription_deleted_noop", subscription_id=subscription_id)
            return "noop"
        return "membership_revoked"

    def sweep_owner_intents(self, now: datetime | None = None) -> list[str]:
        """Create teams for owner payments whose success redirect never completed.

        Returns:
            Ids of the teams created by this sweep
        """
        now = now or utcnow()
        paid_before = now - timedelta(minutes=settings.owner_intent_grace_minutes)
        with self.db.session() as session:
            pending = [
                (intent.token, intent.user_id)
                for intent in IntentStore(session).paid_unconsumed(IntentKind.OWNER_CREATION, paid_before)
            ]

        created = []
        for token, user_id in pending:
            try:
                with self.db.session() as session:
                    team = materialize_owner_team(session, self.registry, token, user_id)
                    team_id = team.id
            except IntentError:
                # Redirect consumed it first
                continue
            except (ValidationError, NotFoundError) as e:
                self.logger.error("owner_intent_sweep_failed", user_id=user_id, error=str(e))
                continue
            created.append(team_id)

        self.logger.info("owner_intents_swept", found=len(pending), created=len(created))
        return created


# Singleton instance
webhook_reconciler = WebhookReconciler()
