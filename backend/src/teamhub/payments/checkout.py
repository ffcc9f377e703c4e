"""Checkout initiation for paid joins and paid team creation."""

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from teamhub.billing.intents import IntentStore
from teamhub.billing.ledger import SubscriptionLedger
from teamhub.billing.models import IntentKind, IntentStatus
from teamhub.errors import IntentError, ValidationError
from teamhub.logging_config import get_logger
from teamhub.payments.stripe_service import StripeService, stripe_service
from teamhub.settings import settings
from teamhub.storage.db import Database, db as default_db
from teamhub.teams.models import TIER_CATALOG, AccessMode, Team, TeamTier
from teamhub.teams.registry import TeamRegistry, parse_amount, parse_tier

logger = get_logger(__name__)

OWNER_CHECKOUT = "owner_checkout"


@dataclass
class CheckoutStart:
    """Where to send the user, and the token the success redirect will carry."""
    url: str
    session_id: str
    intent_token: str


def _with_params(url: str, **params: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def materialize_owner_team(session: Session, registry: TeamRegistry, token: str, user_id: str) -> Team:
    """Consume an owner intent and create the team it describes, in one transaction."""
    intent = IntentStore(session).consume(token, user_id, IntentKind.OWNER_CREATION)
    team = registry.create_team(
        creator_id=intent.user_id,
        name=intent.team_name,
        access_mode=AccessMode.PAID,
        tier=intent.tier,
        joining_fee=intent.joining_fee,
        tier_price=intent.tier_price,
        owner_subscription_id=intent.stripe_subscription_id,
        session=session,
    )
    intent.materialized_team_id = team.id
    logger.info("owner_team_materialized", team_id=team.id, user_id=intent.user_id)
    return team


class CheckoutInitiator:
    """Starts processor checkout sessions and records what they are for."""

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

    def start_member_checkout(
        self,
        team_id: str,
        user_id: str,
        amount: Any,
        user_email: str | None,
        team_name: str | None = None,
    ) -> CheckoutStart:
        """Start a recurring monthly checkout for joining a paid team.

        The session metadata `{teamId, userId}` is the only link between the
        processor's session and our records. The ledger row is upserted as
        pending, keyed by (team, user), so repeated attempts update in place.

        Raises:
            ValidationError: amount <= 0
            PaymentProviderError: the session could not be created
        """
        amount = parse_amount(amount, "Amount")
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        with self.db.session() as session:
            intent = IntentStore(session).create(
                kind=IntentKind.MEMBER_JOIN,
                user_id=user_id,
                amount=amount,
                team_id=team_id,
            )
            token = intent.token

        checkout = self.processor.create_subscription_checkout(
            amount=amount,
            product_name=f"Join Team: {team_name or 'Team'}",
            description="Monthly membership fee to join the team",
            metadata={"teamId": team_id, "userId": user_id},
            success_url=_with_params(settings.member_success_url, team_id=team_id, intent=token),
            cancel_url=_with_params(settings.checkout_cancel_url, team_id=team_id),
            customer_email=user_email,
        )

        with self.db.session() as session:
            intent = IntentStore(session).get(token)
            intent.stripe_session_id = checkout.id
            SubscriptionLedger(session).upsert_pending(team_id, user_id, checkout.id, amount)

        self.logger.info(
            "member_checkout_started",
            team_id=team_id,
            user_id=user_id,
            session_id=checkout.id,
        )
        return CheckoutStart(url=checkout.url, session_id=checkout.id, intent_token=token)

    def start_owner_checkout(
        self,
        team_name: str,
        tier: TeamTier | str,
        tier_price: Any,
        joining_fee: Any,
        user_id: str,
        user_email: str | None,
    ) -> CheckoutStart:
        """Start the owner's tier subscription for a team that does not exist yet.

        No ledger row is written; the team parameters are kept in a
        server-side intent and the team is created once payment is confirmed.
        """
        team_name = (team_name or "").strip()
        if not team_name:
            raise ValidationError("Team name is required")
        tier = parse_tier(tier)
        if tier == TeamTier.FREE:
            raise ValidationError("The free tier does not need a checkout")
        price = TIER_CATALOG[tier].price if tier_price is None else parse_amount(tier_price, "Tier price")
        if price <= 0:
            raise ValidationError("Tier price must be greater than zero")
        fee = parse_amount(joining_fee, "Joining fee")
        if fee <= 0:
            raise ValidationError("Paid teams need a joining fee greater than zero")

        with self.db.session() as session:
            intent = IntentStore(session).create(
                kind=IntentKind.OWNER_CREATION,
                user_id=user_id,
                amount=price,
                team_name=team_name,
                tier=tier.value,
                tier_price=price,
                joining_fee=fee,
            )
            token = intent.token

        checkout = self.processor.create_subscription_checkout(
            amount=price,
            product_name=f"{tier.value.capitalize()} Team: {team_name}",
            description=f"Monthly subscription for {tier.value} team features",
            metadata={
                "teamName": team_name,
                "tier": tier.value,
                "tierPrice": str(price),
                "joiningFee": str(fee),
                "userId": user_id,
                "type": OWNER_CHECKOUT,
            },
            success_url=_with_params(settings.owner_success_url, intent=token),
            cancel_url=_with_params(settings.checkout_cancel_url),
            customer_email=user_email,
        )

        with self.db.session() as session:
            IntentStore(session).get(token).stripe_session_id = checkout.id

        self.logger.info("owner_checkout_started", user_id=user_id, tier=tier.value, session_id=checkout.id)
        return CheckoutStart(url=checkout.url, session_id=checkout.id, intent_token=token)

    def complete_owner_checkout(self, intent_token: str, user_id: str) -> Team:
        """Create the team paid for by an owner checkout.

        Called from the success redirect. Payment must be confirmed either
        by the webhook (intent already paid) or by asking the processor.
        Reloading the success page returns the same team.

        Raises:
            IntentError: Unknown or foreign token
            ValidationError: Payment not confirmed yet
        """
        with self.db.session() as session:
            intent = IntentStore(session).get(intent_token)
            if intent is None or intent.user_id != user_id or intent.kind != IntentKind.OWNER_CREATION:
                raise IntentError("Checkout intent not found")
            status = intent.status
            session_id = intent.stripe_session_id
            materialized = intent.materialized_team_id

        if status == IntentStatus.CONSUMED and materialized:
            return self.registry.get_team(materialized)

        if status in (IntentStatus.OPEN, IntentStatus.EXPIRED):
            if not session_id:
                raise ValidationError("Payment has not been confirmed yet")
            checkout = self.processor.retrieve_checkout_session(session_id)
            if checkout.get("status") != "complete" or checkout.get("payment_status") not in ("paid", "no_payment_required"):
                raise ValidationError("Payment has not been confirmed yet")
            subscription = checkout.get("subscription")
            if isinstance(subscription, dict):
                subscription = subscription.get("id")
            with self.db.session() as session:
                IntentStore(session).mark_paid(session_id, subscription)

        try:
            with self.db.session() as session:
                return materialize_owner_team(session, self.registry, intent_token, user_id)
        except IntentError:
            # Lost the race against the sweep; return what it created
            with self.db.session() as session:
                intent = IntentStore(session).get(intent_token)
                materialized = intent.materialized_team_id if intent else None
            if materialized:
                return self.registry.get_team(materialized)
            raise


# Singleton instance
checkout_initiator = CheckoutInitiator()
