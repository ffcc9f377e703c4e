"""Membership gateway: the one place join, add, remove and cancel go through."""

from dataclasses import dataclass

from teamhub.auth.models import UserAccount
from teamhub.billing.confirmation import MembershipConfirmation
from teamhub.billing.intents import IntentStore
from teamhub.billing.ledger import SubscriptionLedger
from teamhub.billing.models import IntentKind, SubscriptionStatus, TeamSubscription
from teamhub.errors import (
    AlreadyMemberError,
    NotFoundError,
    PaymentProviderError,
    PermissionDeniedError,
    SelfRemovalError,
)
from teamhub.logging_config import get_logger
from teamhub.payments.checkout import CheckoutInitiator
from teamhub.payments.stripe_service import StripeService, from_cents, stripe_service
from teamhub.payments.webhooks import WebhookReconciler
from teamhub.storage.db import Database, db as default_db
from teamhub.teams.membership import MembershipStore
from teamhub.teams.models import AccessMode, Team, TeamRole
from teamhub.teams.registry import TeamRegistry, ensure_capacity

MAX_CANCEL_ATTEMPTS = 3


@dataclass
class JoinOutcome:
    """Result of a join request.

    `joined` means membership exists now. `checkout_required` means it does
    NOT exist yet: the user must pay at `checkout_url` and membership is
    granted when the processor confirms.
    """
    status: str
    team_id: str
    checkout_url: str | None = None
    session_id: str | None = None
    intent_token: str | None = None


@dataclass
class JoinConfirmation:
    status: str   # joined | pending
    via: str      # webhook | fallback | none
    team_id: str


class MembershipGateway:
    """Facade over registry, membership, ledger and checkout.

    Callers never branch on free vs paid themselves.
    """

    def __init__(
        self,
        database: Database | None = None,
        processor: StripeService | None = None,
        registry: TeamRegistry | None = None,
        checkout: CheckoutInitiator | None = None,
        reconciler: WebhookReconciler | None = None,
    ):
        self.db = database or default_db
        self.processor = processor or stripe_service
        self.registry = registry or TeamRegistry(self.db)
        self.checkout = checkout or CheckoutInitiator(self.db, self.processor, self.registry)
        self.reconciler = reconciler or WebhookReconciler(self.db, self.processor, self.registry)
        self.logger = get_logger(__name__)

    def request_join(self, team_id: str, user_id: str, user_email: str | None = None) -> JoinOutcome:
        """Join a team, directly if free or through checkout if paid.

        Raises:
            NotFoundError: Team does not exist
            AlreadyMemberError: User is already in the team
            TeamFullError: Tier member limit reached
            PaymentProviderError: Checkout could not be started
        """
        with self.db.session() as session:
            team = session.get(Team, team_id)
            if team is None:
                raise NotFoundError(f"Team {team_id} not found")

            store = MembershipStore(session)
            if store.is_member(team_id, user_id):
                raise AlreadyMemberError("You are already a member of this team")
            ensure_capacity(session, team)

            if team.access_mode == AccessMode.FREE:
                if not store.add(team_id, user_id, TeamRole.MEMBER):
                    raise AlreadyMemberError("You are already a member of this team")
                self.logger.info("team_joined", team_id=team_id, user_id=user_id)
                return JoinOutcome(status="joined", team_id=team_id)

            fee = team.joining_fee
            team_name = team.name

        start = self.checkout.start_member_checkout(
            team_id=team_id,
            user_id=user_id,
            amount=fee,
            user_email=user_email,
            team_name=team_name,
        )
        return JoinOutcome(
            status="checkout_required",
            team_id=team_id,
            checkout_url=start.url,
            session_id=start.session_id,
            intent_token=start.intent_token,
        )

    def add_member_directly(self, team_id: str, admin_id: str, target_id: str) -> None:
        """Admin grant that bypasses payment, whatever the access mode.

        Raises:
            NotFoundError: Team or target user does not exist
            PermissionDeniedError: Caller is not an admin of the team
            AlreadyMemberError: Target is already a member
            TeamFullError: Tier member limit reached
        """
        with self.db.session() as session:
            team = session.get(Team, team_id)
            if team is None:
                raise NotFoundError(f"Team {team_id} not found")

            store = MembershipStore(session)
            if not store.is_admin(team_id, admin_id):
                raise PermissionDeniedError("Only team admins can add members")
            if session.get(UserAccount, target_id) is None:
                raise NotFoundError(f"User {target_id} not found")
            if store.is_member(team_id, target_id):
                raise AlreadyMemberError("User is already a member of this team")
            ensure_capacity(session, team)
            if not store.add(team_id, target_id, TeamRole.MEMBER):
                raise AlreadyMemberError("User is already a member of this team")

        self.logger.info("member_added", team_id=team_id, admin_id=admin_id, user_id=target_id)

    def remove_member(self, team_id: str, admin_id: str, target_id: str) -> None:
        """Remove a member as an admin.

        A member paying through an active subscription has it cancelled at
        the processor first, then the ledger row and membership are ended
        together.

        Raises:
            NotFoundError: Team missing or target not a member
            PermissionDeniedError: Caller not an admin, or target is the owner
            SelfRemovalError: Admin targeting themselves
            PaymentProviderError: Processor cancel failed; nothing changed
        """
        with self.db.session() as session:
            team = session.get(Team, team_id)
            if team is None:
                raise NotFoundError(f"Team {team_id} not found")

            store = MembershipStore(session)
            if not store.is_admin(team_id, admin_id):
                raise PermissionDeniedError("Only team admins can remove members")
            if admin_id == target_id:
                raise SelfRemovalError("You cannot remove yourself. Cancel your subscription instead.")
            if target_id == team.created_by:
                raise PermissionDeniedError("The team owner cannot be removed")
            if not store.is_member(team_id, target_id):
                raise NotFoundError("User is not a member of this team")

        self._end_subscription(team_id, target_id, remove_member=True)
        self.logger.info("member_removed", team_id=team_id, admin_id=admin_id, user_id=target_id)

    def cancel_own_subscription(self, team_id: str, user_id: str) -> None:
        """Cancel the caller's paid membership without waiting for the webhook.

        The deletion webhook that follows finds nothing active and is a
        no-op, as is a repeated call here.

        Raises:
            NotFoundError: No subscription for this team
            PaymentProviderError: Processor cancel failed; nothing changed
        """
        previous = self._end_subscription(team_id, user_id, remove_member=False)
        if previous is None:
            raise NotFoundError("No subscription found for this team")
        if previous == SubscriptionStatus.CANCELLED:
            self.logger.info("subscription_already_cancelled", team_id=team_id, user_id=user_id)
            return
        self.logger.info("subscription_cancelled", team_id=team_id, user_id=user_id, previous=previous.value)

    def _end_subscription(self, team_id: str, user_id: str, remove_member: bool) -> SubscriptionStatus | None:
        """Cancel the pair's subscription and drop the membership with it.

        The processor call cannot share a transaction with the ledger, so
        the ledger cancel is a compare-and-swap on the status read before
        it. A webhook activation landing in between makes the swap miss;
        the next pass then sees the active row and cancels it at the
        processor as well.

        `remove_member` also removes the membership when there was nothing
        to cancel.

        Returns:
            The status found before cancelling, or None without a ledger row

        Raises:
            PaymentProviderError: Processor cancel failed, or the row kept
                changing; the caller may retry
        """
        for _ in range(MAX_CANCEL_ATTEMPTS):
            with self.db.session() as session:
                row = SubscriptionLedger(session).get(team_id, user_id)
                status = row.status if row is not None else None
                subscription_id = row.stripe_subscription_id if row is not None else None

            if status == SubscriptionStatus.ACTIVE and subscription_id:
                self.processor.cancel_subscription(subscription_id)

            with self.db.session() as session:
                if status is None or status == SubscriptionStatus.CANCELLED:
                    if remove_member:
                        MembershipStore(session).remove(team_id, user_id)
                    return status
                if SubscriptionLedger(session).cancel(team_id, user_id, expected=status):
                    MembershipStore(session).remove(team_id, user_id)
                    return status

            self.logger.info("subscription_changed_during_cancel", team_id=team_id, user_id=user_id, seen=status.value)

        raise PaymentProviderError("The subscription changed while cancelling. Please try again.")

    def list_my_subscriptions(self, user_id: str) -> list[dict]:
        with self.db.session() as session:
            rows = SubscriptionLedger(session).list_for_user(user_id)
            return [self._subscription_dict(session, row) for row in rows]

    @staticmethod
    def _subscription_dict(session, row: TeamSubscription) -> dict:
        team = session.get(Team, row.team_id)
        return {
            "team_id": row.team_id,
            "team_name": team.name if team else None,
            "status": row.status.value,
            "amount_paid": float(row.amount_paid or 0),
            "expires_at": row.expires_at.isoformat() if row.expires_at else None,
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "cancelled_at": row.cancelled_at.isoformat() if row.cancelled_at else None,
        }

    async def confirm_join(
        self,
        intent_token: str,
        user_id: str,
        max_attempts: int | None = None,
        interval: float | None = None,
    ) -> JoinConfirmation:
        """Wait for the membership a paid join is supposed to produce.

        The intent is consumed before waiting, so a reloaded success page
        gets IntentError instead of a second fallback attempt.

        Raises:
            IntentError: Unknown, expired, foreign or already used token
        """
        with self.db.session() as session:
            intent = IntentStore(session).consume(intent_token, user_id, IntentKind.MEMBER_JOIN)
            team_id = intent.team_id
            session_id = intent.stripe_session_id

        def fallback(team_id: str, user_id: str) -> bool:
            return self._reconcile_from_processor(team_id, user_id, session_id)

        confirmation = MembershipConfirmation(
            check=self._is_member,
            fallback=fallback if session_id else None,
            max_attempts=max_attempts,
            interval=interval,
        )
        result = await confirmation.wait(team_id, user_id)
        return JoinConfirmation(status=result.status, via=result.via, team_id=team_id)

    def _is_member(self, team_id: str, user_id: str) -> bool:
        with self.db.session() as session:
            return MembershipStore(session).is_member(team_id, user_id)

    def _reconcile_from_processor(self, team_id: str, user_id: str, session_id: str) -> bool:
        try:
            checkout = self.processor.retrieve_checkout_session(session_id)
        except PaymentProviderError:
            return False

        if checkout.get("status") != "complete" or checkout.get("payment_status") not in ("paid", "no_payment_required"):
            return False
        metadata = checkout.get("metadata") or {}
        if metadata.get("teamId") != team_id or metadata.get("userId") != user_id:
            self.logger.warning("fallback_metadata_mismatch", team_id=team_id, user_id=user_id, session_id=session_id)
            return False

        subscription = checkout.get("subscription")
        customer = checkout.get("customer")
        return self.reconciler.apply_member_completion(
            team_id=team_id,
            user_id=user_id,
            session_id=session_id,
            subscription_id=subscription.get("id") if isinstance(subscription, dict) else subscription,
            customer_id=customer.get("id") if isinstance(customer, dict) else customer,
            amount=from_cents(checkout.get("amount_total")),
        )


# Singleton instance
membership_gateway = MembershipGateway()
