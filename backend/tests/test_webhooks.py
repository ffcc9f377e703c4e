"""Tests for the webhook reconciler."""

import json
import time
from datetime import timedelta
from decimal import Decimal

import pytest

from teamhub.billing.intents import IntentStore
from teamhub.billing.ledger import SubscriptionLedger
from teamhub.billing.models import CheckoutIntent, IntentStatus, ProcessedWebhookEvent, SubscriptionStatus, TeamSubscription
from teamhub.errors import MalformedEventError, SignatureError
from teamhub.storage.models import utcnow
from teamhub.teams.membership import MembershipStore
from teamhub.teams.models import Team, TeamMember, TeamRole

from conftest import completed_event, deleted_event, make_event, sign_payload


def deliver(reconciler, payload: str):
    return reconciler.handle(payload.encode("utf-8"), sign_payload(payload))


@pytest.fixture
def started(checkout, paid_team, users):
    """Carol has started paying for Beta."""
    return checkout.start_member_checkout(paid_team.id, users["carol"].id, 10, users["carol"].email, "Beta")


class TestSignature:
    """Tests for signature verification."""

    def test_invalid_signature_mutates_nothing(self, reconciler, stripe_fake, database, started, paid_team, users):
        session = stripe_fake.complete(started.session_id, "sub_1")
        payload = completed_event(session)

        with pytest.raises(SignatureError):
            reconciler.handle(payload.encode("utf-8"), sign_payload(payload, secret="whsec_wrong"))

        with database.session() as db_session:
            assert not MembershipStore(db_session).is_member(paid_team.id, users["carol"].id)
            assert SubscriptionLedger(db_session).get(paid_team.id, users["carol"].id).status == SubscriptionStatus.PENDING
            assert db_session.query(ProcessedWebhookEvent).count() == 0

    def test_tampered_body_rejected(self, reconciler, stripe_fake, started):
        session = stripe_fake.complete(started.session_id, "sub_1")
        payload = completed_event(session)
        header = sign_payload(payload)

        with pytest.raises(SignatureError):
            reconciler.handle(payload.replace("sub_1", "sub_2").encode("utf-8"), header)

    def test_missing_header_rejected(self, reconciler):
        with pytest.raises(SignatureError):
            reconciler.handle(b"{}", "")

    def test_stale_timestamp_rejected(self, reconciler):
        payload = make_event("invoice.paid", {"id": "in_1"})
        header = sign_payload(payload, timestamp=int(time.time()) - 3600)

        with pytest.raises(SignatureError):
            reconciler.handle(payload.encode("utf-8"), header)

    def test_non_utf8_body_rejected(self, reconciler):
        payload = b"\xff\xfe not text"
        header = sign_payload("ignored")

        with pytest.raises(SignatureError):
            reconciler.handle(payload, header)

    def test_signed_garbage_is_malformed(self, reconciler):
        with pytest.raises(MalformedEventError):
            deliver(reconciler, "not json")


class TestMemberCompletion:
    """Tests for checkout.session.completed on member checkouts."""

    def test_round_trip_grants_membership(self, reconciler, stripe_fake, database, started, paid_team, users):
        session = stripe_fake.complete(started.session_id, "sub_1", "cus_1")

        outcome = deliver(reconciler, completed_event(session))

        assert outcome.action == "membership_granted"
        with database.session() as db_session:
            row = SubscriptionLedger(db_session).get(paid_team.id, users["carol"].id)
            assert row.status == SubscriptionStatus.ACTIVE
            assert row.stripe_subscription_id == "sub_1"
            assert row.stripe_customer_id == "cus_1"
            assert row.amount_paid == Decimal("10.00")
            assert row.expires_at > utcnow() + timedelta(days=29)

            member = MembershipStore(db_session).get(paid_team.id, users["carol"].id)
            assert member.role == TeamRole.MEMBER

    def test_duplicate_delivery_is_noop(self, reconciler, stripe_fake, database, started, paid_team):
        session = stripe_fake.complete(started.session_id, "sub_1")
        payload = completed_event(session, event_id="evt_once")

        first = deliver(reconciler, payload)
        second = deliver(reconciler, payload)

        assert first.duplicate is False
        assert second.duplicate is True
        with database.session() as db_session:
            assert db_session.query(TeamMember).filter_by(team_id=paid_team.id).count() == 2
            assert db_session.query(TeamSubscription).count() == 1

    def test_redelivery_with_new_event_id_is_idempotent(self, reconciler, stripe_fake, database, started, paid_team):
        """Handlers stay idempotent even without the processed-event record."""
        session = stripe_fake.complete(started.session_id, "sub_1")

        deliver(reconciler, completed_event(session, event_id="evt_a"))
        deliver(reconciler, completed_event(session, event_id="evt_b"))

        with database.session() as db_session:
            assert db_session.query(TeamMember).filter_by(team_id=paid_team.id).count() == 2
            assert db_session.query(TeamSubscription).one().status == SubscriptionStatus.ACTIVE

    def test_webhook_before_pending_row(self, reconciler, database, paid_team, users):
        """Completion that arrives before the pending upsert commits inserts the row."""
        session = {
            "id": "cs_early",
            "metadata": {"teamId": paid_team.id, "userId": users["carol"].id},
            "subscription": None,
            "amount_total": 1000,
        }

        deliver(reconciler, completed_event(session))

        with database.session() as db_session:
            assert SubscriptionLedger(db_session).get(paid_team.id, users["carol"].id).status == SubscriptionStatus.ACTIVE
            assert MembershipStore(db_session).is_member(paid_team.id, users["carol"].id)

    def test_marks_member_intent_paid(self, reconciler, stripe_fake, database, started):
        session = stripe_fake.complete(started.session_id, "sub_1")

        deliver(reconciler, completed_event(session))

        with database.session() as db_session:
            assert db_session.get(CheckoutIntent, started.intent_token).status == IntentStatus.PAID

    def test_missing_metadata_is_malformed(self, reconciler, database):
        session = {"id": "cs_x", "metadata": {"teamId": "t"}, "subscription": "sub_x"}

        with pytest.raises(MalformedEventError):
            deliver(reconciler, completed_event(session))

        with database.session() as db_session:
            assert db_session.query(TeamSubscription).count() == 0

    def test_unknown_team_is_malformed(self, reconciler, users):
        session = {"id": "cs_x", "metadata": {"teamId": "gone", "userId": users["carol"].id}}

        with pytest.raises(MalformedEventError):
            deliver(reconciler, completed_event(session))

    def test_completion_after_cancellation_does_not_activate(
        self, reconciler, stripe_fake, database, started, paid_team, users
    ):
        """Out-of-order delivery: the subscription is already gone at Stripe."""
        session = stripe_fake.complete(started.session_id, "sub_1")
        stripe_fake.subscriptions["sub_1"]["status"] = "canceled"

        deliver(reconciler, deleted_event("sub_1"))
        outcome = deliver(reconciler, completed_event(session))

        assert outcome.action == "subscription_already_ended"
        with database.session() as db_session:
            assert not MembershipStore(db_session).is_member(paid_team.id, users["carol"].id)

    def test_ignores_member_cap(self, reconciler, registry, database, users, identity):
        """A collected payment is honoured even when the tier is full."""
        team = registry.create_team(users["admin"].id, "Tiny", access_mode="paid", joining_fee=2, tier="basic")
        with database.session() as db_session:
            for i in range(4):
                MembershipStore(db_session).add(team.id, identity.ensure_profile(f"filler-{i}").id)

        session = {"id": "cs_full", "metadata": {"teamId": team.id, "userId": users["carol"].id}}
        deliver(reconciler, completed_event(session))

        with database.session() as db_session:
            assert MembershipStore(db_session).count(team.id) == 6


class TestOwnerCompletion:
    """Tests for checkout.session.completed on owner checkouts."""

    def test_marks_intent_paid_without_membership_changes(self, reconciler, checkout, stripe_fake, database, users):
        start = checkout.start_owner_checkout("Gamma", "pro", None, 8, users["dave"].id, None)
        session = stripe_fake.complete(start.session_id, "sub_owner")

        outcome = deliver(reconciler, completed_event(session))

        assert outcome.action == "owner_checkout_recorded"
        with database.session() as db_session:
            intent = db_session.get(CheckoutIntent, start.intent_token)
            assert intent.status == IntentStatus.PAID
            assert intent.stripe_subscription_id == "sub_owner"
            assert db_session.query(Team).count() == 0
            assert db_session.query(TeamSubscription).count() == 0

    def test_sweep_creates_abandoned_team(self, reconciler, checkout, stripe_fake, database, users):
        start = checkout.start_owner_checkout("Gamma", "pro", None, 8, users["dave"].id, None)
        deliver(reconciler, completed_event(stripe_fake.complete(start.session_id, "sub_owner")))

        assert reconciler.sweep_owner_intents() == []  # still inside the grace period

        created = reconciler.sweep_owner_intents(now=utcnow() + timedelta(hours=1))

        assert len(created) == 1
        with database.session() as db_session:
            team = db_session.get(Team, created[0])
            assert team.name == "Gamma"
            assert MembershipStore(db_session).is_admin(team.id, users["dave"].id)

        assert reconciler.sweep_owner_intents(now=utcnow() + timedelta(hours=2)) == []

    def test_redirect_after_sweep_returns_swept_team(self, reconciler, checkout, stripe_fake, users):
        start = checkout.start_owner_checkout("Gamma", "pro", None, 8, users["dave"].id, None)
        deliver(reconciler, completed_event(stripe_fake.complete(start.session_id, "sub_owner")))
        created = reconciler.sweep_owner_intents(now=utcnow() + timedelta(hours=1))

        team = checkout.complete_owner_checkout(start.intent_token, users["dave"].id)

        assert team.id == created[0]


class TestSubscriptionDeleted:
    """Tests for customer.subscription.deleted."""

    def test_revokes_membership(self, reconciler, stripe_fake, database, started, paid_team, users):
        deliver(reconciler, completed_event(stripe_fake.complete(started.session_id, "sub_1")))

        outcome = deliver(reconciler, deleted_event("sub_1"))

        assert outcome.action == "membership_revoked"
        with database.session() as db_session:
            row = SubscriptionLedger(db_session).get(paid_team.id, users["carol"].id)
            assert row.status == SubscriptionStatus.CANCELLED
            assert row.cancelled_at is not None
            assert not MembershipStore(db_session).is_member(paid_team.id, users["carol"].id)

    def test_unknown_subscription_is_noop(self, reconciler, database, paid_team):
        outcome = deliver(reconciler, deleted_event("sub_nobody"))

        assert outcome.action == "noop"
        with database.session() as db_session:
            assert db_session.query(TeamMember).filter_by(team_id=paid_team.id).count() == 1

    def test_repeated_cancellation_is_noop(self, reconciler, stripe_fake, database, started):
        deliver(reconciler, completed_event(stripe_fake.complete(started.session_id, "sub_1")))

        deliver(reconciler, deleted_event("sub_1", event_id="evt_del_1"))
        outcome = deliver(reconciler, deleted_event("sub_1", event_id="evt_del_2"))

        assert outcome.action == "noop"


class TestBookkeeping:
    """Tests for processed-event records."""

    def test_unhandled_types_are_acknowledged(self, reconciler):
        outcome = deliver(reconciler, make_event("invoice.paid", {"id": "in_1"}))
        assert outcome.action == "ignored"

    def test_event_without_id_is_malformed(self, reconciler):
        payload = json.dumps({"type": "invoice.paid", "data": {"object": {}}})
        with pytest.raises(MalformedEventError):
            deliver(reconciler, payload)

    def test_cleanup_old_events(self, reconciler, database):
        reconciler.mark_event_processed("evt_old", "invoice.paid")
        reconciler.mark_event_processed("evt_new", "invoice.paid")
        with database.session() as db_session:
            old = db_session.query(ProcessedWebhookEvent).filter_by(event_id="evt_old").one()
            old.processed_at = utcnow() - timedelta(days=40)

        assert reconciler.cleanup_old_events(days=30) == 1
        assert reconciler.is_event_processed("evt_new")
        assert not reconciler.is_event_processed("evt_old")

    def test_mark_processed_twice_is_harmless(self, reconciler):
        reconciler.mark_event_processed("evt_1", "invoice.paid")
        reconciler.mark_event_processed("evt_1", "invoice.paid")
        assert reconciler.is_event_processed("evt_1")


class TestPaymentAfterPurge:
    """Owner pays after purge-intents has expired the intent."""

    def _start_and_purge(self, checkout, database, users):
        start = checkout.start_owner_checkout("Gamma", "pro", None, 8, users["dave"].id, None)
        with database.session() as db_session:
            assert IntentStore(db_session).expire_stale(now=utcnow() + timedelta(hours=2)) == 1
        return start

    def test_sweep_creates_team(self, reconciler, checkout, stripe_fake, database, users):
        start = self._start_and_purge(checkout, database, users)

        outcome = deliver(reconciler, completed_event(stripe_fake.complete(start.session_id, "sub_owner")))
        created = reconciler.sweep_owner_intents(now=utcnow() + timedelta(hours=3))

        assert outcome.action == "owner_checkout_recorded"
        assert len(created) == 1
        assert checkout.complete_owner_checkout(start.intent_token, users["dave"].id).id == created[0]

    def test_redirect_creates_team_before_webhook(self, checkout, stripe_fake, database, users):
        start = self._start_and_purge(checkout, database, users)
        stripe_fake.complete(start.session_id, "sub_owner")

        team = checkout.complete_owner_checkout(start.intent_token, users["dave"].id)

        assert team.name == "Gamma"
        assert team.owner_subscription_id == "sub_owner"
        with database.session() as db_session:
            assert db_session.query(Team).count() == 1
