"""Shared test fixtures."""

import hashlib
import hmac
import json
import os
import time

# Keep module-level singletons away from any real database or Stripe account
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-for-identity-provider-tokens")

import pytest  # noqa: E402
from jose import jwt  # noqa: E402

from teamhub.errors import PaymentProviderError  # noqa: E402
from teamhub.payments.stripe_service import CheckoutSession, StripeService  # noqa: E402
from teamhub.settings import settings  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripe(StripeService):
    """StripeService with the network calls replaced.

    Webhook signature verification is inherited unchanged so tests exercise
    the real Stripe signing scheme.
    """

    def __init__(self):
        super().__init__(api_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET, currency="usd")
        self.checkouts: list[dict] = []
        self.sessions: dict[str, dict] = {}
        self.subscriptions: dict[str, dict] = {}
        self.cancelled: list[str] = []
        self.fail_checkout = False
        self.fail_cancel = False

    def create_subscription_checkout(self, amount, product_name, description, metadata,
                                     success_url, cancel_url, customer_email=None):
        if self.fail_checkout:
            raise PaymentProviderError("Could not start checkout. Please try again.")
        session_id = f"cs_test_{len(self.checkouts) + 1}"
        self.checkouts.append({
            "id": session_id,
            "amount": amount,
            "product_name": product_name,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
        })
        self.sessions[session_id] = {
            "id": session_id,
            "status": "open",
            "payment_status": "unpaid",
            "metadata": metadata,
            "amount_total": int(amount * 100),
            "subscription": None,
            "customer": None,
        }
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    def complete(self, session_id: str, subscription_id: str, customer_id: str = "cus_test"):
        """Simulate the user paying on the hosted page."""
        session = self.sessions[session_id]
        session.update({
            "status": "complete",
            "payment_status": "paid",
            "subscription": subscription_id,
            "customer": customer_id,
        })
        self.subscriptions.setdefault(subscription_id, {
            "id": subscription_id,
            "status": "active",
            "current_period_end": int(time.time()) + 30 * 24 * 3600,
            "metadata": session["metadata"],
        })
        return session

    def retrieve_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise PaymentProviderError("Could not look up the checkout session")
        return self.sessions[session_id]

    def retrieve_subscription(self, subscription_id):
        if subscription_id not in self.subscriptions:
            raise PaymentProviderError("Could not look up the subscription")
        return self.subscriptions[subscription_id]

    def cancel_subscription(self, subscription_id):
        if self.fail_cancel:
            raise PaymentProviderError("Could not cancel the subscription. Please try again.")
        self.cancelled.append(subscription_id)
        subscription = self.subscriptions.get(subscription_id)
        if subscription is None or subscription["status"] == "canceled":
            return False
        subscription["status"] = "canceled"
        return True


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header: HMAC-SHA256 over "{t}.{body}"."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str | None = None) -> str:
    return json.dumps({
        "id": event_id or f"evt_{obj.get('id', 'x')}_{event_type}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def completed_event(session: dict, event_id: str | None = None) -> str:
    return make_event("checkout.session.completed", session, event_id)


def deleted_event(subscription_id: str, event_id: str | None = None) -> str:
    return make_event(
        "customer.subscription.deleted",
        {"id": subscription_id, "object": "subscription", "status": "canceled"},
        event_id,
    )


# ===== Fixtures =====

@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database per test."""
    from teamhub.storage.db import Database

    database = Database(f"sqlite:///{tmp_path / 'test.db'}")
    database.create_tables()
    yield database
    database.engine.dispose()


@pytest.fixture
def stripe_fake():
    return FakeStripe()


@pytest.fixture
def identity(database):
    from teamhub.auth.identity import IdentityService

    return IdentityService(database)


@pytest.fixture
def users(identity):
    """Profiles for the users the scenarios talk about."""
    return {
        name: identity.ensure_profile(user_id=f"user-{name}", email=f"{name}@example.com", name=name.title())
        for name in ("admin", "bob", "carol", "dave")
    }


@pytest.fixture
def registry(database):
    from teamhub.teams.registry import TeamRegistry

    return TeamRegistry(database)


@pytest.fixture
def checkout(database, stripe_fake, registry):
    from teamhub.payments.checkout import CheckoutInitiator

    return CheckoutInitiator(database, stripe_fake, registry)


@pytest.fixture
def reconciler(database, stripe_fake, registry):
    from teamhub.payments.webhooks import WebhookReconciler

    return WebhookReconciler(database, stripe_fake, registry)


@pytest.fixture
def gateway(database, stripe_fake, registry, checkout, reconciler):
    from teamhub.teams.gateway import MembershipGateway

    return MembershipGateway(database, stripe_fake, registry, checkout, reconciler)


@pytest.fixture
def task_service(database):
    from teamhub.tasks.service import TaskService

    return TaskService(database)


@pytest.fixture
def free_team(registry, users):
    """Team "Alpha": free access, created by admin."""
    return registry.create_team(users["admin"].id, "Alpha", access_mode="free")


@pytest.fixture
def paid_team(registry, users):
    """Team "Beta": paid access with a joining fee of 10."""
    return registry.create_team(users["admin"].id, "Beta", access_mode="paid", joining_fee=10)


@pytest.fixture
def token_for():
    """Build identity-provider JWTs for a user id."""
    def _token(user_id: str, email: str | None = None, name: str | None = None, expires_in: int = 3600) -> str:
        claims = {"sub": user_id, "exp": int(time.time()) + expires_in}
        if email:
            claims["email"] = email
        if name:
            claims["user_metadata"] = {"name": name}
        return jwt.encode(claims, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)
    return _token


@pytest.fixture
def app(identity, registry, gateway, checkout, reconciler, task_service):
    """Application wired to the test database and fake Stripe."""
    from teamhub.api import deps
    from teamhub.api.main import create_app
    from teamhub.auth.middleware import get_identity_service

    app = create_app()
    app.dependency_overrides[get_identity_service] = lambda: identity
    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_checkout] = lambda: checkout
    app.dependency_overrides[deps.get_reconciler] = lambda: reconciler
    app.dependency_overrides[deps.get_task_service] = lambda: task_service
    return app


@pytest.fixture
def client(app):
    """Test client. The lifespan is not entered, so the global database is untouched."""
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def auth_headers(token_for, users):
    def _headers(name: str) -> dict:
        user = users[name]
        return {"Authorization": f"Bearer {token_for(user.id, email=user.email)}"}
    return _headers
