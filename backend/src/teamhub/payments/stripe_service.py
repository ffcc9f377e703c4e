"""Stripe payment integration for TeamHub."""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import stripe

from teamhub.errors import MalformedEventError, PaymentProviderError, SignatureError
from teamhub.logging_config import get_logger
from teamhub.settings import settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    """Processor-hosted payment page."""
    id: str
    url: str


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def from_cents(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def from_timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def as_dict(obj: Any) -> dict:
    """Plain dict view of a Stripe object."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


class StripeService:
    """Thin client over the Stripe API.

    Every Stripe error is re-raised as PaymentProviderError so callers
    never depend on the Stripe exception hierarchy.
    """

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        currency: str | None = None,
    ):
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.currency = currency or settings.stripe_currency

    def _require_key(self) -> str:
        if not self.api_key:
            raise PaymentProviderError("Stripe is not configured")
        return self.api_key

    def create_subscription_checkout(
        self,
        amount: Decimal,
        product_name: str,
        description: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        """Create a Checkout session for a monthly recurring charge.

        The metadata is attached to both the session and the resulting
        subscription so later events can be correlated either way.

        Args:
            amount: Monthly amount in the configured currency
            product_name: Line item name shown on the payment page
            description: Line item description
            metadata: Correlation data Stripe echoes back in webhooks
            success_url: Redirect after payment
            cancel_url: Redirect if the user abandons the payment
            customer_email: Prefills the payment form

        Returns:
            Session id and hosted page URL

        Raises:
            PaymentProviderError: If Stripe is unavailable or rejects the request
        """
        api_key = self._require_key()
        try:
            session = stripe.checkout.Session.create(
                api_key=api_key,
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {
                                "name": product_name,
                                "description": description,
                            },
                            "unit_amount": to_cents(amount),
                            "recurring": {"interval": "month"},
                        },
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email or None,
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error("stripe_checkout_failed", error=str(e))
            raise PaymentProviderError("Could not start checkout. Please try again.") from e

        logger.info("checkout_session_created", session_id=session.id)
        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_checkout_session(self, session_id: str) -> dict:
        api_key = self._require_key()
        try:
            return as_dict(stripe.checkout.Session.retrieve(session_id, api_key=api_key))
        except stripe.StripeError as e:
            logger.error("stripe_session_lookup_failed", session_id=session_id, error=str(e))
            raise PaymentProviderError("Could not look up the checkout session") from e

    def retrieve_subscription(self, subscription_id: str) -> dict:
        api_key = self._require_key()
        try:
            return as_dict(stripe.Subscription.retrieve(subscription_id, api_key=api_key))
        except stripe.StripeError as e:
            logger.error("stripe_subscription_lookup_failed", subscription_id=subscription_id, error=str(e))
            raise PaymentProviderError("Could not look up the subscription") from e

    def cancel_subscription(self, subscription_id: str) -> bool:
        """Cancel a subscription immediately.

        Returns:
            True if cancelled now, False if Stripe no longer knows it

        Raises:
            PaymentProviderError: Any other Stripe failure
        """
        api_key = self._require_key()
        try:
            stripe.Subscription.cancel(subscription_id, api_key=api_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                logger.info("stripe_subscription_already_gone", subscription_id=subscription_id)
                return False
            logger.error("stripe_cancel_failed", subscription_id=subscription_id, error=str(e))
            raise PaymentProviderError("Could not cancel the subscription. Please try again.") from e
        except stripe.StripeError as e:
            logger.error("stripe_cancel_failed", subscription_id=subscription_id, error=str(e))
            raise PaymentProviderError("Could not cancel the subscription. Please try again.") from e

        logger.info("stripe_subscription_cancelled", subscription_id=subscription_id)
        return True

    def verify_webhook(self, payload: bytes, sig_header: str) -> dict:
        """Verify the signature over the raw body, then parse it.

        Args:
            payload: Raw request body
            sig_header: Stripe-Signature header value

        Returns:
            The event as a plain dict

        Raises:
            SignatureError: Missing secret, missing header or bad signature
            MalformedEventError: Signed body is not a JSON event
        """
        if not self.webhook_secret:
            raise SignatureError("Stripe webhook secret not configured")
        if not sig_header:
            raise SignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            raise SignatureError("Webhook body is not valid UTF-8") from e
        try:
            stripe.WebhookSignature.verify_header(
                body,
                sig_header,
                self.webhook_secret,
                settings.webhook_tolerance_seconds,
            )
        except stripe.SignatureVerificationError as e:
            raise SignatureError("Invalid webhook signature") from e

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise MalformedEventError("Webhook body is not valid JSON") from e
        if not isinstance(event, dict):
            raise MalformedEventError("Webhook body is not an event object")
        return event


# Singleton instance
stripe_service = StripeService()
