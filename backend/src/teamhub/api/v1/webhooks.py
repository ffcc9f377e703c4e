"""Webhook endpoints for external services."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from teamhub.api.deps import get_reconciler
from teamhub.errors import MalformedEventError, SignatureError
from teamhub.logging_config import get_logger
from teamhub.payments.webhooks import WebhookReconciler

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
):
    """Handle Stripe webhook events.

    Verifies the signature over the raw body before anything else.
    Malformed events are acknowledged so Stripe stops redelivering them;
    infrastructure failures return 500 so it retries.
    """
    if not reconciler.processor.webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhooks not configured",
        )

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        outcome = reconciler.handle(payload, sig_header)
    except SignatureError as e:
        logger.warning("stripe_webhook_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except MalformedEventError as e:
        logger.warning("stripe_webhook_malformed", error=str(e))
        return {"received": True, "ignored": True}
    except Exception as e:
        logger.error("stripe_webhook_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing webhook",
        )

    if outcome.duplicate:
        return {"received": True, "duplicate": True}
    return {"received": True, "action": outcome.action}
