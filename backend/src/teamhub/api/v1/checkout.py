"""Checkout API endpoints for paid team creation and paid join confirmation."""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from teamhub.api.deps import get_checkout, get_gateway
from teamhub.api.rate_limit import limiter
from teamhub.auth.middleware import require_auth
from teamhub.auth.models import UserAccount
from teamhub.logging_config import get_logger
from teamhub.payments.checkout import CheckoutInitiator
from teamhub.teams.gateway import MembershipGateway
from teamhub.teams.models import TeamTier

router = APIRouter(prefix="/checkout", tags=["checkout"])
logger = get_logger(__name__)


class OwnerCheckoutRequest(BaseModel):
    """Parameters of the team to create once the owner has paid."""
    team_name: str = Field(..., min_length=1, max_length=255)
    tier: TeamTier
    tier_price: float | None = Field(default=None, gt=0)
    joining_fee: float = Field(..., gt=0)


class CheckoutResponse(BaseModel):
    url: str
    session_id: str
    intent_token: str


class IntentRequest(BaseModel):
    """Intent token carried back by the success redirect."""
    intent_token: str = Field(..., min_length=1)


@router.post("/owner", response_model=CheckoutResponse)
@limiter.limit("10/minute")
async def start_owner_checkout(
    request: Request,
    body: OwnerCheckoutRequest,
    current_user: UserAccount = Depends(require_auth),
    checkout: CheckoutInitiator = Depends(get_checkout),
):
    """Start the owner's tier subscription. The team is created after payment."""
    start = checkout.start_owner_checkout(
        team_name=body.team_name,
        tier=body.tier,
        tier_price=body.tier_price,
        joining_fee=body.joining_fee,
        user_id=current_user.id,
        user_email=current_user.email,
    )
    return CheckoutResponse(url=start.url, session_id=start.session_id, intent_token=start.intent_token)


@router.post("/owner/complete")
async def complete_owner_checkout(
    body: IntentRequest,
    current_user: UserAccount = Depends(require_auth),
    checkout: CheckoutInitiator = Depends(get_checkout),
):
    """Create the paid-for team. Safe to call again after a page reload."""
    team = checkout.complete_owner_checkout(body.intent_token, current_user.id)
    return {
        "id": team.id,
        "name": team.name,
        "access_mode": team.access_mode.value,
        "tier": team.tier.value,
        "joining_fee": float(team.joining_fee),
    }


@router.post("/confirm")
async def confirm_join(
    body: IntentRequest,
    current_user: UserAccount = Depends(require_auth),
    gateway: MembershipGateway = Depends(get_gateway),
):
    """Wait for a paid join to be confirmed.

    Returns `pending` if neither the webhook nor the direct processor check
    confirmed the payment in time.
    """
    confirmation = await gateway.confirm_join(body.intent_token, current_user.id)
    return {
        "status": confirmation.status,
        "via": confirmation.via,
        "team_id": confirmation.team_id,
    }
