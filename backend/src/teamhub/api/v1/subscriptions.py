"""Subscription management endpoints for paying members."""

from fastapi import APIRouter, Depends

from teamhub.api.deps import get_gateway
from teamhub.auth.middleware import require_auth
from teamhub.auth.models import UserAccount
from teamhub.teams.gateway import MembershipGateway

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("")
async def list_subscriptions(
    current_user: UserAccount = Depends(require_auth),
    gateway: MembershipGateway = Depends(get_gateway),
):
    """List the current user's team subscriptions."""
    return {"subscriptions": gateway.list_my_subscriptions(current_user.id)}


@router.post("/{team_id}/cancel")
async def cancel_subscription(
    team_id: str,
    current_user: UserAccount = Depends(require_auth),
    gateway: MembershipGateway = Depends(get_gateway),
):
    """Cancel the subscription and leave the team immediately."""
    gateway.cancel_own_subscription(team_id, current_user.id)
    return {"success": True, "message": "Subscription cancelled"}
