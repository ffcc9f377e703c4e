"""Team API endpoints."""

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from teamhub.api.deps import get_gateway, get_registry
from teamhub.api.rate_limit import limiter
from teamhub.auth.middleware import require_auth
from teamhub.auth.models import UserAccount
from teamhub.logging_config import get_logger
from teamhub.teams.gateway import MembershipGateway
from teamhub.teams.models import AccessMode, TeamTier
from teamhub.teams.registry import TeamRegistry

router = APIRouter(prefix="/teams", tags=["teams"])
logger = get_logger(__name__)


# ─── Request/Response Models ─────────────────────────────────────────────────

class CreateTeamRequest(BaseModel):
    """Request to create a team on the free tier."""
    name: str = Field(..., min_length=1, max_length=255)
    access_mode: AccessMode = AccessMode.FREE
    joining_fee: float = Field(default=0, ge=0)


class TeamResponse(BaseModel):
    """Team information response."""
    id: str
    name: str
    access_mode: str
    tier: str
    joining_fee: float
    member_count: int


class TeamListResponse(BaseModel):
    teams: list[dict]


class AddMemberRequest(BaseModel):
    """Admin request to add an existing user without payment."""
    user_id: str = Field(..., min_length=1)


class JoinResponse(BaseModel):
    """Outcome of a join request.

    When status is `checkout_required` the user is NOT a member yet.
    """
    status: str
    team_id: str
    checkout_url: str | None = None
    session_id: str | None = None
    intent_token: str | None = None


# ─── Endpoints ───────────────────────────────────────────────────────────────

@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    body: CreateTeamRequest,
    current_user: UserAccount = Depends(require_auth),
    registry: TeamRegistry = Depends(get_registry),
):
    """Create a team. The current user becomes its admin.

    Paid tiers are bought through `/checkout/owner` instead.
    """
    team = registry.create_team(
        creator_id=current_user.id,
        name=body.name,
        access_mode=body.access_mode,
        tier=TeamTier.FREE,
        joining_fee=body.joining_fee,
    )
    return TeamResponse(
        id=team.id,
        name=team.name,
        access_mode=team.access_mode.value,
        tier=team.tier.value,
        joining_fee=float(team.joining_fee),
        member_count=1,
    )


@router.get("", response_model=TeamListResponse)
async def get_my_teams(
    current_user: UserAccount = Depends(require_auth),
    registry: TeamRegistry = Depends(get_registry),
):
    """Get all teams the current user belongs to."""
    return TeamListResponse(teams=registry.list_user_teams(current_user.id))


@router.get("/discover", response_model=TeamListResponse)
async def discover_teams(
    access_mode: AccessMode | None = None,
    search: str | None = None,
    current_user: UserAccount = Depends(require_auth),
    registry: TeamRegistry = Depends(get_registry),
):
    """Browse all teams, optionally filtered by access mode or name."""
    teams = registry.list_discoverable_teams(current_user.id, access_mode=access_mode, search=search)
    return TeamListResponse(teams=teams)


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: str,
    current_user: UserAccount = Depends(require_auth),
    registry: TeamRegistry = Depends(get_registry),
):
    """Get the public summary used to decide whether to join."""
    info = registry.get_team_info(team_id)
    return TeamResponse(
        id=info.id,
        name=info.name,
        access_mode=info.access_mode.value,
        tier=info.tier.value,
        joining_fee=float(info.joining_fee),
        member_count=info.member_count,
    )


@router.get("/{team_id}/members")
async def get_team_members(
    team_id: str,
    current_user: UserAccount = Depends(require_auth),
    registry: TeamRegistry = Depends(get_registry),
):
    """Get all members of a team. User must be a member of the team."""
    return {"members": registry.list_members(team_id, current_user.id)}


@router.get("/{team_id}/available-users")
async def get_available_users(
    team_id: str,
    current_user: UserAccount = Depends(require_auth),
    registry: TeamRegistry = Depends(get_registry),
):
    """Users an admin could add to the team."""
    return {"users": registry.list_available_users(team_id, current_user.id)}


@router.post("/{team_id}/join", response_model=JoinResponse)
@limiter.limit("20/minute")
async def join_team(
    request: Request,
    team_id: str,
    current_user: UserAccount = Depends(require_auth),
    gateway: MembershipGateway = Depends(get_gateway),
):
    """Join a team.

    Free teams are joined immediately. Paid teams return a checkout URL;
    membership is granted once the payment is confirmed.
    """
    outcome = gateway.request_join(team_id, current_user.id, current_user.email)
    return JoinResponse(
        status=outcome.status,
        team_id=outcome.team_id,
        checkout_url=outcome.checkout_url,
        session_id=outcome.session_id,
        intent_token=outcome.intent_token,
    )


@router.post("/{team_id}/members", status_code=status.HTTP_201_CREATED)
async def add_team_member(
    team_id: str,
    body: AddMemberRequest,
    current_user: UserAccount = Depends(require_auth),
    gateway: MembershipGateway = Depends(get_gateway),
):
    """Add a user to the team without payment. Admins only."""
    gateway.add_member_directly(team_id, current_user.id, body.user_id)
    return {"success": True, "message": "Member added"}


@router.delete("/{team_id}/members/{user_id}")
async def remove_team_member(
    team_id: str,
    user_id: str,
    current_user: UserAccount = Depends(require_auth),
    gateway: MembershipGateway = Depends(get_gateway),
):
    """Remove a member from the team. Admins only, and not themselves."""
    gateway.remove_member(team_id, current_user.id, user_id)
    return {"success": True, "message": "Member removed"}
