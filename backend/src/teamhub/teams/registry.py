"""Team registry: team metadata and the facts join decisions depend on."""

from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from teamhub.auth.models import UserAccount
from teamhub.errors import NotFoundError, PermissionDeniedError, TeamFullError, ValidationError
from teamhub.logging_config import get_logger
from teamhub.storage.db import Database, db as default_db
from teamhub.teams.membership import MembershipStore
from teamhub.teams.models import TIER_CATALOG, AccessMode, Team, TeamMember, TeamRole, TeamSummary, TeamTier

logger = get_logger(__name__)


def parse_amount(value: Any, field: str) -> Decimal:
    """Coerce a money amount to a two-decimal Decimal."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    return amount.quantize(Decimal("0.01"))


def parse_tier(value: TeamTier | str) -> TeamTier:
    try:
        return TeamTier(value)
    except ValueError:
        raise ValidationError(f"Unknown tier: {value}")


def ensure_capacity(session: Session, team: Team) -> None:
    """Raise TeamFullError if the team's tier has no room for another member."""
    limit = TIER_CATALOG[team.tier].max_members
    if limit is None:
        return
    if MembershipStore(session).count(team.id) >= limit:
        raise TeamFullError(f"Team has reached the maximum of {limit} members for the {team.tier.value} tier")


class TeamRegistry:
    """Creates teams and answers questions about them."""

    def __init__(self, database: Database | None = None):
        self.db = database or default_db
        self.logger = get_logger(__name__)

    def create_team(
        self,
        creator_id: str,
        name: str,
        access_mode: AccessMode | str = AccessMode.FREE,
        tier: TeamTier | str = TeamTier.FREE,
        joining_fee: Any = 0,
        tier_price: Any = None,
        owner_subscription_id: str | None = None,
        session: Session | None = None,
    ) -> Team:
        """Create a team and make the creator its admin.

        The team row and the creator's admin membership are written in the
        same transaction, so a team never exists without an owner.

        Args:
            creator_id: User creating the team
            name: Team name
            access_mode: free or paid
            tier: Owner's tier
            joining_fee: Recurring fee members pay (0 for free teams)
            tier_price: Owner's monthly price (defaults to the catalog price)
            owner_subscription_id: Owner's processor subscription, if any
            session: Join an existing transaction instead of opening one

        Returns:
            Created team

        Raises:
            ValidationError: Empty name or fee inconsistent with access mode
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name is required")

        try:
            access_mode = AccessMode(access_mode)
        except ValueError:
            raise ValidationError(f"Unknown access mode: {access_mode}")
        tier = parse_tier(tier)
        fee = parse_amount(joining_fee or 0, "Joining fee")
        price = TIER_CATALOG[tier].price if tier_price is None else parse_amount(tier_price, "Tier price")

        if access_mode == AccessMode.PAID and fee <= 0:
            raise ValidationError("Paid teams need a joining fee greater than zero")
        if access_mode == AccessMode.FREE and fee != 0:
            raise ValidationError("Free teams cannot charge a joining fee")
        if price < 0:
            raise ValidationError("Tier price cannot be negative")

        if session is not None:
            return self._insert_team(session, creator_id, name, access_mode, tier, fee, price, owner_subscription_id)

        with self.db.session() as session:
            return self._insert_team(session, creator_id, name, access_mode, tier, fee, price, owner_subscription_id)

    def _insert_team(
        self,
        session: Session,
        creator_id: str,
        name: str,
        access_mode: AccessMode,
        tier: TeamTier,
        fee: Decimal,
        price: Decimal,
        owner_subscription_id: str | None,
    ) -> Team:
        if session.get(UserAccount, creator_id) is None:
            raise NotFoundError(f"User {creator_id} not found")

        team = Team(
            name=name,
            access_mode=access_mode,
            tier=tier,
            tier_price=price,
            joining_fee=fee,
            created_by=creator_id,
            owner_subscription_id=owner_subscription_id,
        )
        session.add(team)
        session.flush()  # Get team ID

        MembershipStore(session).add(team.id, creator_id, TeamRole.ADMIN)
        session.flush()

        self.logger.info(
            "team_created",
            team_id=team.id,
            creator_id=creator_id,
            access_mode=access_mode.value,
            tier=tier.value,
        )
        return team

    def get_team(self, team_id: str) -> Team | None:
        with self.db.session() as session:
            return session.get(Team, team_id)

    def get_team_info(self, team_id: str) -> TeamSummary:
        """Summarise a team for join decisions.

        Raises:
            NotFoundError: If the id does not resolve
        """
        with self.db.session() as session:
            team = session.get(Team, team_id)
            if team is None:
                raise NotFoundError(f"Team {team_id} not found")
            return TeamSummary(
                id=team.id,
                name=team.name,
                access_mode=team.access_mode,
                tier=team.tier,
                joining_fee=team.joining_fee,
                member_count=MembershipStore(session).count(team.id),
            )

    def list_user_teams(self, user_id: str) -> list[dict]:
        """Get all teams a user belongs to, with the user's role."""
        with self.db.session() as session:
            store = MembershipStore(session)
            teams = []
            for membership in store.list_for_user(user_id):
                team = membership.team
                teams.append({
                    "id": team.id,
                    "name": team.name,
                    "access_mode": team.access_mode.value,
                    "tier": team.tier.value,
                    "joining_fee": float(team.joining_fee),
                    "role": membership.role.value,
                    "member_count": store.count(team.id),
                    "is_owner": team.created_by == user_id,
                })
            return teams

    def list_discoverable_teams(
        self,
        user_id: str,
        access_mode: AccessMode | None = None,
        search: str | None = None,
    ) -> list[dict]:
        """List all teams with member counts and whether the user has joined."""
        with self.db.session() as session:
            counts = (
                select(TeamMember.team_id, func.count(TeamMember.id).label("member_count"))
                .group_by(TeamMember.team_id)
                .subquery()
            )
            query = (
                select(Team, counts.c.member_count)
                .outerjoin(counts, counts.c.team_id == Team.id)
                .order_by(Team.created_at.desc())
            )
            if access_mode is not None:
                query = query.where(Team.access_mode == access_mode)
            if search:
                query = query.where(Team.name.ilike(f"%{search.strip()}%"))

            joined = {
                row.team_id
                for row in session.execute(
                    select(TeamMember.team_id).where(TeamMember.user_id == user_id)
                )
            }

            return [
                {
                    "id": team.id,
                    "name": team.name,
                    "access_mode": team.access_mode.value,
                    "tier": team.tier.value,
                    "joining_fee": float(team.joining_fee),
                    "member_count": member_count or 0,
                    "is_member": team.id in joined,
                }
                for team, member_count in session.execute(query)
            ]

    def list_members(self, team_id: str, requester_id: str) -> list[dict]:
        """List members of a team. The requester must be a member.

        Raises:
            NotFoundError: Team missing or requester not a member
        """
        with self.db.session() as session:
            store = MembershipStore(session)
            if session.get(Team, team_id) is None or not store.is_member(team_id, requester_id):
                raise NotFoundError("Team not found or you are not a member")

            members = []
            for member in store.list_for_team(team_id):
                user = member.user
                members.append({
                    "membership_id": member.id,
                    "user_id": member.user_id,
                    "email": user.email if user else None,
                    "name": user.name if user else None,
                    "role": member.role.value,
                    "joined_at": member.joined_at.isoformat() if member.joined_at else None,
                })
            return members

    def list_available_users(self, team_id: str, admin_id: str) -> list[dict]:
        """Known users who are not yet members (admin only)."""
        with self.db.session() as session:
            if session.get(Team, team_id) is None:
                raise NotFoundError(f"Team {team_id} not found")
            if not MembershipStore(session).is_admin(team_id, admin_id):
                raise PermissionDeniedError("Only team admins can add members")

            in_team = select(TeamMember.user_id).where(TeamMember.team_id == team_id)
            users = session.scalars(
                select(UserAccount)
                .where(UserAccount.id.not_in(in_team))
                .order_by(UserAccount.email)
            )
            return [{"id": u.id, "email": u.email, "name": u.name} for u in users]


# Singleton instance
team_registry = TeamRegistry()
