"""Membership store: which users belong to which teams."""

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from teamhub.logging_config import get_logger
from teamhub.storage.db import conflict_insert
from teamhub.storage.models import utcnow
from teamhub.teams.models import TeamMember, TeamRole

logger = get_logger(__name__)


class MembershipStore:
    """Repository for TeamMember rows.

    Writes are conditional: `add` is insert-or-ignore and `remove` is
    delete-if-exists, so redundant writes from racing callers are no-ops.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, team_id: str, user_id: str) -> TeamMember | None:
        return self.session.scalar(
            select(TeamMember).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
            )
        )

    def is_member(self, team_id: str, user_id: str) -> bool:
        return self.get(team_id, user_id) is not None

    def is_admin(self, team_id: str, user_id: str) -> bool:
        member = self.get(team_id, user_id)
        return member is not None and member.role == TeamRole.ADMIN

    def add(self, team_id: str, user_id: str, role: TeamRole = TeamRole.MEMBER) -> bool:
        """Insert a membership unless one already exists.

        Returns:
            True if a row was inserted, False if the user was already a member
        """
        stmt = conflict_insert(
            self.session,
            TeamMember,
            {"team_id": team_id, "user_id": user_id, "role": role, "joined_at": utcnow()},
        ).on_conflict_do_nothing(index_elements=["team_id", "user_id"])
        inserted = self.session.execute(stmt).rowcount == 1
        if inserted:
            logger.info("membership_granted", team_id=team_id, user_id=user_id, role=role.value)
        return inserted

    def remove(self, team_id: str, user_id: str) -> bool:
        """Delete a membership if present.

        Returns:
            True if a row was deleted
        """
        result = self.session.execute(
            delete(TeamMember).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
            )
        )
        removed = result.rowcount > 0
        if removed:
            logger.info("membership_revoked", team_id=team_id, user_id=user_id)
        return removed

    def count(self, team_id: str) -> int:
        return self.session.scalar(
            select(func.count(TeamMember.id)).where(TeamMember.team_id == team_id)
        ) or 0

    def list_for_team(self, team_id: str) -> list[TeamMember]:
        return list(self.session.scalars(
            select(TeamMember)
            .where(TeamMember.team_id == team_id)
            .order_by(TeamMember.joined_at)
        ))

    def list_for_user(self, user_id: str) -> list[TeamMember]:
        return list(self.session.scalars(
            select(TeamMember)
            .where(TeamMember.user_id == user_id)
            .order_by(TeamMember.joined_at.desc())
        ))
