"""Team and membership database models."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from teamhub.storage.models import Base, new_id, utcnow


class AccessMode(str, Enum):
    """How users get into a team."""
    FREE = "free"    # Join directly
    PAID = "paid"    # Join after paying the joining fee


class TeamTier(str, Enum):
    """Capacity level the owner pays for."""
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class TeamRole(str, Enum):
    """Team member roles."""
    ADMIN = "admin"      # Can manage members
    MEMBER = "member"    # Can work on tasks


@dataclass(frozen=True)
class TierLimits:
    """Monthly owner price and capacity of a tier. None means unlimited."""
    price: Decimal
    max_members: int | None
    max_tasks: int | None


TIER_CATALOG: dict[TeamTier, TierLimits] = {
    TeamTier.FREE: TierLimits(price=Decimal("0"), max_members=None, max_tasks=None),
    TeamTier.BASIC: TierLimits(price=Decimal("5.00"), max_members=5, max_tasks=50),
    TeamTier.PRO: TierLimits(price=Decimal("15.00"), max_members=20, max_tasks=None),
    TeamTier.ENTERPRISE: TierLimits(price=Decimal("49.00"), max_members=None, max_tasks=None),
}


class Team(Base):
    """A tenant grouping of users sharing tasks."""
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=new_id)

    # Team info
    name = Column(String(255), nullable=False)

    # Access
    access_mode = Column(SQLEnum(AccessMode), nullable=False, default=AccessMode.FREE)
    tier = Column(SQLEnum(TeamTier), nullable=False, default=TeamTier.FREE)
    tier_price = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    joining_fee = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    # Owner
    created_by = Column(String(64), ForeignKey("user_accounts.id"), nullable=False, index=True)
    owner_subscription_id = Column(String(255), nullable=True)  # Owner's tier subscription

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Team(id={self.id}, name={self.name}, mode={self.access_mode})>"


class TeamMember(Base):
    """Membership of a user in a team. At most one row per (team, user)."""
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )

    id = Column(Integer, primary_key=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("user_accounts.id"), nullable=False, index=True)

    # Role
    role = Column(SQLEnum(TeamRole), nullable=False, default=TeamRole.MEMBER)

    # Timestamps
    joined_at = Column(DateTime, default=utcnow)

    # Relationships
    team = relationship("Team", back_populates="members")
    user = relationship("UserAccount")

    def __repr__(self):
        return f"<TeamMember(team={self.team_id}, user={self.user_id}, role={self.role})>"


@dataclass
class TeamSummary:
    """Public view of a team used for join decisions."""
    id: str
    name: str
    access_mode: AccessMode
    tier: TeamTier
    joining_fee: Decimal
    member_count: int
