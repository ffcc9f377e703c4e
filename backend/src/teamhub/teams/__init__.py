"""Teams module for TeamHub.

- Team registry and tier catalog
- Membership store (admin / member roles)
- Membership gateway for free joins, paid joins and removals
"""

from teamhub.teams.models import TIER_CATALOG, AccessMode, Team, TeamMember, TeamRole, TeamTier
from teamhub.teams.registry import TeamRegistry, team_registry

__all__ = [
    "TIER_CATALOG",
    "AccessMode",
    "Team",
    "TeamMember",
    "TeamRole",
    "TeamTier",
    "TeamRegistry",
    "team_registry",
]
