"""Identity provider integration for TeamHub."""

from teamhub.auth.identity import IdentityService, identity_service
from teamhub.auth.middleware import get_current_user, require_auth
from teamhub.auth.models import UserAccount

__all__ = [
    "UserAccount",
    "IdentityService",
    "identity_service",
    "get_current_user",
    "require_auth",
]
