"""Authentication dependencies for FastAPI."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from teamhub.auth.identity import IdentityService, identity_service
from teamhub.auth.models import UserAccount
from teamhub.logging_config import get_logger

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def get_identity_service() -> IdentityService:
    return identity_service


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    identity: IdentityService = Depends(get_identity_service),
) -> UserAccount | None:
    """Get current authenticated user.

    Args:
        request: FastAPI request
        credentials: Bearer token issued by the identity provider
        identity: Token verifier

    Returns:
        User account or None if not authenticated
    """
    if not credentials:
        return None

    user = identity.get_user_from_token(credentials.credentials)
    if user:
        # Store user in request state for later use
        request.state.user = user

    return user


def require_auth(user: UserAccount | None = Depends(get_current_user)) -> UserAccount:
    """Require authentication - raises 401 if not authenticated.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
