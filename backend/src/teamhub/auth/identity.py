"""Identity provider token verification and user profiles."""

from typing import Any

from jose import JWTError, jwt

from teamhub.auth.models import UserAccount
from teamhub.logging_config import get_logger
from teamhub.settings import settings
from teamhub.storage.db import Database, db as default_db
from teamhub.storage.models import utcnow

logger = get_logger(__name__)


class IdentityService:
    """Verifies identity-provider JWTs and keeps user profiles in sync."""

    def __init__(self, database: Database | None = None):
        self.db = database or default_db
        self.logger = get_logger(__name__)

    # ==================== JWT TOKENS ====================

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify and decode a JWT issued by the identity provider.

        Args:
            token: JWT token string

        Returns:
            Token payload or None if invalid
        """
        options = {"verify_aud": settings.auth_jwt_audience is not None}
        try:
            return jwt.decode(
                token,
                settings.auth_jwt_secret,
                algorithms=[settings.auth_jwt_algorithm],
                audience=settings.auth_jwt_audience,
                options=options,
            )
        except JWTError as e:
            self.logger.debug("token_verification_failed", error=str(e))
            return None

    def get_user_from_token(self, token: str) -> UserAccount | None:
        """Resolve the user behind a token, creating the profile on first sight.

        Args:
            token: JWT token string

        Returns:
            User account or None when the session is not valid
        """
        payload = self.verify_token(token)
        if not payload:
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        metadata = payload.get("user_metadata") or {}
        return self.ensure_profile(
            user_id=str(user_id),
            email=payload.get("email"),
            name=metadata.get("name") or payload.get("name"),
        )

    # ==================== PROFILES ====================

    def ensure_profile(
        self,
        user_id: str,
        email: str | None = None,
        name: str | None = None,
    ) -> UserAccount:
        """Create or refresh the profile row for a user id."""
        with self.db.session() as session:
            user = session.get(UserAccount, user_id)
            if user is None:
                user = UserAccount(id=user_id, email=email, name=name)
                session.add(user)
                self.logger.info("user_profile_created", user_id=user_id)
            else:
                if email:
                    user.email = email
                if name:
                    user.name = name
                user.last_seen_at = utcnow()
            session.commit()
            session.refresh(user)
            return user

    def get_user_by_id(self, user_id: str) -> UserAccount | None:
        with self.db.session() as session:
            return session.get(UserAccount, user_id)


# Singleton instance
identity_service = IdentityService()
