"""User profile models.

Authentication itself is handled by an external identity provider; we only
keep a profile row per user id so teams can reference other users.
"""

from sqlalchemy import Column, DateTime, String

from teamhub.storage.models import Base, utcnow


class UserAccount(Base):
    """Profile of a user known to the identity provider."""
    __tablename__ = "user_accounts"

    id = Column(String(64), primary_key=True)  # `sub` claim from the identity provider

    # Identity
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow)
    last_seen_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserAccount(id={self.id}, email={self.email})>"
