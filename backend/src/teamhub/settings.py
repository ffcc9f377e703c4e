"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your-super-secret-jwt-token"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "teamhub"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json
    allowed_origins: str = "http://localhost:5173"
    frontend_url: str = "http://localhost:5173"

    # Database
    database_url: str = "sqlite:///./teamhub.db"

    # Identity provider (JWT issued by the external auth service)
    auth_jwt_secret: str = "change-me-in-production"
    auth_jwt_algorithm: str = "HS256"
    auth_jwt_audience: str | None = None

    # Stripe
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_currency: str = "usd"
    webhook_tolerance_seconds: int = 300

    # Checkout intents
    intent_ttl_minutes: int = 60
    owner_intent_grace_minutes: int = 10

    # Join confirmation polling
    confirmation_max_attempts: int = 10
    confirmation_interval_seconds: float = 2.0

    # Webhook bookkeeping
    processed_event_retention_days: int = 30

    @property
    def member_success_url(self) -> str:
        """Redirect after a paid join; Stripe fills in the session id."""
        return f"{self.frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def owner_success_url(self) -> str:
        """Redirect after an owner's tier payment."""
        return f"{self.frontend_url}/payment/owner-success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def checkout_cancel_url(self) -> str:
        return f"{self.frontend_url}/payment/cancel"

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.is_production:
    if settings.auth_jwt_secret in _INSECURE_JWT_DEFAULTS or len(settings.auth_jwt_secret) < 32:
        print(
            "\n❌  FATAL: AUTH_JWT_SECRET is insecure or too short (min 32 chars).\n"
            "   Use the JWT secret of your identity provider.\n",
            file=sys.stderr,
        )
        sys.exit(1)
