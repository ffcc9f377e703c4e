"""Main FastAPI application for TeamHub API."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from teamhub import __version__
from teamhub.api.rate_limit import limiter
from teamhub.api.v1.checkout import router as checkout_router
from teamhub.api.v1.subscriptions import router as subscriptions_router
from teamhub.api.v1.tasks import router as tasks_router
from teamhub.api.v1.teams import router as teams_router
from teamhub.api.v1.webhooks import router as webhooks_router
from teamhub.errors import (
    AlreadyMemberError,
    IntentError,
    NotFoundError,
    PaymentProviderError,
    PermissionDeniedError,
    SelfRemovalError,
    SignatureError,
    TeamFullError,
    TeamHubError,
    ValidationError,
)
from teamhub.logging_config import configure_logging, get_logger
from teamhub.settings import settings
from teamhub.storage.db import db

logger = get_logger(__name__)

# Most specific first
ERROR_STATUS: list[tuple[type[TeamHubError], int]] = [
    (TeamFullError, 422),
    (ValidationError, 400),
    (SelfRemovalError, 400),
    (SignatureError, 400),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (AlreadyMemberError, 409),
    (IntentError, 410),
    (PaymentProviderError, 502),
]


def error_status(exc: TeamHubError) -> int:
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            return code
    return 400


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Prevent clickjacking - don't allow embedding in iframes
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Referrer Policy - don't leak URLs (and checkout tokens) to other sites
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        response.headers["Permissions-Policy"] = (
            "camera=(), "
            "geolocation=(), "
            "microphone=(), "
            "usb=()"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    configure_logging()
    logger.info("app_starting", env=settings.env)

    # Initialize database tables
    db.create_tables()
    logger.info("database_tables_created")

    yield

    # Shutdown
    logger.info("app_shutting_down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI app
    """
    # Hide API docs in production
    is_production = settings.is_production

    app = FastAPI(
        title="TeamHub API",
        description="Team task management with paid team memberships",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    # Security Headers middleware (must be added before CORS)
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS middleware - SECURITY: Never allow wildcard in production
    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []  # Block all if misconfigured

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,  # Cache preflight for 1 hour
    )

    # Rate limiting (shared instance from rate_limit module)
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."},
        )

    @app.exception_handler(TeamHubError)
    async def domain_error_handler(request: Request, exc: TeamHubError):
        code = error_status(exc)
        content = {"detail": exc.message, "error": type(exc).__name__}
        if isinstance(exc, AlreadyMemberError):
            content["informational"] = True
        if isinstance(exc, PaymentProviderError):
            content["retryable"] = True
        if code >= 500:
            logger.error("request_failed", path=request.url.path, error=type(exc).__name__)
        return JSONResponse(status_code=code, content=content)

    # Include v1 API routers
    app.include_router(teams_router, prefix="/api/v1")
    app.include_router(tasks_router, prefix="/api/v1")
    app.include_router(checkout_router, prefix="/api/v1")
    app.include_router(subscriptions_router, prefix="/api/v1")
    app.include_router(webhooks_router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "env": settings.env,
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "TeamHub API",
            "version": __version__,
            "docs": "/api/docs",
        }

    return app


# Create app instance
app = create_app()
