"""Rate limiting for the join and checkout endpoints."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from teamhub.settings import settings

# Keyed by client address; only production enforces limits, so tests and
# local runs can start checkouts freely
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
    storage_uri="memory://",
    enabled=settings.is_production,
)
