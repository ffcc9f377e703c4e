"""Alembic environment for TeamHub."""

from alembic import context

from teamhub.settings import settings
from teamhub.storage.db import Database
from teamhub.storage.models import Base

# Register all models on Base.metadata
import teamhub.auth.models  # noqa: F401,E402
import teamhub.billing.models  # noqa: F401,E402
import teamhub.tasks.models  # noqa: F401,E402
import teamhub.teams.models  # noqa: F401,E402

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = Database(settings.database_url).engine
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
