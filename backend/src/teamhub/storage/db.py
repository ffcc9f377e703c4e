"""Database connection and session management."""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from teamhub.logging_config import get_logger
from teamhub.settings import settings
from teamhub.storage.models import Base

logger = get_logger(__name__)


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        """Initialize database connection.

        Args:
            database_url: Database URL (defaults to settings)
        """
        self.database_url = database_url or settings.database_url
        connect_args = {}
        if self.database_url.startswith("sqlite"):
            # Sessions are handed across FastAPI worker threads
            connect_args["check_same_thread"] = False

        self.engine = create_engine(
            self.database_url,
            echo=False,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        logger.info("database_initialized", dialect=self.engine.dialect.name)

    def create_tables(self) -> None:
        """Create all tables in the database."""
        # Import models so they register on Base.metadata
        import teamhub.auth.models  # noqa: F401
        import teamhub.billing.models  # noqa: F401
        import teamhub.tasks.models  # noqa: F401
        import teamhub.teams.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("tables_created")

    def drop_tables(self) -> None:
        """Drop all tables from the database."""
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("tables_dropped")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for database operations.

        Yields:
            Database session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def conflict_insert(session: Session, model: Any, values: dict[str, Any]):
    """Build a dialect-specific INSERT that supports ON CONFLICT clauses.

    Membership and ledger rows are keyed by (team_id, user_id); every write
    to them goes through ON CONFLICT so concurrent writers never collide.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model).values(**values)
    if dialect == "sqlite":
        return sqlite.insert(model).values(**values)
    raise NotImplementedError(f"Conditional upserts are not supported on {dialect}")


# Global database instance
db = Database()

