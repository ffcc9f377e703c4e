"""Persistence layer."""

from teamhub.storage.db import Database, conflict_insert, db
from teamhub.storage.models import Base, utcnow

__all__ = ["Base", "Database", "conflict_insert", "db", "utcnow"]
