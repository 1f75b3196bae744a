"""Cortex database layer."""

from cortex.db.connection import Database
from cortex.db.migrations import MIGRATIONS, run_migrations
from cortex.db.repository import NotFoundError, Repository
from cortex.db.schema import initialize

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "NotFoundError",
    "Repository",
]
