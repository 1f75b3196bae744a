"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from cortex.db.connection import Database
from cortex.db.repository import Repository
from cortex.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".cortex.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db) -> Repository:
    return Repository(tmp_db)


@pytest.fixture(autouse=True)
def _reset_cortex_logger():
    """Undo setup_logging() after CLI tests so caplog sees cortex records."""
    yield
    logger = logging.getLogger("cortex")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
