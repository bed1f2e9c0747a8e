"""Shared fixtures for SQLHandle tests."""

from unittest.mock import Mock

import pytest

from sqlhandle.config.registry import ConfigRegistry
from sqlhandle.db import Database, Handle
from sqlhandle.db.resource import ConnectionResource
from sqlhandle.db.statements import StatementBuilder
from sqlhandle.db.transaction import LocalTransactionHandler


@pytest.fixture
def db_path(tmp_path):
    """Path of a SQLite database file unique to the test."""
    return tmp_path / "handles.db"


@pytest.fixture
def database(db_path):
    """A SQLite database with an empty ``items`` table."""
    db = Database.create(f"sqlite:///{db_path}")
    db.use_handle(lambda h: h.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT NOT NULL)"))
    yield db
    db.close()


@pytest.fixture
def handle(database):
    """An open handle on ``database``; any leftover transaction is rolled back."""
    h = database.open()
    yield h
    if not h.is_closed():
        if h.is_in_transaction():
            h.rollback()
        h.close()


@pytest.fixture
def count_items(database):
    """Count committed rows in ``items`` using a separate handle."""

    def count() -> int:
        return database.with_handle(lambda h: h.select("SELECT COUNT(*) AS n FROM items").one()["n"])

    return count


@pytest.fixture
def mock_connection():
    """A connection resource that starts outside any transaction."""
    connection = Mock(spec=ConnectionResource)
    connection.in_transaction.return_value = False
    connection.get_isolation_level.return_value = "READ COMMITTED"
    connection.is_read_only.return_value = False
    return connection


@pytest.fixture
def mock_builder():
    return Mock(spec=StatementBuilder)


@pytest.fixture
def make_handle(mock_connection, mock_builder):
    """Build handles over the mock connection and statement builder."""

    def factory(config=None, handler=None):
        return Handle(
            config or ConfigRegistry(),
            mock_connection,
            handler or LocalTransactionHandler(),
            mock_builder,
        )

    return factory
