"""Tests for statement objects and statement builders."""

from unittest.mock import Mock

import pytest
from sqlalchemy.exc import NoSuchTableError

from sqlhandle.config.models import HandleSettings
from sqlhandle.db import Database
from sqlhandle.db.statements import CachingStatementBuilder, DefaultStatementBuilder
from sqlhandle.exceptions import DatabaseError, HandleClosedError

INSERT = "INSERT INTO items (name) VALUES (:name)"


@pytest.fixture
def seeded(handle):
    for name in ("alpha", "beta", "gamma"):
        handle.execute(INSERT, name=name)
    return handle


class TestQueries:

    def test_list_returns_records(self, seeded):
        rows = seeded.create_query("SELECT id, name FROM items ORDER BY id").list()

        assert [row["name"] for row in rows] == ["alpha", "beta", "gamma"]

    def test_select_binds_named_parameters(self, seeded):
        row = seeded.select("SELECT name FROM items WHERE name = :name", name="beta").one()

        assert row["name"] == "beta"

    def test_bind_is_chainable(self, seeded):
        query = seeded.create_query("SELECT name FROM items WHERE id > :low AND id < :high")
        query.bind("low", 1).bind("high", 3)

        assert query.params == {"low": 1, "high": 3}
        assert query.first()["name"] == "beta"

    def test_first_on_empty_result(self, handle):
        assert handle.create_query("SELECT name FROM items").first() is None

    def test_one_requires_exactly_one_row(self, seeded):
        with pytest.raises(DatabaseError, match="exactly one row"):
            seeded.create_query("SELECT name FROM items").one()

    def test_execute_returns_dataframe_result(self, seeded):
        result = seeded.create_query("SELECT name FROM items").execute()

        assert result.row_count == 3
        assert result.columns == ["name"]
        assert not result.is_empty
        assert list(result.data["name"]) == ["alpha", "beta", "gamma"]

    def test_call_runs_statement(self, seeded):
        result = seeded.create_call("SELECT COUNT(*) AS n FROM items").invoke()

        assert result.records() == [{"n": 3}]

    def test_invalid_sql_raises_database_error(self, handle):
        with pytest.raises(DatabaseError) as exc_info:
            handle.create_query("SELECT * FROM no_such_table").list()

        assert "no_such_table" in exc_info.value.sql


class TestUpdates:

    def test_update_returns_row_count(self, seeded):
        count = seeded.create_update("UPDATE items SET name = 'x' WHERE id > :id").bind("id", 1).execute()

        assert count == 2

    def test_batch_executes_each_statement(self, handle):
        batch = handle.create_batch()
        batch.add("INSERT INTO items (name) VALUES ('a')")
        batch.add("INSERT INTO items (name) VALUES ('b')")
        batch.add("DELETE FROM items WHERE name = 'a'")

        assert len(batch) == 3
        assert batch.execute() == [1, 1, 1]
        assert len(batch) == 0

    def test_prepared_batch_inserts_every_parameter_set(self, handle):
        batch = handle.prepare_batch(INSERT)
        batch.add(name="a").add(name="b").add_map({"name": "c"})

        total = batch.execute()

        assert isinstance(total, int)
        assert handle.select("SELECT COUNT(*) AS n FROM items").one()["n"] == 3
        assert len(batch) == 0

    def test_empty_prepared_batch(self, handle):
        assert handle.prepare_batch(INSERT).execute() == 0


class TestMetadata:

    def test_table_names(self, handle):
        tables = handle.query_metadata(lambda inspector: inspector.get_table_names())

        assert "items" in tables

    def test_columns(self, handle):
        columns = handle.query_metadata(lambda inspector: inspector.get_columns("items"))

        assert [column["name"] for column in columns] == ["id", "name"]

    def test_leaves_no_transaction_open(self, handle):
        handle.query_metadata(lambda inspector: inspector.get_table_names())

        assert not handle.is_in_transaction()

    def test_inside_transaction_sees_uncommitted_table(self, handle):
        handle.begin()
        handle.execute("CREATE TABLE pending (id INTEGER)")

        assert "pending" in handle.query_metadata(lambda inspector: inspector.get_table_names())
        assert handle.is_in_transaction()
        handle.rollback()

    def test_lookup_failure_raises_database_error(self, handle):
        def missing_table(inspector):
            raise NoSuchTableError("missing")

        with pytest.raises(DatabaseError):
            handle.query_metadata(missing_table)

    def test_closed_handle_rejects_lookup(self, handle):
        handle.close()

        with pytest.raises(HandleClosedError):
            handle.query_metadata(lambda inspector: inspector.get_table_names())


class TestScripts:

    def test_script_runs_statements_in_order(self, handle):
        script = handle.create_script(
            "INSERT INTO items (name) VALUES ('a');\n"
            "INSERT INTO items (name) VALUES ('b');\n"
            "UPDATE items SET name = 'z';\n"
        )

        assert len(script.statements) == 3
        assert script.execute() == [1, 1, 2]

    def test_script_failure_names_statement(self, handle):
        script = handle.create_script(
            "INSERT INTO items (name) VALUES ('a'); INSERT INTO nowhere (x) VALUES (1)"
        )

        with pytest.raises(DatabaseError, match="statement 2"):
            script.execute()

    def test_custom_delimiter(self, handle):
        script = handle.create_script("SELECT 1 GO SELECT 2", delimiter="GO")

        assert script.statements == ["SELECT 1", "SELECT 2"]


class TestStatementBuilders:

    def test_default_builder_compiles_fresh_clauses(self):
        builder = DefaultStatementBuilder()
        connection = Mock()

        first = builder.create_statement(connection, "SELECT 1")
        second = builder.create_statement(connection, "SELECT 1")

        assert first is not second
        assert str(first) == "SELECT 1"

    def test_caching_builder_reuses_and_evicts(self):
        builder = CachingStatementBuilder(max_entries=2)
        connection = Mock()

        first = builder.create_statement(connection, "SELECT 1")
        assert builder.create_statement(connection, "SELECT 1") is first
        builder.create_statement(connection, "SELECT 2")
        builder.create_statement(connection, "SELECT 3")

        stats = builder.get_statistics()
        assert stats == {'hits': 1, 'misses': 3, 'evictions': 1, 'entries': 2}
        assert builder.create_statement(connection, "SELECT 1") is not first

    def test_caching_builder_close_clears_cache(self):
        builder = CachingStatementBuilder()
        builder.create_statement(Mock(), "SELECT 1")
        builder.close(Mock())

        assert builder.get_statistics()['entries'] == 0

    def test_caching_builder_rejects_zero_size(self):
        with pytest.raises(ValueError):
            CachingStatementBuilder(max_entries=0)

    def test_handle_uses_cache_from_settings(self, db_path):
        database = Database.create(f"sqlite:///{db_path}", handle_settings=HandleSettings(statement_cache_size=8))
        try:
            with database.open() as handle:
                assert isinstance(handle.statement_builder, CachingStatementBuilder)
                handle.select("SELECT 1 AS one").one()
                handle.select("SELECT 1 AS one").one()
                assert handle.statement_builder.get_statistics()['hits'] == 1
        finally:
            database.close()
