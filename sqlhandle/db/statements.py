"""Statement builders and the statement objects a handle creates."""

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.sql.elements import TextClause

from sqlhandle.db.base import QueryResult
from sqlhandle.db.resource import ConnectionResource
from sqlhandle.exceptions import DatabaseError

if TYPE_CHECKING:
    from sqlhandle.db.handle import Handle

logger = logging.getLogger(__name__)


class StatementBuilder(ABC):
    """Turns SQL text into executable statements for one connection."""

    @abstractmethod
    def create_statement(self, connection: ConnectionResource, sql: str) -> TextClause:
        """Compile ``sql`` for execution on ``connection``."""

    @abstractmethod
    def close(self, connection: ConnectionResource) -> None:
        """Release everything this builder holds for ``connection``."""


class DefaultStatementBuilder(StatementBuilder):
    """Compiles every statement afresh and holds nothing."""

    def create_statement(self, connection: ConnectionResource, sql: str) -> TextClause:
        return text(sql)

    def close(self, connection: ConnectionResource) -> None:
        pass


class CachingStatementBuilder(StatementBuilder):
    """Keeps the most recently used compiled statements in an LRU cache."""

    def __init__(self, max_entries: int = 128) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._cache: "OrderedDict[str, TextClause]" = OrderedDict()
        self._stats = {'hits': 0, 'misses': 0, 'evictions': 0}

    def create_statement(self, connection: ConnectionResource, sql: str) -> TextClause:
        with self._lock:
            clause = self._cache.get(sql)
            if clause is not None:
                self._cache.move_to_end(sql)
                self._stats['hits'] += 1
                return clause

            self._stats['misses'] += 1
            clause = text(sql)
            self._cache[sql] = clause
            if len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)
                self._stats['evictions'] += 1
            return clause

    def close(self, connection: ConnectionResource) -> None:
        with self._lock:
            logger.debug(f"Dropping {len(self._cache)} cached statements")
            self._cache.clear()

    def get_statistics(self) -> Dict[str, int]:
        with self._lock:
            return {**self._stats, 'entries': len(self._cache)}


class SqlStatement:
    """Base for statements bound to a handle; construction requires an open handle."""

    def __init__(self, handle: "Handle", sql: str) -> None:
        handle.ensure_open()
        self.handle = handle
        self.sql = sql
        self._params: Dict[str, Any] = {}

    def bind(self, name: str, value: Any) -> "SqlStatement":
        self._params[name] = value
        return self

    def bind_map(self, values: Dict[str, Any]) -> "SqlStatement":
        self._params.update(values)
        return self

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self._params)

    def _run(self, fetch_results: bool) -> QueryResult:
        self.handle.ensure_open()
        connection = self.handle.connection
        clause = self.handle.statement_builder.create_statement(connection, self.sql)
        return connection.execute(clause, self._params or None, fetch_results=fetch_results)


class Query(SqlStatement):
    """A statement that returns rows."""

    def execute(self) -> QueryResult:
        return self._run(fetch_results=True)

    def list(self) -> List[Dict[str, Any]]:
        return self.execute().records()

    def first(self) -> Optional[Dict[str, Any]]:
        records = self.list()
        return records[0] if records else None

    def one(self) -> Dict[str, Any]:
        records = self.list()
        if len(records) != 1:
            raise DatabaseError(f"Expected exactly one row, got {len(records)}", sql=self.sql)
        return records[0]


class Update(SqlStatement):
    """An INSERT, UPDATE, DELETE or DDL statement."""

    def execute(self) -> int:
        return self._run(fetch_results=False).rows_affected


class Call(SqlStatement):
    """A stored procedure call."""

    def invoke(self) -> QueryResult:
        return self._run(fetch_results=True)


class Batch:
    """Several unrelated statements executed one after another."""

    def __init__(self, handle: "Handle") -> None:
        handle.ensure_open()
        self.handle = handle
        self._statements: List[str] = []

    def add(self, sql: str) -> "Batch":
        self._statements.append(sql)
        return self

    def __len__(self) -> int:
        return len(self._statements)

    def execute(self) -> List[int]:
        self.handle.ensure_open()
        connection = self.handle.connection
        builder = self.handle.statement_builder
        counts = []
        for sql in self._statements:
            result = connection.execute(builder.create_statement(connection, sql), fetch_results=False)
            counts.append(result.rows_affected)
        self._statements.clear()
        return counts


class PreparedBatch:
    """One statement executed with many parameter sets."""

    def __init__(self, handle: "Handle", sql: str) -> None:
        handle.ensure_open()
        self.handle = handle
        self.sql = sql
        self._parts: List[Dict[str, Any]] = []

    def add(self, **params: Any) -> "PreparedBatch":
        self._parts.append(params)
        return self

    def add_map(self, params: Dict[str, Any]) -> "PreparedBatch":
        self._parts.append(dict(params))
        return self

    def __len__(self) -> int:
        return len(self._parts)

    def execute(self) -> int:
        """Run every parameter set and return the total affected row count."""
        self.handle.ensure_open()
        if not self._parts:
            return 0
        connection = self.handle.connection
        clause = self.handle.statement_builder.create_statement(connection, self.sql)
        total = connection.execute_many(clause, self._parts)
        self._parts = []
        return total


class Script:
    """A multi-statement SQL script split on a delimiter."""

    def __init__(self, handle: "Handle", sql: str, delimiter: str = ";") -> None:
        handle.ensure_open()
        self.handle = handle
        self.sql = sql
        self.delimiter = delimiter

    @property
    def statements(self) -> List[str]:
        return [stmt.strip() for stmt in self.sql.split(self.delimiter) if stmt.strip()]

    def execute(self) -> List[int]:
        """Execute each statement in order.

        Raises:
            DatabaseError: Naming the failing statement's position.
        """
        self.handle.ensure_open()
        connection = self.handle.connection
        builder = self.handle.statement_builder
        counts = []
        for i, statement in enumerate(self.statements):
            try:
                result = connection.execute(builder.create_statement(connection, statement), fetch_results=False)
            except DatabaseError as e:
                raise DatabaseError(
                    f"Script execution failed at statement {i + 1}: {e}",
                    sql=statement,
                ) from e
            counts.append(result.rows_affected)
        return counts
