"""Connection resources: the live connection a handle owns."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pandas as pd
from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Inspector
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from sqlhandle.db.base import QueryResult
from sqlhandle.exceptions import ConnectionResourceError, DatabaseError

logger = logging.getLogger(__name__)

Statement = Union[str, TextClause]


class ConnectionResource(ABC):
    """A single open database connection.

    Every method may raise ``ConnectionResourceError`` when the underlying
    connection fails. Statement execution failures raise ``DatabaseError``.
    """

    @abstractmethod
    def is_read_only(self) -> bool: ...

    @abstractmethod
    def set_read_only(self, read_only: bool) -> None: ...

    @abstractmethod
    def get_isolation_level(self) -> Optional[str]: ...

    @abstractmethod
    def set_isolation_level(self, level: str) -> None: ...

    @abstractmethod
    def in_transaction(self) -> bool: ...

    @abstractmethod
    def begin(self) -> None: ...

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...

    @abstractmethod
    def savepoint(self, name: str) -> None: ...

    @abstractmethod
    def rollback_to_savepoint(self, name: str) -> None: ...

    @abstractmethod
    def release_savepoint(self, name: str) -> None: ...

    @abstractmethod
    def execute(
        self,
        statement: Statement,
        params: Optional[Dict[str, Any]] = None,
        fetch_results: bool = True,
    ) -> QueryResult: ...

    @abstractmethod
    def execute_many(self, statement: Statement, params_list: Sequence[Dict[str, Any]]) -> int: ...

    @abstractmethod
    def query_metadata(self, fn: Callable[[Inspector], Any]) -> Any: ...

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def closed(self) -> bool: ...


class SQLAlchemyConnection(ConnectionResource):
    """Connection resource backed by a SQLAlchemy ``Connection``.

    Outside an explicit ``begin()`` every statement runs in its own
    transaction that is committed immediately, so the connection only
    reports ``in_transaction()`` between ``begin()`` and commit/rollback.
    """

    def __init__(
        self,
        connection: Connection,
        read_only_statement: Optional[Callable[[bool], Optional[str]]] = None,
        database_type: Optional[str] = None,
    ) -> None:
        self._connection = connection
        self._read_only_statement = read_only_statement
        self._read_only = False
        self._explicit = False
        self.database_type = database_type

    @property
    def sqlalchemy_connection(self) -> Connection:
        return self._connection

    @property
    def closed(self) -> bool:
        return self._connection.closed

    def is_read_only(self) -> bool:
        self._check_open()
        return self._read_only

    def set_read_only(self, read_only: bool) -> None:
        self._check_open()
        if self._read_only_statement is not None:
            statement = self._read_only_statement(read_only)
            if statement:
                self._run_outside_transaction(statement)
        self._read_only = read_only

    def get_isolation_level(self) -> Optional[str]:
        self._check_open()
        try:
            return self._connection.get_isolation_level()
        except SQLAlchemyError as e:
            raise ConnectionResourceError(f"Unable to read isolation level: {e}") from e

    def set_isolation_level(self, level: str) -> None:
        self._check_open()
        try:
            self._connection.execution_options(isolation_level=level)
        except (SQLAlchemyError, ValueError) as e:
            raise ConnectionResourceError(f"Unable to set isolation level to {level}: {e}") from e

    def in_transaction(self) -> bool:
        self._check_open()
        return self._explicit and self._connection.in_transaction()

    def begin(self) -> None:
        self._check_open()
        try:
            if self._connection.in_transaction():
                # A leftover implicit transaction must not absorb the explicit one.
                self._connection.commit()
            self._connection.begin()
        except SQLAlchemyError as e:
            raise ConnectionResourceError(f"Unable to begin transaction: {e}") from e
        self._explicit = True

    def commit(self) -> None:
        self._check_open()
        try:
            self._connection.commit()
        except SQLAlchemyError as e:
            raise ConnectionResourceError(f"Unable to commit: {e}") from e
        finally:
            self._explicit = False

    def rollback(self) -> None:
        self._check_open()
        try:
            self._connection.rollback()
        except SQLAlchemyError as e:
            raise ConnectionResourceError(f"Unable to rollback: {e}") from e
        finally:
            self._explicit = False

    def savepoint(self, name: str) -> None:
        self._execute_control(f"SAVEPOINT {self._savepoint_name(name)}")

    def rollback_to_savepoint(self, name: str) -> None:
        self._execute_control(f"ROLLBACK TO SAVEPOINT {self._savepoint_name(name)}")

    def release_savepoint(self, name: str) -> None:
        self._execute_control(f"RELEASE SAVEPOINT {self._savepoint_name(name)}")

    def execute(
        self,
        statement: Statement,
        params: Optional[Dict[str, Any]] = None,
        fetch_results: bool = True,
    ) -> QueryResult:
        self._check_open()
        clause = text(statement) if isinstance(statement, str) else statement
        start_time = time.time()

        try:
            if params:
                result = self._connection.execute(clause, params)
            else:
                result = self._connection.execute(clause)

            if result.returns_rows and fetch_results:
                rows = result.fetchall()
                columns = list(result.keys())
                df = pd.DataFrame(rows, columns=columns) if rows else pd.DataFrame(columns=columns)
                query_result = QueryResult(
                    data=df,
                    rows_affected=len(rows),
                    execution_time=time.time() - start_time,
                    columns=columns,
                )
            else:
                rows_affected = result.rowcount if result.rowcount >= 0 else 0
                result.close()
                query_result = QueryResult(
                    rows_affected=rows_affected,
                    execution_time=time.time() - start_time,
                )
        except SQLAlchemyError as e:
            self._end_implicit_transaction(success=False)
            execution_time = time.time() - start_time
            raise DatabaseError(
                f"Query execution failed after {execution_time:.2f}s: {e}",
                database_type=self.database_type,
                sql=str(clause),
            ) from e

        self._end_implicit_transaction(success=True)
        return query_result

    def execute_many(self, statement: Statement, params_list: Sequence[Dict[str, Any]]) -> int:
        self._check_open()
        clause = text(statement) if isinstance(statement, str) else statement
        try:
            result = self._connection.execute(clause, list(params_list))
            rows_affected = result.rowcount if result.rowcount >= 0 else 0
        except SQLAlchemyError as e:
            self._end_implicit_transaction(success=False)
            raise DatabaseError(
                f"Batch execution failed: {e}",
                database_type=self.database_type,
                sql=str(clause),
            ) from e

        self._end_implicit_transaction(success=True)
        return rows_affected

    def query_metadata(self, fn: Callable[[Inspector], Any]) -> Any:
        """Return ``fn`` applied to a SQLAlchemy ``Inspector`` for this connection."""
        self._check_open()
        try:
            result = fn(inspect(self._connection))
        except SQLAlchemyError as e:
            self._end_implicit_transaction(success=False)
            raise DatabaseError(
                f"Metadata query failed: {e}",
                database_type=self.database_type,
            ) from e

        self._end_implicit_transaction(success=True)
        return result

    def close(self) -> None:
        if self._connection.closed:
            return

        # Pooled connections must not hand a read-only session to the next user.
        reset_error: Optional[ConnectionResourceError] = None
        if self._read_only and not self._explicit and self._read_only_statement is not None:
            try:
                self.set_read_only(False)
            except ConnectionResourceError as e:
                reset_error = e

        try:
            self._connection.close()
        except SQLAlchemyError as e:
            error = ConnectionResourceError(f"Unable to close connection: {e}")
            if reset_error is not None:
                error.add_suppressed(reset_error)
            raise error from e
        finally:
            self._explicit = False

        if reset_error is not None:
            raise reset_error

    def _execute_control(self, sql: str) -> None:
        self._check_open()
        try:
            self._connection.exec_driver_sql(sql)
        except SQLAlchemyError as e:
            raise ConnectionResourceError(f"{sql} failed: {e}") from e

    def _run_outside_transaction(self, sql: str) -> None:
        try:
            self._connection.exec_driver_sql(sql)
        except SQLAlchemyError as e:
            self._end_implicit_transaction(success=False)
            raise ConnectionResourceError(f"{sql} failed: {e}") from e
        self._end_implicit_transaction(success=True)

    def _end_implicit_transaction(self, success: bool) -> None:
        if self._explicit or not self._connection.in_transaction():
            return
        try:
            if success:
                self._connection.commit()
            else:
                self._connection.rollback()
        except SQLAlchemyError as e:
            raise ConnectionResourceError(f"Unable to end implicit transaction: {e}") from e

    def _check_open(self) -> None:
        if self._connection.closed:
            raise ConnectionResourceError("Connection is closed")

    @staticmethod
    def _savepoint_name(name: str) -> str:
        if not name or not (name[0].isalpha() or name[0] == '_'):
            raise ConnectionResourceError(f"Invalid savepoint name: {name!r}")
        for char in name[1:]:
            if not (char.isalnum() or char == '_'):
                raise ConnectionResourceError(f"Invalid savepoint name: {name!r}")
        return name
