"""Base database adapter and query result container."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sqlhandle.config.models import DatabaseConfig, ConnectionPoolConfig
from sqlhandle.exceptions import ConnectionResourceError, DatabaseError

logger = logging.getLogger(__name__)


class QueryResult:
    """Container for query results with metadata."""

    def __init__(
        self,
        data: Optional[pd.DataFrame] = None,
        rows_affected: Optional[int] = None,
        execution_time: Optional[float] = None,
        columns: Optional[List[str]] = None,
    ) -> None:
        """Initialize query result.

        Args:
            data: Result data as DataFrame.
            rows_affected: Number of rows affected by query.
            execution_time: Query execution time in seconds.
            columns: Column names for the result.
        """
        self.data = data
        self.rows_affected = rows_affected or 0
        self.execution_time = execution_time or 0.0
        self.columns = columns or []

    @property
    def is_empty(self) -> bool:
        """Check if result is empty."""
        return self.data is None or self.data.empty

    @property
    def row_count(self) -> int:
        """Get number of rows in result."""
        return len(self.data) if self.data is not None else 0

    def records(self) -> List[Dict[str, Any]]:
        """Rows as a list of column -> value dictionaries."""
        if self.data is None:
            return []
        return self.data.to_dict('records')

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            'data': self.records(),
            'rows_affected': self.rows_affected,
            'execution_time': self.execution_time,
            'columns': self.columns,
            'row_count': self.row_count,
            'is_empty': self.is_empty,
        }


class BaseAdapter(ABC):
    """Base class for database adapters.

    An adapter turns a ``DatabaseConfig`` into a pooled SQLAlchemy engine and
    opens connection resources from it.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        pool_config: Optional[ConnectionPoolConfig] = None,
    ) -> None:
        """Initialize database adapter.

        Args:
            config: Database configuration.
            pool_config: Connection pool configuration.
        """
        self.config = config
        self.pool_config = pool_config or ConnectionPoolConfig()
        self._engine: Optional[Engine] = None

    @abstractmethod
    def build_connection_string(self) -> str:
        """Build database connection string.

        Returns:
            Database connection string.
        """
        pass

    @abstractmethod
    def get_driver_name(self) -> str:
        """Get the driver name for this adapter.

        Returns:
            Driver name string.
        """
        pass

    def read_only_statement(self, read_only: bool) -> Optional[str]:
        """Session statement switching read-only mode, or None if unsupported."""
        return None

    def get_engine(self) -> Engine:
        """Get or create SQLAlchemy engine.

        Returns:
            SQLAlchemy engine instance.

        Raises:
            DatabaseError: If engine creation fails.
        """
        if self._engine is None:
            try:
                connection_string = self.build_connection_string()

                engine_args = {
                    'pool_size': self.pool_config.max_connections,
                    'max_overflow': self.pool_config.max_overflow,
                    'pool_timeout': self.pool_config.timeout,
                    'pool_recycle': self.pool_config.pool_recycle,
                    'pool_pre_ping': self.pool_config.pool_pre_ping,
                    'echo': False,
                }
                engine_args.update(self._get_engine_options())

                self._engine = create_engine(connection_string, **engine_args)
                self._configure_engine(self._engine)
                logger.info(f"Created {self.get_driver_name()} engine for {self.config.type.value}")

            except Exception as e:
                raise DatabaseError(
                    f"Failed to create database engine: {e}",
                    database_type=self.config.type.value,
                ) from e

        return self._engine

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get database-specific engine options."""
        return {}

    def _configure_engine(self, engine: Engine) -> None:
        """Hook for installing engine event listeners."""
        pass

    def open_connection(self):
        """Open a new connection resource from the engine's pool.

        Raises:
            ConnectionResourceError: If no connection can be acquired.
        """
        from sqlhandle.db.resource import SQLAlchemyConnection

        engine = self.get_engine()
        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            raise ConnectionResourceError(
                f"Unable to open connection: {e}",
                database_type=self.config.type.value,
            ) from e
        return SQLAlchemyConnection(
            connection,
            read_only_statement=self.read_only_statement,
            database_type=self.config.type.value,
        )

    def close(self) -> None:
        """Close database connections and cleanup resources."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
