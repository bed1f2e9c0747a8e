"""SQLite database adapter."""

from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine

from sqlhandle.config.models import DatabaseConfig, ConnectionPoolConfig
from sqlhandle.db.base import BaseAdapter
from sqlhandle.exceptions import DatabaseError


def install_sqlite_transaction_support(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, decide where transactions start.

    pysqlite delays BEGIN until the first DML statement, which breaks
    savepoints and transactional reads. The driver's own transaction
    handling is switched off and BEGIN is emitted whenever SQLAlchemy
    starts a transaction.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


class SQLiteAdapter(BaseAdapter):
    """SQLite database adapter."""

    def __init__(
        self,
        config: DatabaseConfig,
        pool_config: Optional[ConnectionPoolConfig] = None,
    ) -> None:
        """Initialize SQLite adapter."""
        super().__init__(config, pool_config)

        if not self.config.path:
            raise DatabaseError("SQLite requires a database file path")
        if self.config.path == ":memory:":
            raise DatabaseError("In-memory SQLite databases are not supported, use a file path")

    def get_driver_name(self) -> str:
        """Get the driver name for SQLite."""
        return "sqlite"

    def build_connection_string(self) -> str:
        """Build SQLite connection string.

        Relative paths are resolved against the working directory and the
        parent directory is created when missing.
        """
        if not self.config.path:
            raise DatabaseError("SQLite requires a database file path")

        db_path = Path(self.config.path)
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path

        db_path.parent.mkdir(parents=True, exist_ok=True)

        return f"sqlite:///{db_path}"

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get SQLite-specific engine options."""
        return {
            'pool_recycle': -1,  # No recycling for SQLite
            'connect_args': {
                'check_same_thread': False,
                'timeout': self.config.options.get('timeout', 30),
            }
        }

    def _configure_engine(self, engine: Engine) -> None:
        install_sqlite_transaction_support(engine)

    def read_only_statement(self, read_only: bool) -> Optional[str]:
        return f"PRAGMA query_only = {'ON' if read_only else 'OFF'}"
