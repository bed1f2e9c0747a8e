"""Database adapters for different database types."""

from sqlhandle.db.adapters.postgresql import PostgreSQLAdapter
from sqlhandle.db.adapters.mysql import MySQLAdapter
from sqlhandle.db.adapters.sqlite import SQLiteAdapter, install_sqlite_transaction_support

__all__ = [
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
    "install_sqlite_transaction_support",
]
