"""Handles, connections, transactions and statements."""

from sqlhandle.db.base import BaseAdapter, QueryResult
from sqlhandle.db.connection import AdapterFactory
from sqlhandle.db.context import ThreadScoped
from sqlhandle.db.database import Database
from sqlhandle.db.handle import Handle
from sqlhandle.db.handles import Handles, TransactionCallback, on_commit, on_rollback
from sqlhandle.db.resource import ConnectionResource, SQLAlchemyConnection
from sqlhandle.db.statements import (
    Batch,
    CachingStatementBuilder,
    Call,
    DefaultStatementBuilder,
    PreparedBatch,
    Query,
    Script,
    StatementBuilder,
    Update,
)
from sqlhandle.db.transaction import (
    LocalTransactionHandler,
    SerializableTransactionRunner,
    TransactionHandler,
    TransactionIsolationLevel,
)
from sqlhandle.db.adapters import (
    PostgreSQLAdapter,
    MySQLAdapter,
    SQLiteAdapter,
)

__all__ = [
    # Entry points
    "Database",
    "Handle",
    # Connections
    "BaseAdapter",
    "QueryResult",
    "AdapterFactory",
    "ConnectionResource",
    "SQLAlchemyConnection",
    # Transactions
    "TransactionHandler",
    "LocalTransactionHandler",
    "SerializableTransactionRunner",
    "TransactionIsolationLevel",
    "TransactionCallback",
    "on_commit",
    "on_rollback",
    # Handle configuration
    "Handles",
    "ThreadScoped",
    # Statements
    "StatementBuilder",
    "DefaultStatementBuilder",
    "CachingStatementBuilder",
    "Query",
    "Update",
    "Call",
    "Batch",
    "PreparedBatch",
    "Script",
    # Database adapters
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
]
