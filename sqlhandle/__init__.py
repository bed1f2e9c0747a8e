"""SQLHandle: database sessions over SQLAlchemy connections.

SQLHandle provides:
- Handles owning one connection, with deterministic close
- Transactions, savepoints, isolation levels and commit/rollback callbacks
- Per-thread configuration and extension tracking
- Handle-backed extensions with declarative transactions
- YAML-based configuration and a small CLI
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from sqlhandle.exceptions import (
    SQLHandleError,
    ConfigurationError,
    DatabaseError,
    HandleClosedError,
    TransactionError,
    TransactionStateError,
    TransactionLeakError,
    CloseError,
    NoSuchExtensionError,
)
from sqlhandle.db import Database, Handle, TransactionIsolationLevel

__all__ = [
    "__version__",
    "Database",
    "Handle",
    "TransactionIsolationLevel",
    "SQLHandleError",
    "ConfigurationError",
    "DatabaseError",
    "HandleClosedError",
    "TransactionError",
    "TransactionStateError",
    "TransactionLeakError",
    "CloseError",
    "NoSuchExtensionError",
]
