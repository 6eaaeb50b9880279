"""DB-API adapter, dialect and table metadata exports."""

from .database import Database, Transaction
from .dialects import Dialect, MySQLDialect, PostgresDialect, SQLiteDialect
from .information import Information

__all__ = [
    "Database",
    "Dialect",
    "Information",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
    "Transaction",
]
