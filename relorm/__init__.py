"""relorm: relational object mapper for dataclass entities."""

from .core import (
    C,
    Criteria,
    Engine,
    EngineConfig,
    Entity,
    MemoryCache,
    Model,
    OrderBy,
    OrmError,
    Policy,
)
from .ports import Database, MySQLDialect, PostgresDialect, SQLiteDialect

__all__ = [
    "C",
    "Criteria",
    "OrderBy",
    "Engine",
    "EngineConfig",
    "Entity",
    "Model",
    "MemoryCache",
    "OrmError",
    "Policy",
    "Database",
    "SQLiteDialect",
    "PostgresDialect",
    "MySQLDialect",
]
