"""SQL dialects understood by the DB-API adapter.

A dialect owns everything that differs between engines at the SQL text
level: identifier quoting, the DB-API paramstyle, how an insert reports the
generated key, and a handful of engine quirks the builder and the metadata
reader would otherwise have to special-case by name.
"""

from __future__ import annotations

from typing import Any, Optional

_PLACEHOLDERS = {
    "named": lambda key: f":{key}",
    "qmark": lambda key: "?",
    "format": lambda key: "%s",
}


class Dialect:
    """Defaults shared by every dialect; subclasses override class attributes."""

    name: str = "generic"
    paramstyle: str = "named"
    quote_char: str = '"'
    supports_returning: bool = False
    # A plain `INTEGER` column holds 64-bit values.
    wide_integer: bool = False
    # Dates and times are stored as ISO text rather than native types.
    temporal_as_text: bool = False
    # SQL expression naming the schema of unqualified tables.
    current_schema: str = "current_schema()"
    # Autocommit connections need an explicit `BEGIN` to open a transaction.
    explicit_begin: bool = False

    @property
    def is_named(self) -> bool:
        """Whether parameters travel as a mapping instead of a list."""

        return self.paramstyle == "named"

    def q(self, ident: str) -> str:
        """Quote an identifier, doubling embedded quote characters."""

        quote = self.quote_char
        return quote + ident.replace(quote, quote + quote) + quote

    def placeholder(self, key: str) -> str:
        """Return the placeholder text bound to parameter `key`.

        Raises:
            ValueError: If the paramstyle is not one of named, qmark or format.
        """

        render = _PLACEHOLDERS.get(self.paramstyle)
        if render is None:
            raise ValueError(f"Unsupported paramstyle: {self.paramstyle}")
        return render(key)

    def empty_insert(self, table_sql: str) -> str:
        """Return an `INSERT` that writes a row made of column defaults."""

        return f"INSERT INTO {table_sql} DEFAULT VALUES"

    def returning_clause(self, pk_name: str) -> str:
        if not self.supports_returning:
            return ""
        return f" RETURNING {self.q(pk_name)}"

    def get_lastrowid(self, cursor: Any) -> Optional[int]:
        """Key generated by the last insert when `RETURNING` is unavailable."""

        return getattr(cursor, "lastrowid", None)


class SQLiteDialect(Dialect):
    """SQLite 3.35+ with the stdlib `sqlite3` driver."""

    name = "sqlite"
    supports_returning = True
    wide_integer = True
    temporal_as_text = True
    current_schema = "'main'"
    explicit_begin = True


class PostgresDialect(Dialect):
    """PostgreSQL through psycopg or psycopg2."""

    name = "postgres"
    paramstyle = "format"
    supports_returning = True


class MySQLDialect(Dialect):
    """MySQL or MariaDB through PyMySQL, mysqlclient or mysql-connector."""

    name = "mysql"
    paramstyle = "format"
    quote_char = "`"
    current_schema = "DATABASE()"

    def empty_insert(self, table_sql: str) -> str:
        return f"INSERT INTO {table_sql} () VALUES ()"
