"""Table metadata (columns and foreign keys) read from the connected database."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from ...core.columns import Column, ForeignKey, Reference, convert_column_type
from ...core.contracts import DatabasePort
from ...core.types import QueryParams, RowMapping


class Information:
    """Describes one table through the dialect's catalog.

    A `database.table` name selects another database (schema); otherwise the
    connection default, or the explicit `database` argument, is used.
    """

    def __init__(self, db: DatabasePort, table: str, database: Optional[str] = None):
        if "." in table:
            database, table = table.split(".", 1)
        self.db = db
        self.table = table
        self.database = database or None

    def describe(self, *columns: str) -> List[Column]:
        """Return the table columns in ordinal order.

        Args:
            *columns: Restrict the result to these column names.

        Returns:
            Described columns; an empty list when the table does not exist.
        """

        dialect_name = getattr(self.db.dialect, "name", "").lower()
        if dialect_name == "sqlite":
            result = self._describe_sqlite()
        elif dialect_name == "postgres":
            result = self._describe_postgres()
        else:
            result = self._describe_mysql()

        if columns:
            wanted = set(columns)
            result = [column for column in result if column.name in wanted]
        return result

    def foreign_keys(self) -> List[ForeignKey]:
        """Return the foreign keys declared on this table."""

        dialect_name = getattr(self.db.dialect, "name", "").lower()
        if dialect_name == "sqlite":
            return self._foreign_keys_sqlite()
        if dialect_name == "postgres":
            sql = (
                "SELECT tc.constraint_name, kcu.column_name, "
                "ccu.table_name AS referenced_table_name, "
                "ccu.column_name AS referenced_column_name "
                "FROM information_schema.table_constraints tc "
                "JOIN information_schema.key_column_usage kcu "
                "ON tc.constraint_name = kcu.constraint_name "
                "AND tc.table_schema = kcu.table_schema "
                "JOIN information_schema.constraint_column_usage ccu "
                "ON ccu.constraint_name = tc.constraint_name "
                "AND ccu.table_schema = tc.table_schema "
                "WHERE tc.constraint_type = 'FOREIGN KEY' "
                f"AND tc.table_schema = {self._schema_sql()} "
                f"AND tc.table_name = {self._ph('table')} "
                "ORDER BY kcu.ordinal_position;"
            )
        else:
            sql = (
                "SELECT tc.constraint_name, cu.column_name, "
                "cu.referenced_table_name, cu.referenced_column_name "
                "FROM information_schema.key_column_usage cu "
                "JOIN information_schema.table_constraints tc "
                "ON cu.constraint_name = tc.constraint_name "
                "AND cu.table_schema = tc.table_schema "
                "AND cu.table_name = tc.table_name "
                "WHERE tc.constraint_type = 'FOREIGN KEY' "
                f"AND tc.table_schema = {self._schema_sql()} "
                f"AND tc.table_name = {self._ph('table')} "
                "ORDER BY cu.ordinal_position;"
            )
        rows = self.db.fetchall(sql, self._params())
        return [
            ForeignKey(
                name=str(_row_get(row, "constraint_name")),
                primary=Reference(self.table, str(_row_get(row, "column_name"))),
                secondary=Reference(
                    str(_row_get(row, "referenced_table_name")),
                    str(_row_get(row, "referenced_column_name")),
                ),
            )
            for row in rows
        ]

    def _describe_sqlite(self) -> List[Column]:
        rows = self.db.fetchall(f"PRAGMA {self._sqlite_prefix()}table_info({self.db.dialect.q(self.table)});")
        primary_count = sum(1 for row in rows if _row_get(row, "pk"))
        columns = []
        for row in rows:
            raw_type = str(_row_get(row, "type") or "")
            primary = bool(_row_get(row, "pk"))
            columns.append(
                Column(
                    table=self.table,
                    name=str(_row_get(row, "name")),
                    position=int(_row_get(row, "cid", default=0)) + 1,
                    # SQLite allows NULL in a non-INTEGER primary key unless declared otherwise.
                    nullable=not bool(_row_get(row, "notnull")) and not primary,
                    primary_key=primary,
                    type=convert_column_type(raw_type, wide_integer=self.db.dialect.wide_integer),
                    default=_row_get(row, "dflt_value"),
                    autoincrement=primary
                    and primary_count == 1
                    and raw_type.strip().upper() == "INTEGER",
                )
            )
        return columns

    def _foreign_keys_sqlite(self) -> List[ForeignKey]:
        rows = self.db.fetchall(
            f"PRAGMA {self._sqlite_prefix()}foreign_key_list({self.db.dialect.q(self.table)});"
        )
        result = []
        for row in rows:
            referenced_table = str(_row_get(row, "table"))
            referenced_column = _row_get(row, "to")
            if referenced_column is None:
                referenced_column = self._sqlite_primary_key(referenced_table)
            result.append(
                ForeignKey(
                    name=f"fk_{self.table}_{_row_get(row, 'id')}_{_row_get(row, 'seq')}",
                    primary=Reference(self.table, str(_row_get(row, "from"))),
                    secondary=Reference(referenced_table, str(referenced_column)),
                )
            )
        return result

    def _sqlite_primary_key(self, table: str) -> str:
        rows = self.db.fetchall(f"PRAGMA {self._sqlite_prefix()}table_info({self.db.dialect.q(table)});")
        for row in rows:
            if _row_get(row, "pk"):
                return str(_row_get(row, "name"))
        return "rowid"

    def _sqlite_prefix(self) -> str:
        if self.database is None:
            return ""
        return f"{self.db.dialect.q(self.database)}."

    def _describe_postgres(self) -> List[Column]:
        sql = (
            "SELECT c.column_name, c.ordinal_position, c.is_nullable, c.data_type, "
            "c.column_default, c.character_maximum_length, c.is_identity, "
            "CASE WHEN pk.column_name IS NULL THEN 0 ELSE 1 END AS is_primary "
            "FROM information_schema.columns c "
            "LEFT JOIN ("
            "SELECT kcu.column_name, kcu.table_name, kcu.table_schema "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "ON tc.constraint_name = kcu.constraint_name "
            "AND tc.table_schema = kcu.table_schema "
            "WHERE tc.constraint_type = 'PRIMARY KEY'"
            ") pk ON pk.column_name = c.column_name "
            "AND pk.table_name = c.table_name AND pk.table_schema = c.table_schema "
            f"WHERE c.table_schema = {self._schema_sql()} "
            f"AND c.table_name = {self._ph('table')} "
            "ORDER BY c.ordinal_position;"
        )
        rows = self.db.fetchall(sql, self._params())
        columns = []
        for row in rows:
            default = _row_get(row, "column_default")
            length = _row_get(row, "character_maximum_length")
            columns.append(
                Column(
                    table=self.table,
                    name=str(_row_get(row, "column_name")),
                    position=int(_row_get(row, "ordinal_position", default=0)),
                    nullable=str(_row_get(row, "is_nullable")).upper() == "YES",
                    primary_key=bool(_row_get(row, "is_primary")),
                    type=convert_column_type(
                        _row_get(row, "data_type"),
                        int(length) if length is not None else None,
                    ),
                    default=default,
                    length=int(length) if length is not None else None,
                    autoincrement=str(default or "").startswith("nextval(")
                    or str(_row_get(row, "is_identity")).upper() == "YES",
                )
            )
        return columns

    def _describe_mysql(self) -> List[Column]:
        sql = (
            "SELECT c.COLUMN_NAME, c.ORDINAL_POSITION, c.IS_NULLABLE, c.COLUMN_KEY, "
            "c.COLUMN_TYPE, c.COLUMN_DEFAULT, c.CHARACTER_MAXIMUM_LENGTH, c.EXTRA "
            "FROM information_schema.COLUMNS c "
            f"WHERE c.TABLE_SCHEMA = {self._schema_sql()} "
            f"AND c.TABLE_NAME = {self._ph('table')} "
            "ORDER BY c.ORDINAL_POSITION;"
        )
        rows = self.db.fetchall(sql, self._params())
        columns = []
        for row in rows:
            length = _row_get(row, "character_maximum_length")
            columns.append(
                Column(
                    table=self.table,
                    name=str(_row_get(row, "column_name")),
                    position=int(_row_get(row, "ordinal_position", default=0)),
                    nullable=str(_row_get(row, "is_nullable")).upper() == "YES",
                    primary_key=str(_row_get(row, "column_key")).upper() == "PRI",
                    type=convert_column_type(
                        _row_get(row, "column_type"),
                        int(length) if length is not None else None,
                    ),
                    default=_row_get(row, "column_default"),
                    length=int(length) if length is not None else None,
                    autoincrement="auto_increment" in str(_row_get(row, "extra")).lower(),
                )
            )
        return columns

    def _schema_sql(self) -> str:
        if self.database is None:
            return self.db.dialect.current_schema
        return self._ph("database")

    def _ph(self, key: str) -> str:
        return self.db.dialect.placeholder(key)

    def _params(self) -> QueryParams:
        values: List[Tuple[str, Any]] = []
        if self.database is not None:
            values.append(("database", self.database))
        values.append(("table", self.table))
        return _bind(self.db, values)


def _bind(db: DatabasePort, values: Sequence[Tuple[str, Any]]) -> QueryParams:
    if db.dialect.is_named:
        return dict(values)
    return [value for _, value in values]


def _row_get(row: RowMapping, *keys: str, default: Any = None) -> Any:
    lowered = {str(key).lower(): value for key, value in row.items()}
    sentinel = object()
    for key in keys:
        value = lowered.get(key.lower(), sentinel)
        if value is not sentinel:
            return value
    return default
