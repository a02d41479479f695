"""Database access layer over SQLAlchemy Core."""

import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import (
    Column as SAColumn,
    Float,
    Index,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
    and_,
    bindparam,
    create_engine,
    inspect,
    text,
)
from sqlalchemy.engine import Connection, Engine

from ..models.schema import Column, ColumnType, TableSchema

logger = logging.getLogger(__name__)

_TABLE_REF = re.compile(r"::(\w+)")

_TYPE_MAP = {
    ColumnType.SERIAL: Integer,
    ColumnType.INTEGER: Integer,
    ColumnType.SMALLINT: SmallInteger,
    ColumnType.TEXT: Text,
    ColumnType.FLOAT: Float,
}


class Database:
    """
    Thin wrapper around one SQLAlchemy engine and a table prefix.

    Handles:
    - Expanding ``::name`` table references with the configured prefix
    - Binding list parameters for ``IN`` clauses
    - Row inserts and updates through reflected tables
    - Schema changes (tables, columns, indexes) across SQLite, MySQL and PostgreSQL

    Every statement runs in its own transaction, except inside a
    ``transaction()`` block, where all statements share one.
    """

    def __init__(self, url: Optional[str] = None, prefix: str = "", engine: Optional[Engine] = None):
        """
        Initialize the database wrapper.

        Args:
            url: SQLAlchemy database URL
            prefix: Prefix prepended to every table name
            engine: Existing engine to use instead of creating one from url
        """
        if engine is None and not url:
            raise ValueError("Either a database URL or an engine is required")
        self.engine = engine if engine is not None else create_engine(url)
        self.prefix = prefix
        self._tables: Dict[str, Table] = {}
        self._conn: Optional[Connection] = None

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """
        Run every statement of the block on one connection, committed at the end.

        An exception leaving the block rolls all of them back. Nested blocks
        join the outer transaction.
        """
        if self._conn is not None:
            yield self
            return
        with self.engine.begin() as conn:
            self._conn = conn
            try:
                yield self
            finally:
                self._conn = None

    @contextmanager
    def _connection(self, write: bool = False) -> Iterator[Connection]:
        if self._conn is not None:
            yield self._conn
        elif write:
            with self.engine.begin() as conn:
                yield conn
        else:
            with self.engine.connect() as conn:
                yield conn

    @property
    def _bind(self):
        return self._conn if self._conn is not None else self.engine

    @property
    def dialect(self) -> str:
        """Dialect name: sqlite, mysql or postgresql."""
        return self.engine.dialect.name

    def quote(self, name: str) -> str:
        """Quote a prefixed table name."""
        return self.engine.dialect.identifier_preparer.quote_identifier(self.prefix + name)

    def _quote_column(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote_identifier(name)

    def _expand(self, sql: str) -> str:
        return _TABLE_REF.sub(lambda m: self.quote(m.group(1)), sql)

    def _statement(self, sql: str, params: Optional[Dict[str, Any]]):
        params = dict(params or {})
        stmt = text(self._expand(sql))
        expanding = []
        for key, value in params.items():
            if isinstance(value, (list, tuple, set)):
                params[key] = list(value)
                expanding.append(bindparam(key, expanding=True))
        if expanding:
            stmt = stmt.bindparams(*expanding)
        return stmt, params

    # Queries

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Run a SELECT and return all rows as dictionaries.

        Args:
            sql: Statement with ``::table`` references and ``:name`` parameters
            params: Bound parameter values; lists bind as expanding IN lists

        Returns:
            List of row dictionaries
        """
        stmt, params = self._statement(sql, params)
        with self._connection() as conn:
            result = conn.execute(stmt, params)
            return [dict(row._mapping) for row in result]

    def fetch_one(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def fetch_value(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Return the first column of the first row, or None."""
        stmt, params = self._statement(sql, params)
        with self._connection() as conn:
            return conn.execute(stmt, params).scalar()

    def fetch_column(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        stmt, params = self._statement(sql, params)
        with self._connection() as conn:
            return list(conn.execute(stmt, params).scalars())

    def fetch_pairs(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Dict[Any, Any]:
        """Return a dictionary built from the first two columns of each row."""
        stmt, params = self._statement(sql, params)
        with self._connection() as conn:
            return {row[0]: row[1] for row in conn.execute(stmt, params)}

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        """Run a data-modifying statement and return the affected row count."""
        stmt, params = self._statement(sql, params)
        with self._connection(write=True) as conn:
            return conn.execute(stmt, params).rowcount

    # Row writes

    def table(self, name: str) -> Table:
        """Get the reflected table for a name, cached until the next schema change."""
        if name not in self._tables:
            self._tables[name] = Table(self.prefix + name, MetaData(), autoload_with=self._bind)
        return self._tables[name]

    def _known(self, table: Table, row: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in row.items() if k in table.c}

    def insert(self, name: str, row: Dict[str, Any]) -> Optional[int]:
        """
        Insert one row, ignoring keys the table does not have.

        Args:
            name: Unprefixed table name
            row: Column values

        Returns:
            The first primary key value of the new row, or None for tables without one
        """
        table = self.table(name)
        with self._connection(write=True) as conn:
            result = conn.execute(table.insert().values(**self._known(table, row)))
            if len(table.primary_key.columns) == 0:
                return None
            key = result.inserted_primary_key
        if key is None or len(key) == 0:
            return None
        return key[0]

    def update(self, name: str, values: Dict[str, Any], where: Dict[str, Any]) -> int:
        """Update rows matching all ``where`` equalities."""
        table = self.table(name)
        condition = and_(*[table.c[k] == v for k, v in where.items()])
        with self._connection(write=True) as conn:
            result = conn.execute(table.update().where(condition).values(**self._known(table, values)))
            return result.rowcount

    # Introspection

    def table_names(self) -> List[str]:
        """Unprefixed names of the tables carrying this database's prefix."""
        names = inspect(self._bind).get_table_names()
        return sorted(n[len(self.prefix):] for n in names if n.startswith(self.prefix))

    def has_table(self, name: str) -> bool:
        return inspect(self._bind).has_table(self.prefix + name)

    def is_empty(self) -> bool:
        return not self.table_names()

    def columns(self, name: str) -> List[str]:
        return [c["name"] for c in inspect(self._bind).get_columns(self.prefix + name)]

    def has_field(self, name: str, column: str) -> bool:
        return column in self.columns(name)

    def _index_name(self, table: str, index: str) -> str:
        return f"{self.prefix}{table}_{index}"

    def has_index(self, table: str, index: str) -> bool:
        physical = self._index_name(table, index)
        return any(i["name"] == physical for i in inspect(self._bind).get_indexes(self.prefix + table))

    # Schema changes

    def _sa_type(self, column: Column):
        if column.type == ColumnType.VARCHAR:
            return String(column.length or 255)
        return _TYPE_MAP[column.type]()

    def create_table(self, schema: TableSchema) -> None:
        """
        Create a table from its schema definition.

        Args:
            schema: Table definition; the physical name gets this database's prefix
        """
        metadata = MetaData()
        columns = []
        for column in schema.columns:
            kwargs: Dict[str, Any] = {"nullable": column.nullable}
            if column.name in schema.primary_key:
                kwargs["primary_key"] = True
                kwargs["autoincrement"] = column.type == ColumnType.SERIAL
                kwargs.pop("nullable")
            if column.default is not None and column.type != ColumnType.SERIAL:
                kwargs["server_default"] = str(column.default)
            columns.append(SAColumn(column.name, self._sa_type(column), **kwargs))

        table = Table(self.prefix + schema.name, metadata, *columns)
        for index, fields in schema.unique.items():
            Index(self._index_name(schema.name, index), *[table.c[f] for f in fields], unique=True)
        for index, fields in schema.indexes.items():
            Index(self._index_name(schema.name, index), *[table.c[f] for f in fields])

        metadata.create_all(self.engine)
        self._tables.pop(schema.name, None)
        logger.debug(f"Created table {self.prefix}{schema.name}")

    def drop_table(self, name: str) -> bool:
        """Drop a table if it exists. Returns True if the table was dropped."""
        if not self.has_table(name):
            return False
        self.execute(f"DROP TABLE ::{name}")
        self._tables.pop(name, None)
        return True

    def add_field(self, table: str, column: Column) -> bool:
        """Add a column unless it exists. Returns True if the column was added."""
        if self.has_field(table, column.name):
            return False
        type_sql = self._sa_type(column).compile(dialect=self.engine.dialect)
        sql = f"ALTER TABLE ::{table} ADD {self._quote_column(column.name)} {type_sql}"
        if column.default is not None:
            sql += f" DEFAULT {column.default!r}" if isinstance(column.default, str) else f" DEFAULT {column.default}"
        if not column.nullable:
            sql += " NOT NULL"
        self.execute(sql)
        self._tables.pop(table, None)
        return True

    def drop_field(self, table: str, column: str) -> bool:
        """Drop a column if it exists. Returns True if the column was dropped."""
        if not self.has_field(table, column):
            return False
        self.execute(f"ALTER TABLE ::{table} DROP COLUMN {self._quote_column(column)}")
        self._tables.pop(table, None)
        return True

    def add_index(self, table: str, index: str, fields: List[str], unique: bool = False) -> bool:
        """Create an index unless it exists. Returns True if the index was created."""
        if self.has_index(table, index):
            return False
        kind = "UNIQUE INDEX" if unique else "INDEX"
        cols = ", ".join(self._quote_column(f) for f in fields)
        physical = self._quote_column(self._index_name(table, index))
        self.execute(f"CREATE {kind} {physical} ON ::{table} ({cols})")
        return True

    def drop_index(self, table: str, index: str) -> bool:
        """Drop an index if it exists. Returns True if the index was dropped."""
        if not self.has_index(table, index):
            return False
        physical = self._quote_column(self._index_name(table, index))
        if self.dialect == "mysql":
            self.execute(f"ALTER TABLE ::{table} DROP INDEX {physical}")
        else:
            self.execute(f"DROP INDEX IF EXISTS {physical}")
        return True

    def sync_sequence(self, table: str, column: str = "id") -> None:
        """Move a PostgreSQL serial sequence past the highest stored key."""
        if self.dialect != "postgresql":
            return
        self.execute(
            f"SELECT setval(pg_get_serial_sequence('{self.prefix}{table}', '{column}'), "
            f"COALESCE((SELECT MAX({self._quote_column(column)}) FROM ::{table}), 1))"
        )

    def dispose(self) -> None:
        self.engine.dispose()
