"""SQL dialect descriptors for SQLite, MySQL and PostgreSQL.

Every per-dialect fact the rest of portadb needs lives here: the
SQLAlchemy driver name and its import module, the default port, the
connection URL shape, the column-add DDL, the raw existence-check queries
used when the inspector is unavailable, the schema-sync mode and the
SQLite pragma set.

Manifesto:
    Callers never branch on a dialect name. Migration helpers, the schema
    synchronizer and the session manager ask the descriptor instead, so a
    new divergence between engines is a one-method change here.

    - **One interface:** ``DialectDescriptor`` protocol for all dialect facts
    - **Stateless:** Descriptors are pre-instantiated singletons
    - **No driver imports at module scope:** ``ensure_driver()`` checks lazily

Architecture::

    ┌──────────────┐   ┌──────────────────┐   ┌────────────────────┐
    │ SQLite       │   │ MySQL            │   │ PostgreSQL         │
    │ pysqlite     │   │ mysqlconnector   │   │ psycopg            │
    │ file path    │   │ :3306            │   │ :5432              │
    │ sqlite_master│   │ INFORMATION_...  │   │ pg_tables          │
    │ WAL pragmas  │   │ (none)           │   │ (none)             │
    └──────────────┘   └──────────────────┘   └────────────────────┘

Examples:
    >>> from portadb.dialect import get_dialect
    >>> d = get_dialect("mysql")
    >>> d.default_port
    3306
    >>> d.add_column_sql("accounts", "email", "VARCHAR(255)")
    'ALTER TABLE accounts ADD COLUMN email VARCHAR(255)'

Tags:
    dialect, sql, portability, sqlite, mysql, postgresql
"""

from __future__ import annotations

import importlib
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy.engine import URL

from portadb.errors import DriverUnavailableError

if TYPE_CHECKING:
    from portadb.settings import DatabaseSettings


class Dialect(str, Enum):
    """Supported database engines. Fixed for the lifetime of a provider."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"


class SchemaSyncMode(str, Enum):
    """How the synchronizer reconciles entity descriptors with the database.

    ``UPDATE`` creates missing tables and adds missing columns; it never
    drops or alters existing ones.
    """

    NONE = "none"
    CREATE = "create"
    UPDATE = "update"


@runtime_checkable
class DialectDescriptor(Protocol):
    """Static facts about one SQL dialect."""

    @property
    def dialect(self) -> Dialect:
        ...

    @property
    def name(self) -> str:
        """Lower-case dialect name (``'sqlite'``, ``'mysql'``, ``'postgresql'``)."""
        ...

    @property
    def drivername(self) -> str:
        """SQLAlchemy ``dialect+driver`` string."""
        ...

    @property
    def driver_module(self) -> str:
        """Import path of the DB-API module backing ``drivername``."""
        ...

    @property
    def default_port(self) -> int | None:
        ...

    @property
    def schema_sync_mode(self) -> SchemaSyncMode:
        """Mode requested from the schema synchronizer when settings don't override it."""
        ...

    def url(self, settings: DatabaseSettings) -> URL:
        """Connection URL built from settings."""
        ...

    def add_column_sql(self, table: str, column: str, column_type: str) -> str:
        """``ALTER TABLE`` statement adding one column."""
        ...

    def table_exists_query(self) -> str:
        """Raw query with one ``:table`` bind; returns a row if the table exists."""
        ...

    def column_exists_query(self, table: str) -> str:
        """Raw query probing a table's columns.

        For SQLite this is ``PRAGMA table_info`` whose rows must be scanned
        for the column name; for the others it binds ``:table`` and
        ``:column`` and returns a row on a match.
        """
        ...

    def pragmas(self, busy_timeout_ms: int) -> list[str]:
        """Statements run once, in autocommit mode, right after connecting."""
        ...

    def ensure_driver(self) -> None:
        """Raise :class:`DriverUnavailableError` unless the driver imports."""
        ...


class _BaseDialect:
    """Behaviour shared by the three descriptors.

    The column-add statement is currently identical everywhere but stays
    a per-dialect method so one engine can diverge without touching callers.
    """

    dialect: Dialect
    drivername: str
    driver_module: str
    driver_extra: str | None = None
    default_port: int | None = None
    schema_sync_mode: SchemaSyncMode = SchemaSyncMode.UPDATE

    @property
    def name(self) -> str:
        return self.dialect.value

    def url(self, settings: DatabaseSettings) -> URL:
        password = settings.password.get_secret_value() if settings.password else None
        return URL.create(
            self.drivername,
            username=settings.username,
            password=password,
            host=settings.host,
            port=settings.port or self.default_port,
            database=settings.database,
        )

    def add_column_sql(self, table: str, column: str, column_type: str) -> str:
        return f"ALTER TABLE {table} ADD COLUMN {column} {column_type}"

    def pragmas(self, busy_timeout_ms: int) -> list[str]:  # noqa: ARG002
        return []

    def ensure_driver(self) -> None:
        try:
            importlib.import_module(self.driver_module)
        except ImportError as exc:
            raise DriverUnavailableError(self.name, self.driver_module, self.driver_extra) from exc

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SQLiteDialect(_BaseDialect):
    """SQLite: stdlib ``sqlite3`` driver, WAL pragmas, integer epoch ledger."""

    dialect = Dialect.SQLITE
    drivername = "sqlite+pysqlite"
    driver_module = "sqlite3"

    def url(self, settings: DatabaseSettings) -> URL:
        return URL.create(self.drivername, database=settings.database or ":memory:")

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = :table"

    def column_exists_query(self, table: str) -> str:
        return f"PRAGMA table_info({table})"

    def pragmas(self, busy_timeout_ms: int) -> list[str]:
        return [
            "PRAGMA journal_mode=WAL",
            f"PRAGMA busy_timeout={int(busy_timeout_ms)}",
            "PRAGMA synchronous=NORMAL",
        ]


class MySQLDialect(_BaseDialect):
    """MySQL: ``mysql-connector-python`` driver, port 3306."""

    dialect = Dialect.MYSQL
    drivername = "mysql+mysqlconnector"
    driver_module = "mysql.connector"
    driver_extra = "mysql"
    default_port = 3306

    def table_exists_query(self) -> str:
        return (
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = :table"
        )

    def column_exists_query(self, table: str) -> str:  # noqa: ARG002
        return (
            "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = :table AND COLUMN_NAME = :column"
        )


class PostgreSQLDialect(_BaseDialect):
    """PostgreSQL: ``psycopg`` (v3) driver, port 5432."""

    dialect = Dialect.POSTGRESQL
    drivername = "postgresql+psycopg"
    driver_module = "psycopg"
    driver_extra = "postgresql"
    default_port = 5432

    def table_exists_query(self) -> str:
        return "SELECT tablename FROM pg_tables WHERE schemaname = current_schema() AND tablename = :table"

    def column_exists_query(self, table: str) -> str:  # noqa: ARG002
        return (
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = :table AND column_name = :column"
        )


# =========================================================================
# Registry / Factory
# =========================================================================

_DIALECTS: dict[str, DialectDescriptor] = {
    "sqlite": SQLiteDialect(),
    "mysql": MySQLDialect(),
    "postgresql": PostgreSQLDialect(),
}

_ALIASES = {"postgres": "postgresql", "mariadb": "mysql"}


def get_dialect(dialect: Dialect | str) -> DialectDescriptor:
    """Get a dialect descriptor by enum member or name.

    Accepts SQLAlchemy dialect names too (``bind.dialect.name``), so
    ``get_dialect(session.get_bind().dialect.name)`` works.

    Raises:
        ValueError: If the dialect is not supported.
    """
    key = dialect.value if isinstance(dialect, Dialect) else str(dialect).lower()
    key = _ALIASES.get(key, key)
    if key not in _DIALECTS:
        raise ValueError(f"Unknown dialect '{dialect}'. Supported: {sorted(_DIALECTS)}")
    return _DIALECTS[key]


__all__ = [
    "Dialect",
    "SchemaSyncMode",
    "DialectDescriptor",
    "SQLiteDialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "get_dialect",
]
