"""
Schema introspection and additive schema synchronization.

Existence checks ask the SQLAlchemy inspector first and fall back to the
dialect's raw catalog query (``sqlite_master`` / ``PRAGMA table_info``,
``INFORMATION_SCHEMA``, ``pg_tables``) when the inspector itself fails.
The synchronizer only ever adds: missing tables are created and missing
columns are appended with the dialect's ``ALTER TABLE ... ADD COLUMN``.
Nothing is dropped, renamed or retyped; anything beyond that belongs in
a migration.

Architecture:
    ::

        sync_schema(conn, metadata, mode)
            NONE    → no-op
            CREATE  → metadata.create_all(checkfirst)
            UPDATE  → CREATE + add_column() for every missing column

Examples:
    >>> with engine.begin() as conn:
    ...     report = sync_schema(conn, registry.metadata, SchemaSyncMode.UPDATE)
    >>> report.created_tables
    ['Account']

Tags:
    schema, ddl, introspection, inspector, portadb
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import Column, Connection, Engine, MetaData, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portadb.dialect import DialectDescriptor, SchemaSyncMode, get_dialect
from portadb.logging import get_logger

logger = get_logger(__name__)

Bind = Connection | Session


def _connection(bind: Bind) -> Connection:
    if isinstance(bind, Session):
        return bind.connection()
    return bind


def _descriptor(conn: Connection) -> DialectDescriptor:
    return get_dialect(conn.dialect.name)


# =============================================================================
# Introspection
# =============================================================================


def table_exists(bind: Bind, table: str) -> bool:
    """Whether *table* exists in the current schema."""
    conn = _connection(bind)
    try:
        return inspect(conn).has_table(table)
    except SQLAlchemyError as exc:
        logger.debug("schema.inspector_failed", table=table, error=str(exc))

    query = _descriptor(conn).table_exists_query()
    return conn.execute(text(query), {"table": table}).first() is not None


def column_exists(bind: Bind, table: str, column: str) -> bool:
    """Whether *table* has a column named *column*."""
    conn = _connection(bind)
    try:
        inspector = inspect(conn)
        if not inspector.has_table(table):
            return False
        return any(c["name"] == column for c in inspector.get_columns(table))
    except SQLAlchemyError as exc:
        logger.debug("schema.inspector_failed", table=table, column=column, error=str(exc))

    descriptor = _descriptor(conn)
    query = descriptor.column_exists_query(table)
    if query.upper().startswith("PRAGMA"):
        # table_info rows are (cid, name, type, notnull, dflt_value, pk)
        return any(row[1] == column for row in conn.execute(text(query)))
    params = {"table": table, "column": column}
    return conn.execute(text(query), params).first() is not None


def add_column(bind: Bind, table: str, column: str, column_type: str) -> None:
    """Append one column using the dialect's column-add DDL."""
    conn = _connection(bind)
    conn.execute(text(_descriptor(conn).add_column_sql(table, column, column_type)))
    logger.info("schema.column_added", table=table, column=column, type=column_type)


# =============================================================================
# Synchronization
# =============================================================================


@dataclass
class SchemaSyncReport:
    """What one synchronization pass changed."""

    mode: SchemaSyncMode
    created_tables: list[str] = field(default_factory=list)
    added_columns: list[tuple[str, str]] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_tables or self.added_columns)


def _column_ddl_type(column: Column, conn: Connection) -> str:
    return column.type.compile(dialect=conn.dialect)


def sync_schema(bind: Connection | Engine, metadata: MetaData, mode: SchemaSyncMode) -> SchemaSyncReport:
    """Reconcile the database with *metadata* according to *mode*.

    Accepts an ``Engine`` (runs in its own transaction) or a ``Connection``
    (runs in the caller's).
    """
    if isinstance(bind, Engine):
        with bind.begin() as conn:
            return sync_schema(conn, metadata, mode)

    report = SchemaSyncReport(mode=mode)
    if mode is SchemaSyncMode.NONE:
        return report

    conn = bind
    for table in metadata.sorted_tables:
        if not table_exists(conn, table.name):
            table.create(conn)
            report.created_tables.append(table.name)
            logger.info("schema.table_created", table=table.name)
            continue

        if mode is not SchemaSyncMode.UPDATE:
            continue

        existing = {c["name"] for c in inspect(conn).get_columns(table.name)}
        for column in table.columns:
            if column.name in existing:
                continue
            add_column(conn, table.name, column.name, _column_ddl_type(column, conn))
            report.added_columns.append((table.name, column.name))

    return report


__all__ = [
    "table_exists",
    "column_exists",
    "add_column",
    "sync_schema",
    "SchemaSyncReport",
]
