"""
Migration ledger - the table recording which migrations were applied.

Layout::

    portadb_migrations
        id           VARCHAR(255)  primary key
        description  TEXT
        executed_at  BIGINT epoch milliseconds (SQLite)
                     DATETIME / TIMESTAMP      (MySQL, PostgreSQL)

The ledger is append-only from the runner's point of view: one row per
migration id, written in the same transaction as the migration body.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import BigInteger, Column, DateTime, MetaData, String, Table, Text, insert, select
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Session
from sqlalchemy.types import TypeDecorator

from portadb.logging import get_logger
from portadb.schema import table_exists

logger = get_logger(__name__)

DEFAULT_LEDGER_TABLE = "portadb_migrations"


class LedgerTimestamp(TypeDecorator):
    """Naive-UTC ``datetime`` stored as epoch millis on SQLite, natively elsewhere."""

    impl = DateTime
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> Any:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(DateTime())

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> Any:
        if value is None or dialect.name != "sqlite":
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None or dialect.name != "sqlite":
            return value
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class MigrationRecord:
    """One ledger row."""

    id: str
    description: str | None
    executed_at: datetime


def ledger_table(name: str = DEFAULT_LEDGER_TABLE, metadata: MetaData | None = None) -> Table:
    return Table(
        name,
        metadata or MetaData(),
        Column("id", String(255), primary_key=True),
        Column("description", Text, nullable=True),
        Column("executed_at", LedgerTimestamp(), nullable=False),
    )


def ensure_ledger(session: Session, table: Table) -> bool:
    """Create the ledger table if missing. Returns True when it was created."""
    if table_exists(session, table.name):
        return False
    table.create(session.connection())
    session.commit()
    logger.info("schema.table_created", table=table.name)
    return True


def read_records(session: Session, table: Table) -> list[MigrationRecord]:
    rows = session.execute(select(table).order_by(table.c.executed_at, table.c.id)).all()
    return [MigrationRecord(id=r.id, description=r.description, executed_at=r.executed_at) for r in rows]


def is_recorded(session: Session, table: Table, migration_id: str) -> bool:
    stmt = select(table.c.id).where(table.c.id == migration_id)
    return session.execute(stmt).first() is not None


def append_record(session: Session, table: Table, migration_id: str, description: str | None) -> None:
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    session.execute(
        insert(table).values(id=migration_id, description=description, executed_at=now)
    )


__all__ = [
    "DEFAULT_LEDGER_TABLE",
    "LedgerTimestamp",
    "MigrationRecord",
    "ledger_table",
    "ensure_ledger",
    "read_records",
    "is_recorded",
    "append_record",
]
