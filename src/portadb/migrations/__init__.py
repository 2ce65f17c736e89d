"""Versioned migrations tracked in a ledger table."""

from portadb.migrations.base import AddColumnMigration, Migration, SQLMigration
from portadb.migrations.ledger import DEFAULT_LEDGER_TABLE, MigrationRecord
from portadb.migrations.runner import MigrationResult, MigrationRunner

__all__ = [
    "Migration",
    "SQLMigration",
    "AddColumnMigration",
    "MigrationRecord",
    "MigrationResult",
    "MigrationRunner",
    "DEFAULT_LEDGER_TABLE",
]
