"""
portadb - database-agnostic persistence for SQLite, MySQL and PostgreSQL.

Structured queries over registered entities, versioned migrations with a
ledger, and one lazily created shared session per application.

Quick start::

    from portadb import (
        DatabaseProvider, DatabaseSettings, EntityDescriptor,
        FieldDescriptor, FieldType, SessionManager,
    )

    ACCOUNT = EntityDescriptor("Account", [
        FieldDescriptor("uuid", FieldType.UUID, primary_key=True),
        FieldDescriptor("name", FieldType.STRING),
    ])

    manager = SessionManager(DatabaseSettings(database="app.db"))
    provider = DatabaseProvider(manager)
    provider.register_entity(ACCOUNT)
    provider.initialize()
    provider.create("Account", {"uuid": uuid.uuid4(), "name": "alice"})
    manager.close_factory()
"""

from portadb.dialect import Dialect, SchemaSyncMode, get_dialect
from portadb.entities import EntityDescriptor, EntityRegistry, FieldDescriptor, FieldType
from portadb.errors import (
    ConfigError,
    DatabaseError,
    DriverUnavailableError,
    EntityNotRegisteredError,
    FieldNotFoundError,
    MalformedPredicateError,
    MigrationFailureError,
    PortaError,
    ProviderNotInitializedError,
    QueryError,
    TransactionFailureError,
    TypeConversionError,
    ValidationError,
)
from portadb.executor import QueryExecutor
from portadb.migrations import AddColumnMigration, Migration, MigrationResult, MigrationRunner, SQLMigration
from portadb.options import FindOptions
from portadb.predicates import OPERATOR_KEY, And, Eq, Gt, Gte, Lt, Lte, Ne, Not, Op, OpType, Or
from portadb.provider import DatabaseProvider
from portadb.session import SessionManager
from portadb.settings import DatabaseSettings

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "DatabaseSettings",
    "Dialect",
    "SchemaSyncMode",
    "get_dialect",
    # Entities
    "EntityDescriptor",
    "EntityRegistry",
    "FieldDescriptor",
    "FieldType",
    # Queries
    "FindOptions",
    "OPERATOR_KEY",
    "OpType",
    "Op",
    "Eq",
    "Ne",
    "Gt",
    "Gte",
    "Lt",
    "Lte",
    "And",
    "Or",
    "Not",
    "QueryExecutor",
    # Lifecycle
    "SessionManager",
    "DatabaseProvider",
    # Migrations
    "Migration",
    "SQLMigration",
    "AddColumnMigration",
    "MigrationRunner",
    "MigrationResult",
    # Errors
    "PortaError",
    "ConfigError",
    "ValidationError",
    "DatabaseError",
    "ProviderNotInitializedError",
    "EntityNotRegisteredError",
    "DriverUnavailableError",
    "FieldNotFoundError",
    "TypeConversionError",
    "MalformedPredicateError",
    "QueryError",
    "TransactionFailureError",
    "MigrationFailureError",
]
