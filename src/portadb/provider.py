"""
Database provider - the application-facing façade.

A provider bundles a :class:`SessionManager` (shared, owned by the
application), its own :class:`MigrationRunner` and a
:class:`QueryExecutor`. Several providers can share one manager; the
engine, pragmas and schema sync then happen once, while each provider
runs its own migrations once.

Lifecycle::

    manager  = SessionManager(DatabaseSettings(...))          # app startup
    provider = DatabaseProvider(manager)
    provider.register_entity(ACCOUNT)
    provider.register_migrations([...])
    provider.initialize()                                     # driver check
    provider.find_one("Account", {"name": "alice"})           # first use: session + migrations
    provider.close()                                          # rolls back what it began
    manager.close_factory()                                   # app shutdown

Tags:
    provider, facade, lifecycle, portadb
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from portadb.dialect import DialectDescriptor
from portadb.entities import EntityDescriptor
from portadb.errors import ConfigError, ProviderNotInitializedError
from portadb.executor import EntityRef, QueryExecutor, Where
from portadb.logging import get_logger
from portadb.migrations import Migration, MigrationResult, MigrationRunner
from portadb.options import FindOptions
from portadb.session import PortaSession, SessionManager

logger = get_logger(__name__)


class DatabaseProvider:
    """Entity queries and migrations over a shared :class:`SessionManager`."""

    def __init__(self, manager: SessionManager):
        self.manager = manager
        self.executor = QueryExecutor(manager)
        self.runner = MigrationRunner(manager.settings.migrations_table)
        self._initialized = False
        self._migration_result: MigrationResult | None = None

    @property
    def dialect(self) -> DialectDescriptor:
        return self.manager.dialect

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def migration_result(self) -> MigrationResult | None:
        """Result of this provider's migration run, ``None`` until it ran."""
        return self._migration_result

    # =========================================================================
    # Setup
    # =========================================================================

    def initialize(self) -> None:
        """Check that the dialect's driver can be imported.

        Raises:
            DriverUnavailableError: The client library is not installed.
        """
        self.dialect.ensure_driver()
        self._initialized = True
        logger.debug("provider.initialized", dialect=self.dialect.name)

    def register_entity(self, descriptor: EntityDescriptor) -> EntityDescriptor:
        return self.manager.register_entity(descriptor)

    def register_migration(self, migration: Migration) -> None:
        if self._migration_result is not None:
            raise ConfigError(
                f"Cannot register migration {migration.id!r}: migrations already ran"
            ).with_context(migration_id=migration.id)
        self.runner.register(migration)

    def register_migrations(self, migrations: Iterable[Migration]) -> None:
        for migration in migrations:
            self.register_migration(migration)

    # =========================================================================
    # Session and migrations
    # =========================================================================

    def session(self) -> PortaSession:
        """The shared session; runs this provider's migrations on first call."""
        if not self._initialized:
            raise ProviderNotInitializedError()
        session = self.manager.get_session()
        if self._migration_result is None:
            self.run_migrations()
        return session

    def run_migrations(self) -> MigrationResult:
        """Run registered migrations once; later calls return the first result.

        Raises:
            ConfigError: Migrations are still pending and a transaction
                scope is open; the runner commits, so it must run first.
        """
        if not self._initialized:
            raise ProviderNotInitializedError()
        if self._migration_result is None:
            if self.manager.scope_active:
                raise ConfigError(
                    "Migrations must run before a transaction scope is opened; "
                    "call run_migrations() or session() first"
                ).with_context(dialect=self.dialect.name)
            self._migration_result = self.runner.run(self.manager.get_session())
        return self._migration_result

    def test_connection(self) -> bool:
        if not self._initialized:
            raise ProviderNotInitializedError()
        return self.manager.test_connection()

    def close(self) -> None:
        """Roll back a transaction this provider began; the session stays open."""
        self.manager.release(self)

    def __enter__(self) -> DatabaseProvider:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Queries
    # =========================================================================

    def _executor(self) -> QueryExecutor:
        self.session()
        return self.executor

    def find_all(self, entity: EntityRef, options: FindOptions | Where = None) -> list[Any]:
        return self._executor().find_all(entity, options)

    def find_one(self, entity: EntityRef, options: FindOptions | Where = None) -> Any | None:
        return self._executor().find_one(entity, options)

    def find_by_pk(self, entity: EntityRef, pk: Any) -> Any | None:
        return self._executor().find_by_pk(entity, pk)

    def find_by_field(self, entity: EntityRef, field: str, value: Any) -> Any | None:
        return self._executor().find_by_field(entity, field, value)

    def find_all_by_field(self, entity: EntityRef, field: str, value: Any) -> list[Any]:
        return self._executor().find_all_by_field(entity, field, value)

    def find_by_fields(self, entity: EntityRef, values: Mapping[str, Any]) -> Any | None:
        return self._executor().find_by_fields(entity, values)

    def count(self, entity: EntityRef, where: Where = None) -> int:
        return self._executor().count(entity, where)

    def create(self, entity: EntityRef, instance: Any) -> Any:
        return self._executor().create(entity, instance)

    def bulk_create(self, entity: EntityRef, instances: Iterable[Any]) -> list[Any]:
        return self._executor().bulk_create(entity, instances)

    def save(self, entity: EntityRef, instance: Any) -> Any:
        return self._executor().save(entity, instance)

    def destroy(self, entity: EntityRef, instance: Any) -> int:
        return self._executor().destroy(entity, instance)

    def bulk_update(self, entity: EntityRef, where: Where, updates: Mapping[str, Any]) -> int:
        return self._executor().bulk_update(entity, where, updates)

    def upsert(self, entity: EntityRef, instance: Any, where: Where) -> Any:
        return self._executor().upsert(entity, instance, where)

    def find_or_create(
        self,
        entity: EntityRef,
        where: Mapping[str, Any],
        defaults: Mapping[str, Any] | None = None,
    ) -> Any:
        return self._executor().find_or_create(entity, where, defaults)

    def __repr__(self) -> str:
        return f"DatabaseProvider(dialect={self.dialect.name!r}, initialized={self._initialized})"


__all__ = ["DatabaseProvider"]
