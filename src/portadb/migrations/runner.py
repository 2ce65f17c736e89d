"""Migration runner.

Applies registered :class:`Migration` objects, in registration order, on
the shared session, and records each success in the ledger table.

Per migration id::

    Unknown ──► AlreadyApplied                     (ledger hit: skipped)
            └─► NotApplied ──► Declined            (should_run() is False)
                           └─► Eligible ──► Applied   (body + ledger row committed)
                                        └─► Failed    (rolled back, logged, run continues)

A failing migration never aborts the run and never raises out of
:meth:`MigrationRunner.run`; it is rolled back, logged as
``migration.failed`` and reported in :attr:`MigrationResult.failures`.
The ledger is consulted before ``should_run`` so an applied migration is
never re-evaluated.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portadb.errors import ConfigError, MigrationFailureError
from portadb.logging import LogContext, get_logger
from portadb.migrations.base import Migration
from portadb.migrations.ledger import (
    DEFAULT_LEDGER_TABLE,
    MigrationRecord,
    append_record,
    ensure_ledger,
    is_recorded,
    ledger_table,
    read_records,
)

logger = get_logger(__name__)


@dataclass
class MigrationResult:
    """Result of a migration run."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    declined: list[str] = field(default_factory=list)
    failures: dict[str, MigrationFailureError] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return len(self.failures) == 0

    @property
    def errors(self) -> dict[str, str]:
        """Failure messages by migration id."""
        return {mid: err.message for mid, err in self.failures.items()}


class MigrationRunner:
    """Ordered set of migrations plus the ledger they are tracked in.

    Parameters
    ----------
    table_name
        Ledger table name. Defaults to ``portadb_migrations``.

    Example::

        runner = MigrationRunner()
        runner.register(SQLMigration("0001_seed", "INSERT INTO ..."))
        result = runner.run(manager.get_session())
        print(f"Applied {len(result.applied)} migrations")
    """

    def __init__(self, table_name: str = DEFAULT_LEDGER_TABLE) -> None:
        self._migrations: list[Migration] = []
        self.ledger = ledger_table(table_name)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, migration: Migration) -> None:
        if not migration.id:
            raise ConfigError(f"Migration {migration!r} has no id")
        if any(m.id == migration.id for m in self._migrations):
            raise ConfigError(f"Migration id already registered: {migration.id}").with_context(
                migration_id=migration.id
            )
        self._migrations.append(migration)

    def register_all(self, migrations: Iterable[Migration]) -> None:
        for migration in migrations:
            self.register(migration)

    @property
    def migrations(self) -> tuple[Migration, ...]:
        return tuple(self._migrations)

    def clear(self) -> None:
        self._migrations.clear()

    # ------------------------------------------------------------------
    # Ledger queries
    # ------------------------------------------------------------------

    def applied_records(self, session: Session) -> list[MigrationRecord]:
        """Ledger rows, oldest first. Empty when the ledger does not exist yet."""
        ensure_ledger(session, self.ledger)
        return read_records(session, self.ledger)

    def is_applied(self, session: Session, migration_id: str) -> bool:
        ensure_ledger(session, self.ledger)
        return is_recorded(session, self.ledger, migration_id)

    def pending(self, session: Session) -> list[str]:
        """Registered ids not yet in the ledger, in registration order."""
        applied = {r.id for r in self.applied_records(session)}
        return [m.id for m in self._migrations if m.id not in applied]

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, session: Session) -> MigrationResult:
        """Evaluate every registered migration, then execute the eligible ones."""
        result = MigrationResult()
        ensure_ledger(session, self.ledger)

        eligible: list[Migration] = []
        for migration in self._migrations:
            with LogContext(migration_id=migration.id):
                try:
                    if is_recorded(session, self.ledger, migration.id):
                        result.skipped.append(migration.id)
                        logger.debug("migration.skipped", reason="already_applied")
                        continue
                    if not migration.should_run(session):
                        result.declined.append(migration.id)
                        logger.info("migration.declined")
                        continue
                except Exception as exc:
                    self._fail(session, migration, exc, result)
                    continue
                eligible.append(migration)

        for migration in eligible:
            with LogContext(migration_id=migration.id):
                try:
                    if not session.in_transaction():
                        session.begin()
                    migration.execute(session)
                    if not is_recorded(session, self.ledger, migration.id):
                        append_record(session, self.ledger, migration.id, migration.description)
                    session.commit()
                except Exception as exc:
                    self._fail(session, migration, exc, result)
                    continue
                result.applied.append(migration.id)
                logger.info("migration.applied", description=migration.description)

        if session.in_transaction():
            session.commit()
        return result

    def _fail(self, session: Session, migration: Migration, exc: Exception, result: MigrationResult) -> None:
        try:
            session.rollback()
        except SQLAlchemyError as rollback_exc:
            logger.warning("transaction.rollback_failed", error=str(rollback_exc))

        failure = MigrationFailureError(
            migration.id,
            f"Migration {migration.id} failed: {exc}",
            cause=exc,
        )
        result.failures[migration.id] = failure
        logger.error("migration.failed", error=str(exc), error_type=type(exc).__name__)


__all__ = ["MigrationRunner", "MigrationResult"]
