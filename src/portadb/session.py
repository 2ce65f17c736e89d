"""
Session manager - one lazily created engine and session per application.

The manager is the application-lifecycle object of portadb. It owns the
entity registry, builds the engine on first use, synchronizes the schema,
applies the SQLite pragmas and hands out the single shared SQLAlchemy
``Session`` every provider, query and migration runs on. The host
application closes it from its own shutdown path with
:meth:`SessionManager.close_factory`.

Manifesto:
    - **One session:** all work goes through the same logical connection
    - **Lazy:** nothing connects until the first ``get_session()``
    - **Once:** schema sync and pragmas run once per manager, under a lock
    - **Explicit lifecycle:** no interpreter exit hooks; close_factory() rebuilds cleanly

Architecture:
    ::

        get_session()  (lock)
            │ first call only
            ├── registry.freeze()
            ├── create_engine(url, StaticPool | pool_size=1)
            ├── sync_schema(metadata, mode)
            ├── pragmas on an AUTOCOMMIT connection (SQLite)
            └── PortaSession(bind=engine)
        transaction(owner)
            ├── no managed scope → begin (or adopt an autobegun one) … commit / rollback
            └── managed scope open → join, outer scope decides

Examples:
    >>> manager = SessionManager(DatabaseSettings(database=":memory:"))
    >>> manager.registry.register(account)
    >>> with manager.transaction() as session:
    ...     session.execute(insert(manager.registry.table("Account")), {...})
    >>> manager.close_factory()

Tags:
    session, engine, transaction, lifecycle, sqlalchemy, portadb
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from portadb.dialect import Dialect, DialectDescriptor
from portadb.entities import EntityDescriptor, EntityRegistry
from portadb.errors import DatabaseConnectionError, PortaError, TransactionFailureError
from portadb.logging import get_logger
from portadb.schema import SchemaSyncReport, sync_schema
from portadb.settings import DatabaseSettings

logger = get_logger(__name__)


class PortaSession(Session):
    """Shared session with ``expire_on_commit=False``.

    Rows read before a commit stay usable after it; the layer returns
    plain values, never lazily loaded objects.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


class SessionManager:
    """Owns the engine, the shared session and the entity registry.

    Args:
        settings: Connection settings; defaults to ``DatabaseSettings()``
                  (environment / ``.env`` driven).
        registry: Entity registry to use; a fresh one by default.
    """

    def __init__(
        self,
        settings: DatabaseSettings | None = None,
        *,
        registry: EntityRegistry | None = None,
    ):
        self.settings = settings or DatabaseSettings()
        self._registry = registry or EntityRegistry()
        self._lock = threading.Lock()

        self._engine: Engine | None = None
        self._session: PortaSession | None = None
        self._schema_synced = False
        self._pragmas_applied = False
        self._last_sync: SchemaSyncReport | None = None

        # Managed transaction scope
        self._scope_active = False
        self._owner: object | None = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def dialect(self) -> DialectDescriptor:
        return self.settings.descriptor

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def engine(self) -> Engine:
        """The engine, building it (and the session) on first access."""
        self.get_session()
        if self._engine is None:
            raise DatabaseConnectionError(f"No {self.dialect.name} engine is open")
        return self._engine

    @property
    def in_transaction(self) -> bool:
        return self._session is not None and self._session.in_transaction()

    @property
    def scope_active(self) -> bool:
        """True inside a managed scope or a transaction opened by an owner."""
        return self._scope_active or self.owned_transaction

    @property
    def owned_transaction(self) -> bool:
        return (
            self._owner is not None
            and self._session is not None
            and self._session.in_transaction()
        )

    @property
    def last_sync(self) -> SchemaSyncReport | None:
        """Report of the schema synchronization run by the first session."""
        return self._last_sync

    def register_entity(self, descriptor: EntityDescriptor) -> EntityDescriptor:
        return self._registry.register(descriptor)

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def get_session(self) -> PortaSession:
        """Return the shared session, creating everything on first call."""
        with self._lock:
            if self._session is None:
                self._session = self._open()
            return self._session

    def _create_engine(self) -> Engine:
        settings = self.settings
        kwargs: dict[str, Any] = {"echo": settings.echo}
        if settings.dialect is Dialect.SQLITE:
            # One physical connection, usable from any thread.
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": settings.busy_timeout_ms / 1000,
            }
        else:
            kwargs.update(pool_size=1, max_overflow=0, pool_pre_ping=True)
        return create_engine(settings.connection_url(), **kwargs)

    def _open(self) -> PortaSession:
        self._registry.freeze()
        engine = self._create_engine()
        try:
            if not self._schema_synced:
                self._last_sync = sync_schema(
                    engine, self._registry.metadata, self.settings.resolved_schema_sync
                )
                self._schema_synced = True
            if not self._pragmas_applied:
                self._apply_pragmas(engine)
                self._pragmas_applied = True
        except SQLAlchemyError as exc:
            engine.dispose()
            self._registry.unfreeze()
            raise DatabaseConnectionError(
                f"Unable to initialize {self.dialect.name} database", cause=exc
            ).with_context(dialect=self.dialect.name) from exc

        self._engine = engine
        session = PortaSession(bind=engine)
        logger.info(
            "session.created",
            dialect=self.dialect.name,
            url=engine.url.render_as_string(hide_password=True),
        )
        return session

    def _apply_pragmas(self, engine: Engine) -> None:
        statements = self.dialect.pragmas(self.settings.busy_timeout_ms)
        if not statements:
            return

        with engine.connect() as conn:
            previous = conn.get_isolation_level()
            try:
                # journal_mode cannot change inside a transaction
                conn.execution_options(isolation_level="AUTOCOMMIT")
                for statement in statements:
                    conn.exec_driver_sql(statement)
                conn.commit()
                logger.info("sqlite.pragmas_applied", pragmas=statements)
            except SQLAlchemyError as exc:
                conn.rollback()
                logger.warning("sqlite.pragmas_failed", pragmas=statements, error=str(exc))
            finally:
                conn.execution_options(isolation_level=previous)

    def close_factory(self) -> None:
        """Shut down: roll back, close the session, dispose the engine.

        Resets the once-only flags and unfreezes the registry, so a later
        :meth:`get_session` rebuilds everything from scratch.
        """
        with self._lock:
            if self._session is not None:
                if self._session.in_transaction():
                    self._safe_rollback()
                self._session.close()
            if self._engine is not None:
                self._engine.dispose()
                logger.info("session.closed", dialect=self.dialect.name)

            self._session = None
            self._engine = None
            self._schema_synced = False
            self._pragmas_applied = False
            self._scope_active = False
            self._owner = None
            self._registry.unfreeze()

    def test_connection(self) -> bool:
        """Run ``SELECT 1`` on the shared session."""
        try:
            with self.transaction() as session:
                session.execute(text("SELECT 1"))
        except (SQLAlchemyError, PortaError) as exc:
            logger.warning("session.test_failed", dialect=self.dialect.name, error=str(exc))
            return False
        return True

    # =========================================================================
    # Transactions
    # =========================================================================

    def begin(self, owner: object | None = None) -> PortaSession:
        """Begin a transaction unless one is already active."""
        session = self.get_session()
        if not session.in_transaction():
            session.begin()
            self._owner = owner
        return session

    def commit(self) -> None:
        """Commit the active transaction.

        Raises:
            TransactionFailureError: The commit failed; the session was
                rolled back best-effort.
        """
        session = self.get_session()
        try:
            session.commit()
        except SQLAlchemyError as exc:
            self._safe_rollback()
            raise TransactionFailureError("Commit failed", cause=exc).with_context(
                dialect=self.dialect.name
            ) from exc
        finally:
            self._owner = None

    def rollback(self) -> None:
        session = self.get_session()
        try:
            session.rollback()
        except SQLAlchemyError as exc:
            raise TransactionFailureError("Rollback failed", cause=exc).with_context(
                dialect=self.dialect.name
            ) from exc
        finally:
            self._owner = None

    def _safe_rollback(self) -> None:
        if self._session is None:
            return
        try:
            self._session.rollback()
        except SQLAlchemyError as exc:
            logger.warning("transaction.rollback_failed", error=str(exc))

    @contextmanager
    def transaction(self, owner: object | None = None) -> Iterator[PortaSession]:
        """Transaction scope on the shared session.

        Joins an enclosing scope, or a transaction opened with
        :meth:`begin` by an owner, instead of nesting; the joined
        transaction is left for its opener to end. A transaction the
        session autobegun outside any scope is adopted and ended here.
        """
        session = self.get_session()
        if self._scope_active or self.owned_transaction:
            yield session
            return

        if not session.in_transaction():
            session.begin()
        self._scope_active = True
        self._owner = owner
        try:
            yield session
        except BaseException:
            self._scope_active = False
            self._safe_rollback()
            self._owner = None
            raise
        self._scope_active = False
        self.commit()

    def release(self, owner: object) -> None:
        """Roll back the active transaction if *owner* began it."""
        if self._session is None or self._owner is not owner:
            return
        if self._session.in_transaction():
            self._safe_rollback()
        self._owner = None

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"SessionManager(dialect={self.dialect.name!r}, {state})"


__all__ = ["SessionManager", "PortaSession"]
