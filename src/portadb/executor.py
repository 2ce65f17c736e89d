"""
Query executor - finds and writes for registered entities.

Every operation resolves the entity in the manager's registry, compiles
its criteria *before* touching the session, then runs inside
``SessionManager.transaction()``. Reads therefore end their autobegun
transaction too, and a compile or coercion error never leaves a half-open
transaction behind.

Error propagation:
    - portadb errors (``FieldNotFoundError``, ``TypeConversionError``,
      ``MalformedPredicateError``, ``TransactionFailureError``...) pass through
    - any other SQLAlchemy failure becomes ``QueryError`` with the cause chained

Examples:
    >>> executor = QueryExecutor(manager)
    >>> executor.create("Account", {"uuid": u, "name": "alice"})
    {'uuid': UUID('...'), 'name': 'alice'}
    >>> executor.find_one("Account", {"name": "bob"}) is None
    True

Tags:
    query, executor, crud, sqlalchemy, portadb
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Table, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from portadb.coercion import coerce, coerce_values
from portadb.compiler import build_select, compile_where
from portadb.entities import EntityDescriptor
from portadb.errors import MalformedPredicateError, PortaError, QueryError, ValidationError
from portadb.logging import get_logger
from portadb.options import FindOptions, as_options
from portadb.predicates import OPERATOR_KEY, Op
from portadb.session import PortaSession, SessionManager

logger = get_logger(__name__)

EntityRef = EntityDescriptor | str
Where = Mapping[str, Any] | Op | None


class QueryExecutor:
    """Runs entity queries on a :class:`SessionManager`'s shared session."""

    def __init__(self, manager: SessionManager):
        self.manager = manager

    # =========================================================================
    # Internals
    # =========================================================================

    def _resolve(self, entity: EntityRef) -> tuple[EntityDescriptor, Table]:
        return self.manager.registry.resolve(entity)

    @contextmanager
    def _run(self, action: str, descriptor: EntityDescriptor) -> Iterator[PortaSession]:
        try:
            with self.manager.transaction() as session:
                yield session
        except PortaError:
            raise
        except SQLAlchemyError as exc:
            logger.debug("query.failed", action=action, entity=descriptor.name, error=str(exc))
            raise QueryError(f"Unable to {action}", cause=exc).with_context(
                entity=descriptor.name,
                table=descriptor.table_name,
                dialect=self.manager.dialect.name,
            ) from exc

    def _pk_clause(self, descriptor: EntityDescriptor, table: Table, value: Any):
        pk = descriptor.primary_key_field()
        return table.c[pk.name] == coerce(descriptor, pk.name, value)

    @staticmethod
    def _complete(descriptor: EntityDescriptor, values: Mapping[str, Any]) -> dict[str, Any]:
        return {name: values.get(name) for name in descriptor.field_names}

    @staticmethod
    def _plain_where(where: Any) -> dict[str, Any]:
        if (
            not isinstance(where, Mapping)
            or OPERATOR_KEY in where
            or any(isinstance(v, Op) for v in where.values())
        ):
            raise MalformedPredicateError(
                "Only plain field equalities can seed a new row", value=where
            )
        return dict(where)

    # =========================================================================
    # Reads
    # =========================================================================

    def select(self, entity: EntityRef, options: FindOptions | Where = None):
        """Build (without running) the ``SELECT`` for *options*."""
        descriptor, table = self._resolve(entity)
        return build_select(descriptor, table, as_options(options))

    def find_all(self, entity: EntityRef, options: FindOptions | Where = None) -> list[Any]:
        """All rows matching *options* (a ``FindOptions`` or a bare ``where``)."""
        descriptor, table = self._resolve(entity)
        stmt = build_select(descriptor, table, as_options(options))
        with self._run("find rows", descriptor) as session:
            rows = session.execute(stmt).mappings().all()
        return [descriptor.build(row) for row in rows]

    def find_one(self, entity: EntityRef, options: FindOptions | Where = None) -> Any | None:
        """First matching row, or ``None``. The limit is always forced to 1."""
        opts = as_options(options).copy().set_limit(1)
        rows = self.find_all(entity, opts)
        return rows[0] if rows else None

    def find_by_pk(self, entity: EntityRef, pk: Any) -> Any | None:
        """Row whose primary key equals *pk*.

        The key is the flagged primary-key field, else a field named
        ``uuid``, else one named ``id``.
        """
        descriptor, table = self._resolve(entity)
        stmt = select(table).where(self._pk_clause(descriptor, table, pk)).limit(1)
        with self._run("find row by primary key", descriptor) as session:
            row = session.execute(stmt).mappings().first()
        return descriptor.build(row) if row is not None else None

    def find_by_field(self, entity: EntityRef, field: str, value: Any) -> Any | None:
        return self.find_one(entity, FindOptions.by(field, value))

    def find_all_by_field(self, entity: EntityRef, field: str, value: Any) -> list[Any]:
        return self.find_all(entity, FindOptions.by(field, value))

    def find_by_fields(self, entity: EntityRef, values: Mapping[str, Any]) -> Any | None:
        return self.find_one(entity, FindOptions(values))

    def count(self, entity: EntityRef, where: Where = None) -> int:
        descriptor, table = self._resolve(entity)
        stmt = select(func.count()).select_from(table)
        clause = compile_where(descriptor, table, where)
        if clause is not None:
            stmt = stmt.where(clause)
        with self._run("count rows", descriptor) as session:
            return int(session.execute(stmt).scalar_one())

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, entity: EntityRef, instance: Any) -> Any:
        """Insert one row and return it as an entity instance."""
        descriptor, table = self._resolve(entity)
        values = coerce_values(descriptor, descriptor.values_of(instance))
        with self._run("create row", descriptor) as session:
            session.execute(insert(table).values(**values))
        return descriptor.build(self._complete(descriptor, values))

    def bulk_create(self, entity: EntityRef, instances: Iterable[Any]) -> list[Any]:
        """Insert all rows in one transaction; nothing is stored if any fails."""
        descriptor, table = self._resolve(entity)
        batch = [coerce_values(descriptor, descriptor.values_of(i)) for i in instances]
        with self._run("bulk create rows", descriptor) as session:
            for values in batch:
                session.execute(insert(table).values(**values))
        return [descriptor.build(self._complete(descriptor, values)) for values in batch]

    def save(self, entity: EntityRef, instance: Any) -> Any:
        """Update the row with the instance's primary key, or insert it."""
        descriptor, table = self._resolve(entity)
        pk = descriptor.primary_key_field()
        values = coerce_values(descriptor, descriptor.values_of(instance))
        key = values.get(pk.name)

        with self._run("save row", descriptor) as session:
            updated = 0
            if key is not None:
                changes = {k: v for k, v in values.items() if k != pk.name}
                if changes:
                    result = session.execute(
                        update(table).where(table.c[pk.name] == key).values(**changes)
                    )
                    updated = result.rowcount
                else:
                    exists = session.execute(
                        select(table.c[pk.name]).where(table.c[pk.name] == key)
                    ).first()
                    updated = 1 if exists is not None else 0
            if not updated:
                session.execute(insert(table).values(**values))
        return descriptor.build(self._complete(descriptor, values))

    def destroy(self, entity: EntityRef, instance: Any) -> int:
        """Delete by primary key. Returns the number of rows removed."""
        descriptor, table = self._resolve(entity)
        pk = descriptor.primary_key_field()
        key = descriptor.values_of(instance).get(pk.name)
        if key is None:
            raise ValidationError(
                f"Cannot delete {descriptor.name} without a primary key value", field=pk.name
            )
        stmt = delete(table).where(self._pk_clause(descriptor, table, key))
        with self._run("delete row", descriptor) as session:
            return session.execute(stmt).rowcount

    def bulk_update(self, entity: EntityRef, where: Where, updates: Mapping[str, Any]) -> int:
        """Apply *updates* to every row matching *where*. Returns the rowcount."""
        descriptor, table = self._resolve(entity)
        values = coerce_values(descriptor, updates)
        if not values:
            return 0
        stmt = update(table).values(**values)
        clause = compile_where(descriptor, table, where)
        if clause is not None:
            stmt = stmt.where(clause)
        with self._run("bulk update rows", descriptor) as session:
            return session.execute(stmt).rowcount

    def upsert(self, entity: EntityRef, instance: Any, where: Where) -> Any:
        """Update the first row matching *where*, or create *instance*.

        On update only non-``None`` values are copied and the primary key
        is never changed.
        """
        descriptor, table = self._resolve(entity)
        existing = self.find_one(descriptor, where)
        if existing is None:
            return self.create(descriptor, instance)

        pk = descriptor.primary_key_field()
        current = descriptor.values_of(existing)
        changes = {
            k: v
            for k, v in coerce_values(descriptor, descriptor.values_of(instance)).items()
            if v is not None and k != pk.name
        }
        if changes:
            stmt = update(table).where(table.c[pk.name] == current[pk.name]).values(**changes)
            with self._run("upsert row", descriptor) as session:
                session.execute(stmt)
        return descriptor.build(self._complete(descriptor, {**current, **changes}))

    def find_or_create(
        self,
        entity: EntityRef,
        where: Mapping[str, Any],
        defaults: Mapping[str, Any] | None = None,
    ) -> Any:
        """First row matching *where*, or a new row built from *defaults* and *where*."""
        descriptor, _ = self._resolve(entity)
        existing = self.find_one(descriptor, where)
        if existing is not None:
            return existing
        seed = {**dict(defaults or {}), **self._plain_where(where)}
        return self.create(descriptor, seed)


__all__ = ["QueryExecutor"]
