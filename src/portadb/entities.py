"""Entity descriptors and the write-once entity registry.

An :class:`EntityDescriptor` is the static field table for one storable
type: field names, semantic types and the primary-key flag. It is built
once, at registration, and is the only thing the coercion layer, the
predicate compiler and the schema synchronizer consult; there is no
runtime introspection of model classes.

Architecture::

    EntityDescriptor("Account", [
        FieldDescriptor("uuid", FieldType.UUID, primary_key=True),
        FieldDescriptor("name", FieldType.STRING),
    ])
            │ register()
            ▼
    EntityRegistry ──► MetaData ──► Table("Account", Column(uuid), Column(name))
            │ freeze()  (first session)
            ▼
    read-only lookups from QueryExecutor / schema sync

Rows come back as ``model(**row)`` when the descriptor carries a model
(for example a dataclass), otherwise as plain dicts.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, MetaData, String, Table, Uuid
from sqlalchemy.types import TypeEngine

from portadb.errors import ConfigError, EntityNotRegisteredError, FieldNotFoundError, SchemaError


class FieldType(str, Enum):
    """Semantic field types understood by coercion and DDL generation."""

    STRING = "string"
    UUID = "uuid"
    INTEGER = "integer"
    LONG = "long"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"

    def column_type(self) -> TypeEngine[Any]:
        """Portable SQLAlchemy column type for this semantic type."""
        match self:
            case FieldType.STRING:
                return String(255)
            case FieldType.UUID:
                return Uuid(as_uuid=True)
            case FieldType.INTEGER:
                return Integer()
            case FieldType.LONG:
                return BigInteger()
            case FieldType.BOOLEAN:
                return Boolean()
            case FieldType.TIMESTAMP:
                return DateTime()
        raise SchemaError(f"Unsupported field type: {self!r}")


# Fallback primary-key names, in lookup order, for entities without a flagged key.
FALLBACK_PRIMARY_KEYS = ("uuid", "id")


@dataclass(frozen=True)
class FieldDescriptor:
    """One storable field."""

    name: str
    type: FieldType
    primary_key: bool = False
    nullable: bool = True

    def to_column(self) -> Column[Any]:
        return Column(
            self.name,
            self.type.column_type(),
            primary_key=self.primary_key,
            nullable=self.nullable and not self.primary_key,
        )


@dataclass(frozen=True)
class EntityDescriptor:
    """Immutable field table for one entity type.

    Parameters:
        name: Entity name, used for lookups and as the default table name.
        fields: Ordered field descriptors.
        table_name: Physical table name (defaults to ``name``).
        model: Optional callable building instances from field keyword
               arguments; rows are returned as dicts when omitted.
    """

    name: str
    fields: tuple[FieldDescriptor, ...]
    table_name: str = ""
    model: Callable[..., Any] | None = field(default=None, compare=False)

    def __init__(
        self,
        name: str,
        fields: Iterable[FieldDescriptor],
        *,
        table_name: str | None = None,
        model: Callable[..., Any] | None = None,
    ) -> None:
        fields = tuple(fields)
        if not name:
            raise SchemaError("Entity name must not be empty")
        if not fields:
            raise SchemaError(f"Entity {name!r} declares no fields")

        seen: set[str] = set()
        for f in fields:
            if f.name in seen:
                raise SchemaError(f"Duplicate field {f.name!r} in entity {name!r}")
            seen.add(f.name)

        keys = [f.name for f in fields if f.primary_key]
        if len(keys) > 1:
            raise SchemaError(f"Entity {name!r} flags more than one primary key: {keys}")

        object.__setattr__(self, "name", name)
        object.__setattr__(self, "fields", fields)
        object.__setattr__(self, "table_name", table_name or name)
        object.__setattr__(self, "model", model)

    # -- Field lookups -----------------------------------------------------

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def has_field(self, name: str) -> bool:
        return any(f.name == name for f in self.fields)

    def get_field(self, name: str) -> FieldDescriptor:
        """Return the descriptor for *name* or raise :class:`FieldNotFoundError`."""
        for f in self.fields:
            if f.name == name:
                return f
        raise FieldNotFoundError(self.name, name)

    def primary_key_field(self) -> FieldDescriptor:
        """Resolve the primary key.

        Order: the field flagged ``primary_key``, then a field literally
        named ``uuid``, then one named ``id``.
        """
        for f in self.fields:
            if f.primary_key:
                return f
        for candidate in FALLBACK_PRIMARY_KEYS:
            if self.has_field(candidate):
                return self.get_field(candidate)
        raise FieldNotFoundError(self.name, "<primary key>")

    # -- Instances ---------------------------------------------------------

    def build(self, row: Mapping[str, Any]) -> Any:
        """Turn a result row mapping into an entity instance."""
        values = {name: row[name] for name in self.field_names if name in row}
        if self.model is None:
            return values
        return self.model(**values)

    def values_of(self, instance: Any) -> dict[str, Any]:
        """Read field values from a mapping or from instance attributes.

        Missing fields are left out so inserts fall back to column defaults.
        """
        if isinstance(instance, Mapping):
            unknown = set(instance) - set(self.field_names)
            if unknown:
                raise FieldNotFoundError(self.name, sorted(unknown)[0])
            return {name: instance[name] for name in self.field_names if name in instance}
        return {
            name: getattr(instance, name)
            for name in self.field_names
            if hasattr(instance, name)
        }

    def to_table(self, metadata: MetaData) -> Table:
        return Table(self.table_name, metadata, *(f.to_column() for f in self.fields))


class EntityRegistry:
    """Write-once-then-read-only registry of entity descriptors.

    Entities are registered before the first session is created; the
    session manager freezes the registry when it builds the engine and
    synchronizes DDL from :attr:`metadata`.
    """

    def __init__(self) -> None:
        self.metadata = MetaData()
        self._entities: dict[str, EntityDescriptor] = {}
        self._tables: dict[str, Table] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, descriptor: EntityDescriptor) -> EntityDescriptor:
        if self._frozen:
            raise ConfigError(
                f"Cannot register {descriptor.name!r}: entities must be registered "
                "before the first session is created"
            )
        existing = self._entities.get(descriptor.name)
        if existing is not None:
            if existing == descriptor:
                return existing
            raise ConfigError(f"Entity {descriptor.name!r} is already registered")
        if descriptor.table_name in self.metadata.tables:
            raise ConfigError(f"Table {descriptor.table_name!r} is already mapped")

        self._entities[descriptor.name] = descriptor
        self._tables[descriptor.name] = descriptor.to_table(self.metadata)
        return descriptor

    def freeze(self) -> None:
        self._frozen = True

    def unfreeze(self) -> None:
        self._frozen = False

    def resolve(self, entity: EntityDescriptor | str) -> tuple[EntityDescriptor, Table]:
        """Look up a registered entity by descriptor or name."""
        name = entity.name if isinstance(entity, EntityDescriptor) else entity
        try:
            return self._entities[name], self._tables[name]
        except KeyError:
            raise EntityNotRegisteredError(name) from None

    def get(self, name: str) -> EntityDescriptor:
        return self.resolve(name)[0]

    def table(self, entity: EntityDescriptor | str) -> Table:
        return self.resolve(entity)[1]

    def __contains__(self, name: object) -> bool:
        if isinstance(name, EntityDescriptor):
            name = name.name
        return name in self._entities

    def __iter__(self):
        return iter(self._entities.values())

    def __len__(self) -> int:
        return len(self._entities)


__all__ = [
    "FieldType",
    "FieldDescriptor",
    "EntityDescriptor",
    "EntityRegistry",
    "FALLBACK_PRIMARY_KEYS",
]
