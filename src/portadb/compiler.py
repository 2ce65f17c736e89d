"""
Predicate compiler - ``where`` mappings and nodes to SQLAlchemy expressions.

Compilation is pure: it reads the entity descriptor and its ``Table`` and
returns a boolean ``ColumnElement``. Nothing touches a session, so a
compile or coercion error fails the one request and leaves no partially
applied criteria behind.

Architecture:
    ::

        where ──► compile_where(entity, table, where)
                    │
                    ├── mapping      → AND(field = coerce(value), ..., "$" node)
                    ├── Eq/Ne/...    → column <op> coerce(value)
                    ├── And          → AND(terms)          (empty: true)
                    ├── Or map       → OR(field = value)   (None skipped; empty: false)
                    ├── Or list      → OR(AND(map), ...)   (empty maps skipped; empty: false)
                    └── Not          → NOT(term)

        build_select(entity, table, options) → select(table).where(...).limit().offset()

Examples:
    >>> clause = compile_where(account, table, {"name": "alice"})
    >>> str(clause)
    '"Account".name = :name_1'

Tags:
    predicates, compiler, sqlalchemy, query
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, Table, and_, false, not_, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from portadb.coercion import coerce
from portadb.entities import EntityDescriptor
from portadb.errors import MalformedPredicateError
from portadb.predicates import OPERATOR_KEY, And, Comparison, Not, Op, OpType, Or

if TYPE_CHECKING:
    from portadb.options import FindOptions


def _column(entity: EntityDescriptor, table: Table, field: str) -> ColumnElement[Any]:
    entity.get_field(field)  # raises FieldNotFoundError
    return table.c[field]


def _equality(entity: EntityDescriptor, table: Table, field: str, value: Any) -> ColumnElement[bool]:
    column = _column(entity, table, field)
    coerced = coerce(entity, field, value)
    if coerced is None:
        return column.is_(None)
    return column == coerced


def _compile_mapping(entity: EntityDescriptor, table: Table, where: Mapping[str, Any]) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    for key, value in where.items():
        if key == OPERATOR_KEY:
            if not isinstance(value, Op):
                raise MalformedPredicateError(
                    f"The '{OPERATOR_KEY}' key must hold an operator node, got {type(value).__name__}",
                    value=value,
                )
            clauses.append(_compile_node(entity, table, value))
        elif isinstance(value, Op):
            # A node under an ordinary key is self-contained; the key is ignored.
            clauses.append(_compile_node(entity, table, value))
        else:
            clauses.append(_equality(entity, table, key, value))
    return clauses


def _compile_term(entity: EntityDescriptor, table: Table, term: Any) -> ColumnElement[bool]:
    if isinstance(term, Op):
        return _compile_node(entity, table, term)
    if isinstance(term, Mapping):
        clauses = _compile_mapping(entity, table, term)
        return and_(*clauses) if clauses else true()
    raise MalformedPredicateError(
        f"Expected an operator node or a mapping, got {type(term).__name__}", value=term
    )


def _compile_comparison(entity: EntityDescriptor, table: Table, node: Comparison) -> ColumnElement[bool]:
    column = _column(entity, table, node.field)
    value = coerce(entity, node.field, node.value)

    if value is None:
        if node.type is OpType.EQ:
            return column.is_(None)
        if node.type is OpType.NEQ:
            return column.is_not(None)
        raise MalformedPredicateError(
            f"{node.type.value} cannot compare field {node.field!r} with null", field=node.field
        )

    match node.type:
        case OpType.EQ:
            return column == value
        case OpType.NEQ:
            return column != value
        case OpType.GT:
            return column > value
        case OpType.GTE:
            return column >= value
        case OpType.LT:
            return column < value
        case OpType.LTE:
            return column <= value
    raise MalformedPredicateError(f"Unsupported comparison: {node.type.value}")


def _compile_or(entity: EntityDescriptor, table: Table, node: Or) -> ColumnElement[bool]:
    clauses: list[ColumnElement[bool]] = []

    if node.mapping is not None:
        for field, raw in node.mapping.items():
            if isinstance(raw, Op):
                clauses.append(_compile_node(entity, table, raw))
                continue
            if field == OPERATOR_KEY:
                raise MalformedPredicateError(
                    f"The '{OPERATOR_KEY}' key must hold an operator node, got {type(raw).__name__}",
                    value=raw,
                )
            if raw is None:
                continue
            value = coerce(entity, field, raw)
            if value is None:
                continue
            clauses.append(_column(entity, table, field) == value)
    else:
        for term in node.terms:
            if isinstance(term, Mapping):
                if not term:
                    continue
                clauses.append(and_(*_compile_mapping(entity, table, term)))
            else:
                clauses.append(_compile_term(entity, table, term))

    if not clauses:
        return false()
    return or_(*clauses)


def _compile_node(entity: EntityDescriptor, table: Table, node: Op) -> ColumnElement[bool]:
    if isinstance(node, Comparison):
        return _compile_comparison(entity, table, node)
    if isinstance(node, Or):
        return _compile_or(entity, table, node)
    if isinstance(node, And):
        clauses = [_compile_term(entity, table, t) for t in node.terms]
        return and_(*clauses) if clauses else true()
    if isinstance(node, Not):
        return not_(_compile_term(entity, table, node.term))
    raise MalformedPredicateError(f"Unsupported operator node: {node!r}")


# =============================================================================
# Public API
# =============================================================================


def compile_where(
    entity: EntityDescriptor,
    table: Table,
    where: Mapping[str, Any] | Op | None,
) -> ColumnElement[bool] | None:
    """Compile a ``where`` into a boolean clause.

    Returns ``None`` for an empty or missing ``where`` (no filtering).

    Raises:
        FieldNotFoundError: A referenced field is not on the entity.
        TypeConversionError: A value does not coerce to its field type.
        MalformedPredicateError: The reserved key or a node is misused.
    """
    if where is None:
        return None
    if isinstance(where, Op):
        return _compile_node(entity, table, where)
    if not isinstance(where, Mapping):
        raise MalformedPredicateError(
            f"where must be a mapping or an operator node, got {type(where).__name__}", value=where
        )
    clauses = _compile_mapping(entity, table, where)
    if not clauses:
        return None
    return clauses[0] if len(clauses) == 1 else and_(*clauses)


def validate_attributes(entity: EntityDescriptor, attributes: Sequence[str] | None) -> None:
    """Check projection names against the descriptor.

    Rows always carry every field; the names are only validated.
    """
    for name in attributes or ():
        entity.get_field(name)


def build_select(entity: EntityDescriptor, table: Table, options: FindOptions) -> Select[Any]:
    """Full ``SELECT`` for *options*: criteria, then limit and offset."""
    validate_attributes(entity, options.attributes)

    stmt = select(table)
    clause = compile_where(entity, table, options.where)
    if clause is not None:
        stmt = stmt.where(clause)
    if options.limit is not None:
        stmt = stmt.limit(options.limit)
    if options.skip is not None:
        stmt = stmt.offset(options.skip)
    return stmt


__all__ = ["compile_where", "build_select", "validate_attributes"]
