"""Predicate translator: normalized filters to SQLAlchemy Core constructs.

Translation is purely syntactic. Column names are resolved against the
target table, but nothing is executed.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement

from ninja_records.exceptions import InvalidQuery, UnsupportedOperator
from ninja_records.query import DESCENDING, AllOf, AnyOf, Condition, NormalizedFilter, Predicate

_SET_TYPES = (list, tuple, set, frozenset)


def _set_operand(op: str, value: Any) -> Any:
    if not isinstance(value, _SET_TYPES):
        raise InvalidQuery(f"{op} expects a list of values, got {value!r}")
    return list(value)


def _range_operand(op: str, value: Any) -> tuple[Any, Any]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise InvalidQuery(f"{op} expects a [low, high] pair, got {value!r}")
    return value[0], value[1]


_OPERATORS: dict[str, Callable[[sa.Column, Any], ColumnElement[bool]]] = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
    "$in": lambda col, v: col.in_(_set_operand("$in", v)),
    "$nin": lambda col, v: col.not_in(_set_operand("$nin", v)),
    "$notIn": lambda col, v: col.not_in(_set_operand("$notIn", v)),
    "$like": lambda col, v: col.like(v),
    "$notLike": lambda col, v: col.not_like(v),
    "$iLike": lambda col, v: col.ilike(v),
    "$notILike": lambda col, v: col.not_ilike(v),
    "$between": lambda col, v: col.between(*_range_operand("$between", v)),
    "$notBetween": lambda col, v: sa.not_(col.between(*_range_operand("$notBetween", v))),
}

OPERATORS = frozenset(_OPERATORS)


@dataclass(frozen=True)
class EngineQuery:
    """Engine-native query parameters produced by :func:`translate`."""

    where: ColumnElement[bool] | None = None
    order: tuple[sa.UnaryExpression, ...] = ()
    limit: int | None = None
    offset: int = 0
    attributes: tuple[str, ...] | None = None

    def replace(self, **changes: Any) -> EngineQuery:
        return replace(self, **changes)


def _column(table: sa.Table, name: str) -> sa.Column:
    try:
        return table.c[name]
    except KeyError:
        raise InvalidQuery(f"Unknown field '{name}' for {table.name}") from None


def _translate_predicate(predicate: Predicate, table: sa.Table) -> ColumnElement[bool]:
    build = _OPERATORS.get(predicate.operator)
    if build is None:
        raise UnsupportedOperator(f"Unsupported operator '{predicate.operator}' on field '{predicate.field}'")
    return build(_column(table, predicate.field), predicate.value)


def _translate_branch(branch: Sequence[Condition], table: sa.Table) -> ColumnElement[bool]:
    clause = translate_where(branch, table)
    return sa.true() if clause is None else clause


def translate_where(conditions: Sequence[Condition], table: sa.Table) -> ColumnElement[bool] | None:
    """AND all *conditions* together; ``None`` when there is nothing to filter on."""
    clauses: list[ColumnElement[bool]] = []
    for condition in conditions:
        if isinstance(condition, Predicate):
            clauses.append(_translate_predicate(condition, table))
        elif isinstance(condition, AnyOf):
            # An empty $or has no branch that can match.
            branches = [_translate_branch(b, table) for b in condition.branches]
            clauses.append(sa.or_(*branches) if branches else sa.false())
        elif isinstance(condition, AllOf):
            clauses.extend(_translate_branch(b, table) for b in condition.branches)
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return sa.and_(*clauses)


def translate_order(filter_: NormalizedFilter, table: sa.Table) -> tuple[sa.UnaryExpression, ...]:
    return tuple(
        _column(table, spec.field).desc() if spec.direction == DESCENDING else _column(table, spec.field).asc()
        for spec in filter_.sort
    )


def translate(filter_: NormalizedFilter, table: sa.Table) -> EngineQuery:
    """Convert a normalized filter into an :class:`EngineQuery` for *table*."""
    attributes = None
    if filter_.select is not None:
        attributes = tuple(_column(table, name).name for name in filter_.select)
    return EngineQuery(
        where=translate_where(filter_.predicates, table),
        order=translate_order(filter_, table),
        limit=filter_.limit,
        offset=filter_.skip,
        attributes=attributes,
    )
