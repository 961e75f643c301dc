"""Filter parser: raw query mappings to a normalized filter.

A raw query is a plain mapping, typically decoded from a query string or a
JSON body::

    {
        "status": "active",                  # equality
        "age": {"$gte": 18, "$lt": 65},      # operators on one field, ANDed
        "$or": [{"role": "admin"}, {"role": "owner"}],
        "$sort": {"created_at": -1, "id": 1},
        "$limit": 20,
        "$skip": 40,
        "$select": ["name", "email"],
    }

Pagination, sort and selection directives are only recognised at the top
level. Operator keys are only recognised one level below a field name.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from ninja_records.exceptions import InvalidQuery, UnsupportedOperator
from ninja_records.options import Paginate

DIRECTIVES = frozenset({"$limit", "$skip", "$sort", "$select"})
GROUPS = frozenset({"$or", "$and"})

ASCENDING = 1
DESCENDING = -1


@dataclass(frozen=True)
class Predicate:
    """A single ``field <operator> value`` comparison."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of predicate branches; each branch is ANDed internally."""

    branches: tuple[tuple[Condition, ...], ...]


@dataclass(frozen=True)
class AllOf:
    """Explicit conjunction of predicate branches."""

    branches: tuple[tuple[Condition, ...], ...]


Condition = Union[Predicate, AnyOf, AllOf]


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: int


@dataclass(frozen=True)
class NormalizedFilter:
    predicates: tuple[Condition, ...] = ()
    sort: tuple[SortSpec, ...] = ()
    limit: int | None = None
    skip: int = 0
    select: tuple[str, ...] | None = None


def _parse_int(value: Any, key: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidQuery(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidQuery(f"{key} must be an integer, got {value!r}") from None


def get_limit(requested: int | None, paginate: Paginate | None) -> int | None:
    """Apply the page-size policy to a requested limit.

    Without pagination the request passes through untouched, ``None``
    included. With pagination a missing limit becomes ``default`` and the
    result never exceeds ``max``.
    """
    if paginate is None or not paginate.enabled:
        return requested
    limit = requested if requested is not None else paginate.default
    if paginate.max is not None:
        limit = min(limit, paginate.max)
    return limit


def parse_sort(raw: Any) -> tuple[SortSpec, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, Mapping):
        raise InvalidQuery(f"$sort must be a mapping of field to 1 or -1, got {raw!r}")
    specs = []
    for field, direction in raw.items():
        parsed = _parse_int(direction, f"$sort.{field}")
        if parsed not in (ASCENDING, DESCENDING):
            raise InvalidQuery(f"$sort.{field} must be 1 or -1, got {direction!r}")
        specs.append(SortSpec(field=field, direction=parsed))
    return tuple(specs)


def parse_select(raw: Any, id_field: str) -> tuple[str, ...] | None:
    """Normalize a ``$select`` list, always keeping the identifier field."""
    if raw is None:
        return None
    if isinstance(raw, str) or not isinstance(raw, (list, tuple)):
        raise InvalidQuery(f"$select must be a list of field names, got {raw!r}")
    fields = tuple(dict.fromkeys(str(name) for name in raw))
    if id_field not in fields:
        fields += (id_field,)
    return fields


def parse_predicates(query: Mapping[str, Any]) -> tuple[Condition, ...]:
    """Turn the field part of a query into a tuple of conditions, all ANDed."""
    conditions: list[Condition] = []
    for key, value in query.items():
        if key in GROUPS:
            branches = _parse_branches(key, value)
            conditions.append(AnyOf(branches) if key == "$or" else AllOf(branches))
        elif key.startswith("$"):
            raise UnsupportedOperator(f"Unsupported top-level query key '{key}'")
        elif isinstance(value, Mapping):
            if not value:
                raise InvalidQuery(f"Empty operator mapping for field '{key}'")
            conditions.extend(Predicate(key, op, operand) for op, operand in value.items())
        else:
            conditions.append(Predicate(key, "$eq", value))
    return tuple(conditions)


def _parse_branches(key: str, value: Any) -> tuple[tuple[Condition, ...], ...]:
    if isinstance(value, (str, Mapping)) or not isinstance(value, (list, tuple)):
        raise InvalidQuery(f"{key} must be a list of filters, got {value!r}")
    branches = []
    for branch in value:
        if not isinstance(branch, Mapping):
            raise InvalidQuery(f"{key} entries must be filters, got {branch!r}")
        nested = [k for k in branch if k in DIRECTIVES]
        if nested:
            raise InvalidQuery(f"{', '.join(nested)} is only allowed at the top level of a query")
        branches.append(parse_predicates(branch))
    return tuple(branches)


def split_query(query: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a raw query into ``(directives, residual)``."""
    directives = {k: v for k, v in query.items() if k in DIRECTIVES}
    residual = {k: v for k, v in query.items() if k not in DIRECTIVES}
    return directives, residual


def parse_query(
    query: Mapping[str, Any] | None,
    paginate: Paginate | None = None,
    *,
    id_field: str = "id",
) -> tuple[NormalizedFilter, dict[str, Any]]:
    """Parse a raw query into a :class:`NormalizedFilter`.

    Returns the normalized filter together with the residual field predicates
    (the query minus its directives), which mutation paths reuse to build
    their where clause.
    """
    if query is None:
        query = {}
    if not isinstance(query, Mapping):
        raise InvalidQuery(f"query must be a mapping, got {type(query).__name__}")

    directives, residual = split_query(query)

    requested = _parse_int(directives.get("$limit"), "$limit")
    if requested is not None:
        requested = abs(requested)
    skip = _parse_int(directives.get("$skip"), "$skip") or 0

    normalized = NormalizedFilter(
        predicates=parse_predicates(residual),
        sort=parse_sort(directives.get("$sort")),
        limit=get_limit(requested, paginate),
        skip=max(skip, 0),
        select=parse_select(directives.get("$select"), id_field),
    )
    return normalized, residual
