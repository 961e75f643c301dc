"""Result projector: applies ``$select`` field selection to records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any


def _project(record: Mapping[str, Any], keep: Iterable[str]) -> dict[str, Any]:
    return {name: record[name] for name in keep if name in record}


def select_fields(result: Any, id_field: str, fields: Sequence[str] | None) -> Any:
    """Keep only *fields* (plus the identifier) on a record or list of records.

    Returns *result* untouched when no selection was requested.
    """
    if fields is None:
        return result
    keep = tuple(dict.fromkeys((*fields, id_field)))
    if isinstance(result, Mapping):
        return _project(result, keep)
    return [_project(record, keep) for record in result]
