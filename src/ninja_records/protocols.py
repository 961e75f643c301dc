"""StorageModel protocol, the narrow storage-engine call surface."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement

if TYPE_CHECKING:
    from ninja_records.options import SQLOptions
    from ninja_records.translate import EngineQuery


@dataclass(frozen=True)
class CountResult:
    """Rows of one page together with the unpaginated match count."""

    count: int
    rows: list[dict[str, Any]] = field(default_factory=list)


@runtime_checkable
class StorageModel(Protocol):
    """Everything the record service needs from a storage engine.

    Implementations raise the engine's own exceptions; the service normalizes
    them. Every method takes the caller's passthrough ``options``.
    """

    @property
    def name(self) -> str:
        """Entity name used in error messages and logs."""
        ...

    @property
    def table(self) -> sa.Table:
        """Table the query translator resolves columns against."""
        ...

    async def find_and_count(self, query: EngineQuery, options: SQLOptions | None = None) -> CountResult:
        """Fetch one page of rows plus the count of all matches."""
        ...

    async def find_by_id(self, id: Any, options: SQLOptions | None = None) -> dict[str, Any] | None:
        """Retrieve a single record by primary key."""
        ...

    async def create(self, data: dict[str, Any], options: SQLOptions | None = None) -> dict[str, Any]:
        """Insert one record and return it as stored."""
        ...

    async def bulk_create(
        self, rows: Sequence[dict[str, Any]], options: SQLOptions | None = None
    ) -> list[dict[str, Any]]:
        """Insert many records in one statement."""
        ...

    async def update(
        self, data: dict[str, Any], where: ColumnElement[bool] | None, options: SQLOptions | None = None
    ) -> int:
        """Apply *data* to every row matching *where*. Returns the affected row count."""
        ...

    async def destroy(self, where: ColumnElement[bool] | None, options: SQLOptions | None = None) -> int:
        """Delete every row matching *where*. Returns the affected row count."""
        ...

    async def replace(self, id: Any, data: dict[str, Any], options: SQLOptions | None = None) -> dict[str, Any] | None:
        """Overwrite one record and return it, or ``None`` if it no longer exists."""
        ...
