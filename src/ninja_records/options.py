"""Configuration structs for the record service.

Everything here is immutable once validated: a service owns its
``ServiceOptions`` for its whole lifetime, and per-call ``Params`` never leak
into shared state.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncConnection

if TYPE_CHECKING:
    from ninja_records.translate import EngineQuery


class Paginate(BaseModel):
    """Page-size policy. Pagination is enabled only when ``default`` is set."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    default: int | None = Field(default=None, ge=1, description="Page size used when no $limit is requested.")
    max: int | None = Field(default=None, ge=1, description="Upper bound enforced on every page.")

    @property
    def enabled(self) -> bool:
        return self.default is not None


class ServiceOptions(BaseModel):
    """Construction-time options of a :class:`~ninja_records.service.RecordService`."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    model: Any = Field(description="StorageModel handle the service reads and writes through.")
    id: str = Field(default="id", min_length=1, description="Name of the unique identifier field.")
    paginate: Paginate = Field(default_factory=Paginate)


class SQLOptions(BaseModel):
    """Engine-specific passthrough options for a single call.

    Precedence when merged with the translated query: ``attributes``,
    ``limit`` and ``offset`` given here override the values computed from the
    query filter. ``where`` and ``order`` always come from the filter.

    Pass a ``connection`` obtained from ``engine.begin()`` to run every round
    trip of a multi-step operation (e.g. resolve ids, update, re-fetch) inside
    one caller-controlled transaction.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    connection: AsyncConnection | None = None
    attributes: tuple[str, ...] | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)
    execution_options: dict[str, Any] = Field(default_factory=dict)

    def apply(self, query: EngineQuery) -> EngineQuery:
        """Return *query* with the caller overrides merged in."""
        overrides: dict[str, Any] = {}
        if self.attributes is not None:
            overrides["attributes"] = self.attributes
        if self.limit is not None:
            overrides["limit"] = self.limit
        if self.offset is not None:
            overrides["offset"] = self.offset
        if not overrides:
            return query
        return query.replace(**overrides)


class Params(BaseModel):
    """Per-call parameters accepted by every service method."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    query: dict[str, Any] = Field(default_factory=dict)
    paginate: Paginate | Literal[False] | None = None
    sql: SQLOptions = Field(default_factory=SQLOptions)

    @classmethod
    def coerce(cls, params: Params | Mapping[str, Any] | None) -> Params:
        if params is None:
            return cls()
        if isinstance(params, Params):
            return params
        return cls.model_validate(dict(params))

    def with_query(self, query: dict[str, Any]) -> Params:
        return self.model_copy(update={"query": query})
