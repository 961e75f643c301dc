"""Record service: uniform find/get/create/patch/update/remove over a StorageModel.

Multi-record mutations are not transactional. ``patch(None, ...)`` resolves
the matching ids, updates, then re-fetches by that id snapshot. Concurrent
writers may interleave between those round trips. Callers that need the
sequence to be atomic pass a transaction-bound connection via
``SQLOptions.connection``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ninja_records.exceptions import (
    ConfigurationError,
    InvalidOperation,
    InvalidQuery,
    NotFound,
    normalize_error,
)
from ninja_records.options import Paginate, Params, ServiceOptions
from ninja_records.projection import select_fields
from ninja_records.protocols import StorageModel
from ninja_records.query import parse_predicates, parse_query, parse_select
from ninja_records.translate import translate, translate_where

logger = logging.getLogger(__name__)

_NO_PAGINATION = Paginate()


@dataclass(frozen=True)
class Page:
    """One page of ``find`` results plus the total number of matches."""

    total: int
    limit: int | None
    skip: int
    data: list[dict[str, Any]] = field(default_factory=list)


class RecordService:
    """CRUD service over a single table-backed model.

    Subclass to add behaviour; every public method is a coroutine and every
    engine failure surfaces as a :class:`~ninja_records.exceptions.RecordServiceError`.
    """

    def __init__(self, options: ServiceOptions | Mapping[str, Any] | None = None) -> None:
        if options is None:
            raise ConfigurationError("Service options have to be provided")
        if not isinstance(options, ServiceOptions):
            if not isinstance(options, Mapping):
                raise ConfigurationError(f"Service options must be a mapping, got {type(options).__name__}")
            if options.get("model") is None:
                raise ConfigurationError("You must provide a storage model")
            try:
                options = ServiceOptions.model_validate(dict(options))
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid service options: {exc}", cause=exc) from exc
        if options.model is None:
            raise ConfigurationError("You must provide a storage model")
        if not isinstance(options.model, StorageModel):
            raise ConfigurationError(f"{type(options.model).__name__} does not implement StorageModel")
        self._options = options

    @property
    def options(self) -> ServiceOptions:
        return self._options

    @property
    def model(self) -> StorageModel:
        return self._options.model

    @property
    def id_field(self) -> str:
        return self._options.id

    @property
    def paginate(self) -> Paginate:
        return self._options.paginate

    # -- helpers --------------------------------------------------------------

    def _params(self, params: Params | Mapping[str, Any] | None) -> Params:
        try:
            params = Params.coerce(params)
        except ValidationError as exc:
            raise InvalidQuery(f"Invalid params: {exc}", entity_name=self.model.name, cause=exc) from exc
        attributes = params.sql.attributes
        if attributes is not None and self.id_field not in attributes:
            sql = params.sql.model_copy(update={"attributes": (*attributes, self.id_field)})
            params = params.model_copy(update={"sql": sql})
        return params

    def _failure(self, exc: Exception, operation: str) -> Exception:
        return normalize_error(exc, entity_name=self.model.name, operation=operation)

    def _fields(self, params: Params) -> tuple[str, ...] | None:
        """Validated ``$select`` fields, checked against the table before any engine call."""
        fields = parse_select(params.query.get("$select"), self.id_field)
        if fields is not None:
            unknown = [name for name in fields if name not in self.model.table.c]
            if unknown:
                raise InvalidQuery(
                    f"Unknown field '{unknown[0]}' for {self.model.table.name}", entity_name=self.model.name
                )
        return fields

    def _select(self, result: Any, params: Params) -> Any:
        return select_fields(result, self.id_field, self._fields(params))

    def _where(self, id: Any, params: Params) -> Any:
        """Where clause shared by patch and remove: the filter, pinned to *id* when given."""
        _, residual = parse_query(params.query, id_field=self.id_field)
        where = dict(residual)
        if id is not None:
            where[self.id_field] = id
        return translate_where(parse_predicates(where), self.model.table)

    # -- read path ------------------------------------------------------------

    async def _find(self, params: Params, paginate: Paginate | None = None) -> Page:
        normalized, _ = parse_query(params.query, paginate, id_field=self.id_field)
        query = params.sql.apply(translate(normalized, self.model.table))
        try:
            result = await self.model.find_and_count(query, params.sql)
        except SQLAlchemyError as exc:
            raise self._failure(exc, "find") from exc
        return Page(total=result.count, limit=query.limit, skip=normalized.skip, data=result.rows)

    async def find(self, params: Params | Mapping[str, Any] | None = None) -> Page | list[dict[str, Any]]:
        """Return a :class:`Page`, or a bare list when pagination is not configured."""
        params = self._params(params)
        paginate = self.paginate if params.paginate is None else (params.paginate or _NO_PAGINATION)
        page = await self._find(params, paginate)
        if not paginate.enabled:
            return page.data
        return page

    async def _get(self, id: Any, params: Params) -> dict[str, Any]:
        self._fields(params)
        try:
            record = await self.model.find_by_id(id, params.sql)
        except SQLAlchemyError as exc:
            raise self._failure(exc, "get") from exc
        if record is None:
            raise NotFound(f"No record found for id '{id}'", entity_name=self.model.name, operation="get")
        return self._select(record, params)

    async def _get_or_find(self, id: Any, params: Params) -> dict[str, Any] | list[dict[str, Any]]:
        """The record for *id*, or every unpaginated match of the query when *id* is ``None``."""
        if id is None:
            page = await self._find(params)
            return page.data
        return await self._get(id, params)

    async def get(self, id: Any, params: Params | Mapping[str, Any] | None = None) -> dict[str, Any]:
        return await self._get(id, self._params(params))

    # -- write path -----------------------------------------------------------

    async def create(
        self, data: Mapping[str, Any] | list[Mapping[str, Any]], params: Params | Mapping[str, Any] | None = None
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Insert one record, or many when *data* is a list or tuple of mappings.

        Bulk inserts return the raw rows from the engine without ``$select``
        projection.
        """
        params = self._params(params)
        self._fields(params)
        bulk = isinstance(data, (list, tuple))
        rows = list(data) if bulk else [data]
        if not all(isinstance(row, Mapping) for row in rows):
            raise InvalidOperation(
                "create expects a mapping or a list of mappings", entity_name=self.model.name, operation="create"
            )
        try:
            if bulk:
                return await self.model.bulk_create([dict(row) for row in rows], params.sql)
            record = await self.model.create(dict(data), params.sql)
        except SQLAlchemyError as exc:
            raise self._failure(exc, "create") from exc
        return self._select(record, params)

    async def patch(
        self, id: Any, data: Mapping[str, Any], params: Params | Mapping[str, Any] | None = None
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Partially update the record *id*, or every record matching the query when *id* is ``None``.

        The result is re-fetched by the ids resolved *before* the update, so it
        contains exactly the changed records even when the change moves them
        out of the original filter.
        """
        params = self._params(params)
        if not isinstance(data, Mapping):
            raise InvalidOperation(
                "patch expects a mapping of changes", entity_name=self.model.name, operation="patch"
            )
        self._fields(params)
        if id is None:
            page = await self._find(params)
            ids = [record[self.id_field] for record in page.data]
        else:
            ids = [id]
        logger.debug("patch on %s resolved %d id(s)", self.model.name, len(ids))

        where = self._where(id, params)
        changes = {key: value for key, value in data.items() if key != self.id_field}
        if changes:
            try:
                await self.model.update(changes, where, params.sql)
            except SQLAlchemyError as exc:
                raise self._failure(exc, "patch") from exc

        refetch = params.with_query({self.id_field: {"$in": ids}})
        result = await self._get_or_find(id, refetch)
        return self._select(result, params)

    async def update(
        self, id: Any, data: Mapping[str, Any], params: Params | Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Replace the record *id*: every field the caller leaves out is set to ``None``."""
        params = self._params(params)
        if isinstance(data, (list, tuple)):
            raise InvalidOperation(
                "Not replacing multiple records. Did you mean `patch`?",
                entity_name=self.model.name,
                operation="update",
            )
        if not isinstance(data, Mapping):
            raise InvalidOperation(
                "update expects a mapping of fields", entity_name=self.model.name, operation="update"
            )
        self._fields(params)

        try:
            current = await self.model.find_by_id(id, params.sql)
            if current is None:
                raise NotFound(f"No record found for id '{id}'", entity_name=self.model.name, operation="update")
            replacement = {key: data.get(key) for key in current if key != self.id_field}
            record = await self.model.replace(id, replacement, params.sql)
        except SQLAlchemyError as exc:
            raise self._failure(exc, "update") from exc
        if record is None:
            raise NotFound(f"No record found for id '{id}'", entity_name=self.model.name, operation="update")
        return self._select(record, params)

    async def remove(
        self, id: Any, params: Params | Mapping[str, Any] | None = None
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Delete the record *id*, or every record matching the query when *id* is ``None``.

        Returns the records as they were before deletion.
        """
        params = self._params(params)
        snapshot = await self._get_or_find(id, params)
        where = self._where(id, params)
        try:
            deleted = await self.model.destroy(where, params.sql)
        except SQLAlchemyError as exc:
            raise self._failure(exc, "remove") from exc
        logger.debug("remove on %s deleted %d row(s)", self.model.name, deleted)
        return self._select(snapshot, params)


def init(options: ServiceOptions | Mapping[str, Any] | None = None) -> RecordService:
    """Build a :class:`RecordService`; raises ``ConfigurationError`` on bad options."""
    return RecordService(options)
