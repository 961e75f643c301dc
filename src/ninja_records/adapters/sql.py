"""SQLAlchemy async adapter implementing the StorageModel protocol."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from ninja_records.exceptions import ConfigurationError, InvalidQuery
from ninja_records.options import SQLOptions
from ninja_records.protocols import CountResult
from ninja_records.translate import EngineQuery

logger = logging.getLogger(__name__)

_NO_OPTIONS = SQLOptions()


def _get_pk_column(table: sa.Table) -> sa.Column:
    """Return the primary key column of a table."""
    pk_cols = list(table.primary_key.columns)
    if not pk_cols:
        raise ConfigurationError(f"Table '{table.name}' has no primary key column.")
    return pk_cols[0]


def _as_table(model: Any) -> sa.Table:
    """Accept a ``Table`` or a declarative class mapped to one."""
    table = getattr(model, "__table__", model)
    if not isinstance(table, sa.Table):
        raise ConfigurationError(f"Expected a sqlalchemy Table or declarative model, got {type(model).__name__}")
    return table


class SQLTableModel:
    """Async table gateway backed by SQLAlchemy Core.

    Reads run on ``engine.connect()``, writes inside ``engine.begin()``. When
    the caller passes ``SQLOptions.connection`` every statement runs on that
    connection instead and transaction control stays with the caller.

    Driver exceptions are not caught here; the record service
    normalizes them in one place.
    """

    def __init__(self, engine: AsyncEngine, table: Any) -> None:
        self._engine = engine
        self._table = _as_table(table)
        self._pk = _get_pk_column(self._table)

    @property
    def name(self) -> str:
        return self._table.name

    @property
    def table(self) -> sa.Table:
        return self._table

    @property
    def primary_key(self) -> sa.Column:
        return self._pk

    async def ensure_table(self) -> None:
        """Create the table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(self._table.metadata.create_all, tables=[self._table])

    @asynccontextmanager
    async def _connection(self, options: SQLOptions, *, write: bool) -> AsyncIterator[AsyncConnection]:
        if options.connection is not None:
            yield options.connection
        elif write:
            async with self._engine.begin() as conn:
                yield conn
        else:
            async with self._engine.connect() as conn:
                yield conn

    def _columns(self, attributes: Sequence[str] | None) -> list[Any]:
        if attributes is None:
            return [self._table]
        try:
            return [self._table.c[name] for name in attributes]
        except KeyError as exc:
            raise InvalidQuery(f"Unknown field {exc} for {self.name}") from None

    @staticmethod
    def _prepare(stmt: Any, options: SQLOptions) -> Any:
        if options.execution_options:
            return stmt.execution_options(**options.execution_options)
        return stmt

    async def _fetch_by_pk(self, conn: AsyncConnection, id: Any, options: SQLOptions) -> dict[str, Any] | None:
        stmt = sa.select(*self._columns(options.attributes)).where(self._pk == id)
        result = await conn.execute(self._prepare(stmt, options))
        row = result.mappings().first()
        return dict(row) if row else None

    async def find_and_count(self, query: EngineQuery, options: SQLOptions | None = None) -> CountResult:
        """Run the count and the page fetch on the same connection."""
        options = options or _NO_OPTIONS
        count_stmt = sa.select(sa.func.count()).select_from(self._table)
        rows_stmt = sa.select(*self._columns(query.attributes))
        if query.where is not None:
            count_stmt = count_stmt.where(query.where)
            rows_stmt = rows_stmt.where(query.where)
        if query.order:
            rows_stmt = rows_stmt.order_by(*query.order)
        if query.limit is not None:
            rows_stmt = rows_stmt.limit(query.limit)
        if query.offset:
            rows_stmt = rows_stmt.offset(query.offset)

        async with self._connection(options, write=False) as conn:
            count = (await conn.execute(self._prepare(count_stmt, options))).scalar_one()
            result = await conn.execute(self._prepare(rows_stmt, options))
            rows = [dict(row) for row in result.mappings().all()]
        return CountResult(count=count, rows=rows)

    async def find_by_id(self, id: Any, options: SQLOptions | None = None) -> dict[str, Any] | None:
        """Retrieve a single record by primary key."""
        options = options or _NO_OPTIONS
        async with self._connection(options, write=False) as conn:
            return await self._fetch_by_pk(conn, id, options)

    async def create(self, data: dict[str, Any], options: SQLOptions | None = None) -> dict[str, Any]:
        """Insert a new record and read it back, so defaults and generated keys are visible."""
        options = options or _NO_OPTIONS
        stmt = self._table.insert().values(data)
        async with self._connection(options, write=True) as conn:
            result = await conn.execute(self._prepare(stmt, options))
            inserted = result.inserted_primary_key
            pk_value = inserted[0] if inserted and inserted[0] is not None else data.get(self._pk.name)
            # Always the full row; $select projection happens in the service.
            record = await self._fetch_by_pk(conn, pk_value, options.model_copy(update={"attributes": None}))
        return record if record is not None else dict(data)

    async def bulk_create(
        self, rows: Sequence[dict[str, Any]], options: SQLOptions | None = None
    ) -> list[dict[str, Any]]:
        """Insert many records with a single executemany.

        Returns the rows as sent to the engine; generated keys and server
        defaults are not read back.
        """
        options = options or _NO_OPTIONS
        payload = [dict(row) for row in rows]
        if not payload:
            return []
        async with self._connection(options, write=True) as conn:
            await conn.execute(self._prepare(self._table.insert(), options), payload)
        logger.debug("Bulk inserted %d rows into %s", len(payload), self.name)
        return payload

    async def update(
        self, data: dict[str, Any], where: ColumnElement[bool] | None, options: SQLOptions | None = None
    ) -> int:
        """Apply a partial update to every row matching *where*."""
        options = options or _NO_OPTIONS
        stmt = self._table.update().values(data)
        if where is not None:
            stmt = stmt.where(where)
        async with self._connection(options, write=True) as conn:
            result = await conn.execute(self._prepare(stmt, options))
            return result.rowcount

    async def destroy(self, where: ColumnElement[bool] | None, options: SQLOptions | None = None) -> int:
        """Delete every row matching *where*."""
        options = options or _NO_OPTIONS
        stmt = self._table.delete()
        if where is not None:
            stmt = stmt.where(where)
        async with self._connection(options, write=True) as conn:
            result = await conn.execute(self._prepare(stmt, options))
            return result.rowcount

    async def replace(self, id: Any, data: dict[str, Any], options: SQLOptions | None = None) -> dict[str, Any] | None:
        """Overwrite the given columns of one record and return the stored row."""
        options = options or _NO_OPTIONS
        async with self._connection(options, write=True) as conn:
            if data:
                result = await conn.execute(
                    self._prepare(self._table.update().where(self._pk == id).values(data), options)
                )
                if result.rowcount == 0:
                    return None
            return await self._fetch_by_pk(conn, id, options)
