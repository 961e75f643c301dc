"""Shared fixtures: an in-memory aiosqlite engine with a seeded ``people`` table."""

import pytest
import sqlalchemy as sa
from ninja_records import RecordService, SQLTableModel
from sqlalchemy.ext.asyncio import create_async_engine

PEOPLE = [
    {"id": 1, "name": "Alice", "email": "alice@example.com", "age": 30, "status": "active"},
    {"id": 2, "name": "Bob", "email": "bob@example.com", "age": 25, "status": "inactive"},
    {"id": 3, "name": "Charlie", "email": "charlie@example.com", "age": 30, "status": "active"},
    {"id": 4, "name": "Dana", "email": "dana@example.com", "age": 41, "status": "pending"},
    {"id": 5, "name": "Eve", "email": "eve@example.com", "age": 35, "status": "active"},
]


@pytest.fixture
def people_table() -> sa.Table:
    metadata = sa.MetaData()
    return sa.Table(
        "people",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), unique=True, nullable=True),
        sa.Column("age", sa.Integer, nullable=True),
        sa.Column("status", sa.String(32), nullable=True),
    )


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    yield engine
    await engine.dispose()


@pytest.fixture
async def people(engine, people_table: sa.Table) -> SQLTableModel:
    model = SQLTableModel(engine, people_table)
    await model.ensure_table()
    return model


@pytest.fixture
async def seeded(people: SQLTableModel) -> SQLTableModel:
    await people.bulk_create(PEOPLE)
    return people


@pytest.fixture
def service(seeded: SQLTableModel) -> RecordService:
    return RecordService({"model": seeded})


@pytest.fixture
def paginated_service(seeded: SQLTableModel) -> RecordService:
    return RecordService({"model": seeded, "paginate": {"default": 2, "max": 3}})
