"""Ninja Records: uniform CRUD service over SQLAlchemy tables."""

from ninja_records.adapters.sql import SQLTableModel
from ninja_records.exceptions import (
    ConfigurationError,
    ConstraintViolation,
    InvalidOperation,
    InvalidQuery,
    NotFound,
    RecordServiceError,
    StorageError,
    Unavailable,
    UnsupportedOperator,
    ValidationFailed,
    normalize_error,
)
from ninja_records.options import Paginate, Params, ServiceOptions, SQLOptions
from ninja_records.projection import select_fields
from ninja_records.protocols import CountResult, StorageModel
from ninja_records.query import NormalizedFilter, parse_query
from ninja_records.service import Page, RecordService, init
from ninja_records.translate import EngineQuery, translate

__all__ = [
    "ConfigurationError",
    "ConstraintViolation",
    "CountResult",
    "EngineQuery",
    "InvalidOperation",
    "InvalidQuery",
    "NormalizedFilter",
    "NotFound",
    "Page",
    "Paginate",
    "Params",
    "RecordService",
    "RecordServiceError",
    "SQLOptions",
    "SQLTableModel",
    "ServiceOptions",
    "StorageError",
    "StorageModel",
    "Unavailable",
    "UnsupportedOperator",
    "ValidationFailed",
    "init",
    "normalize_error",
    "parse_query",
    "select_fields",
    "translate",
]
