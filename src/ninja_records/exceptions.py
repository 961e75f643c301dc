"""Domain exceptions for the record service.

Storage-engine failures are caught by the service and re-raised through
:func:`normalize_error` as one of these exceptions, so callers never see raw
SQLAlchemy errors.
"""

from __future__ import annotations

import logging
from typing import ClassVar

from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    NoResultFound,
    OperationalError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = logging.getLogger(__name__)


class RecordServiceError(Exception):
    """Base exception for all record-service errors.

    Attributes:
        detail: A description of what went wrong.
        entity_name: The name of the table/entity involved, when known.
        operation: The service operation that failed (e.g. ``"patch"``), when known.
        code: A transport-agnostic error code callers can map onto their protocol.
    """

    code: ClassVar[str] = "general-error"

    def __init__(
        self,
        detail: str,
        *,
        entity_name: str | None = None,
        operation: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.detail = detail
        self.entity_name = entity_name
        self.operation = operation
        if entity_name and operation:
            msg = f"[{entity_name}] {operation} failed: {detail}"
        else:
            msg = detail
        super().__init__(msg)
        if cause is not None:
            self.__cause__ = cause


class ConfigurationError(RecordServiceError):
    """Raised synchronously when a service is constructed with bad options."""

    code = "configuration-error"


class NotFound(RecordServiceError):
    """Raised when no record exists for a given identifier."""

    code = "not-found"


class InvalidOperation(RecordServiceError):
    """Raised when an operation is called with a payload it does not accept."""

    code = "invalid-operation"


class InvalidQuery(RecordServiceError):
    """Raised for malformed query filters: bad directive values, unknown fields."""

    code = "bad-request"


class UnsupportedOperator(InvalidQuery):
    """Raised when a query filter uses an operator key that is not recognised."""

    code = "unsupported-operator"


class ValidationFailed(RecordServiceError):
    """Raised when the storage engine rejects the data it was given."""

    code = "validation-failed"


class ConstraintViolation(ValidationFailed):
    """Raised when a write violates a unique, foreign-key or not-null constraint."""

    code = "constraint-violation"


class StorageError(RecordServiceError):
    """Opaque storage-engine failure; ``detail`` preserves the original message."""


class Unavailable(StorageError):
    """Raised when the storage engine cannot be reached or timed out."""

    code = "unavailable"


def _driver_message(exc: Exception) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc) or type(exc).__name__


def normalize_error(exc: Exception, *, entity_name: str, operation: str) -> RecordServiceError:
    """Map a storage-engine failure onto the record-service taxonomy.

    Errors that already belong to the taxonomy are returned unchanged, so a
    failure is normalized exactly once no matter how many layers it crosses.
    """
    if isinstance(exc, RecordServiceError):
        return exc

    if isinstance(exc, NoResultFound):
        return NotFound("No record found.", entity_name=entity_name, operation=operation, cause=exc)

    if isinstance(exc, IntegrityError):
        logger.warning("%s %s rejected by a constraint: %s", entity_name, operation, type(exc).__name__)
        return ConstraintViolation(
            _driver_message(exc), entity_name=entity_name, operation=operation, cause=exc
        )

    if isinstance(exc, DataError):
        logger.warning("%s %s rejected invalid data: %s", entity_name, operation, type(exc).__name__)
        return ValidationFailed(_driver_message(exc), entity_name=entity_name, operation=operation, cause=exc)

    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)):
        logger.error("%s %s failed, storage unavailable: %s", entity_name, operation, type(exc).__name__)
        return Unavailable(_driver_message(exc), entity_name=entity_name, operation=operation, cause=exc)

    logger.error("%s %s failed: %s", entity_name, operation, type(exc).__name__)
    return StorageError(_driver_message(exc), entity_name=entity_name, operation=operation, cause=exc)
