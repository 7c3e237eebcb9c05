"""SQLAlchemy exception normalization helpers."""

from __future__ import annotations

from sqlalchemy import exc as sa_exc

from packages.turnstile_shared.errors import (
    ErrorDetail,
    codes,
    conflict_error,
    dependency_error,
    internal_error,
)


def normalize_database_error(exc: Exception) -> ErrorDetail:
    """Map low-level DB exceptions into shared structured error semantics."""
    metadata = {"exception_type": type(exc).__name__}
    if isinstance(exc, sa_exc.DBAPIError) and exc.orig is not None:
        metadata["driver_exception_type"] = type(exc.orig).__name__

    if isinstance(exc, sa_exc.IntegrityError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        if "foreign key" in message:
            return conflict_error(
                "resource is still referenced",
                code=codes.STILL_REFERENCED,
                metadata=metadata,
            )
        return conflict_error(
            "resource already exists",
            code=codes.ALREADY_EXISTS,
            metadata=metadata,
        )

    if isinstance(exc, (sa_exc.OperationalError, sa_exc.TimeoutError)):
        return dependency_error(
            "database unavailable",
            code=codes.DEPENDENCY_UNAVAILABLE,
            retryable=True,
            metadata=metadata,
        )

    if isinstance(exc, (sa_exc.InterfaceError, sa_exc.ProgrammingError, sa_exc.DatabaseError)):
        return dependency_error(
            "database request failed",
            code=codes.DEPENDENCY_FAILURE,
            retryable=False,
            metadata=metadata,
        )

    return internal_error(
        "unexpected database failure",
        code=codes.UNEXPECTED_EXCEPTION,
        metadata=metadata,
    )
