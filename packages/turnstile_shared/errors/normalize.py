"""Exception normalization utilities for shared error contracts."""

from __future__ import annotations

from . import codes
from .factories import dependency_error, internal_error, not_found_error, validation_error
from .types import ErrorDetail


def exception_to_error(exc: Exception) -> ErrorDetail:
    """Normalize a Python exception into a shared ``ErrorDetail``.

    Exceptions that already know their shape expose ``to_error_detail()`` and
    are returned as-is; builtin exceptions get a conservative generic mapping.
    """
    to_detail = getattr(exc, "to_error_detail", None)
    if callable(to_detail):
        detail = to_detail()
        if isinstance(detail, ErrorDetail):
            return detail

    metadata = {"exception_type": type(exc).__name__}

    if isinstance(exc, ValueError):
        return validation_error(str(exc), code=codes.INVALID_ARGUMENT, metadata=metadata)

    if isinstance(exc, KeyError):
        return not_found_error(str(exc), code=codes.RESOURCE_NOT_FOUND, metadata=metadata)

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return dependency_error(
            str(exc) or "dependency unavailable",
            code=codes.DEPENDENCY_UNAVAILABLE,
            metadata=metadata,
        )

    return internal_error(
        str(exc) or "unexpected exception",
        code=codes.UNEXPECTED_EXCEPTION,
        metadata=metadata,
    )
