"""Factory helpers for creating consistent shared errors."""

from __future__ import annotations

from typing import Mapping

from . import codes
from .types import ErrorCategory, ErrorDetail


def validation_error(
    message: str,
    *,
    code: str = codes.VALIDATION_ERROR,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    """Create a validation-category error."""
    return _detail(code, message, ErrorCategory.VALIDATION, metadata=metadata)


def not_found_error(
    message: str,
    *,
    code: str = codes.NOT_FOUND,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    """Create a not-found-category error."""
    return _detail(code, message, ErrorCategory.NOT_FOUND, metadata=metadata)


def conflict_error(
    message: str,
    *,
    code: str = codes.CONFLICT,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    """Create a conflict-category error."""
    return _detail(code, message, ErrorCategory.CONFLICT, metadata=metadata)


def authentication_error(
    message: str,
    *,
    code: str = codes.UNAUTHENTICATED,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    """Create an authentication-category error (caller identity not established)."""
    return _detail(code, message, ErrorCategory.AUTHENTICATION, metadata=metadata)


def policy_error(
    message: str,
    *,
    code: str = codes.PERMISSION_DENIED,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    """Create a policy-category error (identity known, access refused)."""
    return _detail(code, message, ErrorCategory.POLICY, metadata=metadata)


def dependency_error(
    message: str,
    *,
    code: str = codes.DEPENDENCY_FAILURE,
    retryable: bool = True,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    """Create a dependency-category error."""
    return _detail(
        code, message, ErrorCategory.DEPENDENCY, retryable=retryable, metadata=metadata
    )


def internal_error(
    message: str,
    *,
    code: str = codes.INTERNAL_ERROR,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    """Create an internal-category error."""
    return _detail(code, message, ErrorCategory.INTERNAL, metadata=metadata)


def _detail(
    code: str,
    message: str,
    category: ErrorCategory,
    *,
    retryable: bool = False,
    metadata: Mapping[str, str] | None = None,
) -> ErrorDetail:
    return ErrorDetail(
        code=code,
        message=message,
        category=category,
        retryable=retryable,
        metadata={} if metadata is None else dict(metadata),
    )
