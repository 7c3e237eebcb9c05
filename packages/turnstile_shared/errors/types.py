"""Canonical shared error types for Turnstile.

``ErrorDetail`` is the transport-agnostic shape behind every structured
rejection log line and every CLI error document. gRPC clients only ever see
the status code and message; the detail stays server-side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from packages.turnstile_shared.logging import fields


class ErrorCategory(str, Enum):
    """Coarse classification used to group errors in logs."""

    UNSPECIFIED = "unspecified"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    POLICY = "policy"
    DEPENDENCY = "dependency"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ErrorDetail:
    """Stable code, message and category for one failure."""

    code: str
    message: str
    category: ErrorCategory
    retryable: bool = False
    metadata: Mapping[str, str] = field(default_factory=dict)

    def log_fields(self) -> dict[str, str]:
        """Return the structured fields passed as logging ``extra``."""
        return {
            fields.ERROR_CODE: self.code,
            fields.ERROR_CATEGORY: self.category.value,
        }

    def as_document(self) -> dict[str, object]:
        """Return a JSON-ready mapping for CLI error output."""
        return {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "retryable": self.retryable,
        }
