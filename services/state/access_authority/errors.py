"""Access authority persistence errors."""

from __future__ import annotations

from packages.turnstile_shared.errors import ErrorDetail, codes, conflict_error
from resources.substrates.database import normalize_database_error


class StoreError(RuntimeError):
    """Raised when the access store cannot answer a read or accept a write."""

    def __init__(self, message: str, *, detail: ErrorDetail) -> None:
        super().__init__(message)
        self.detail = detail

    @classmethod
    def from_exception(cls, operation: str, exc: Exception) -> "StoreError":
        return cls(
            f"access store {operation} failed",
            detail=normalize_database_error(exc),
        )

    def to_error_detail(self) -> ErrorDetail:
        return self.detail


class ConflictError(ValueError):
    """Raised when a write would violate uniqueness or referential integrity."""

    def __init__(self, message: str, *, code: str = codes.CONFLICT) -> None:
        super().__init__(message)
        self.code = code

    def to_error_detail(self) -> ErrorDetail:
        return conflict_error(str(self), code=self.code)
