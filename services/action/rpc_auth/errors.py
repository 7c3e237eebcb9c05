"""Typed failures raised at the RPC authorization seam.

``AuthenticationError`` subclasses mean no caller identity could be
established and map to ``UNAUTHENTICATED``. ``AccessDeniedError`` subclasses
mean the caller is known but lacks a role or permission and map to
``PERMISSION_DENIED``. Store failures are not part of this hierarchy; they
surface as ``StoreError`` from the access authority.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

import grpc

from packages.turnstile_shared.errors import (
    ErrorDetail,
    authentication_error,
    codes,
    not_found_error,
    policy_error,
)


@dataclass(eq=False)
class AuthorizationFailure(Exception):
    """Base error for a rejected RPC call."""

    message: str

    kind: ClassVar[str] = "authorization_failure"
    status_code: ClassVar[grpc.StatusCode] = grpc.StatusCode.UNKNOWN
    error_code: ClassVar[str] = codes.UNAUTHENTICATED

    def __str__(self) -> str:
        return self.message

    def to_error_detail(self) -> ErrorDetail:
        """Return the shared structured shape used in logs."""
        return authentication_error(
            self.message, code=self.error_code, metadata={"kind": self.kind}
        )


@dataclass(eq=False)
class AuthenticationError(AuthorizationFailure):
    """Caller identity could not be established from the credential."""

    kind: ClassVar[str] = "unauthenticated"
    status_code: ClassVar[grpc.StatusCode] = grpc.StatusCode.UNAUTHENTICATED


@dataclass(eq=False)
class MissingCredential(AuthenticationError):
    message: str = "missing credential"
    kind: ClassVar[str] = "missing_credential"
    error_code: ClassVar[str] = codes.CREDENTIAL_MISSING


@dataclass(eq=False)
class MalformedCredential(AuthenticationError):
    message: str = "malformed credential"
    kind: ClassVar[str] = "malformed_credential"
    error_code: ClassVar[str] = codes.CREDENTIAL_MALFORMED


@dataclass(eq=False)
class UnknownCredential(AuthenticationError):
    message: str = "invalid API key"
    kind: ClassVar[str] = "unknown_credential"
    error_code: ClassVar[str] = codes.CREDENTIAL_UNKNOWN


@dataclass(eq=False)
class RevokedCredential(AuthenticationError):
    message: str = "API key has been revoked"
    kind: ClassVar[str] = "revoked_credential"
    error_code: ClassVar[str] = codes.CREDENTIAL_REVOKED


@dataclass(eq=False)
class ExpiredCredential(AuthenticationError):
    message: str = "credential has expired"
    kind: ClassVar[str] = "expired_credential"
    error_code: ClassVar[str] = codes.CREDENTIAL_EXPIRED


@dataclass(eq=False)
class InvalidSignature(AuthenticationError):
    message: str = "invalid token signature"
    kind: ClassVar[str] = "invalid_signature"
    error_code: ClassVar[str] = codes.TOKEN_SIGNATURE_INVALID


@dataclass(eq=False)
class WrongAudience(AuthenticationError):
    message: str = "token audience is not accepted by this service"
    kind: ClassVar[str] = "wrong_audience"
    error_code: ClassVar[str] = codes.TOKEN_AUDIENCE_MISMATCH


@dataclass(eq=False)
class UnknownCaller(AuthenticationError):
    message: str = "unknown caller"
    kind: ClassVar[str] = "unknown_caller"
    error_code: ClassVar[str] = codes.CALLER_UNKNOWN


@dataclass(eq=False)
class AccessDeniedError(AuthorizationFailure):
    """Caller is known but not allowed to invoke the endpoint."""

    kind: ClassVar[str] = "access_denied"
    status_code: ClassVar[grpc.StatusCode] = grpc.StatusCode.PERMISSION_DENIED
    error_code: ClassVar[str] = codes.PERMISSION_DENIED

    def to_error_detail(self) -> ErrorDetail:
        return policy_error(
            self.message, code=self.error_code, metadata={"kind": self.kind}
        )


@dataclass(eq=False)
class InsufficientRole(AccessDeniedError):
    caller: str = ""
    required_roles: tuple[str, ...] = ()
    kind: ClassVar[str] = "insufficient_role"
    error_code: ClassVar[str] = codes.ROLE_REQUIRED

    @classmethod
    def for_caller(cls, caller: str, required_roles: tuple[str, ...]) -> "InsufficientRole":
        return cls(
            message=f"caller does not hold a required role: {', '.join(required_roles)}",
            caller=caller,
            required_roles=required_roles,
        )


@dataclass(eq=False)
class InsufficientPermission(AccessDeniedError):
    caller: str = ""
    permission: str = ""
    kind: ClassVar[str] = "insufficient_permission"
    error_code: ClassVar[str] = codes.PERMISSION_REQUIRED

    @classmethod
    def for_caller(cls, caller: str, permission: str) -> "InsufficientPermission":
        return cls(
            message=f"caller does not have permission: {permission}",
            caller=caller,
            permission=permission,
        )


@dataclass(eq=False)
class CallerNotFoundError(LookupError):
    """Raised when key management names a caller that does not exist."""

    caller_name: str

    def __str__(self) -> str:
        return f"caller not found: {self.caller_name}"

    def to_error_detail(self) -> ErrorDetail:
        return not_found_error(
            str(self), code=codes.RESOURCE_NOT_FOUND, metadata={"caller": self.caller_name}
        )
