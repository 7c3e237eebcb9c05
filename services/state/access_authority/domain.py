"""Domain records owned by the access authority.

Records mirror persisted rows. Identifiers are record-id strings generated in
application code; timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

FINGERPRINT_LENGTH = 8


def utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""
    return datetime.now(UTC)


class Role(BaseModel):
    """Named bundle of permissions assignable to callers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    created_at: datetime


class Permission(BaseModel):
    """Atomic named capability, conventionally ``resource:action``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    description: str = ""
    created_at: datetime


class CallerIdentity(BaseModel):
    """Principal (an integrating service) that makes RPC calls.

    ``default_role_id`` is informational; effective roles come only from
    ``ServiceRole`` memberships.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    default_role_id: str | None = None
    created_at: datetime


class ServiceRole(BaseModel):
    """Membership of one caller in one role."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    caller_id: str
    role_id: str


class RolePermission(BaseModel):
    """Grant of one permission to one role."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    role_id: str
    permission_id: str


class EndpointPolicy(BaseModel):
    """Permission required to invoke one ``(service, endpoint)`` pair."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    service_name: str
    endpoint_name: str
    required_permission_id: str
    required_permission: str


class RotatingCredential(BaseModel):
    """Expiring, revocable opaque secret owned by one caller.

    Rows are never deleted; revocation is a flag.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    secret_value: str
    owner_caller_id: str
    expires_at: datetime
    created_at: datetime
    last_used_at: datetime | None = None
    revoked: bool = False

    def is_expired(self, *, now: datetime) -> bool:
        return self.expires_at <= now


class CredentialSummary(BaseModel):
    """Listing view of a credential that never carries the secret."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    owner_name: str
    fingerprint: str
    expires_at: datetime
    created_at: datetime
    last_used_at: datetime | None = None
    revoked: bool = False

    @classmethod
    def from_credential(
        cls, credential: RotatingCredential, *, owner_name: str
    ) -> "CredentialSummary":
        return cls(
            id=credential.id,
            owner_name=owner_name,
            fingerprint=credential.secret_value[:FINGERPRINT_LENGTH],
            expires_at=credential.expires_at,
            created_at=credential.created_at,
            last_used_at=credential.last_used_at,
            revoked=credential.revoked,
        )
