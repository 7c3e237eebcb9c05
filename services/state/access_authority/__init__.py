"""Access authority: persisted callers, roles, permissions, endpoint policies and credentials."""

from services.state.access_authority.data.repository import (
    InMemoryAccessRepository,
    SqlAccessRepository,
)
from services.state.access_authority.data.runtime import AccessAuthorityRuntime
from services.state.access_authority.domain import (
    CallerIdentity,
    CredentialSummary,
    EndpointPolicy,
    Permission,
    Role,
    RolePermission,
    RotatingCredential,
    ServiceRole,
    utc_now,
)
from services.state.access_authority.errors import ConflictError, StoreError
from services.state.access_authority.interfaces import AccessRepository

__all__ = [
    "AccessAuthorityRuntime",
    "AccessRepository",
    "CallerIdentity",
    "ConflictError",
    "CredentialSummary",
    "EndpointPolicy",
    "InMemoryAccessRepository",
    "Permission",
    "Role",
    "RolePermission",
    "RotatingCredential",
    "ServiceRole",
    "SqlAccessRepository",
    "StoreError",
    "utc_now",
]
