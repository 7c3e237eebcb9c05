"""Protocol for the access authority persistence collaborator."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from services.state.access_authority.domain import (
    CallerIdentity,
    EndpointPolicy,
    Permission,
    Role,
    RotatingCredential,
)


class AccessRepository(Protocol):
    """Point lookups and membership scans over the caller/role/permission graph.

    Implementations raise ``StoreError`` when the backing store fails and
    ``ConflictError`` when a write violates a uniqueness or reference rule.
    """

    def create_role(self, *, name: str) -> Role:
        """Create one role with a unique name."""

    def rename_role(self, *, role_id: str, name: str) -> Role | None:
        """Rename one role; return ``None`` when it does not exist."""

    def delete_role(self, *, role_id: str) -> bool:
        """Delete one unreferenced role; return ``False`` when it does not exist."""

    def get_role_by_name(self, *, name: str) -> Role | None:
        """Read one role by unique name."""

    def create_permission(self, *, name: str, description: str = "") -> Permission:
        """Create one permission with a unique name."""

    def get_permission_by_name(self, *, name: str) -> Permission | None:
        """Read one permission by unique name."""

    def create_caller(
        self, *, name: str, default_role_id: str | None = None
    ) -> CallerIdentity:
        """Create one caller identity with a unique name."""

    def get_caller(self, *, caller_id: str) -> CallerIdentity | None:
        """Read one caller identity by id."""

    def get_caller_by_name(self, *, name: str) -> CallerIdentity | None:
        """Read one caller identity by unique name."""

    def grant_role(self, *, caller_id: str, role_id: str) -> None:
        """Add a role membership; granting twice is a no-op."""

    def withdraw_role(self, *, caller_id: str, role_id: str) -> bool:
        """Remove a role membership; return whether one existed."""

    def grant_permission(self, *, role_id: str, permission_id: str) -> None:
        """Add a permission grant to a role; granting twice is a no-op."""

    def withdraw_permission(self, *, role_id: str, permission_id: str) -> bool:
        """Remove a permission grant; return whether one existed."""

    def list_role_names(self, *, caller_name: str) -> frozenset[str]:
        """Return names of every role held by one caller."""

    def list_permission_names(self, *, caller_name: str) -> frozenset[str]:
        """Return the union of permission names across a caller's roles."""

    def create_endpoint_policy(
        self, *, service_name: str, endpoint_name: str, permission_id: str
    ) -> EndpointPolicy:
        """Map one endpoint to its required permission."""

    def delete_endpoint_policy(self, *, service_name: str, endpoint_name: str) -> bool:
        """Remove one endpoint mapping; return whether one existed."""

    def get_endpoint_permission(
        self, *, service_name: str, endpoint_name: str
    ) -> str | None:
        """Return the permission name required by one endpoint, if any."""

    def list_endpoint_policies(self, *, service_name: str) -> tuple[EndpointPolicy, ...]:
        """Return every endpoint mapping for one service."""

    def insert_credential(self, *, credential: RotatingCredential) -> RotatingCredential:
        """Persist one newly issued credential."""

    def get_credential(self, *, credential_id: str) -> RotatingCredential | None:
        """Read one credential by id."""

    def get_credential_by_secret(self, *, secret_value: str) -> RotatingCredential | None:
        """Read one credential by exact secret value."""

    def list_credentials(self, *, owner_caller_id: str) -> tuple[RotatingCredential, ...]:
        """Return every credential owned by one caller, oldest first."""

    def mark_credential_used(self, *, credential_id: str, used_at: datetime) -> None:
        """Record the last successful use of one credential."""

    def mark_credential_revoked(self, *, credential_id: str) -> None:
        """Set the revoked flag on one credential."""

    def set_credential_expiry(
        self, *, credential_id: str, expires_at: datetime
    ) -> RotatingCredential | None:
        """Replace one credential's expiry; return ``None`` when it does not exist."""
