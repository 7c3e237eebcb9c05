"""Role aggregation and point permission checks."""

from __future__ import annotations

from services.state.access_authority import AccessRepository


class PermissionResolver:
    """Answer permission questions against the current role/permission graph.

    Every call reads the store; nothing is cached between calls, so grants and
    withdrawals take effect on the next check.
    """

    def __init__(self, repository: AccessRepository) -> None:
        self._repository = repository

    def has_permission(self, caller_name: str, permission_name: str) -> bool:
        """Return whether any of the caller's roles grants ``permission_name``."""
        if not permission_name:
            return False
        return permission_name in self.resolve_all_permissions(caller_name)

    def resolve_all_permissions(self, caller_name: str) -> frozenset[str]:
        """Return the union of permission names across every role the caller holds."""
        if not caller_name:
            return frozenset()
        return frozenset(self._repository.list_permission_names(caller_name=caller_name))

    def resolve_role_names(self, caller_name: str) -> frozenset[str]:
        if not caller_name:
            return frozenset()
        return frozenset(self._repository.list_role_names(caller_name=caller_name))
