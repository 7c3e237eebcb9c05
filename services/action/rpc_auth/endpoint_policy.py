"""Lookup of the permission each RPC endpoint requires."""

from __future__ import annotations

from services.state.access_authority import AccessRepository


class EndpointPolicyStore:
    """Read endpoint-to-permission mappings scoped by service name.

    ``None`` from ``required_permission`` means the endpoint has no permission
    requirement, which is different from a denial.
    """

    def __init__(self, repository: AccessRepository) -> None:
        self._repository = repository

    def required_permission(self, service_name: str, endpoint_name: str) -> str | None:
        return self._repository.get_endpoint_permission(
            service_name=service_name, endpoint_name=endpoint_name
        )

    def permissions_for_service(self, service_name: str) -> dict[str, str]:
        """Return ``{endpoint_name: permission_name}`` for every mapped endpoint."""
        return {
            policy.endpoint_name: policy.required_permission
            for policy in self._repository.list_endpoint_policies(service_name=service_name)
        }
