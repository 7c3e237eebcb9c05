"""Assembly of RPC authorization collaborators from runtime settings."""

from __future__ import annotations

from dataclasses import dataclass

from packages.turnstile_shared.config import TurnstileSettings
from services.action.rpc_auth.config import RpcAuthSettings, resolve_rpc_auth_settings
from services.action.rpc_auth.credentials import CredentialVerifier
from services.action.rpc_auth.endpoint_policy import EndpointPolicyStore
from services.action.rpc_auth.keys import KeyLifecycleManager
from services.action.rpc_auth.middleware import MiddlewareComposer
from services.action.rpc_auth.permissions import PermissionResolver
from services.state.access_authority import AccessRepository


@dataclass(frozen=True, slots=True)
class RpcAuthComponents:
    """Authorization collaborators sharing one repository and settings object."""

    settings: RpcAuthSettings
    verifier: CredentialVerifier
    resolver: PermissionResolver
    endpoint_policies: EndpointPolicyStore
    composer: MiddlewareComposer
    keys: KeyLifecycleManager

    def close(self) -> None:
        """Flush background work owned by the verifier."""
        self.verifier.close()


def build_rpc_auth(
    *,
    settings: TurnstileSettings,
    repository: AccessRepository,
    rpc_auth_settings: RpcAuthSettings | None = None,
) -> RpcAuthComponents:
    """Build verifier, resolver, policy store, composer and key manager."""
    resolved = rpc_auth_settings or resolve_rpc_auth_settings(settings)
    verifier = CredentialVerifier(repository, resolved)
    resolver = PermissionResolver(repository)
    endpoint_policies = EndpointPolicyStore(repository)
    return RpcAuthComponents(
        settings=resolved,
        verifier=verifier,
        resolver=resolver,
        endpoint_policies=endpoint_policies,
        composer=MiddlewareComposer(
            verifier=verifier,
            resolver=resolver,
            endpoint_policies=endpoint_policies,
            metadata_key=resolved.metadata_key,
        ),
        keys=KeyLifecycleManager(repository, resolved),
    )
