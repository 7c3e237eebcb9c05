"""RPC authorization: credential verification, permission checks and handler guards."""

from services.action.rpc_auth.config import (
    SERVICE_COMPONENT_ID,
    RpcAuthSettings,
    resolve_rpc_auth_settings,
)
from services.action.rpc_auth.component import RpcAuthComponents, build_rpc_auth
from services.action.rpc_auth.credentials import (
    CredentialVerifier,
    LastUseRecorder,
    classify_credential,
    extract_credential,
)
from services.action.rpc_auth.domain import (
    RPC_AUTH_AUDIENCE,
    CallerIdentityRef,
    CallerPrincipal,
    CredentialKind,
    GlobalPolicy,
    Handler,
    IssuedCredential,
    PerEndpointPolicy,
    Policy,
    RevocationOutcome,
    WholeServicePolicy,
)
from services.action.rpc_auth.endpoint_policy import EndpointPolicyStore
from services.action.rpc_auth.errors import (
    AccessDeniedError,
    AuthenticationError,
    AuthorizationFailure,
    CallerNotFoundError,
    ExpiredCredential,
    InsufficientPermission,
    InsufficientRole,
    InvalidSignature,
    MalformedCredential,
    MissingCredential,
    RevokedCredential,
    UnknownCaller,
    UnknownCredential,
    WrongAudience,
)
from services.action.rpc_auth.keys import KeyLifecycleManager, generate_secret
from services.action.rpc_auth.middleware import (
    AuthorizedContext,
    MiddlewareComposer,
    current_caller,
)
from services.action.rpc_auth.permissions import PermissionResolver

__all__ = [
    "AccessDeniedError",
    "AuthenticationError",
    "AuthorizationFailure",
    "AuthorizedContext",
    "CallerIdentityRef",
    "CallerNotFoundError",
    "CallerPrincipal",
    "CredentialKind",
    "CredentialVerifier",
    "EndpointPolicyStore",
    "ExpiredCredential",
    "GlobalPolicy",
    "Handler",
    "InsufficientPermission",
    "InsufficientRole",
    "InvalidSignature",
    "IssuedCredential",
    "KeyLifecycleManager",
    "LastUseRecorder",
    "MalformedCredential",
    "MiddlewareComposer",
    "MissingCredential",
    "PerEndpointPolicy",
    "PermissionResolver",
    "Policy",
    "RPC_AUTH_AUDIENCE",
    "RevocationOutcome",
    "RevokedCredential",
    "RpcAuthComponents",
    "RpcAuthSettings",
    "SERVICE_COMPONENT_ID",
    "UnknownCaller",
    "UnknownCredential",
    "WholeServicePolicy",
    "WrongAudience",
    "build_rpc_auth",
    "classify_credential",
    "current_caller",
    "extract_credential",
    "generate_secret",
    "resolve_rpc_auth_settings",
]
