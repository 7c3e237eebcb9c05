"""Compose authorization checks around maps of RPC handlers.

``MiddlewareComposer.compose`` takes ``{endpoint_name: handler}`` and a policy
and returns a new map whose handlers keep the ``(request, context)`` shape.
Guarded handlers verify the credential, check the policy and only then call
the business handler with an ``AuthorizedContext``; rejected calls end with
``context.abort`` and the business handler never runs.
"""

from __future__ import annotations

from contextvars import ContextVar
from functools import wraps
from typing import Any, Mapping

import grpc

from packages.turnstile_shared.errors import exception_to_error
from packages.turnstile_shared.logging import fields, get_logger, log_context
from services.action.rpc_auth.credentials import CredentialVerifier, extract_credential
from services.action.rpc_auth.domain import (
    CallerPrincipal,
    GlobalPolicy,
    Handler,
    PerEndpointPolicy,
    Policy,
    WholeServicePolicy,
)
from services.action.rpc_auth.endpoint_policy import EndpointPolicyStore
from services.action.rpc_auth.errors import (
    AuthorizationFailure,
    InsufficientPermission,
    InsufficientRole,
)
from services.action.rpc_auth.permissions import PermissionResolver
from services.state.access_authority import StoreError

_LOGGER = get_logger(__name__)

STORE_FAILURE_MESSAGE = "authorization store unavailable"

_CURRENT_CALLER: ContextVar[CallerPrincipal | None] = ContextVar(
    "turnstile_current_caller", default=None
)


def current_caller() -> CallerPrincipal | None:
    """Return the caller authorized for the RPC running in this context."""
    return _CURRENT_CALLER.get()


class AuthorizedContext:
    """``grpc.ServicerContext`` proxy that also exposes the authorized caller."""

    def __init__(self, context: grpc.ServicerContext, caller: CallerPrincipal) -> None:
        self._context = context
        self.caller = caller

    @property
    def wrapped(self) -> grpc.ServicerContext:
        return self._context

    def __getattr__(self, name: str) -> Any:
        return getattr(self._context, name)


class MiddlewareComposer:
    """Wrap handler maps with global, whole-service or per-endpoint enforcement."""

    def __init__(
        self,
        *,
        verifier: CredentialVerifier,
        resolver: PermissionResolver,
        endpoint_policies: EndpointPolicyStore,
        metadata_key: str = "service-authorization",
    ) -> None:
        self._verifier = verifier
        self._resolver = resolver
        self._endpoint_policies = endpoint_policies
        self._metadata_key = metadata_key

    def compose(self, handlers: Mapping[str, Handler], policy: Policy) -> dict[str, Handler]:
        """Return a new handler map with ``policy`` applied.

        Per-endpoint requirements are read once here, so store failures
        surface at composition time rather than on each call.
        """
        if isinstance(policy, GlobalPolicy):
            return {
                name: self._guard(handler, name, required_roles=policy.required_roles)
                for name, handler in handlers.items()
            }

        if isinstance(policy, WholeServicePolicy):
            if not policy.enabled:
                return dict(handlers)
            return {
                name: self._guard(handler, name, required_roles=policy.allowed_roles)
                for name, handler in handlers.items()
            }

        if isinstance(policy, PerEndpointPolicy):
            discovered = self._endpoint_policies.permissions_for_service(policy.service_name)
            overrides = dict(policy.overrides or {})
            composed: dict[str, Handler] = {}
            for name, handler in handlers.items():
                permission = overrides.get(name) or discovered.get(name)
                if permission is None:
                    composed[name] = handler
                else:
                    composed[name] = self._guard(handler, name, required_permission=permission)
            _LOGGER.info(
                "per-endpoint policy composed",
                extra={
                    fields.RPC_SERVICE: policy.service_name,
                    "protected_endpoints": sorted(
                        name for name in handlers if composed[name] is not handlers[name]
                    ),
                },
            )
            return composed

        raise TypeError(f"unsupported policy: {type(policy).__name__}")

    def authorize(
        self,
        context: grpc.ServicerContext,
        *,
        required_roles: tuple[str, ...] = (),
        required_permission: str | None = None,
    ) -> CallerPrincipal:
        """Authenticate the call's credential and enforce one requirement.

        Raises an ``AuthorizationFailure`` subclass on rejection and
        ``StoreError`` when the store cannot answer.
        """
        raw_credential = extract_credential(context.invocation_metadata(), self._metadata_key)
        identity = self._verifier.verify(raw_credential)

        roles = None
        if required_roles:
            roles = self._resolver.resolve_role_names(identity.name)
            if roles.isdisjoint(required_roles):
                raise InsufficientRole.for_caller(identity.name, tuple(required_roles))

        permissions = None
        if required_permission is not None:
            permissions = self._resolver.resolve_all_permissions(identity.name)
            if required_permission not in permissions:
                raise InsufficientPermission.for_caller(identity.name, required_permission)

        return CallerPrincipal(
            name=identity.name,
            caller_id=identity.caller_id,
            credential_kind=identity.credential_kind,
            roles=roles,
            permissions=permissions,
        )

    def _guard(
        self,
        handler: Handler,
        endpoint: str,
        *,
        required_roles: tuple[str, ...] = (),
        required_permission: str | None = None,
    ) -> Handler:
        @wraps(handler)
        def _guarded(request: Any, context: grpc.ServicerContext) -> Any:
            try:
                principal = self.authorize(
                    context,
                    required_roles=required_roles,
                    required_permission=required_permission,
                )
            except AuthorizationFailure as exc:
                _LOGGER.warning(
                    "rpc call rejected: %s",
                    exc.message,
                    extra={
                        **exception_to_error(exc).log_fields(),
                        fields.FAILURE_KIND: exc.kind,
                        fields.REQUIRED_PERMISSION: required_permission,
                        "endpoint": endpoint,
                    },
                )
                context.abort(exc.status_code, exc.message)
                raise
            except StoreError as exc:
                _LOGGER.error(
                    "authorization store failed during rpc call",
                    exc_info=True,
                    extra={
                        **exception_to_error(exc).log_fields(),
                        "endpoint": endpoint,
                    },
                )
                context.abort(grpc.StatusCode.INTERNAL, STORE_FAILURE_MESSAGE)
                raise

            token = _CURRENT_CALLER.set(principal)
            try:
                with log_context(
                    {
                        fields.CALLER: principal.name,
                        fields.CREDENTIAL_KIND: principal.credential_kind.value,
                    }
                ):
                    return handler(request, AuthorizedContext(context, principal))
            finally:
                _CURRENT_CALLER.reset(token)

        return _guarded
