"""Unit tests for handler-map composition and call-time enforcement."""

from __future__ import annotations

from datetime import timedelta

import grpc
import jwt
import pytest

from packages.turnstile_shared.errors import codes, dependency_error
from services.action.rpc_auth import (
    RPC_AUTH_AUDIENCE,
    AuthorizedContext,
    GlobalPolicy,
    InsufficientPermission,
    KeyLifecycleManager,
    PerEndpointPolicy,
    WholeServicePolicy,
    current_caller,
)
from services.action.rpc_auth.middleware import STORE_FAILURE_MESSAGE
from services.action.rpc_auth.tests.fakes import (
    ADMIN_KEY,
    SIGNING_KEY,
    AbortCalled,
    FakeServicerContext,
    bearer,
)
from services.state.access_authority import StoreError, utc_now


def _handlers(calls: list):
    def get_user(request, context):
        calls.append(("getUser", request, context.caller, current_caller()))
        return {"user": request}

    def health(request, context):
        calls.append(("health", request, None, current_caller()))
        return "ok"

    return {"getUser": get_user, "health": health}


def _call(handler, metadata=None, request="u-1"):
    context = FakeServicerContext(metadata)
    try:
        return handler(request, context), context
    except AbortCalled:
        return None, context


def test_per_endpoint_accepts_caller_with_mapped_permission(composer) -> None:
    """A held permission should reach the handler with the caller attached."""
    calls: list = []
    composed = composer.compose(_handlers(calls), PerEndpointPolicy(service_name="UserService"))

    response, context = _call(composed["getUser"], bearer(ADMIN_KEY))

    assert response == {"user": "u-1"}
    assert context.code() is None
    _, _, caller, ambient = calls[0]
    assert caller.name == "svc-a"
    assert caller.permissions == frozenset({"user:get"})
    assert ambient == caller
    assert current_caller() is None


def test_per_endpoint_rejects_missing_credential(composer) -> None:
    calls: list = []
    composed = composer.compose(_handlers(calls), PerEndpointPolicy(service_name="UserService"))

    response, context = _call(composed["getUser"])

    assert response is None
    assert context.code() == grpc.StatusCode.UNAUTHENTICATED
    assert calls == []


def test_per_endpoint_rejects_caller_without_permission(composer, repository, settings) -> None:
    """A freshly issued key for a roleless caller should be denied."""
    calls: list = []
    issued = KeyLifecycleManager(repository, settings).issue("svc-b")
    composed = composer.compose(_handlers(calls), PerEndpointPolicy(service_name="UserService"))

    _, context = _call(composed["getUser"], bearer(issued.secret_value))

    assert context.code() == grpc.StatusCode.PERMISSION_DENIED
    assert context.details() == "caller does not have permission: user:get"
    assert calls == []


def test_rejection_log_carries_error_code_and_kind(composer, caplog) -> None:
    composed = composer.compose(_handlers([]), PerEndpointPolicy(service_name="UserService"))

    with caplog.at_level("WARNING"):
        _call(composed["getUser"], bearer("0" * 64))

    record = next(r for r in caplog.records if r.getMessage().startswith("rpc call rejected"))
    assert record.error_code == codes.CREDENTIAL_UNKNOWN
    assert record.error_category == "authentication"
    assert record.failure_kind == "unknown_credential"
    assert record.endpoint == "getUser"


def test_per_endpoint_leaves_unmapped_handlers_public(composer) -> None:
    """Endpoints without a policy row need no credential at all."""
    calls: list = []
    handlers = _handlers(calls)
    composed = composer.compose(handlers, PerEndpointPolicy(service_name="UserService"))

    response, context = _call(composed["health"])

    assert composed["health"] is handlers["health"]
    assert response == "ok"
    assert context.code() is None


def test_per_endpoint_override_wins_over_stored_policy(composer) -> None:
    calls: list = []
    policy = PerEndpointPolicy(service_name="UserService", overrides={"getUser": "user:delete"})
    composed = composer.compose(_handlers(calls), policy)

    _, context = _call(composed["getUser"], bearer(ADMIN_KEY))

    assert context.code() == grpc.StatusCode.PERMISSION_DENIED
    assert "user:delete" in context.details()


def test_per_endpoint_override_can_protect_unmapped_handler(composer) -> None:
    calls: list = []
    policy = PerEndpointPolicy(service_name="UserService", overrides={"health": "user:get"})
    composed = composer.compose(_handlers(calls), policy)

    _, anonymous = _call(composed["health"])
    response, _ = _call(composed["health"], bearer(ADMIN_KEY))

    assert anonymous.code() == grpc.StatusCode.UNAUTHENTICATED
    assert response == "ok"


def test_per_endpoint_policy_is_read_at_composition_time(composer, repository) -> None:
    """Policy rows added after composition do not affect the composed map."""
    calls: list = []
    composed = composer.compose(_handlers(calls), PerEndpointPolicy(service_name="UserService"))
    permission = repository.get_permission_by_name(name="user:delete")
    repository.create_endpoint_policy(
        service_name="UserService", endpoint_name="health", permission_id=permission.id
    )

    response, _ = _call(composed["health"])

    assert response == "ok"


def test_signed_token_is_accepted_by_guard(composer) -> None:
    token = jwt.encode(
        {"sub": "svc-a", "aud": RPC_AUTH_AUDIENCE, "exp": utc_now() + timedelta(minutes=5)},
        SIGNING_KEY,
        algorithm="HS256",
    )
    calls: list = []
    composed = composer.compose(_handlers(calls), PerEndpointPolicy(service_name="UserService"))

    response, _ = _call(composed["getUser"], bearer(token))

    assert response == {"user": "u-1"}
    assert calls[0][2].credential_kind.value == "signed_token"


def test_global_policy_requires_named_role(composer) -> None:
    calls: list = []
    composed = composer.compose(_handlers(calls), GlobalPolicy(required_roles=("admin",)))

    response, _ = _call(composed["health"], bearer(ADMIN_KEY))
    _, denied = _call(
        composer.compose(_handlers(calls), GlobalPolicy(required_roles=("operator",)))["health"],
        bearer(ADMIN_KEY),
    )

    assert response == "ok"
    assert calls[0][3].roles == frozenset({"admin"})
    assert denied.code() == grpc.StatusCode.PERMISSION_DENIED


def test_whole_service_disabled_passes_handlers_through(composer) -> None:
    handlers = _handlers([])
    composed = composer.compose(handlers, WholeServicePolicy(enabled=False))

    assert composed == handlers
    assert composed is not handlers


def test_whole_service_enabled_requires_credential_only(composer) -> None:
    calls: list = []
    composed = composer.compose(_handlers(calls), WholeServicePolicy(enabled=True))

    _, anonymous = _call(composed["health"])
    response, _ = _call(composed["health"], bearer(ADMIN_KEY))

    assert anonymous.code() == grpc.StatusCode.UNAUTHENTICATED
    assert response == "ok"


def test_whole_service_enabled_with_roles(composer) -> None:
    composed = composer.compose(
        _handlers([]), WholeServicePolicy(enabled=True, allowed_roles=("auditor", "admin"))
    )

    response, _ = _call(composed["health"], bearer(ADMIN_KEY))

    assert response == "ok"


def test_unknown_policy_type_is_rejected(composer) -> None:
    with pytest.raises(TypeError):
        composer.compose(_handlers([]), object())


def test_store_failure_surfaces_as_internal(composer, repository, monkeypatch) -> None:
    """An unreachable store must not look like an access denial."""

    def _broken(**_kwargs):
        raise StoreError(
            "lookup failed",
            detail=dependency_error("store down", code=codes.DEPENDENCY_UNAVAILABLE),
        )

    calls: list = []
    composed = composer.compose(_handlers(calls), PerEndpointPolicy(service_name="UserService"))
    monkeypatch.setattr(repository, "get_credential_by_secret", _broken)

    _, context = _call(composed["getUser"], bearer(ADMIN_KEY))

    assert context.code() == grpc.StatusCode.INTERNAL
    assert context.details() == STORE_FAILURE_MESSAGE
    assert calls == []


def test_composed_handlers_keep_names(composer) -> None:
    handlers = _handlers([])
    composed = composer.compose(handlers, GlobalPolicy(required_roles=("admin",)))

    assert composed["getUser"].__name__ == "get_user"
    assert composed["getUser"].__wrapped__ is handlers["getUser"]


def test_authorized_context_delegates_to_wrapped_context() -> None:
    inner = FakeServicerContext()
    proxy = AuthorizedContext(inner, caller=None)

    assert proxy.peer() == "ipv4:127.0.0.1:50000"
    assert proxy.wrapped is inner


def test_handler_raised_denial_propagates_through_call_context(composer) -> None:
    """A finer check inside the handler surfaces its own typed failure."""

    def delete_user(_request, context):
        composer.authorize(context.wrapped, required_permission="user:delete")
        return "deleted"

    composed = composer.compose(
        {"getUser": delete_user}, PerEndpointPolicy(service_name="UserService")
    )

    with pytest.raises(InsufficientPermission) as excinfo:
        composed["getUser"]("u-1", FakeServicerContext(bearer(ADMIN_KEY)))
    assert excinfo.value.permission == "user:delete"
    assert current_caller() is None
