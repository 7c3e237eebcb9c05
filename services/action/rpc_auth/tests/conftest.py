"""Shared fixtures for RPC authorization tests."""

from __future__ import annotations

from datetime import timedelta

import pytest

from services.action.rpc_auth import (
    CredentialVerifier,
    EndpointPolicyStore,
    MiddlewareComposer,
    PermissionResolver,
    RpcAuthSettings,
)
from services.action.rpc_auth.tests.fakes import ADMIN_KEY, SIGNING_KEY
from services.state.access_authority import (
    InMemoryAccessRepository,
    RotatingCredential,
    utc_now,
)


@pytest.fixture
def repository() -> InMemoryAccessRepository:
    """Store holding svc-a with role admin granting user:get, mapped to UserService.getUser."""
    repo = InMemoryAccessRepository()
    admin = repo.create_role(name="admin")
    get_user = repo.create_permission(name="user:get")
    repo.create_permission(name="user:delete")
    caller = repo.create_caller(name="svc-a")
    repo.create_caller(name="svc-b")
    repo.grant_permission(role_id=admin.id, permission_id=get_user.id)
    repo.grant_role(caller_id=caller.id, role_id=admin.id)
    repo.create_endpoint_policy(
        service_name="UserService", endpoint_name="getUser", permission_id=get_user.id
    )
    now = utc_now()
    repo.insert_credential(
        credential=RotatingCredential(
            id="01JADMINKEY000000000000000",
            secret_value=ADMIN_KEY,
            owner_caller_id=caller.id,
            expires_at=now + timedelta(days=30),
            created_at=now,
        )
    )
    return repo


@pytest.fixture
def settings() -> RpcAuthSettings:
    return RpcAuthSettings(token_verification_key=SIGNING_KEY, background_last_use=False)


@pytest.fixture
def verifier(repository, settings) -> CredentialVerifier:
    return CredentialVerifier(repository, settings)


@pytest.fixture
def composer(repository, verifier) -> MiddlewareComposer:
    return MiddlewareComposer(
        verifier=verifier,
        resolver=PermissionResolver(repository),
        endpoint_policies=EndpointPolicyStore(repository),
    )
