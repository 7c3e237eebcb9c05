"""Unit tests for rotating credential lifecycle management."""

from __future__ import annotations

from datetime import timedelta

import pytest

from services.action.rpc_auth import (
    CallerNotFoundError,
    CredentialKind,
    KeyLifecycleManager,
    RevocationOutcome,
    RevokedCredential,
    RpcAuthSettings,
    classify_credential,
    generate_secret,
)
from services.state.access_authority import utc_now


def test_generated_secrets_are_64_lowercase_hex() -> None:
    """Issued secrets must always classify as rotating credentials."""
    secrets = {generate_secret() for _ in range(20)}

    assert len(secrets) == 20
    for secret in secrets:
        assert len(secret) == 64
        assert secret == secret.lower()
        assert classify_credential(secret) is CredentialKind.ROTATING


def test_issue_then_verify_resolves_owner(repository, settings, verifier) -> None:
    issued = KeyLifecycleManager(repository, settings).issue("svc-a")

    assert verifier.verify(issued.secret_value).name == "svc-a"


def test_issue_uses_default_and_override_validity(repository) -> None:
    now = utc_now()
    manager = KeyLifecycleManager(
        repository, RpcAuthSettings(key_validity_days=7), clock=lambda: now
    )

    default = manager.issue("svc-a")
    custom = manager.issue("svc-a", validity_days=90)

    assert default.expires_at == now + timedelta(days=7)
    assert custom.expires_at == now + timedelta(days=90)


def test_issue_for_unknown_owner(repository, settings) -> None:
    with pytest.raises(CallerNotFoundError) as excinfo:
        KeyLifecycleManager(repository, settings).issue("ghost")
    assert excinfo.value.caller_name == "ghost"


@pytest.mark.parametrize("days", [0, -1])
def test_issue_rejects_non_positive_validity(repository, settings, days) -> None:
    with pytest.raises(ValueError):
        KeyLifecycleManager(repository, settings).issue("svc-a", validity_days=days)


def test_revoke_is_idempotent(repository, settings, verifier) -> None:
    """Revoking twice leaves the key revoked and never raises."""
    manager = KeyLifecycleManager(repository, settings)
    issued = manager.issue("svc-a")

    assert manager.revoke(issued.secret_value) is RevocationOutcome.REVOKED
    assert manager.revoke(issued.secret_value) is RevocationOutcome.ALREADY_REVOKED
    assert repository.get_credential(credential_id=issued.credential_id).revoked is True
    with pytest.raises(RevokedCredential):
        verifier.verify(issued.secret_value)


def test_revoke_unknown_key_reports_not_found(repository, settings) -> None:
    manager = KeyLifecycleManager(repository, settings)

    assert manager.revoke("e" * 64) is RevocationOutcome.NOT_FOUND


def test_list_credentials_never_exposes_secret(repository, settings) -> None:
    manager = KeyLifecycleManager(repository, settings)
    issued = manager.issue("svc-a")

    listed = manager.list_credentials("svc-a")

    assert issued.credential_id in {item.id for item in listed}
    for item in listed:
        assert len(item.fingerprint) == 8
        assert issued.secret_value not in item.model_dump_json()
    with pytest.raises(CallerNotFoundError):
        manager.list_credentials("ghost")


def test_reset_expiry_moves_expiry_but_keeps_revocation(repository, settings) -> None:
    manager = KeyLifecycleManager(repository, settings)
    issued = manager.issue("svc-a", validity_days=1)
    manager.revoke(issued.secret_value)
    new_expiry = utc_now() + timedelta(days=60)

    summary = manager.reset_expiry(issued.credential_id, new_expiry)

    assert summary is not None
    assert summary.expires_at == new_expiry
    assert summary.revoked is True
    assert summary.owner_name == "svc-a"
    assert manager.reset_expiry("missing", new_expiry) is None


def test_reset_expiry_rejects_past_or_naive_datetimes(repository, settings) -> None:
    manager = KeyLifecycleManager(repository, settings)
    issued = manager.issue("svc-a")

    with pytest.raises(ValueError):
        manager.reset_expiry(issued.credential_id, utc_now() - timedelta(seconds=1))
    with pytest.raises(ValueError):
        manager.reset_expiry(issued.credential_id, utc_now().replace(tzinfo=None) + timedelta(days=1))


def test_signed_token_round_trips_through_verifier(repository, settings, verifier) -> None:
    token = KeyLifecycleManager(repository, settings).sign_token("svc-a", timedelta(minutes=5))

    identity = verifier.verify(token)

    assert identity.name == "svc-a"
    assert identity.credential_kind is CredentialKind.SIGNED_TOKEN


def test_sign_token_requires_key_known_owner_and_positive_lifetime(repository, settings) -> None:
    with pytest.raises(ValueError):
        KeyLifecycleManager(repository, RpcAuthSettings()).sign_token("svc-a")
    with pytest.raises(CallerNotFoundError):
        KeyLifecycleManager(repository, settings).sign_token("ghost")
    with pytest.raises(ValueError):
        KeyLifecycleManager(repository, settings).sign_token("svc-a", timedelta(0))
