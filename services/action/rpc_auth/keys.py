"""Issuance, revocation and expiry management for rotating credentials."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Callable

import jwt

from packages.turnstile_shared.ids import new_record_id
from packages.turnstile_shared.logging import fields, get_logger
from services.action.rpc_auth.config import RpcAuthSettings
from services.action.rpc_auth.domain import (
    RPC_AUTH_AUDIENCE,
    IssuedCredential,
    RevocationOutcome,
)
from services.action.rpc_auth.errors import CallerNotFoundError
from services.state.access_authority import (
    AccessRepository,
    CredentialSummary,
    RotatingCredential,
    utc_now,
)

_LOGGER = get_logger(__name__)

SECRET_BYTES = 32


def generate_secret() -> str:
    """Return 32 random bytes hex-encoded: exactly 64 lowercase hex characters."""
    return secrets.token_hex(SECRET_BYTES)


class KeyLifecycleManager:
    """Issue, revoke and re-date rotating credentials.

    Secrets are returned once by ``issue`` and are never readable afterwards;
    listings expose only a short fingerprint.
    """

    def __init__(
        self,
        repository: AccessRepository,
        settings: RpcAuthSettings,
        *,
        clock: Callable[[], datetime] = utc_now,
        secret_factory: Callable[[], str] = generate_secret,
    ) -> None:
        self._repository = repository
        self._settings = settings
        self._clock = clock
        self._secret_factory = secret_factory

    def issue(self, owner_name: str, validity_days: int | None = None) -> IssuedCredential:
        """Create a credential for ``owner_name`` valid for ``validity_days``."""
        days = self._settings.key_validity_days if validity_days is None else validity_days
        if days <= 0:
            raise ValueError("validity_days must be > 0")

        owner = self._repository.get_caller_by_name(name=owner_name)
        if owner is None:
            raise CallerNotFoundError(caller_name=owner_name)

        now = self._clock()
        credential = self._repository.insert_credential(
            credential=RotatingCredential(
                id=new_record_id(),
                secret_value=self._secret_factory(),
                owner_caller_id=owner.id,
                expires_at=now + timedelta(days=days),
                created_at=now,
            )
        )
        _LOGGER.info(
            "credential issued",
            extra={
                fields.CALLER: owner.name,
                "credential_id": credential.id,
                "expires_at": credential.expires_at.isoformat(),
            },
        )
        return IssuedCredential(
            secret_value=credential.secret_value,
            expires_at=credential.expires_at,
            credential_id=credential.id,
        )

    def revoke(self, secret_value: str) -> RevocationOutcome:
        """Mark a credential revoked; unknown and already revoked keys do not raise."""
        credential = self._repository.get_credential_by_secret(secret_value=secret_value)
        if credential is None:
            outcome = RevocationOutcome.NOT_FOUND
        elif credential.revoked:
            outcome = RevocationOutcome.ALREADY_REVOKED
        else:
            self._repository.mark_credential_revoked(credential_id=credential.id)
            outcome = RevocationOutcome.REVOKED

        _LOGGER.info(
            "credential revocation requested",
            extra={
                "credential_id": None if credential is None else credential.id,
                "outcome": outcome.value,
            },
        )
        return outcome

    def list_credentials(self, owner_name: str) -> tuple[CredentialSummary, ...]:
        owner = self._repository.get_caller_by_name(name=owner_name)
        if owner is None:
            raise CallerNotFoundError(caller_name=owner_name)
        return tuple(
            CredentialSummary.from_credential(item, owner_name=owner.name)
            for item in self._repository.list_credentials(owner_caller_id=owner.id)
        )

    def reset_expiry(
        self, credential_id: str, expires_at: datetime
    ) -> CredentialSummary | None:
        """Move a credential's expiry; ``None`` when the credential does not exist.

        Revoked credentials keep their revoked flag, so extending one does not
        make it valid again.
        """
        if expires_at.tzinfo is None:
            raise ValueError("expires_at must be timezone-aware")
        if expires_at <= self._clock():
            raise ValueError("expires_at must be in the future")

        updated = self._repository.set_credential_expiry(
            credential_id=credential_id, expires_at=expires_at
        )
        if updated is None:
            return None
        owner = self._repository.get_caller(caller_id=updated.owner_caller_id)
        _LOGGER.info(
            "credential expiry reset",
            extra={"credential_id": credential_id, "expires_at": expires_at.isoformat()},
        )
        return CredentialSummary.from_credential(
            updated, owner_name="" if owner is None else owner.name
        )

    def sign_token(self, owner_name: str, lifetime: timedelta = timedelta(hours=1)) -> str:
        """Sign a short-lived legacy token for ``owner_name`` with the verification key.

        Meant for provisioning and testing; the token carries ``sub``, ``aud``,
        ``iat`` and ``exp`` and uses the first configured algorithm.
        """
        if lifetime <= timedelta(0):
            raise ValueError("token lifetime must be > 0")
        key = self._settings.token_verification_key
        if key is None:
            raise ValueError("no token verification key is configured")
        owner = self._repository.get_caller_by_name(name=owner_name)
        if owner is None:
            raise CallerNotFoundError(caller_name=owner_name)

        now = self._clock()
        token = jwt.encode(
            {"sub": owner.name, "aud": RPC_AUTH_AUDIENCE, "iat": now, "exp": now + lifetime},
            key.get_secret_value(),
            algorithm=self._settings.token_algorithms[0],
        )
        _LOGGER.info(
            "signed token issued",
            extra={fields.CALLER: owner.name, "expires_at": (now + lifetime).isoformat()},
        )
        return token
