"""Credential extraction, classification and verification.

Two credential kinds share one metadata entry and are told apart by shape:
a rotating credential is exactly 64 hex characters and is looked up verbatim;
anything else is treated as a compact signed token (``header.payload.sig``)
that must verify under the configured key and carry the ``rpc_auth``
audience. The 64-character width is a compatibility constraint: issued
secrets must keep it so they never classify as tokens.
"""

from __future__ import annotations

import re
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Iterable

import jwt

from packages.turnstile_shared.logging import fields, get_logger
from services.action.rpc_auth.config import RpcAuthSettings
from services.action.rpc_auth.domain import (
    RPC_AUTH_AUDIENCE,
    CallerIdentityRef,
    CredentialKind,
)
from services.action.rpc_auth.errors import (
    ExpiredCredential,
    InvalidSignature,
    MalformedCredential,
    MissingCredential,
    RevokedCredential,
    UnknownCaller,
    UnknownCredential,
    WrongAudience,
)
from services.state.access_authority import AccessRepository, utc_now

_LOGGER = get_logger(__name__)

ROTATING_CREDENTIAL_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")
_BEARER_PREFIX = re.compile(r"^\s*bearer(?:\s+|$)", re.IGNORECASE)


def extract_credential(
    metadata: Iterable[tuple[str, str | bytes]] | None, key: str
) -> str | None:
    """Return the credential carried under ``key``, without any ``Bearer`` prefix.

    Keys compare case-insensitively. The first matching entry wins; ``None``
    means the entry is absent or blank.
    """
    wanted = key.lower()
    for entry_key, value in metadata or ():
        if entry_key.lower() != wanted:
            continue
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        credential = _BEARER_PREFIX.sub("", value, count=1).strip()
        return credential or None
    return None


def classify_credential(raw_credential: str) -> CredentialKind:
    """Return the credential kind implied by the string's shape."""
    if ROTATING_CREDENTIAL_PATTERN.match(raw_credential):
        return CredentialKind.ROTATING
    return CredentialKind.SIGNED_TOKEN


class LastUseRecorder:
    """Best-effort writer for credential last-use timestamps.

    With an executor the write is queued and the caller returns immediately;
    without one it runs inline. Failures are logged and never raised.
    """

    def __init__(
        self,
        repository: AccessRepository,
        *,
        executor: Executor | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._executor = executor
        self._clock = clock

    @classmethod
    def from_settings(
        cls, repository: AccessRepository, settings: RpcAuthSettings
    ) -> "LastUseRecorder":
        executor = None
        if settings.background_last_use:
            executor = ThreadPoolExecutor(
                max_workers=settings.last_use_workers,
                thread_name_prefix="turnstile-last-use",
            )
        return cls(repository, executor=executor)

    def record(self, credential_id: str) -> None:
        used_at = self._clock()
        if self._executor is None:
            self._write(credential_id, used_at)
            return
        try:
            self._executor.submit(self._write, credential_id, used_at)
        except RuntimeError:
            _LOGGER.warning(
                "credential last-use dropped; recorder is shut down",
                extra={"credential_id": credential_id},
            )

    def shutdown(self, *, wait: bool = True) -> None:
        """Flush queued writes and stop the background executor, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _write(self, credential_id: str, used_at: datetime) -> None:
        try:
            self._repository.mark_credential_used(
                credential_id=credential_id, used_at=used_at
            )
        except Exception:
            _LOGGER.warning(
                "credential last-use update failed",
                exc_info=True,
                extra={"credential_id": credential_id},
            )


class CredentialVerifier:
    """Turn a raw credential string into a caller identity or a typed failure.

    Only ``AuthenticationError`` subclasses are raised for bad credentials;
    store failures propagate as ``StoreError``.
    """

    def __init__(
        self,
        repository: AccessRepository,
        settings: RpcAuthSettings,
        *,
        last_use: LastUseRecorder | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._settings = settings
        self._last_use = last_use or LastUseRecorder.from_settings(repository, settings)
        self._clock = clock

    def verify(self, raw_credential: str | None) -> CallerIdentityRef:
        """Verify one credential and return the caller it identifies."""
        if raw_credential is None or not raw_credential.strip():
            raise MissingCredential()
        credential = raw_credential.strip()
        if classify_credential(credential) is CredentialKind.ROTATING:
            identity = self._verify_rotating(credential)
        else:
            identity = self._verify_signed_token(credential)
        _LOGGER.debug(
            "credential verified",
            extra={
                fields.CALLER: identity.name,
                fields.CREDENTIAL_KIND: identity.credential_kind.value,
            },
        )
        return identity

    def close(self) -> None:
        """Flush pending last-use writes."""
        self._last_use.shutdown(wait=True)

    def _verify_rotating(self, secret_value: str) -> CallerIdentityRef:
        credential = self._repository.get_credential_by_secret(secret_value=secret_value)
        if credential is None:
            raise UnknownCredential()
        if credential.revoked:
            raise RevokedCredential()
        if credential.is_expired(now=self._clock()):
            raise ExpiredCredential(message="API key has expired")

        owner = self._repository.get_caller(caller_id=credential.owner_caller_id)
        if owner is None:
            raise UnknownCaller()

        self._last_use.record(credential.id)
        return CallerIdentityRef(
            caller_id=owner.id,
            name=owner.name,
            credential_kind=CredentialKind.ROTATING,
            credential_id=credential.id,
        )

    def _verify_signed_token(self, token: str) -> CallerIdentityRef:
        if token.count(".") != 2:
            raise MalformedCredential()
        key = self._settings.token_verification_key
        if key is None:
            raise InvalidSignature(message="signed tokens are not accepted")

        try:
            claims = jwt.decode(
                token,
                key.get_secret_value(),
                algorithms=list(self._settings.token_algorithms),
                leeway=self._settings.token_leeway_seconds,
                options={"verify_aud": False},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredCredential(message="token has expired") from exc
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as exc:
            raise InvalidSignature() from exc
        except jwt.DecodeError as exc:
            raise MalformedCredential(message="token could not be decoded") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedCredential(message=f"token rejected: {exc}") from exc

        audience = claims.get("aud")
        if audience != RPC_AUTH_AUDIENCE and audience != [RPC_AUTH_AUDIENCE]:
            raise WrongAudience()

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise MalformedCredential(message="token has no subject")

        caller = self._repository.get_caller_by_name(name=subject)
        if caller is None:
            raise UnknownCaller()
        return CallerIdentityRef(
            caller_id=caller.id,
            name=caller.name,
            credential_kind=CredentialKind.SIGNED_TOKEN,
        )
