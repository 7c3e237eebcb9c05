"""Value types exchanged across the RPC authorization seam."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, TypeAlias

import grpc
from pydantic import BaseModel, ConfigDict, Field

RPC_AUTH_AUDIENCE = "rpc_auth"

Handler: TypeAlias = Callable[[Any, grpc.ServicerContext], Any]


class CredentialKind(str, Enum):
    """Credential formats distinguished by shape, not by an explicit tag."""

    ROTATING = "rotating"
    SIGNED_TOKEN = "signed_token"


class CallerIdentityRef(BaseModel):
    """Caller established by a successful credential verification."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    caller_id: str
    name: str
    credential_kind: CredentialKind
    credential_id: str | None = None


class CallerPrincipal(BaseModel):
    """Authorized caller attached to the call context for business handlers.

    ``permissions`` is populated by per-endpoint checks and ``roles`` by
    role-based checks; either is ``None`` when that check did not run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    caller_id: str
    credential_kind: CredentialKind
    roles: frozenset[str] | None = None
    permissions: frozenset[str] | None = None


class GlobalPolicy(BaseModel):
    """Every handler requires membership in one of ``required_roles``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    required_roles: tuple[str, ...] = Field(min_length=1)


class WholeServicePolicy(BaseModel):
    """Service-level switch with an optional allowed-role list."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool
    allowed_roles: tuple[str, ...] = ()


class PerEndpointPolicy(BaseModel):
    """Endpoint permissions from the policy store, with explicit overrides winning."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    service_name: str = Field(min_length=1)
    overrides: Mapping[str, str] | None = None


Policy: TypeAlias = GlobalPolicy | WholeServicePolicy | PerEndpointPolicy


class IssuedCredential(BaseModel):
    """Result of issuing a rotating credential; the only time the secret is visible."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    secret_value: str
    expires_at: datetime
    credential_id: str


class RevocationOutcome(str, Enum):
    """What ``revoke`` found; revocation never raises for these cases."""

    REVOKED = "revoked"
    ALREADY_REVOKED = "already_revoked"
    NOT_FOUND = "not_found"
