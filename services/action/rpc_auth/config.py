"""Pydantic settings for RPC authorization behavior."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from packages.turnstile_shared.config import TurnstileSettings, resolve_component_settings

SERVICE_COMPONENT_ID = "service_rpc_auth"


class RpcAuthSettings(BaseModel):
    """Runtime settings under ``components.service.rpc_auth``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    metadata_key: str = Field(default="service-authorization", min_length=1)
    token_verification_key: SecretStr | None = None
    token_algorithms: tuple[str, ...] = Field(default=("HS256",), min_length=1)
    token_leeway_seconds: float = Field(default=0.0, ge=0)
    key_validity_days: int = Field(default=30, gt=0)
    background_last_use: bool = True
    last_use_workers: int = Field(default=2, gt=0)
    strict_policy_loading: bool = False


def resolve_rpc_auth_settings(settings: TurnstileSettings) -> RpcAuthSettings:
    """Resolve authorization settings from ``components.service.rpc_auth``."""
    return resolve_component_settings(
        settings=settings,
        component_id=SERVICE_COMPONENT_ID,
        model=RpcAuthSettings,
    )
