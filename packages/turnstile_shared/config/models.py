"""Typed configuration models for Turnstile runtime settings."""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "turnstile" / "turnstile.yaml"

_ACTIVE_CONFIG_PATH: ContextVar[Path] = ContextVar(
    "turnstile_config_path", default=DEFAULT_CONFIG_PATH
)


class LoggingSettings(BaseModel):
    """Structured logging configuration shared by Turnstile components."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_output: bool = True
    service: str = "turnstile"
    environment: str = "dev"


class RpcTracingSettings(BaseModel):
    """OpenTelemetry naming for per-call RPC spans."""

    enabled: bool = True
    tracer_name: str = "turnstile.rpc"


class ObservabilitySettings(BaseModel):
    """Global observability configuration."""

    rpc: RpcTracingSettings = Field(default_factory=RpcTracingSettings)


class CoreGrpcSettings(BaseModel):
    """gRPC server settings under ``components.core_grpc``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    bind_host: str = "0.0.0.0"
    bind_port: int = Field(default=50051, ge=0, le=65535)
    max_workers: int = Field(default=10, gt=0)
    shutdown_grace_seconds: float = Field(default=5.0, ge=0)
    use_tls: bool = False
    tls_cert_path: Path = Path("./server.crt")
    tls_key_path: Path = Path("./server.key")
    tls_ca_path: Path | None = None
    run_migrations_on_startup: bool = False

    @property
    def bind_address(self) -> str:
        """Return ``host:port`` as expected by ``grpc.Server`` port binding."""
        return f"{self.bind_host}:{self.bind_port}"


class ComponentNamespaceSettings(BaseModel):
    """Namespace map for grouped component settings under ``components.<kind>``."""

    model_config = ConfigDict(extra="allow")


class ComponentsSettings(BaseModel):
    """Typed ``components`` subtree with support for component-local extras."""

    model_config = ConfigDict(extra="allow")

    core_grpc: CoreGrpcSettings = Field(default_factory=CoreGrpcSettings)
    service: ComponentNamespaceSettings = Field(
        default_factory=ComponentNamespaceSettings
    )
    substrate: ComponentNamespaceSettings = Field(
        default_factory=ComponentNamespaceSettings
    )

    @model_validator(mode="before")
    @classmethod
    def _reject_flat_component_keys(cls, value: object) -> object:
        """Reject flat ``service_*``/``substrate_*`` keys in favor of namespaces."""
        if not isinstance(value, dict):
            return value
        for key in value:
            if isinstance(key, str) and key.startswith(("service_", "substrate_")):
                kind, _, name = key.partition("_")
                raise ValueError(
                    f"components.{key} is invalid; use components.{kind}.{name} instead"
                )
        return value


class TurnstileSettings(BaseSettings):
    """Root runtime settings resolved from init/env/yaml/defaults sources."""

    model_config = SettingsConfigDict(
        env_prefix="TURNSTILE_",
        env_nested_delimiter="__",
        extra="ignore",
        nested_model_default_partial_update=True,
    )

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    components: ComponentsSettings = Field(default_factory=ComponentsSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Apply Turnstile precedence: init > env > yaml > model defaults."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(
                settings_cls,
                yaml_file=_ACTIVE_CONFIG_PATH.get(),
                yaml_file_encoding="utf-8",
            ),
        )


TComponentSettings = TypeVar("TComponentSettings", bound=BaseModel)


def resolve_component_settings(
    *,
    settings: TurnstileSettings,
    component_id: str,
    model: type[TComponentSettings],
) -> TComponentSettings:
    """Resolve one component settings object from grouped ``components`` keys.

    ``service_rpc_auth`` resolves ``components.service.rpc_auth``; ids without
    a known kind prefix (for example ``core_grpc``) are read flat.
    """
    raw_components = settings.components.model_dump(mode="python")
    kind, separator, name = component_id.partition("_")
    if separator and kind in {"service", "substrate"}:
        namespace = raw_components.get(kind, {})
        if not isinstance(namespace, dict):
            raise TypeError(f"components.{kind} must resolve to an object mapping")
        resolved = namespace.get(name, {})
        source_path = f"components.{kind}.{name}"
    else:
        resolved = raw_components.get(component_id, {})
        source_path = f"components.{component_id}"

    if not isinstance(resolved, dict):
        raise TypeError(f"{source_path} must resolve to an object mapping")
    return model.model_validate(resolved)
