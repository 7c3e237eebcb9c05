"""Public API for shared Turnstile configuration utilities."""

from .loader import load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    ComponentsSettings,
    CoreGrpcSettings,
    LoggingSettings,
    ObservabilitySettings,
    RpcTracingSettings,
    TurnstileSettings,
    resolve_component_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ComponentsSettings",
    "CoreGrpcSettings",
    "LoggingSettings",
    "ObservabilitySettings",
    "RpcTracingSettings",
    "TurnstileSettings",
    "load_settings",
    "resolve_component_settings",
]
