"""Public API for the Turnstile gRPC dispatch harness and process startup."""

from packages.turnstile_core.health import HealthReport, build_health_service, evaluate_health
from packages.turnstile_core.migrations import (
    MigrationExecutionError,
    MigrationRunResult,
    build_alembic_config,
    run_startup_migrations,
)
from packages.turnstile_core.server import (
    DispatchHarness,
    HarnessStartError,
    HarnessState,
    HarnessStateError,
    MethodCodec,
    ServiceDefinition,
    default_server_factory,
    load_server_credentials,
)

__all__ = [
    "DispatchHarness",
    "HarnessStartError",
    "HarnessState",
    "HarnessStateError",
    "HealthReport",
    "MethodCodec",
    "MigrationExecutionError",
    "MigrationRunResult",
    "ServiceDefinition",
    "build_alembic_config",
    "build_health_service",
    "default_server_factory",
    "evaluate_health",
    "load_server_credentials",
    "run_startup_migrations",
]
