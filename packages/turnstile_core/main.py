"""Process entrypoint for the Turnstile gRPC server."""

from __future__ import annotations

import os
import signal
import threading
from pathlib import Path

from packages.turnstile_core.health import build_health_service
from packages.turnstile_core.migrations import run_startup_migrations
from packages.turnstile_core.server import DispatchHarness, HarnessState
from packages.turnstile_shared.config import TurnstileSettings, load_settings
from packages.turnstile_shared.logging import (
    RpcCallConcern,
    RpcLoggingConcern,
    RpcTracingConcern,
    configure_logging,
    get_logger,
)
from services.action.rpc_auth import build_rpc_auth
from services.state.access_authority import AccessAuthorityRuntime

_LOGGER = get_logger(__name__)


class _ShutdownSignals:
    """First signal requests a graceful stop; a second one forces shutdown."""

    def __init__(self) -> None:
        self.requested = threading.Event()
        self.harness: DispatchHarness | None = None

    def __call__(self, signum: int, _frame: object) -> None:
        if not self.requested.is_set():
            _LOGGER.info("shutdown requested", extra={"signal": signal.Signals(signum).name})
            self.requested.set()
            return
        harness = self.harness
        if harness is not None and harness.state is HarnessState.STARTED:
            _LOGGER.warning(
                "second shutdown signal; forcing shutdown",
                extra={"signal": signal.Signals(signum).name},
            )
            harness.force_shutdown()


def _call_concerns(settings: TurnstileSettings) -> tuple[RpcCallConcern, ...]:
    concerns: list[RpcCallConcern] = [RpcLoggingConcern()]
    if settings.observability.rpc.enabled:
        concerns.append(RpcTracingConcern(tracer_name=settings.observability.rpc.tracer_name))
    return tuple(concerns)


def main() -> None:
    """Load settings, build the authorization stack, serve until signalled."""
    config_path = os.getenv("TURNSTILE_CONFIG_FILE", "").strip()
    settings = load_settings(config_path=Path(config_path) if config_path else None)
    configure_logging(
        level=settings.logging.level,
        json_output=settings.logging.json_output,
        service=settings.logging.service,
        environment=settings.logging.environment,
    )
    grpc_settings = settings.components.core_grpc

    migration_result = None
    if grpc_settings.run_migrations_on_startup:
        migration_result = run_startup_migrations(settings=settings)

    runtime = AccessAuthorityRuntime.from_settings(settings)
    rpc_auth = build_rpc_auth(settings=settings, repository=runtime.repository())
    harness = DispatchHarness(
        grpc_settings,
        rpc_auth.composer,
        strict_policy_loading=rpc_auth.settings.strict_policy_loading,
        concerns=_call_concerns(settings),
    )
    harness.add_service(
        build_health_service(
            database_check=runtime.is_healthy,
            services=lambda: harness.registered_services,
        )
    )

    signals = _ShutdownSignals()
    signal.signal(signal.SIGINT, signals)
    signal.signal(signal.SIGTERM, signals)

    harness.start()
    signals.harness = harness
    _LOGGER.info(
        "turnstile startup completed",
        extra={"migrations_executed": migration_result is not None},
    )
    try:
        while not signals.requested.wait(timeout=1.0):
            pass
        harness.stop(grpc_settings.shutdown_grace_seconds)
    finally:
        rpc_auth.close()
        runtime.dispose()
        _LOGGER.info("turnstile stopped")


if __name__ == "__main__":
    main()
