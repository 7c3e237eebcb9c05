"""Built-in ``turnstile.Health`` service reporting process readiness."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from packages.turnstile_core.server import ServiceDefinition
from packages.turnstile_shared.logging import get_logger

_LOGGER = get_logger(__name__)

HEALTH_PACKAGE = "turnstile"
HEALTH_SERVICE_NAME = "Health"


class HealthReport(BaseModel):
    """Readiness document returned by ``turnstile.Health/Check``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ready: bool
    database: bool
    services: tuple[str, ...] = Field(default_factory=tuple)


def evaluate_health(
    *, database_check: Callable[[], bool], services: Callable[[], tuple[str, ...]]
) -> HealthReport:
    """Run the database check and report the registered services."""
    database_ready = database_check()
    if not database_ready:
        _LOGGER.warning("health check reports database unavailable")
    return HealthReport(ready=database_ready, database=database_ready, services=services())


def build_health_service(
    *, database_check: Callable[[], bool], services: Callable[[], tuple[str, ...]]
) -> ServiceDefinition:
    """Return the health service definition; it is registered without authorization."""

    def check(_request: Any, _context: Any) -> bytes:
        report = evaluate_health(database_check=database_check, services=services)
        return report.model_dump_json().encode("utf-8")

    return ServiceDefinition(
        service_name=HEALTH_SERVICE_NAME,
        package=HEALTH_PACKAGE,
        handlers={"Check": check},
        apply_auth=False,
    )
