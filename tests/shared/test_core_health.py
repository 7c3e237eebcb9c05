"""Tests for the built-in health service."""

from __future__ import annotations

import json

from packages.turnstile_core.health import (
    HEALTH_PACKAGE,
    HEALTH_SERVICE_NAME,
    build_health_service,
    evaluate_health,
)


def test_evaluate_health_reflects_database_check() -> None:
    report = evaluate_health(database_check=lambda: False, services=lambda: ("a.B",))

    assert report.ready is False
    assert report.database is False
    assert report.services == ("a.B",)


def test_health_service_is_registered_without_authorization() -> None:
    """Health must stay callable without credentials."""
    service = build_health_service(database_check=lambda: True, services=lambda: ())

    assert service.apply_auth is False
    assert service.qualified_name == f"{HEALTH_PACKAGE}.{HEALTH_SERVICE_NAME}"


def test_health_check_returns_json_document() -> None:
    service = build_health_service(
        database_check=lambda: True, services=lambda: ("turnstile.Health",)
    )

    payload = service.handlers["Check"](b"", None)

    assert json.loads(payload) == {
        "ready": True,
        "database": True,
        "services": ["turnstile.Health"],
    }
