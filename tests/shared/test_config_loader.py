"""Tests for pydantic-settings-backed shared configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from packages.turnstile_shared.config import load_settings, resolve_component_settings
from resources.substrates.database import DatabaseSettings, resolve_database_settings
from services.action.rpc_auth import (
    SERVICE_COMPONENT_ID,
    RpcAuthSettings,
    resolve_rpc_auth_settings,
)


def _write_yaml(path: Path) -> Path:
    path.write_text(
        "\n".join(
            [
                "logging:",
                "  level: WARNING",
                "components:",
                "  core_grpc:",
                "    bind_port: 6000",
                "  substrate:",
                "    database:",
                "      pool_size: 7",
                "  service:",
                "    rpc_auth:",
                "      key_validity_days: 14",
                "      token_verification_key: from-yaml",
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_load_settings_uses_turnstile_precedence_cascade(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Overrides should beat env, env should beat YAML, then defaults."""
    config_file = _write_yaml(tmp_path / "turnstile.yaml")
    monkeypatch.setenv("TURNSTILE_LOGGING__LEVEL", "ERROR")
    monkeypatch.setenv("TURNSTILE_COMPONENTS__CORE_GRPC__MAX_WORKERS", "4")
    monkeypatch.setenv("TURNSTILE_COMPONENTS__SUBSTRATE__DATABASE__POOL_SIZE", "9")

    settings = load_settings(
        overrides={"logging": {"level": "DEBUG"}}, config_path=config_file
    )
    database = resolve_database_settings(settings)
    rpc_auth = resolve_rpc_auth_settings(settings)

    assert settings.logging.level == "DEBUG"
    assert settings.components.core_grpc.bind_port == 6000
    assert settings.components.core_grpc.max_workers == 4
    assert database.pool_size == 9
    assert rpc_auth.key_validity_days == 14
    assert rpc_auth.token_verification_key.get_secret_value() == "from-yaml"


def test_load_settings_uses_model_defaults_when_sources_missing(tmp_path: Path) -> None:
    settings = load_settings(config_path=tmp_path / "absent.yaml")
    rpc_auth = resolve_component_settings(
        settings=settings, component_id=SERVICE_COMPONENT_ID, model=RpcAuthSettings
    )

    assert settings.logging.service == "turnstile"
    assert settings.components.core_grpc.bind_address == "0.0.0.0:50051"
    assert rpc_auth.metadata_key == "service-authorization"
    assert rpc_auth.key_validity_days == 30
    assert rpc_auth.token_verification_key is None
    assert rpc_auth.strict_policy_loading is False


def test_flat_component_keys_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_settings(
            overrides={"components": {"service_rpc_auth": {}}},
            config_path=tmp_path / "absent.yaml",
        )


def test_component_settings_reject_unknown_keys(tmp_path: Path) -> None:
    settings = load_settings(
        overrides={"components": {"substrate": {"database": {"pool_sizes": 3}}}},
        config_path=tmp_path / "absent.yaml",
    )

    with pytest.raises(ValidationError):
        resolve_component_settings(
            settings=settings, component_id="substrate_database", model=DatabaseSettings
        )
