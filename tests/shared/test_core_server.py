"""Tests for dispatch harness registration, lifecycle and bind behavior."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import grpc
import pytest

from packages.turnstile_core.server import (
    DispatchHarness,
    HarnessStartError,
    HarnessState,
    HarnessStateError,
    MethodCodec,
    ServiceDefinition,
    load_server_credentials,
)
from packages.turnstile_shared.config import CoreGrpcSettings
from services.action.rpc_auth import PerEndpointPolicy


class _StoppedEvent:
    def __init__(self) -> None:
        self.waited = False

    def wait(self, timeout: float | None = None) -> bool:
        self.waited = True
        return True


class _FakeServer:
    """Test double for gRPC server startup behavior."""

    def __init__(self, *, bound_port: int = 50055) -> None:
        self.bound_port = bound_port
        self.bound_address = ""
        self.secure = False
        self.started = False
        self.stop_calls: list[float | None] = []
        self.generic_handlers: list[Any] = []
        self.stopped_event = _StoppedEvent()

    def add_generic_rpc_handlers(self, handlers: tuple[Any, ...]) -> None:
        self.generic_handlers.extend(handlers)

    def add_insecure_port(self, address: str) -> int:
        self.bound_address = address
        return self.bound_port

    def add_secure_port(self, address: str, _credentials: Any) -> int:
        self.bound_address = address
        self.secure = True
        return self.bound_port

    def start(self) -> None:
        self.started = True

    def stop(self, grace: float | None) -> _StoppedEvent:
        self.stop_calls.append(grace)
        return self.stopped_event

    def wait_for_termination(self, timeout: float | None = None) -> bool:
        return True


class _RecordingComposer:
    """Composer stand-in that records composed policies and optionally fails."""

    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.policies: list[Any] = []

    def compose(self, handlers, policy):
        self.policies.append(policy)
        if self.error is not None:
            raise self.error
        return {name: _tagged(handler) for name, handler in handlers.items()}


def _tagged(handler):
    def _composed(request, context):
        return ("guarded", handler(request, context))

    return _composed


def _echo(request, _context):
    return request


def _harness(
    *, server: _FakeServer | None = None, composer: Any = None, strict: bool = False,
    settings: CoreGrpcSettings | None = None,
) -> tuple[DispatchHarness, _FakeServer]:
    fake = server or _FakeServer()
    harness = DispatchHarness(
        settings or CoreGrpcSettings(bind_host="127.0.0.1", bind_port=50055),
        composer or _RecordingComposer(),
        strict_policy_loading=strict,
        server_factory=lambda _settings: fake,
        concerns=(),
    )
    return harness, fake


def test_start_registers_services_and_binds() -> None:
    """Harness should register generic handlers, bind and start the server."""
    harness, server = _harness()
    harness.add_service(ServiceDefinition(service_name="UserService", handlers={"getUser": _echo}))

    returned = harness.start()

    assert returned is server
    assert server.started is True
    assert server.bound_address == "127.0.0.1:50055"
    assert len(server.generic_handlers) == 1
    assert harness.state is HarnessState.STARTED
    assert harness.bound_port == 50055


def test_add_service_applies_per_endpoint_policy_by_service_name() -> None:
    composer = _RecordingComposer()
    harness, _ = _harness(composer=composer)

    harness.add_service(
        ServiceDefinition(service_name="UserService", package="acme.v1", handlers={"getUser": _echo})
    )

    assert composer.policies == [PerEndpointPolicy(service_name="UserService")]
    assert harness.registered_services == ("acme.v1.UserService",)


def test_add_service_opt_out_skips_composition() -> None:
    composer = _RecordingComposer()
    harness, _ = _harness(composer=composer)

    harness.add_service(
        ServiceDefinition(service_name="Health", handlers={"Check": _echo}, apply_auth=False)
    )

    assert composer.policies == []


def test_policy_failure_falls_back_to_unprotected_handlers(caplog) -> None:
    """A policy load failure should log and register the original handlers."""
    harness, server = _harness(composer=_RecordingComposer(error=RuntimeError("db down")))

    with caplog.at_level("WARNING"):
        harness.add_service(
            ServiceDefinition(service_name="UserService", handlers={"getUser": _echo})
        )
    harness.start()

    assert "registering service unprotected" in caplog.text
    assert server.started is True


def test_policy_failure_propagates_in_strict_mode() -> None:
    harness, _ = _harness(composer=_RecordingComposer(error=RuntimeError("db down")), strict=True)

    with pytest.raises(RuntimeError, match="db down"):
        harness.add_service(
            ServiceDefinition(service_name="UserService", handlers={"getUser": _echo})
        )
    assert harness.registered_services == ()


def test_duplicate_service_registration_is_rejected() -> None:
    harness, _ = _harness()
    harness.add_service(ServiceDefinition(service_name="UserService", handlers={}))

    with pytest.raises(ValueError):
        harness.add_service(ServiceDefinition(service_name="UserService", handlers={}))


def test_start_fails_when_bind_returns_port_zero() -> None:
    harness, server = _harness(server=_FakeServer(bound_port=0))

    with pytest.raises(HarnessStartError):
        harness.start()
    assert server.started is False
    assert harness.state is HarnessState.CREATED


def test_registration_after_start_is_rejected() -> None:
    harness, _ = _harness()
    harness.start()

    with pytest.raises(HarnessStateError):
        harness.add_service(ServiceDefinition(service_name="Late", handlers={}))


def test_stop_uses_grace_and_is_terminal() -> None:
    harness, server = _harness()
    harness.start()

    harness.stop(2.5)

    assert server.stop_calls == [2.5]
    assert server.stopped_event.waited is True
    assert harness.state is HarnessState.STOPPED
    with pytest.raises(HarnessStateError):
        harness.stop()
    with pytest.raises(HarnessStateError):
        harness.force_shutdown()
    with pytest.raises(HarnessStateError):
        harness.start()


def test_stop_defaults_to_configured_grace() -> None:
    harness, server = _harness(
        settings=CoreGrpcSettings(bind_port=50055, shutdown_grace_seconds=7.0)
    )
    harness.start()

    harness.stop()

    assert server.stop_calls == [7.0]


def test_force_shutdown_aborts_immediately() -> None:
    harness, server = _harness()
    harness.start()

    harness.force_shutdown()

    assert server.stop_calls == [None]
    assert harness.state is HarnessState.FORCE_SHUTDOWN
    with pytest.raises(HarnessStateError):
        harness.add_service(ServiceDefinition(service_name="Late", handlers={}))


def test_stop_before_start_is_rejected() -> None:
    harness, _ = _harness()

    with pytest.raises(HarnessStateError):
        harness.stop()


def test_tls_falls_back_to_insecure_when_files_missing(tmp_path: Path, caplog) -> None:
    settings = CoreGrpcSettings(
        bind_port=50055,
        use_tls=True,
        tls_cert_path=tmp_path / "missing.crt",
        tls_key_path=tmp_path / "missing.key",
    )
    harness, server = _harness(settings=settings)

    with caplog.at_level("WARNING"):
        harness.start()

    assert server.secure is False
    assert "falling back to insecure port" in caplog.text


def test_tls_binds_secure_port_when_credentials_load(monkeypatch) -> None:
    monkeypatch.setattr(
        "packages.turnstile_core.server.load_server_credentials", lambda _settings: object()
    )
    harness, server = _harness(settings=CoreGrpcSettings(bind_port=50055, use_tls=True))

    harness.start()

    assert server.secure is True


def test_load_server_credentials_requires_client_auth_with_ca(tmp_path: Path, monkeypatch) -> None:
    for name in ("server.crt", "server.key", "ca.crt"):
        (tmp_path / name).write_bytes(b"pem")
    captured: dict[str, Any] = {}

    def _fake_credentials(**kwargs):
        captured.update(kwargs)
        return "credentials"

    monkeypatch.setattr(grpc, "ssl_server_credentials", _fake_credentials)

    result = load_server_credentials(
        CoreGrpcSettings(
            tls_cert_path=tmp_path / "server.crt",
            tls_key_path=tmp_path / "server.key",
            tls_ca_path=tmp_path / "ca.crt",
        )
    )

    assert result == "credentials"
    assert captured["require_client_auth"] is True
    assert captured["private_key_certificate_chain_pairs"] == [(b"pem", b"pem")]


def test_method_codec_defaults_pass_bytes_through() -> None:
    codec = MethodCodec()

    assert codec.request_deserializer is None
    assert codec.response_serializer is None


def test_wait_for_termination_requires_running_server() -> None:
    """Waiting is only valid while started; terminal states reject it."""
    harness, _ = _harness()

    with pytest.raises(HarnessStateError):
        harness.wait_for_termination(0)
    harness.start()
    assert harness.wait_for_termination(0) is True

    harness.stop()
    with pytest.raises(HarnessStateError):
        harness.wait_for_termination(0)


def test_wait_for_termination_rejected_after_force_shutdown() -> None:
    harness, _ = _harness()
    harness.start()
    harness.force_shutdown()

    with pytest.raises(HarnessStateError):
        harness.wait_for_termination(0)
