"""Tests for stdout logging configuration and context propagation."""

from __future__ import annotations

import json
import logging

import pytest

from packages.turnstile_shared.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    log_context,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    clear_context()
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    clear_context()


def test_json_output_includes_context_and_extra(capsys) -> None:
    configure_logging(level="INFO", service="turnstile", environment="test")

    with log_context({"call_id": "abc123"}):
        get_logger("turnstile.test").info("hello", extra={"caller": "svc-a"})

    line = capsys.readouterr().out.strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "turnstile.test"
    assert payload["service"] == "turnstile"
    assert payload["environment"] == "test"
    assert payload["call_id"] == "abc123"
    assert payload["caller"] == "svc-a"


def test_plain_output_appends_key_values(capsys) -> None:
    configure_logging(level="INFO", json_output=False)

    get_logger("turnstile.test").warning("denied", extra={"caller": "svc-b"})

    line = capsys.readouterr().out.strip().splitlines()[-1]
    assert "WARNING turnstile.test denied" in line
    assert "caller=svc-b" in line


def test_reconfiguring_does_not_stack_handlers() -> None:
    configure_logging(level="INFO")
    configure_logging(level="DEBUG")

    assert len(logging.getLogger().handlers) == 1
    assert logging.getLogger().level == logging.DEBUG


def test_log_context_restores_outer_values() -> None:
    bind_context(caller="outer")

    with log_context({"caller": "inner", "call_id": "1"}):
        assert get_context() == {"caller": "inner", "call_id": "1"}

    assert get_context() == {"caller": "outer"}


def test_bind_context_skips_none_and_clear_removes_keys() -> None:
    bind_context(caller="svc-a", credential_kind=None, call_id=7)

    assert get_context() == {"caller": "svc-a", "call_id": "7"}
    clear_context("caller")
    assert get_context() == {"call_id": "7"}
