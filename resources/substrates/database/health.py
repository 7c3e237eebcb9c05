"""Health-check utilities for the shared database substrate."""

from __future__ import annotations

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from packages.turnstile_shared.logging import get_logger

_LOGGER = get_logger(__name__)


def ping(engine: Engine, *, timeout_seconds: float = 1.0) -> bool:
    """Return True when the database can answer a trivial query quickly."""
    try:
        with engine.connect() as conn:
            if engine.dialect.name == "postgresql":
                timeout_ms = max(1, int(timeout_seconds * 1000))
                conn.execute(
                    text("SELECT set_config('statement_timeout', :timeout_value, false)"),
                    {"timeout_value": f"{timeout_ms}ms"},
                )
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as exc:
        _LOGGER.warning(
            "database ping failed",
            extra={"exception_type": type(exc).__name__},
        )
        return False
