"""Shared SQL database substrate primitives for Turnstile services."""

from resources.substrates.database.config import (
    SUBSTRATE_COMPONENT_ID,
    DatabaseSettings,
    resolve_database_settings,
)
from resources.substrates.database.engine import create_database_engine
from resources.substrates.database.errors import normalize_database_error
from resources.substrates.database.health import ping
from resources.substrates.database.session import (
    create_session_factory,
    transactional_session,
)

__all__ = [
    "SUBSTRATE_COMPONENT_ID",
    "DatabaseSettings",
    "create_database_engine",
    "create_session_factory",
    "normalize_database_error",
    "ping",
    "resolve_database_settings",
    "transactional_session",
]
