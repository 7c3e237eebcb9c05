"""Shared fixtures for integration-oriented test modules."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from alembic import command

from packages.turnstile_core.migrations import build_alembic_config
from resources.substrates.database import DatabaseSettings
from services.state.access_authority import AccessAuthorityRuntime


@pytest.fixture(scope="function")
def migrated_runtime(tmp_path: Path) -> Iterator[AccessAuthorityRuntime]:
    """Yield a SQLite-backed runtime whose schema was built by Alembic."""
    url = f"sqlite:///{tmp_path / 'turnstile.db'}"
    command.upgrade(build_alembic_config(url), "head")
    runtime = AccessAuthorityRuntime.from_database_settings(DatabaseSettings(url=url))
    try:
        yield runtime
    finally:
        runtime.dispose()
