"""Startup migration runner for the access authority schema."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from alembic import command
from alembic.config import Config

from packages.turnstile_shared.config import TurnstileSettings
from packages.turnstile_shared.logging import get_logger
from resources.substrates.database import resolve_database_settings
from services.state import access_authority

_LOGGER = get_logger(__name__)

ACCESS_AUTHORITY_MIGRATIONS = Path(access_authority.__file__).resolve().parent / "migrations"


class MigrationExecutionError(RuntimeError):
    """Raised when startup migration execution fails."""


@dataclass(frozen=True, slots=True)
class MigrationRunResult:
    """Summary of one startup migration pass."""

    database_backend: str
    executed_alembic_configs: tuple[str, ...]


def build_alembic_config(
    database_url: str, *, migrations_dir: Path = ACCESS_AUTHORITY_MIGRATIONS
) -> Config:
    """Return an Alembic config targeting ``database_url`` without touching logging."""
    config = Config(str(migrations_dir / "alembic.ini"))
    config.set_main_option("script_location", str(migrations_dir))
    config.set_main_option("version_locations", str(migrations_dir / "versions"))
    config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    config.attributes["configure_logger"] = False
    return config


def run_startup_migrations(
    *,
    settings: TurnstileSettings,
    upgrade_fn: Callable[[Config, str], None] = command.upgrade,
) -> MigrationRunResult:
    """Upgrade the access authority schema to head."""
    database = resolve_database_settings(settings)
    config_path = ACCESS_AUTHORITY_MIGRATIONS / "alembic.ini"
    try:
        upgrade_fn(build_alembic_config(database.url), "head")
    except Exception as exc:
        raise MigrationExecutionError(
            f"startup migration failed for config '{config_path}'"
        ) from exc

    _LOGGER.info(
        "startup migrations completed",
        extra={"database_backend": database.backend_name, "alembic_config": str(config_path)},
    )
    return MigrationRunResult(
        database_backend=database.backend_name,
        executed_alembic_configs=(str(config_path),),
    )
