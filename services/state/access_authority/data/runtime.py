"""Access authority runtime wiring over the shared database substrate."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from packages.turnstile_shared.config import TurnstileSettings
from resources.substrates.database import (
    DatabaseSettings,
    create_database_engine,
    create_session_factory,
    ping,
    resolve_database_settings,
)
from services.state.access_authority.data.repository import SqlAccessRepository


@dataclass(frozen=True)
class AccessAuthorityRuntime:
    """Concrete handle for SQL-backed access authority storage."""

    engine: Engine
    session_factory: sessionmaker[Session]
    health_timeout_seconds: float

    @classmethod
    def from_settings(cls, settings: TurnstileSettings) -> "AccessAuthorityRuntime":
        """Build the runtime from typed application settings."""
        return cls.from_database_settings(resolve_database_settings(settings))

    @classmethod
    def from_database_settings(cls, config: DatabaseSettings) -> "AccessAuthorityRuntime":
        engine = create_database_engine(config)
        return cls(
            engine=engine,
            session_factory=create_session_factory(engine),
            health_timeout_seconds=config.health_timeout_seconds,
        )

    def repository(self) -> SqlAccessRepository:
        """Return a repository bound to this runtime's sessions."""
        return SqlAccessRepository(self.session_factory)

    def is_healthy(self) -> bool:
        """Return ``True`` when the backing database is reachable."""
        return ping(self.engine, timeout_seconds=self.health_timeout_seconds)

    def dispose(self) -> None:
        self.engine.dispose()
