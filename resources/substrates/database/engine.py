"""SQLAlchemy engine construction for the shared database substrate."""

from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from resources.substrates.database.config import DatabaseSettings


def create_database_engine(config: DatabaseSettings) -> Engine:
    """Construct a configured SQLAlchemy engine for ``config.url``.

    SQLite engines are shared across the gRPC worker threads; in-memory SQLite
    databases are pinned to a single connection so every session sees the
    same data.
    """
    if config.is_sqlite:
        kwargs: dict[str, object] = {
            "connect_args": {"check_same_thread": False},
            "echo": config.echo,
        }
        if make_url(config.url).database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(config.url, **kwargs)

    return create_engine(
        config.url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout_seconds,
        pool_pre_ping=config.pool_pre_ping,
        connect_args={"connect_timeout": int(config.connect_timeout_seconds)},
    )
