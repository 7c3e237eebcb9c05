"""Settings loading entrypoint with an explicit YAML path override.

Precedence is always:
1) explicit overrides passed by the caller (CLI flags, tests)
2) ``TURNSTILE_``-prefixed environment variables (``__`` nests keys)
3) the YAML config file
4) model defaults

Example: ``TURNSTILE_LOGGING__LEVEL=DEBUG`` -> ``logging.level = "DEBUG"``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from .models import _ACTIVE_CONFIG_PATH, DEFAULT_CONFIG_PATH, TurnstileSettings


def load_settings(
    *,
    overrides: Mapping[str, Any] | None = None,
    config_path: str | Path | None = None,
) -> TurnstileSettings:
    """Build root settings, reading YAML from ``config_path`` when given."""
    resolved = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    token = _ACTIVE_CONFIG_PATH.set(resolved)
    try:
        return TurnstileSettings(**dict(overrides or {}))
    finally:
        _ACTIVE_CONFIG_PATH.reset(token)
