"""Configuration helpers for the asset store."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

__all__ = [
    "DATABASE_URL_ENV_VAR",
    "DEFAULT_DATABASE_URL",
    "ECHO_SQL_ENV_VAR",
    "StoreConfig",
    "configure",
    "get_config",
]

DATABASE_URL_ENV_VAR: Final[str] = "TARO_ASSETDB_DATABASE_URL"
"""Environment variable that overrides the default database URL."""

ECHO_SQL_ENV_VAR: Final[str] = "TARO_ASSETDB_ECHO_SQL"
"""Environment variable that enables SQL statement logging when truthy."""

DEFAULT_DATABASE_URL: Final[str] = "sqlite+pysqlite:///:memory:"
"""Default connection string used for in-memory testing and local usage."""

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Runtime configuration for the asset store."""

    database_url: str
    echo: bool = False

    def __post_init__(self) -> None:
        normalized = self.database_url.strip()
        if not normalized:
            raise ValueError("Database URL cannot be empty")
        object.__setattr__(self, "database_url", normalized)


_CONFIG: StoreConfig | None = None


def get_config() -> StoreConfig:
    """Return the cached :class:`StoreConfig` instance."""

    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _build_config()
    return _CONFIG


def configure(
    *,
    database_url: str | None = None,
    echo: bool | None = None,
) -> StoreConfig:
    """Rebuild the global configuration with optional overrides."""

    global _CONFIG
    _CONFIG = _build_config(database_url=database_url, echo=echo)
    return _CONFIG


def _build_config(
    *,
    database_url: str | None = None,
    echo: bool | None = None,
) -> StoreConfig:
    if database_url is None:
        database_url = os.environ.get(DATABASE_URL_ENV_VAR) or DEFAULT_DATABASE_URL
    if echo is None:
        echo = os.environ.get(ECHO_SQL_ENV_VAR, "").strip().lower() in _TRUTHY
    return StoreConfig(database_url=database_url, echo=echo)
