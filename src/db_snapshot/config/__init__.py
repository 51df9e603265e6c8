"""Configuration management: profiles, TOML/.env loading, and config models.

Usage:
    >>> from db_snapshot.config import load_db_config, load_profiles, DatabaseConfig
"""

from db_snapshot.config.loader import load_db_config, load_env_connections, load_profiles
from db_snapshot.config.models import (
    ConnectionResult,
    DatabaseConfig,
    DatabaseProfile,
    SnapshotSettings,
)

__all__ = [
    "load_db_config",
    "load_env_connections",
    "load_profiles",
    "DatabaseConfig",
    "DatabaseProfile",
    "SnapshotSettings",
    "ConnectionResult",
]
