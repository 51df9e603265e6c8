"""Load database profiles from db.toml and .env files."""

import logging
import re
import tomllib
from pathlib import Path

from db_snapshot.config.models import DatabaseConfig, DatabaseProfile, SnapshotSettings

logger = logging.getLogger(__name__)

_ENV_URL_LINE = re.compile(r"^DATABASE_URL(?:_(?P<suffix>\w+))?\s*=")


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Load database configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ``Path.cwd() / "db.toml"``)

    Returns:
        DatabaseConfig with all profiles and snapshot settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create a db.toml with [profiles.<name>] sections or add DATABASE_URL to .env."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    return DatabaseConfig(
        profiles=profiles,
        snapshot=SnapshotSettings(**data.get("snapshot", {})),
    )


def load_env_connections(env_path: Path | None = None) -> dict[str, DatabaseProfile]:
    """Discover connection URLs in a .env file.

    Every ``DATABASE_URL=`` or ``DATABASE_URL_<SUFFIX>=`` line is one
    connection.  It is named after the comment line right above it, else
    after the lower-cased suffix, else ``unknown``:

        # Production
        DATABASE_URL=postgresql://...        -> "Production"
        DATABASE_URL_STAGING=postgresql://...  -> "staging"

    Args:
        env_path: Path to the .env file (default: ``Path.cwd() / ".env"``)

    Returns:
        Dict of connection name -> DatabaseProfile.  Empty if the file does
        not exist.  A later line with the same name replaces the earlier one.
    """
    if env_path is None:
        env_path = Path.cwd() / ".env"

    if not env_path.exists():
        return {}

    connections: dict[str, DatabaseProfile] = {}
    comment = ""

    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("#"):
            comment = stripped[1:].strip()
            continue

        match = _ENV_URL_LINE.match(stripped)
        if match:
            value = stripped.partition("=")[2].strip().strip("'\"")
            suffix = match.group("suffix")
            name = comment or (suffix.lower() if suffix else "unknown")
            if name in connections:
                logger.warning(f"Duplicate connection name '{name}' in {env_path}; keeping the last one")
            connections[name] = DatabaseProfile(url=value, description=f"from {env_path.name}")

        comment = ""

    return connections


def load_profiles(
    config_path: Path | None = None,
    env_path: Path | None = None,
) -> dict[str, DatabaseProfile]:
    """Merge db.toml profiles with .env connections (db.toml wins on clashes).

    A missing db.toml is not an error here; the result may be empty.
    """
    profiles = load_env_connections(env_path)
    try:
        config = load_db_config(config_path)
    except FileNotFoundError:
        logger.debug("No db.toml found; using .env connections only")
        return profiles
    profiles.update(config.profiles)
    return profiles
