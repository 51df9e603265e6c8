"""Database connection factory.

Resolves which database to talk to and builds the objects that talk to it:

1. Profiles come from db.toml (``[profiles.<name>]``) and from
   ``DATABASE_URL*`` lines in .env (see ``db_snapshot.config.loader``).
2. The active profile is chosen by explicit name, the ``{prefix}DB_PROFILE``
   env var, the ``.db-profile`` lock file, or (when only one profile
   exists) that profile.
3. ``get_adapter()`` builds a fresh, uncached adapter for the resolved URL;
   ``connect_and_validate()`` tests it and records the lock file.
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote, urlparse

from db_snapshot.adapters import AsyncPostgresAdapter, DatabaseClient
from db_snapshot.config.loader import load_profiles
from db_snapshot.config.models import ConnectionResult, DatabaseProfile
from db_snapshot.errors import ConfigurationError, ProfileNotFoundError
from db_snapshot.schema.introspector import SchemaIntrospector

logger = logging.getLogger(__name__)

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip() or None
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection test.
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


# ============================================================================
# Profile Resolution
# ============================================================================


def get_active_profile_name(
    env_prefix: str = "",
    profiles: dict[str, DatabaseProfile] | None = None,
) -> str:
    """Get active profile name.

    Priority:
    1. ``{env_prefix}DB_PROFILE`` env var (for initial connect or CI/CD)
    2. .db-profile file (profile from a previous successful connect)
    3. The only profile, when exactly one is configured
    4. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix for the env var (e.g. ``"MC_"`` reads
            ``MC_DB_PROFILE``)
        profiles: Known profiles, used for the single-profile fallback

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    if profiles and len(profiles) == 1:
        return next(iter(profiles))

    available = ", ".join(profiles) if profiles else "none"
    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: db-snapshot connect --profile <name>  (or set {env_var})\n"
        f"Available profiles: {available}"
    )


def get_active_profile(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
    env_path: Path | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile is configured or the name is unknown
    """
    profiles = load_profiles(config_path, env_path)
    if not profiles:
        raise ProfileNotFoundError(
            "No database connection found.\n"
            "Add [profiles.<name>] to db.toml or DATABASE_URL=... to .env."
        )

    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix, profiles)

    if profile_name not in profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found.\n"
            f"Available profiles: {', '.join(profiles)}"
        )

    return profile_name, profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted

    Raises:
        ConfigurationError: If the URL is not a PostgreSQL URL
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))

    scheme = urlparse(url).scheme
    if not scheme.startswith("postgres"):
        raise ConfigurationError(f"Not a PostgreSQL connection URL (scheme '{scheme}')")
    return url


# ============================================================================
# Object Construction
# ============================================================================


def _resolve_target(
    profile_name: str | None,
    database_url: str | None,
    env_prefix: str,
    config_path: Path | None,
    env_path: Path | None,
) -> str:
    if database_url:
        return database_url
    _, profile = get_active_profile(profile_name, env_prefix, config_path, env_path)
    return resolve_url(profile)


async def get_adapter(
    profile_name: str | None = None,
    database_url: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
    env_path: Path | None = None,
) -> DatabaseClient:
    """Create an adapter for an explicit URL or the active profile.

    Each call creates a new adapter; callers own it and must ``close()`` it.

    Raises:
        ProfileNotFoundError: If no profile can be resolved
        ConfigurationError: If the resolved URL is unusable
    """
    url = _resolve_target(profile_name, database_url, env_prefix, config_path, env_path)
    return AsyncPostgresAdapter(url)


async def connect_and_validate(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
    env_path: Path | None = None,
    write_lock: bool = True,
) -> ConnectionResult:
    """Connect to a profile's database and record it as the active one.

    Opens an introspection connection, runs ``SELECT 1`` and counts the
    snapshot-eligible tables.  On success the profile name is written to
    the .db-profile lock file (unless ``write_lock`` is False).

    Returns:
        ConnectionResult with success status; never raises for connection
        or configuration problems.

    Example:
        >>> result = await connect_and_validate("local")
        >>> if result.success:
        ...     print(f"Connected to {result.profile_name}")
    """
    try:
        profile_name, profile = get_active_profile(profile_name, env_prefix, config_path, env_path)
        url = resolve_url(profile)
    except ConfigurationError as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    try:
        async with SchemaIntrospector(url) as introspector:
            await introspector.test_connection()
            table_count = len(await introspector.get_table_names())
    except Exception as e:
        logger.debug(f"Connection to profile '{profile_name}' failed", exc_info=True)
        return ConnectionResult(
            success=False,
            profile_name=profile_name,
            error=f"Failed to connect to database: {e}",
        )

    if write_lock:
        write_profile_lock(profile_name)

    return ConnectionResult(success=True, profile_name=profile_name, table_count=table_count)
