"""Pydantic models for database configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml or .env."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"  # Defaults to postgres


class SnapshotSettings(BaseModel):
    """The ``[snapshot]`` section of db.toml."""

    schema_name: str = Field(default="public", alias="schema")
    backups_dir: str = "."
    batch_size: int = Field(default=1000, gt=0)
    excluded_tables: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class DatabaseConfig(BaseModel):
    """Complete database configuration from db.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    snapshot: SnapshotSettings = Field(default_factory=SnapshotSettings)


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_validate()."""

    success: bool
    profile_name: str | None = None
    table_count: int = 0
    error: str | None = None
