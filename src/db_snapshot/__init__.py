"""db-snapshot: PostgreSQL snapshot and restore engine.

Introspects a live schema, writes a replayable SQL artifact of its
structure and data (in foreign key order), and replays such artifacts
transactionally.  Also provides drop/truncate maintenance, multi-profile
configuration, and the ``db-snapshot`` CLI.

Usage:
    from db_snapshot import SchemaIntrospector, create_snapshot, write_artifact
    from db_snapshot import get_adapter, replay_file
    from db_snapshot import DatabaseProfile, DatabaseConfig, load_db_config
"""

__version__ = "0.1.0"

# Adapters
from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.adapters.postgres import AsyncPostgresAdapter

# Config
from db_snapshot.config.loader import load_db_config, load_profiles
from db_snapshot.config.models import DatabaseConfig, DatabaseProfile

# Errors
from db_snapshot.errors import (
    ConfigurationError,
    CycleDetected,
    GenerationError,
    IntrospectionError,
    ProfileNotFoundError,
    ReplayStatementError,
    SnapshotError,
)

# Factory
from db_snapshot.factory import connect_and_validate, get_adapter, resolve_url

# Schema
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.ordering import constructive_order, destructive_order

# Snapshot
from db_snapshot.snapshot.assembler import create_snapshot, write_artifact
from db_snapshot.snapshot.replay import replay_artifact, replay_file

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncPostgresAdapter",
    # Config
    "load_db_config",
    "load_profiles",
    "DatabaseProfile",
    "DatabaseConfig",
    # Errors
    "SnapshotError",
    "IntrospectionError",
    "CycleDetected",
    "GenerationError",
    "ReplayStatementError",
    "ConfigurationError",
    "ProfileNotFoundError",
    # Factory
    "get_adapter",
    "connect_and_validate",
    "resolve_url",
    # Schema
    "SchemaIntrospector",
    "constructive_order",
    "destructive_order",
    # Snapshot
    "create_snapshot",
    "write_artifact",
    "replay_artifact",
    "replay_file",
]
