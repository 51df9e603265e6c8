"""Snapshot creation, replay, and maintenance.

Usage:
    from db_snapshot.snapshot import create_snapshot, write_artifact
    from db_snapshot.snapshot import replay_file, drop_all, truncate_tables
    from db_snapshot.snapshot import get_dump_file_path, find_artifacts
"""

from db_snapshot.snapshot.assembler import (
    Artifact,
    DumpSummary,
    Snapshot,
    StatementGroup,
    build_data_groups,
    build_schema_groups,
    create_snapshot,
    write_artifact,
)
from db_snapshot.snapshot.literals import quote_literal, to_literal
from db_snapshot.snapshot.maintenance import (
    DropPlan,
    drop_all,
    plan_drop,
    truncate_statement,
    truncate_tables,
)
from db_snapshot.snapshot.paths import find_artifacts, get_dump_file_path, latest_artifact
from db_snapshot.snapshot.replay import (
    ReplayResult,
    replay_artifact,
    replay_file,
    split_statements,
)

__all__ = [
    "Artifact",
    "StatementGroup",
    "DumpSummary",
    "Snapshot",
    "build_schema_groups",
    "build_data_groups",
    "create_snapshot",
    "write_artifact",
    "to_literal",
    "quote_literal",
    "DropPlan",
    "plan_drop",
    "drop_all",
    "truncate_statement",
    "truncate_tables",
    "get_dump_file_path",
    "find_artifacts",
    "latest_artifact",
    "ReplayResult",
    "split_statements",
    "replay_artifact",
    "replay_file",
]
