"""Assemble schema and data artifacts from an introspected catalog.

An artifact is an ordered list of ``StatementGroup``s.  The structural
part is emitted in dependency-safe order:

1. enum types
2. sequences (identity sequences are created by their column)
3. tables, in constructive order
4. sequence ownership
5. foreign keys (after every table exists, so cycles are fine)
6. indexes

The data part disables triggers and FK checks with
``session_replication_role``, inserts rows table by table in constructive
order, re-enables them, and resynchronizes owned sequences.

Per-table problems never abort a snapshot: the table is logged, counted in
``DumpSummary.failed`` and left out.

Usage:
    async with SchemaIntrospector(url) as introspector:
        snapshot = await create_snapshot(introspector, adapter, with_schema=True)
    write_artifact(snapshot.artifact, get_dump_file_path("mydb", "dump"))
    print(snapshot.summary.format_report())
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.errors import GenerationError
from db_snapshot.schema import ddl
from db_snapshot.schema.graph import build_sequence_owners, build_table_graph
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.schema.models import SchemaCatalog
from db_snapshot.schema.ordering import constructive_order
from db_snapshot.snapshot.data import DEFAULT_BATCH_SIZE, render_table_data

logger = logging.getLogger(__name__)

DISABLE_CONSTRAINTS = "SET session_replication_role = 'replica';"
ENABLE_CONSTRAINTS = "SET session_replication_role = 'origin';"


# ============================================================================
# Artifact Model
# ============================================================================


@dataclass
class StatementGroup:
    """A named run of statements rendered together."""

    name: str
    statements: list[str] = field(default_factory=list)
    comment: str | None = None
    separator: str = "\n"

    def render(self) -> str:
        body = self.separator.join(self.statements)
        if self.comment:
            return f"-- {self.comment}\n{body}"
        return body


@dataclass
class Artifact:
    """Ordered statement groups making up one SQL file."""

    groups: list[StatementGroup] = field(default_factory=list)

    def extend(self, groups: list[StatementGroup]) -> None:
        self.groups.extend(groups)

    def group(self, name: str) -> StatementGroup | None:
        for g in self.groups:
            if g.name == name:
                return g
        return None

    @property
    def statement_count(self) -> int:
        return sum(len(g.statements) for g in self.groups)

    def render(self) -> str:
        """Join non-empty groups with one blank line; end with a newline."""
        rendered = [g.render() for g in self.groups if g.statements]
        if not rendered:
            return ""
        return "\n\n".join(rendered) + "\n"


@dataclass
class DumpSummary:
    """Per-table outcome of a snapshot."""

    dumped: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # empty tables
    failed: dict[str, str] = field(default_factory=dict)  # table -> error

    def merge(self, other: "DumpSummary") -> None:
        self.dumped.extend(t for t in other.dumped if t not in self.dumped)
        self.skipped.extend(t for t in other.skipped if t not in self.skipped)
        self.failed.update(other.failed)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def format_report(self) -> str:
        """Format the outcome as a human-readable report."""
        lines = [
            f"Dumped: {len(self.dumped)}, "
            f"skipped (empty): {len(self.skipped)}, "
            f"failed: {len(self.failed)}"
        ]
        if self.skipped:
            lines.append(f"\n  Skipped empty tables: {', '.join(self.skipped)}")
        if self.failed:
            lines.append(f"\n  Failed tables ({len(self.failed)}):")
            for table, error in self.failed.items():
                lines.append(f"    - {table}: {error}")
        return "\n".join(lines)


@dataclass
class Snapshot:
    """Result of ``create_snapshot()``."""

    artifact: Artifact
    summary: DumpSummary
    order: list[str]


# ============================================================================
# Structure
# ============================================================================


def build_schema_groups(
    catalog: SchemaCatalog,
    order: list[str],
) -> tuple[list[StatementGroup], DumpSummary]:
    """Render the structural statement groups for the tables in ``order``.

    A table whose columns could not be introspected, or whose rendering
    raises ``GenerationError``, is left out (with its foreign keys,
    indexes and sequence ownership) and reported as failed.
    """
    summary = DumpSummary()
    created: list[str] = []
    table_statements: list[str] = []

    for name in order:
        table = catalog.table(name)
        if table is None:
            continue
        try:
            # A failed column fetch leaves the table without columns
            table_statements.append(ddl.render_table(table))
        except GenerationError as e:
            logger.error(str(e))
            summary.failed[name] = str(e)
            continue
        created.append(name)
        summary.dumped.append(name)

    created_set = set(created)
    owners = build_sequence_owners(catalog.sequences, created_set)

    enums = StatementGroup(
        "types",
        [ddl.render_enum(e) for e in catalog.enums],
        comment="Types",
    )
    sequences = StatementGroup(
        "sequences",
        [ddl.render_sequence(s) for s in catalog.sequences if not s.identity],
        comment="Sequences",
    )
    tables = StatementGroup("tables", table_statements, separator="\n\n")
    ownerships = StatementGroup(
        "ownerships",
        [
            ddl.render_sequence_ownership(s)
            for s in catalog.sequences
            if not s.identity and s.name in owners
        ],
        comment="Sequence ownership",
    )
    foreign_keys = StatementGroup(
        "foreign_keys",
        [
            ddl.render_foreign_key(fk)
            for name in created
            for fk in catalog.table(name).foreign_keys
            if fk.referenced_table in created_set
        ],
        comment="Foreign keys",
    )
    indexes = StatementGroup(
        "indexes",
        [ddl.render_index(idx) for name in created for idx in catalog.table(name).indexes],
        comment="Indexes",
    )

    logger.info(f"Rendered structure of {len(created)} tables")
    return [enums, sequences, tables, ownerships, foreign_keys, indexes], summary


# ============================================================================
# Data
# ============================================================================


async def build_data_groups(
    adapter: DatabaseClient,
    catalog: SchemaCatalog,
    order: list[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> tuple[list[StatementGroup], DumpSummary]:
    """Render the data statement groups for the tables in ``order``.

    Empty tables produce no INSERT and are reported as skipped.  Tables
    whose rows cannot be read are reported as failed.  Owned sequences of
    every table that did not fail are resynchronized.
    """
    summary = DumpSummary()
    inserts: list[str] = []

    for name in order:
        table = catalog.table(name)
        if table is None:
            continue
        try:
            statements = await render_table_data(adapter, table, batch_size)
        except Exception as e:
            logger.exception(f"Failed to dump table '{name}'")
            summary.failed[name] = str(e)
            continue

        if statements:
            inserts.extend(statements)
            summary.dumped.append(name)
            logger.info(f"Dumped {name}")
        else:
            summary.skipped.append(name)
            logger.info(f"Skipped empty table {name}")

    reachable = set(summary.dumped) | set(summary.skipped)
    owners = build_sequence_owners(catalog.sequences, reachable)
    resync = [
        ddl.render_sequence_resync(s, catalog.schema_name)
        for s in catalog.sequences
        if s.name in owners
    ]

    groups = [
        StatementGroup("disable_constraints", [DISABLE_CONSTRAINTS], comment="Disable constraints"),
        StatementGroup("data", inserts, separator="\n\n"),
        StatementGroup("enable_constraints", [ENABLE_CONSTRAINTS], comment="Re-enable constraints"),
        StatementGroup("sequence_resync", resync),
    ]
    return groups, summary


# ============================================================================
# Snapshot
# ============================================================================


async def create_snapshot(
    introspector: SchemaIntrospector,
    adapter: DatabaseClient | None = None,
    with_schema: bool = False,
    data: bool = True,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Snapshot:
    """Introspect the schema and assemble an artifact.

    Args:
        introspector: Connected ``SchemaIntrospector``.
        adapter: Adapter used to read rows (required when ``data`` is True).
        with_schema: Emit the structural groups.
        data: Emit the data groups.
        batch_size: Maximum rows per INSERT statement.

    Returns:
        Snapshot with the artifact, per-table summary and constructive order.

    Raises:
        ValueError: If nothing is requested, or data without an adapter.
        IntrospectionError: If the schema cannot be introspected.
    """
    if not with_schema and not data:
        raise ValueError("Nothing to snapshot: enable schema and/or data")
    if data and adapter is None:
        raise ValueError("An adapter is required to dump data")

    catalog = await introspector.introspect()
    graph = build_table_graph(catalog.tables)
    order = constructive_order(graph)
    logger.info(f"Found {len(order)} tables to dump")

    artifact = Artifact()
    summary = DumpSummary()

    if with_schema:
        groups, schema_summary = build_schema_groups(catalog, order)
        artifact.extend(groups)
        summary.failed.update(schema_summary.failed)
        if not data:
            summary.dumped.extend(schema_summary.dumped)
        # Tables whose structure failed cannot receive data
        order = [t for t in order if t not in schema_summary.failed]

    if data:
        groups, data_summary = await build_data_groups(adapter, catalog, order, batch_size)
        artifact.extend(groups)
        summary.merge(data_summary)

    return Snapshot(artifact=artifact, summary=summary, order=order)


def write_artifact(artifact: Artifact, path: Path) -> Path:
    """Write the rendered artifact as UTF-8, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(artifact.render(), encoding="utf-8")
    logger.info(f"Artifact written to {path}")
    return path
