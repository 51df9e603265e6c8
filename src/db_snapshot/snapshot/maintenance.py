"""Destructive maintenance: drop every table, truncate selected tables.

Drops follow the destructive order (referencing tables first).  When the
foreign key graph has a cycle there is no such order; the plan then drops
all tables in a single ``DROP TABLE ... CASCADE`` statement instead.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.errors import CycleDetected
from db_snapshot.schema.ddl import quote_ident
from db_snapshot.schema.graph import DependencyGraph, build_table_graph
from db_snapshot.schema.models import EnumTypeDescriptor, SchemaCatalog
from db_snapshot.schema.ordering import destructive_order

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Drop
# ------------------------------------------------------------------


@dataclass
class DropPlan:
    """Statements that remove every table (and enum type) of a schema."""

    order: list[str] = field(default_factory=list)
    statements: list[str] = field(default_factory=list)
    cycle_fallback: bool = False
    cycle: list[str] = field(default_factory=list)


def plan_drop(
    graph: DependencyGraph,
    tables: list[str] | None = None,
    enums: Iterable[EnumTypeDescriptor] = (),
) -> DropPlan:
    """Plan the removal of ``tables`` (default: every graph node).

    Args:
        graph: FK dependency graph.
        tables: Tables to drop.
        enums: Enum types to drop after the tables.

    Returns:
        DropPlan with one statement per table in destructive order, or a
        single CASCADE statement when the graph has a cycle.
    """
    tables = graph.nodes if tables is None else tables
    plan = DropPlan()

    try:
        plan.order = destructive_order(graph, tables)
        plan.statements = [f"DROP TABLE IF EXISTS {quote_ident(t)} CASCADE;" for t in plan.order]
    except CycleDetected as e:
        logger.warning(f"{e}; dropping all tables with CASCADE (order ignored)")
        plan.cycle_fallback = True
        plan.cycle = e.cycle
        plan.order = list(tables)
        if tables:
            table_list = ", ".join(quote_ident(t) for t in tables)
            plan.statements = [f"DROP TABLE IF EXISTS {table_list} CASCADE;"]

    plan.statements.extend(f"DROP TYPE IF EXISTS {quote_ident(e.name)} CASCADE;" for e in enums)
    return plan


async def drop_all(adapter: DatabaseClient, catalog: SchemaCatalog) -> DropPlan:
    """Drop every table and enum type of the catalog in one transaction."""
    plan = plan_drop(build_table_graph(catalog.tables), catalog.table_names, catalog.enums)
    if not plan.statements:
        logger.info("Nothing to drop")
        return plan

    logger.info(f"Dropping tables in order: {' -> '.join(plan.order)}")
    async with adapter.transaction() as tx:
        for statement in plan.statements:
            await tx.execute(statement)
    logger.info(f"Dropped {len(plan.order)} tables and {len(catalog.enums)} types")
    return plan


# ------------------------------------------------------------------
# Truncate
# ------------------------------------------------------------------


def truncate_statement(tables: list[str]) -> str:
    """Render ``TRUNCATE TABLE ... RESTART IDENTITY CASCADE;``."""
    if not tables:
        raise ValueError("No table selected")
    return f"TRUNCATE TABLE {', '.join(quote_ident(t) for t in tables)} RESTART IDENTITY CASCADE;"


async def truncate_tables(
    adapter: DatabaseClient,
    tables: list[str],
    available: Iterable[str] | None = None,
) -> str:
    """Empty the given tables and reset their identity sequences.

    Args:
        adapter: Database adapter.
        tables: Tables to truncate.
        available: Known table names; unknown selections are rejected.

    Returns:
        The executed statement.

    Raises:
        ValueError: If the selection is empty or names unknown tables.
    """
    if available is not None:
        unknown = sorted(set(tables) - set(available))
        if unknown:
            raise ValueError(f"Unknown tables: {', '.join(unknown)}")

    statement = truncate_statement(tables)
    await adapter.execute(statement)
    logger.info(f"Truncated {len(tables)} tables: {', '.join(tables)}")
    return statement
