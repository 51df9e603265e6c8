"""Render table contents as INSERT statements.

Rows are read through the adapter (``SELECT *``, ordered by primary key
when the table has one) and encoded with ``to_literal``.  Large tables are
split into several INSERT statements of at most ``batch_size`` rows.
"""

import logging
from typing import Any

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.schema.ddl import quote_ident
from db_snapshot.schema.models import TableDescriptor
from db_snapshot.snapshot.literals import to_literal

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


def render_insert(
    table_name: str,
    columns: list[str],
    rows: list[dict[str, Any]],
    overriding_system_value: bool = False,
) -> str:
    """Render one multi-row INSERT statement.

    Example:
        >>> print(render_insert("t", ["id", "name"], [{"id": 1, "name": "a"}]))
        -- Dump of table t
        INSERT INTO "t" ("id", "name")
        VALUES
        (1, 'a');
    """
    if not rows:
        raise ValueError(f"No rows to insert into '{table_name}'")

    column_list = ", ".join(quote_ident(c) for c in columns)
    overriding = " OVERRIDING SYSTEM VALUE" if overriding_system_value else ""
    values = ",\n".join(
        "(" + ", ".join(to_literal(row.get(col)) for col in columns) + ")" for row in rows
    )
    return (
        f"-- Dump of table {table_name}\n"
        f"INSERT INTO {quote_ident(table_name)} ({column_list}){overriding}\n"
        f"VALUES\n{values};"
    )


async def fetch_table_rows(adapter: DatabaseClient, table: TableDescriptor) -> list[dict[str, Any]]:
    """Read every row of a table, ordered by primary key when there is one."""
    pk = table.primary_key_columns
    order_by = ", ".join(quote_ident(c) for c in pk) if pk else None
    return await adapter.select(quote_ident(table.name), "*", order_by=order_by)


async def render_table_data(
    adapter: DatabaseClient,
    table: TableDescriptor,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[str]:
    """Render a table's rows as INSERT statements of ``batch_size`` rows each.

    Returns:
        INSERT statements; empty for an empty table.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    rows = await fetch_table_rows(adapter, table)
    if not rows:
        return []

    # Introspected column order minus generated columns; fall back to the
    # result's own keys
    columns = table.insertable_columns if table.columns else list(rows[0].keys())
    return [
        render_insert(
            table.name,
            columns,
            rows[start:start + batch_size],
            overriding_system_value=table.has_always_identity,
        )
        for start in range(0, len(rows), batch_size)
    ]
