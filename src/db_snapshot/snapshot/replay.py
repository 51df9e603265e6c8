"""Replay a SQL artifact into a database as one transaction.

The artifact body is split into statements on a ``;`` that ends a line.
Either every statement is applied or none is: the first failure rolls the
transaction back and is reported as ``ReplayStatementError`` naming the
statement.

Splitting is textual.  A string literal that itself contains ``;`` followed
by a line break is split in two and fails to replay.

Usage:
    result = await replay_file(adapter, Path("backups/mydb/dump-....sql"))
    print(f"Applied {result.statement_count} statements")
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.errors import ReplayStatementError

logger = logging.getLogger(__name__)

_STATEMENT_END = re.compile(r";[ \t]*\r?\n")


@dataclass
class ReplayResult:
    """Outcome of a successful replay."""

    statement_count: int
    source: str | None = None


def _is_comment_only(fragment: str) -> bool:
    return all(
        not line.strip() or line.strip().startswith("--")
        for line in fragment.splitlines()
    )


def split_statements(body: str) -> list[str]:
    """Split an artifact body into executable statements.

    Fragments are trimmed; empty and comment-only fragments are dropped.
    A trailing ``;`` on the last statement is removed like the others.

    Example:
        >>> split_statements("-- x\\nSELECT 1;\\nSELECT 2;\\n")
        ['-- x\\nSELECT 1', 'SELECT 2']
    """
    statements = []
    for fragment in _STATEMENT_END.split(body):
        fragment = fragment.strip()
        if fragment.endswith(";"):
            fragment = fragment[:-1].rstrip()
        if not fragment or _is_comment_only(fragment):
            continue
        statements.append(fragment)
    return statements


async def replay_artifact(
    adapter: DatabaseClient,
    body: str,
    source: str | None = None,
) -> ReplayResult:
    """Apply every statement of an artifact inside one transaction.

    Args:
        adapter: Database adapter providing ``transaction()``.
        body: Artifact text.
        source: Where the artifact came from (used in error messages).

    Returns:
        ReplayResult with the number of statements applied.

    Raises:
        ValueError: If the artifact contains no statements.
        ReplayStatementError: If a statement fails.  Nothing has been
            committed; the driver error is chained as ``__cause__``.
    """
    statements = split_statements(body)
    if not statements:
        raise ValueError(f"No SQL statements found{f' in {source}' if source else ''}")

    logger.info(f"Replaying {len(statements)} statements")

    # Index of the statement being executed; None outside the loop
    current: int | None = None
    try:
        async with adapter.transaction() as tx:
            for current, statement in enumerate(statements):
                await tx.execute(statement)
            current = None
    except Exception as e:
        if current is None:
            # Connecting or committing failed, not a statement
            logger.error(f"Replay failed outside of a statement: {e}")
            raise
        error = ReplayStatementError(current, statements[current], source)
        logger.error(f"{error} ({e})")
        raise error from e

    logger.info("Replay committed")
    return ReplayResult(statement_count=len(statements), source=source)


async def replay_file(adapter: DatabaseClient, path: Path) -> ReplayResult:
    """Read an artifact file (UTF-8) and replay it."""
    body = path.read_text(encoding="utf-8")
    return await replay_artifact(adapter, body, source=str(path))
