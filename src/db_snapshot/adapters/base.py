"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that snapshot, replay and
maintenance operations run against.  All methods are ``async def`` -- the
library is async-first.

Usage:
    from db_snapshot.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.select('"users"', "*", order_by='"id"')
        async with client.transaction() as tx:
            await tx.execute('TRUNCATE TABLE "users"')
        await client.close()
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol


class StatementExecutor(Protocol):
    """Handle yielded by ``DatabaseClient.transaction()``."""

    async def execute(self, sql: str) -> None:
        """Execute one statement inside the open transaction."""
        ...


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    All methods are async -- callers must ``await`` every operation.
    """

    async def select(
        self,
        table: str,
        columns: str = "*",
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        """Select every row of a table.

        Values are returned as the driver decodes them (no serialization),
        so they can be re-encoded as SQL literals.

        Args:
            table: Table name, already quoted if needed.
            columns: Column list (e.g., ``"*"`` or ``'"id", "name"'``).
            order_by: Optional ORDER BY expression.

        Returns:
            List of dicts, one per row, keys in column order.

        Example:
            rows = await client.select('"users"', "*", order_by='"id"')
        """
        ...

    async def execute(self, sql: str) -> None:
        """Execute one raw SQL statement in its own transaction.

        The statement is sent as-is: colons and percent signs inside
        literals are not treated as parameters.

        Example:
            await client.execute('DROP TABLE IF EXISTS "users" CASCADE;')
        """
        ...

    def transaction(self) -> AbstractAsyncContextManager[StatementExecutor]:
        """Open a transaction scope.

        Commits when the block exits normally; any exception (including
        cancellation) rolls back every statement executed in the block and
        propagates.

        Example:
            async with client.transaction() as tx:
                await tx.execute("CREATE TABLE a (id int);")
                await tx.execute("CREATE TABLE b (id int);")
        """
        ...

    async def test_connection(self) -> bool:
        """Run ``SELECT 1``; raises if the database is unreachable."""
        ...

    async def close(self) -> None:
        """Close database connection and clean up resources."""
        ...
