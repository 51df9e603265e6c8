"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async PostgreSQL adapter.

Usage:
    from db_snapshot.adapters import DatabaseClient, AsyncPostgresAdapter
"""

from db_snapshot.adapters.base import DatabaseClient, StatementExecutor
from db_snapshot.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DatabaseClient",
    "StatementExecutor",
    "AsyncPostgresAdapter",
]
