"""Exception types raised by db-snapshot.

Only ``ReplayStatementError`` and ``ConfigurationError`` are meant to reach
callers as fatal errors.  The others are raised at component seams and
recovered by the next component up:

- ``IntrospectionError``: catalog query failed (per-table auxiliary
  failures are recovered inside the introspector)
- ``CycleDetected``: destructive ordering found a cycle (drop falls back
  to a single CASCADE statement)
- ``GenerationError``: one table could not be rendered (the assembler
  skips it and counts it as failed)
"""


class SnapshotError(Exception):
    """Base class for all db-snapshot errors."""


class IntrospectionError(SnapshotError):
    """Raised when a catalog query needed for the whole schema fails."""


class CycleDetected(SnapshotError):
    """Raised by destructive ordering when the FK graph contains a cycle.

    Attributes:
        cycle: Table names along the cycle, first name repeated at the end.
    """

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cycle detected involving tables: {' -> '.join(cycle)}")


class GenerationError(SnapshotError):
    """Raised when the structure or data of one table cannot be rendered."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"Failed to generate table '{table}': {message}")


class ReplayStatementError(SnapshotError):
    """Raised when a statement fails during replay.

    The transaction has already been rolled back when this is raised.

    Attributes:
        index: Zero-based position of the failing statement.
        statement: Full text of the failing statement.
        source: Artifact path, when the artifact came from a file.
    """

    PREFIX_LENGTH = 80

    def __init__(self, index: int, statement: str, source: str | None = None):
        self.index = index
        self.statement = statement
        self.source = source
        prefix = statement[: self.PREFIX_LENGTH]
        if len(statement) > self.PREFIX_LENGTH:
            prefix += "..."
        location = f" in {source}" if source else ""
        super().__init__(f"Statement {index + 1}{location} failed: {prefix}")

    @property
    def prefix(self) -> str:
        """First characters of the failing statement."""
        return self.statement[: self.PREFIX_LENGTH]


class ConfigurationError(SnapshotError):
    """Raised when no usable database connection target can be found."""


class ProfileNotFoundError(ConfigurationError):
    """Raised when no database profile is configured."""
