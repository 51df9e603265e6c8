"""PostgreSQL schema introspection via pg_catalog.

This module queries the live database to build a ``SchemaCatalog``:
- Tables, columns, normalized data types, nullability, defaults, identity,
  generated columns
- Constraints (primary key, unique, check), merged by name
- Foreign keys with positionally paired columns
- Indexes that do not back a PK/UNIQUE constraint
- Sequences with their owning table/column
- Enumerated types with ordered labels

Uses psycopg (v3) ``AsyncConnection`` in autocommit mode, so one failing
catalog query does not abort the ones after it.
"""

import fnmatch
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import psycopg
from psycopg import AsyncConnection

from db_snapshot.errors import IntrospectionError
from db_snapshot.schema.models import (
    ColumnDescriptor,
    ConstraintDescriptor,
    EnumTypeDescriptor,
    ForeignKeyDescriptor,
    IndexDescriptor,
    SchemaCatalog,
    SequenceDescriptor,
    TableDescriptor,
    TableSize,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# pg_catalog single-letter codes
_IDENTITY_KINDS = {"a": "ALWAYS", "d": "BY DEFAULT"}
_GENERATED_STORAGE = {"s": "STORED", "v": "VIRTUAL"}
_CONSTRAINT_TYPES = {"p": "PRIMARY KEY", "u": "UNIQUE", "c": "CHECK"}
_FK_RULES = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}


class SchemaIntrospector:
    """Introspects a PostgreSQL schema.

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            catalog = await introspector.introspect()
            sizes = await introspector.get_table_sizes()
    """

    # Tables to exclude from introspection (system and bookkeeping tables)
    EXCLUDED_TABLES_DEFAULT = {
        "schema_migrations",
        "alembic_version",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    # Glob patterns for migration tool tables
    EXCLUDED_PATTERNS_DEFAULT = ("kysely*",)

    def __init__(
        self,
        database_url: str,
        schema_name: str = "public",
        excluded_tables: set[str] | None = None,
        excluded_patterns: tuple[str, ...] | None = None,
        connect_timeout: int = 10,
    ):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL
            schema_name: Schema to introspect (default: public)
            excluded_tables: Table names to skip.  ``None`` uses
                ``EXCLUDED_TABLES_DEFAULT``; pass an empty set to keep all.
            excluded_patterns: Glob patterns of table names to skip.
                ``None`` uses ``EXCLUDED_PATTERNS_DEFAULT``.
            connect_timeout: Connection timeout in seconds
        """
        self._database_url = database_url
        self._schema_name = schema_name
        self._excluded_tables = (
            set(self.EXCLUDED_TABLES_DEFAULT) if excluded_tables is None else excluded_tables
        )
        self._excluded_patterns = (
            self.EXCLUDED_PATTERNS_DEFAULT if excluded_patterns is None else excluded_patterns
        )
        self._connect_timeout = connect_timeout
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Async context manager entry - opens connection."""
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
            autocommit=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def schema_name(self) -> str:
        return self._schema_name

    def _require_connection(self) -> AsyncConnection:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")
        return self._conn

    async def _fetch(self, query: str, params: tuple = ()) -> list[tuple]:
        conn = self._require_connection()
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` on the open connection.

        Raises:
            ConnectionError: If the query fails.
        """
        conn = self._require_connection()
        try:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                row = await cur.fetchone()
                return row is not None and row[0] == 1
        except psycopg.Error as e:
            raise ConnectionError(f"Connection test failed: {e}") from e

    async def introspect(self) -> SchemaCatalog:
        """Introspect the full schema.

        Per-table column, constraint, foreign key and index fetches are
        isolated: a failure is logged, recorded in ``catalog.errors`` and
        leaves that list empty.

        Returns:
            SchemaCatalog with tables (by name), sequences and enums.

        Raises:
            IntrospectionError: If tables, sequences or enums cannot be listed.
        """
        self._require_connection()
        catalog = SchemaCatalog(schema_name=self._schema_name)

        table_names = await self.get_table_names()
        logger.info(f"Found {len(table_names)} tables in schema '{self._schema_name}'")

        for table_name in table_names:
            table = TableDescriptor(name=table_name)
            table.columns = await self._fetch_auxiliary(
                catalog, table_name, "columns", self._get_columns
            )
            table.constraints = await self._fetch_auxiliary(
                catalog, table_name, "constraints", self._get_constraints
            )
            table.foreign_keys = await self._fetch_auxiliary(
                catalog, table_name, "foreign keys", self._get_foreign_keys
            )
            table.indexes = await self._fetch_auxiliary(
                catalog, table_name, "indexes", self._get_indexes
            )
            catalog.tables.append(table)

        try:
            catalog.sequences = await self._get_sequences()
            catalog.enums = await self._get_enums()
        except psycopg.Error as e:
            raise IntrospectionError(
                f"Failed to introspect schema '{self._schema_name}': {e}"
            ) from e

        return catalog

    async def get_table_names(self) -> list[str]:
        """Get table names in the schema, minus excluded tables.

        Partitioned parents are listed as ordinary tables; their partitions
        are skipped because selecting from the parent already returns
        every partition's rows.

        Raises:
            IntrospectionError: If the table list cannot be fetched.
        """
        query = """
            SELECT c.relname
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s
              AND c.relkind IN ('r', 'p')
              AND NOT c.relispartition
            ORDER BY c.relname
        """
        try:
            rows = await self._fetch(query, (self._schema_name,))
        except psycopg.Error as e:
            raise IntrospectionError(
                f"Failed to list tables in schema '{self._schema_name}': {e}"
            ) from e
        return [row[0] for row in rows if not self._is_excluded(row[0])]

    async def get_table_sizes(self) -> list[TableSize]:
        """Get tables with their total relation size, biggest first."""
        query = """
            SELECT
                c.relname AS table_name,
                pg_size_pretty(pg_total_relation_size(c.oid)) AS total_size,
                pg_total_relation_size(c.oid) AS total_bytes
            FROM pg_class c
            JOIN pg_namespace n ON n.oid = c.relnamespace
            WHERE n.nspname = %s
              AND c.relkind IN ('r', 'p')
            ORDER BY pg_total_relation_size(c.oid) DESC, c.relname
        """
        rows = await self._fetch(query, (self._schema_name,))
        return [
            TableSize(name=name, total_size=size, total_bytes=total)
            for name, size, total in rows
            if not self._is_excluded(name)
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_excluded(self, table_name: str) -> bool:
        if table_name in self._excluded_tables:
            return True
        return any(fnmatch.fnmatch(table_name, p) for p in self._excluded_patterns)

    async def _fetch_auxiliary(
        self,
        catalog: SchemaCatalog,
        table_name: str,
        label: str,
        fetch: Callable[[str], Awaitable[list[T]]],
    ) -> list[T]:
        """Run one per-table fetch, degrading to an empty list on failure."""
        try:
            return await fetch(table_name)
        except psycopg.Error as e:
            logger.warning(f"Failed to fetch {label} for table '{table_name}': {e}")
            catalog.errors.setdefault(table_name, []).append(f"{label}: {e}")
            return []

    def _normalize_data_type(
        self,
        formatted: str,
        typtype: str | None = None,
        typname: str | None = None,
        element_typtype: str | None = None,
        element_typname: str | None = None,
    ) -> str:
        """Normalize a ``format_type()`` result into a declaration string.

        ``format_type`` already carries the type modifiers (``bit(8)``,
        ``timestamp(3) with time zone``, ``character varying(20)[]``);
        this only shortens the verbose names.  Enums, and arrays of enums,
        resolve to the quoted type name so mixed-case names survive.
        """
        if typtype == "e" and typname:
            return f'"{typname}"'
        if element_typtype == "e" and element_typname:
            return f'"{element_typname}"[]'

        base = formatted
        dims = ""
        while base.endswith("[]"):
            base = base[:-2]
            dims += "[]"

        type_map = {
            "timestamp with time zone": "timestamptz",
            "timestamp without time zone": "timestamp",
            "integer": "int",
            "boolean": "bool",
        }
        if base in type_map:
            base = type_map[base]
        elif base.startswith("character varying"):
            base = "varchar" + base[len("character varying"):]
        elif base.startswith("character("):
            base = "char" + base[len("character"):]
        elif base == "character":
            base = "char"
        return base + dims

    # ------------------------------------------------------------------
    # Per-table queries
    # ------------------------------------------------------------------

    async def _get_columns(self, table_name: str) -> list[ColumnDescriptor]:
        """Get columns for a table in ordinal order.

        Reads ``pg_attribute`` so declared modifiers, enum names and
        generated-column expressions come back exactly as declared.
        """
        query = """
            SELECT
                a.attname,
                format_type(a.atttypid, a.atttypmod),
                t.typtype,
                t.typname,
                et.typtype,
                et.typname,
                NOT a.attnotnull,
                pg_get_expr(d.adbin, d.adrelid),
                a.attidentity,
                a.attgenerated
            FROM pg_attribute a
            JOIN pg_type t ON t.oid = a.atttypid
            LEFT JOIN pg_type et ON et.oid = t.typelem AND t.typcategory = 'A'
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE a.attrelid = to_regclass(format('%%I.%%I', %s, %s))
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        columns = []
        for row in await self._fetch(query, (self._schema_name, table_name)):
            (
                col_name,
                formatted,
                typtype,
                typname,
                element_typtype,
                element_typname,
                is_nullable,
                expression,
                identity,
                generated,
            ) = row
            columns.append(
                ColumnDescriptor(
                    name=col_name,
                    data_type=self._normalize_data_type(
                        formatted, typtype, typname, element_typtype, element_typname
                    ),
                    is_nullable=bool(is_nullable),
                    default=None if generated else expression,
                    identity=_IDENTITY_KINDS.get(identity or ""),
                    generated=expression if generated else None,
                    generated_storage=_GENERATED_STORAGE.get(generated or "", "STORED"),
                )
            )
        return columns

    async def _get_constraints(self, table_name: str) -> list[ConstraintDescriptor]:
        """Get PRIMARY KEY, UNIQUE and CHECK constraints, merged by name.

        Keyed on the table's own oid, so a constraint name reused by another
        table never leaks into this one.  Implicit NOT NULL checks are left
        out (they render with the column).
        """
        query = """
            SELECT
                con.conname,
                con.contype,
                pg_get_constraintdef(con.oid),
                a.attname
            FROM pg_constraint con
            LEFT JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord) ON true
            LEFT JOIN pg_attribute a
                ON a.attrelid = con.conrelid
                AND a.attnum = k.attnum
            WHERE con.conrelid = to_regclass(format('%%I.%%I', %s, %s))
              AND con.contype IN ('p', 'u', 'c')
            ORDER BY con.conname, k.ord
        """
        constraints: dict[str, ConstraintDescriptor] = {}
        for name, contype, definition, col_name in await self._fetch(
            query, (self._schema_name, table_name)
        ):
            ctype = _CONSTRAINT_TYPES[contype]
            if name not in constraints:
                check_clause = None
                if ctype == "CHECK":
                    check_clause = definition
                    if check_clause.startswith("CHECK "):
                        check_clause = check_clause[len("CHECK "):]
                constraints[name] = ConstraintDescriptor(
                    name=name,
                    constraint_type=ctype,
                    check_clause=check_clause,
                )
            # CHECK columns are implied by the expression
            if ctype != "CHECK" and col_name and col_name not in constraints[name].columns:
                constraints[name].columns.append(col_name)
        return list(constraints.values())

    async def _get_foreign_keys(self, table_name: str) -> list[ForeignKeyDescriptor]:
        """Get outbound foreign keys with positionally paired columns."""
        query = """
            SELECT
                con.conname,
                ref.relname,
                a.attname,
                ra.attname,
                con.confdeltype,
                con.confupdtype
            FROM pg_constraint con
            CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
                WITH ORDINALITY AS k(attnum, refnum, ord)
            JOIN pg_attribute a
                ON a.attrelid = con.conrelid
                AND a.attnum = k.attnum
            JOIN pg_class ref ON ref.oid = con.confrelid
            JOIN pg_attribute ra
                ON ra.attrelid = con.confrelid
                AND ra.attnum = k.refnum
            WHERE con.conrelid = to_regclass(format('%%I.%%I', %s, %s))
              AND con.contype = 'f'
            ORDER BY con.conname, k.ord
        """
        foreign_keys: dict[str, ForeignKeyDescriptor] = {}
        for name, ref_table, col_name, ref_col, delete_rule, update_rule in await self._fetch(
            query, (self._schema_name, table_name)
        ):
            if name not in foreign_keys:
                foreign_keys[name] = ForeignKeyDescriptor(
                    name=name,
                    table=table_name,
                    referenced_table=ref_table,
                    on_delete=_FK_RULES.get(delete_rule, delete_rule),
                    on_update=_FK_RULES.get(update_rule, update_rule),
                )
            foreign_keys[name].columns.append(col_name)
            foreign_keys[name].referenced_columns.append(ref_col)
        return list(foreign_keys.values())

    async def _get_indexes(self, table_name: str) -> list[IndexDescriptor]:
        """Get indexes for a table (excluding PK/UNIQUE constraint indexes)."""
        query = """
            SELECT
                indexname,
                indexdef
            FROM pg_indexes
            WHERE schemaname = %s
              AND tablename = %s
              AND indexname NOT IN (
                  SELECT constraint_name
                  FROM information_schema.table_constraints
                  WHERE table_schema = %s
                    AND table_name = %s
                    AND constraint_type IN ('PRIMARY KEY', 'UNIQUE')
              )
            ORDER BY indexname
        """
        rows = await self._fetch(
            query, (self._schema_name, table_name, self._schema_name, table_name)
        )
        return [IndexDescriptor(name=name, definition=definition) for name, definition in rows]

    # ------------------------------------------------------------------
    # Schema-level queries
    # ------------------------------------------------------------------

    async def _get_sequences(self) -> list[SequenceDescriptor]:
        """Get sequences with their owning column (via pg_depend).

        deptype 'a' is OWNED BY (serial columns), 'i' is an identity column.
        """
        query = """
            SELECT
                s.relname AS sequence_name,
                t.relname AS table_name,
                a.attname AS column_name,
                d.deptype,
                seq.seqstart,
                seq.seqincrement,
                seq.seqmin,
                seq.seqmax,
                seq.seqcycle
            FROM pg_class s
            JOIN pg_namespace n ON n.oid = s.relnamespace
            JOIN pg_sequence seq ON seq.seqrelid = s.oid
            LEFT JOIN pg_depend d
                ON d.objid = s.oid
                AND d.classid = 'pg_class'::regclass
                AND d.refclassid = 'pg_class'::regclass
                AND d.deptype IN ('a', 'i')
            LEFT JOIN pg_class t ON t.oid = d.refobjid
            LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = d.refobjsubid
            WHERE s.relkind = 'S'
              AND n.nspname = %s
            ORDER BY s.relname
        """
        sequences = []
        for row in await self._fetch(query, (self._schema_name,)):
            name, table_name, column_name, deptype, start, inc, min_v, max_v, cycle = row
            if table_name and self._is_excluded(table_name):
                continue
            sequences.append(
                SequenceDescriptor(
                    name=name,
                    owner_table=table_name,
                    owner_column=column_name,
                    identity=(deptype == "i"),
                    start=start,
                    increment=inc,
                    min_value=min_v,
                    max_value=max_v,
                    cycle=bool(cycle),
                )
            )
        return sequences

    async def _get_enums(self) -> list[EnumTypeDescriptor]:
        """Get enumerated types with labels in sort order."""
        query = """
            SELECT
                t.typname,
                array_agg(e.enumlabel ORDER BY e.enumsortorder) AS labels
            FROM pg_type t
            JOIN pg_enum e ON e.enumtypid = t.oid
            JOIN pg_namespace n ON n.oid = t.typnamespace
            WHERE n.nspname = %s
            GROUP BY t.typname
            ORDER BY t.typname
        """
        rows = await self._fetch(query, (self._schema_name,))
        return [EnumTypeDescriptor(name=name, labels=list(labels)) for name, labels in rows]
