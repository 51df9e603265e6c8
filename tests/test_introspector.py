"""Tests for the async SchemaIntrospector.

The psycopg connection is replaced by a fake that answers each catalog
query from canned rows, so no database is needed.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import psycopg
import pytest

from db_snapshot.errors import IntrospectionError
from db_snapshot.schema.introspector import SchemaIntrospector


# ============================================================
# Fake psycopg connection
# ============================================================


class FakeCursor:
    """Async cursor answering queries by marker substring."""

    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self._rows: list[tuple] = []

    async def __aenter__(self) -> "FakeCursor":
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    async def execute(self, query: str, params: tuple = ()) -> None:
        self._conn.executed.append((query, params))
        for marker, result in self._conn.responses:
            if marker in query:
                if isinstance(result, Exception):
                    raise result
                self._rows = result(params) if callable(result) else list(result)
                return
        self._rows = []

    async def fetchall(self) -> list[tuple]:
        return self._rows

    async def fetchone(self) -> tuple | None:
        return self._rows[0] if self._rows else None


class FakeConnection:
    def __init__(self, responses: list) -> None:
        self.responses = responses
        self.executed: list[tuple[str, tuple]] = []

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)


def _col(name, formatted, nullable=True, expression=None, typtype="b", typname=None,
         element=None, identity="", generated=""):
    element_typtype, element_typname = element or (None, None)
    return (
        name,
        formatted,
        typtype,
        typname,
        element_typtype,
        element_typname,
        nullable,
        expression,
        identity,
        generated,
    )


COLUMNS = {
    "authors": [
        _col("id", "integer", nullable=False, identity="a"),
        _col("name", "character varying(100)", nullable=False),
        _col("mood", "mood", typtype="e", typname="mood"),
        _col("moods", '"Mood"[]', typname="_Mood", element=("e", "Mood")),
    ],
    "books": [
        _col("id", "integer", nullable=False, expression="nextval('books_id_seq'::regclass)"),
        _col("author_id", "integer", nullable=False),
        _col("price", "numeric(10,2)"),
        _col("tags", "text[]", typname="_text", element=("b", "text")),
        _col("price_cents", "bigint", expression="((price * (100)::numeric))::bigint",
             generated="s"),
    ],
}

CONSTRAINTS = {
    "authors": [
        ("authors_name_check", "c", "CHECK ((char_length((name)::text) > 0))", "name"),
        ("authors_pkey", "p", "PRIMARY KEY (id)", "id"),
    ],
    "books": [
        ("books_author_title_key", "u", "UNIQUE (author_id, price)", "author_id"),
        ("books_author_title_key", "u", "UNIQUE (author_id, price)", "price"),
        ("books_pkey", "p", "PRIMARY KEY (id)", "id"),
    ],
}

FOREIGN_KEYS = {
    "authors": [],
    "books": [
        ("books_author_id_fkey", "authors", "author_id", "id", "c", "a"),
    ],
}

INDEXES = {
    "authors": [],
    "books": [
        ("books_price_idx", "CREATE INDEX books_price_idx ON public.books USING btree (price)"),
    ],
}


def _responses(**overrides) -> list:
    responses = {
        "pg_total_relation_size": [
            ("books", "64 kB", 65536),
            ("kysely_migration", "16 kB", 16384),
            ("authors", "16 kB", 16384),
        ],
        "relispartition": [
            ("authors",),
            ("books",),
            ("kysely_migration",),
            ("schema_migrations",),
        ],
        "format_type": lambda p: COLUMNS[p[1]],
        "pg_get_constraintdef": lambda p: CONSTRAINTS[p[1]],
        "confrelid": lambda p: FOREIGN_KEYS[p[1]],
        "pg_indexes": lambda p: INDEXES[p[1]],
        "pg_sequence": [
            ("authors_id_seq", "authors", "id", "i", 1, 1, 1, 2147483647, False),
            ("books_id_seq", "books", "id", "a", 1, 1, 1, 9223372036854775807, False),
            ("orphan_seq", None, None, None, 100, 5, 1, 1000, True),
            ("kysely_migration_id_seq", "kysely_migration", "id", "a", 1, 1, 1, 2147483647, False),
        ],
        "pg_enum": [("mood", ["sad", "ok", "happy"]), ("Mood", ["low", "high"])],
    }
    responses.update(overrides)
    return list(responses.items())


def _introspector(**overrides) -> tuple[SchemaIntrospector, FakeConnection]:
    introspector = SchemaIntrospector("postgresql://localhost/test")
    conn = FakeConnection(_responses(**overrides))
    introspector._conn = conn
    return introspector, conn


# ============================================================
# Test: Data type normalization
# ============================================================


class TestNormalizeDataType:
    """Verify format_type() results become declaration strings."""

    def setup_method(self) -> None:
        self.introspector = SchemaIntrospector("postgresql://localhost/test")

    def test_varchar_with_length(self) -> None:
        assert self.introspector._normalize_data_type("character varying(255)") == "varchar(255)"

    def test_varchar_without_length(self) -> None:
        assert self.introspector._normalize_data_type("character varying") == "varchar"

    def test_char(self) -> None:
        assert self.introspector._normalize_data_type("character(2)") == "char(2)"
        assert self.introspector._normalize_data_type("character") == "char"

    def test_numeric_keeps_modifiers(self) -> None:
        assert self.introspector._normalize_data_type("numeric(10,2)") == "numeric(10,2)"
        assert self.introspector._normalize_data_type("numeric") == "numeric"

    def test_length_and_precision_modifiers_kept(self) -> None:
        n = self.introspector._normalize_data_type
        assert n("bit(8)") == "bit(8)"
        assert n("bit varying(16)") == "bit varying(16)"
        assert n("timestamp(3) with time zone") == "timestamp(3) with time zone"
        assert n("time(0) without time zone") == "time(0) without time zone"
        assert n("interval day to second") == "interval day to second"

    def test_enum_resolves_quoted_name(self) -> None:
        assert self.introspector._normalize_data_type("mood", "e", "mood") == '"mood"'

    def test_enum_array_keeps_case(self) -> None:
        n = self.introspector._normalize_data_type
        assert n('"Mood"[]', "b", "_Mood", "e", "Mood") == '"Mood"[]'

    def test_arrays_keep_element_modifiers(self) -> None:
        n = self.introspector._normalize_data_type
        assert n("integer[]", "b", "_int4", "b", "int4") == "int[]"
        assert n("character varying(20)[]", "b", "_varchar", "b", "varchar") == "varchar(20)[]"
        assert n("text[][]") == "text[][]"

    def test_short_names(self) -> None:
        n = self.introspector._normalize_data_type
        assert n("timestamp with time zone") == "timestamptz"
        assert n("timestamp without time zone") == "timestamp"
        assert n("integer") == "int"
        assert n("boolean") == "bool"

    def test_passthrough(self) -> None:
        assert self.introspector._normalize_data_type("double precision") == "double precision"
        assert self.introspector._normalize_data_type("jsonb") == "jsonb"


# ============================================================
# Test: Connection handling
# ============================================================


class TestConnectionHandling:
    """Verify the async context manager and connection checks."""

    def test_aenter_opens_autocommit_connection(self) -> None:
        """__aenter__ should call AsyncConnection.connect() in autocommit mode."""
        introspector = SchemaIntrospector("postgresql://localhost/test", connect_timeout=15)
        mock_conn = AsyncMock()

        with patch(
            "db_snapshot.schema.introspector.psycopg.AsyncConnection.connect",
            new_callable=AsyncMock,
            return_value=mock_conn,
        ) as mock_connect:
            asyncio.run(introspector.__aenter__())

        mock_connect.assert_awaited_once_with(
            "postgresql://localhost/test",
            connect_timeout=15,
            autocommit=True,
        )
        assert introspector._conn is mock_conn

    def test_aexit_closes_connection(self) -> None:
        introspector = SchemaIntrospector("postgresql://localhost/test")
        mock_conn = AsyncMock()
        introspector._conn = mock_conn

        asyncio.run(introspector.__aexit__(None, None, None))

        mock_conn.close.assert_awaited_once()
        assert introspector._conn is None

    def test_not_connected_raises(self) -> None:
        introspector = SchemaIntrospector("postgresql://localhost/test")
        with pytest.raises(RuntimeError, match="not connected"):
            asyncio.run(introspector.introspect())

    def test_connection_test_success(self) -> None:
        introspector = SchemaIntrospector("postgresql://localhost/test")
        mock_cursor = AsyncMock()
        mock_cursor.fetchone.return_value = (1,)
        mock_conn = MagicMock()
        mock_ctx = MagicMock()
        mock_ctx.__aenter__ = AsyncMock(return_value=mock_cursor)
        mock_ctx.__aexit__ = AsyncMock(return_value=None)
        mock_conn.cursor.return_value = mock_ctx
        introspector._conn = mock_conn

        assert asyncio.run(introspector.test_connection()) is True
        mock_cursor.execute.assert_awaited_once_with("SELECT 1")

    def test_connection_test_failure(self) -> None:
        introspector, _ = _introspector(**{"SELECT 1": psycopg.Error("connection lost")})
        with pytest.raises(ConnectionError, match="Connection test failed"):
            asyncio.run(introspector.test_connection())


# ============================================================
# Test: Full introspection
# ============================================================


class TestIntrospect:
    """Verify the catalog built from the fake connection."""

    @pytest.mark.asyncio
    async def test_tables_exclude_bookkeeping(self) -> None:
        introspector, _ = _introspector()
        catalog = await introspector.introspect()
        assert catalog.table_names == ["authors", "books"]

    @pytest.mark.asyncio
    async def test_custom_exclusions(self) -> None:
        introspector, _ = _introspector()
        introspector._excluded_tables = {"books"}
        introspector._excluded_patterns = ()
        names = await introspector.get_table_names()
        assert names == ["authors", "kysely_migration", "schema_migrations"]

    @pytest.mark.asyncio
    async def test_columns(self) -> None:
        introspector, _ = _introspector()
        catalog = await introspector.introspect()

        authors = catalog.table("authors")
        assert authors.column_names == ["id", "name", "mood", "moods"]
        assert authors.columns[0].identity == "ALWAYS"
        assert authors.columns[1].data_type == "varchar(100)"
        assert authors.columns[1].is_nullable is False
        assert authors.columns[2].data_type == '"mood"'
        assert authors.columns[3].data_type == '"Mood"[]'
        assert authors.has_always_identity is True

        books = catalog.table("books")
        assert books.columns[0].default == "nextval('books_id_seq'::regclass)"
        assert books.columns[0].identity is None
        assert books.columns[2].data_type == "numeric(10,2)"
        assert books.columns[3].data_type == "text[]"

    @pytest.mark.asyncio
    async def test_generated_column(self) -> None:
        introspector, _ = _introspector()
        catalog = await introspector.introspect()

        books = catalog.table("books")
        cents = books.columns[4]
        assert cents.generated == "((price * (100)::numeric))::bigint"
        assert cents.generated_storage == "STORED"
        assert cents.default is None
        assert books.insertable_columns == ["id", "author_id", "price", "tags"]

    @pytest.mark.asyncio
    async def test_constraints_merged_by_name(self) -> None:
        introspector, _ = _introspector()
        catalog = await introspector.introspect()

        books = catalog.table("books")
        unique = [c for c in books.constraints if c.constraint_type == "UNIQUE"]
        assert len(unique) == 1
        assert unique[0].columns == ["author_id", "price"]
        assert books.primary_key_columns == ["id"]

        check = [c for c in catalog.table("authors").constraints if c.constraint_type == "CHECK"][0]
        assert check.columns == []
        assert check.check_clause == "((char_length((name)::text) > 0))"

    @pytest.mark.asyncio
    async def test_foreign_keys_and_indexes(self) -> None:
        introspector, _ = _introspector()
        catalog = await introspector.introspect()

        fk = catalog.table("books").foreign_keys[0]
        assert fk.table == "books"
        assert fk.referenced_table == "authors"
        assert fk.columns == ["author_id"]
        assert fk.referenced_columns == ["id"]
        assert fk.on_delete == "CASCADE"
        assert fk.on_update == "NO ACTION"

        assert [i.name for i in catalog.table("books").indexes] == ["books_price_idx"]

    @pytest.mark.asyncio
    async def test_constraint_names_shared_across_tables(self) -> None:
        """Two tables may each own a constraint with the same name."""
        columns = {
            "orders": [_col("id", "integer", nullable=False), _col("user_id", "integer")],
            "reviews": [_col("id", "integer", nullable=False), _col("author_id", "integer")],
            "users": [_col("id", "integer", nullable=False)],
        }
        constraints = {
            "orders": [("positive_id", "c", "CHECK ((id > 0))", "id")],
            "reviews": [("positive_id", "c", "CHECK ((author_id > 0))", "author_id")],
            "users": [("users_pkey", "p", "PRIMARY KEY (id)", "id")],
        }
        foreign_keys = {
            "orders": [("fk_user", "users", "user_id", "id", "c", "a")],
            "reviews": [("fk_user", "users", "author_id", "id", "n", "a")],
            "users": [],
        }
        introspector, _ = _introspector(
            relispartition=[("orders",), ("reviews",), ("users",)],
            format_type=lambda p: columns[p[1]],
            pg_get_constraintdef=lambda p: constraints[p[1]],
            confrelid=lambda p: foreign_keys[p[1]],
            pg_indexes=[],
        )
        catalog = await introspector.introspect()

        orders_fk = catalog.table("orders").foreign_keys
        reviews_fk = catalog.table("reviews").foreign_keys
        assert len(orders_fk) == 1 and len(reviews_fk) == 1
        assert orders_fk[0].columns == ["user_id"]
        assert orders_fk[0].on_delete == "CASCADE"
        assert reviews_fk[0].columns == ["author_id"]
        assert reviews_fk[0].referenced_columns == ["id"]
        assert reviews_fk[0].on_delete == "SET NULL"

        assert [c.check_clause for c in catalog.table("orders").constraints] == ["((id > 0))"]
        assert [c.check_clause for c in catalog.table("reviews").constraints] == ["((author_id > 0))"]

    @pytest.mark.asyncio
    async def test_per_table_queries_key_on_table_oid(self) -> None:
        introspector, conn = _introspector()
        await introspector.introspect()
        for marker in ("format_type", "pg_get_constraintdef", "confrelid"):
            queries = [q for q, _ in conn.executed if marker in q]
            assert queries
            assert all("to_regclass" in q for q in queries)

    @pytest.mark.asyncio
    async def test_partitions_are_not_listed(self) -> None:
        introspector, conn = _introspector()
        await introspector.get_table_names()
        query = conn.executed[0][0]
        assert "NOT c.relispartition" in query
        assert "relkind IN ('r', 'p')" in query

    @pytest.mark.asyncio
    async def test_sequences_and_enums(self) -> None:
        introspector, _ = _introspector()
        catalog = await introspector.introspect()

        seqs = {s.name: s for s in catalog.sequences}
        assert seqs["authors_id_seq"].identity is True
        assert seqs["books_id_seq"].identity is False
        assert seqs["books_id_seq"].owner_table == "books"
        assert seqs["books_id_seq"].owner_column == "id"
        assert seqs["orphan_seq"].is_owned is False
        assert seqs["orphan_seq"].cycle is True
        assert "kysely_migration_id_seq" not in seqs

        assert catalog.enums[0].name == "mood"
        assert catalog.enums[0].labels == ["sad", "ok", "happy"]

    @pytest.mark.asyncio
    async def test_schema_name_is_passed_to_queries(self) -> None:
        introspector, conn = _introspector()
        introspector._schema_name = "sales"
        await introspector.introspect()
        assert all(params[0] == "sales" for _, params in conn.executed if params)

    @pytest.mark.asyncio
    async def test_empty_schema(self) -> None:
        introspector, _ = _introspector(relispartition=[])
        catalog = await introspector.introspect()
        assert catalog.tables == []
        assert catalog.errors == {}


class TestIntrospectDegradation:
    """Verify per-table failures degrade and schema-level failures raise."""

    @pytest.mark.asyncio
    async def test_constraint_failure_degrades_to_empty(self) -> None:
        def constraints(params):
            if params[1] == "books":
                raise psycopg.Error("permission denied")
            return CONSTRAINTS[params[1]]

        introspector, _ = _introspector(pg_get_constraintdef=constraints)
        catalog = await introspector.introspect()

        books = catalog.table("books")
        assert books.constraints == []
        assert books.column_names == ["id", "author_id", "price", "tags", "price_cents"]
        assert len(books.foreign_keys) == 1
        assert "books" in catalog.errors
        assert catalog.errors["books"][0].startswith("constraints:")
        assert catalog.table("authors").constraints != []
        assert "authors" not in catalog.errors

    @pytest.mark.asyncio
    async def test_table_list_failure_is_fatal(self) -> None:
        introspector, _ = _introspector(relispartition=psycopg.Error("relation does not exist"))
        with pytest.raises(IntrospectionError, match="Failed to list tables"):
            await introspector.introspect()

    @pytest.mark.asyncio
    async def test_sequence_failure_is_fatal(self) -> None:
        introspector, _ = _introspector(pg_sequence=psycopg.Error("boom"))
        with pytest.raises(IntrospectionError):
            await introspector.introspect()


class TestTableSizes:
    """Verify get_table_sizes()."""

    @pytest.mark.asyncio
    async def test_sizes_biggest_first_without_excluded(self) -> None:
        introspector, _ = _introspector()
        sizes = await introspector.get_table_sizes()
        assert [s.name for s in sizes] == ["books", "authors"]
        assert sizes[0].total_size == "64 kB"
        assert sizes[0].total_bytes == 65536
