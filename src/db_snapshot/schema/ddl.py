"""Render schema descriptors as PostgreSQL DDL statements.

Every function is pure: descriptors in, statement text out.  Identifiers are
always double-quoted; index definitions are emitted as the catalog reports
them.
"""

from db_snapshot.errors import GenerationError
from db_snapshot.schema.models import (
    ColumnDescriptor,
    ConstraintDescriptor,
    EnumTypeDescriptor,
    ForeignKeyDescriptor,
    IndexDescriptor,
    SequenceDescriptor,
    TableDescriptor,
)

INDENT = "    "


def quote_ident(name: str) -> str:
    """Double-quote an identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def _column_list(columns: list[str]) -> str:
    return ", ".join(quote_ident(c) for c in columns)


# ============================================================================
# Types and Sequences
# ============================================================================


def render_enum(enum: EnumTypeDescriptor) -> str:
    """Render ``CREATE TYPE "e" AS ENUM ('a', 'b');``."""
    labels = ", ".join("'" + label.replace("'", "''") + "'" for label in enum.labels)
    return f"CREATE TYPE {quote_ident(enum.name)} AS ENUM ({labels});"


def render_sequence(seq: SequenceDescriptor) -> str:
    """Render ``CREATE SEQUENCE IF NOT EXISTS``, with known parameters only."""
    parts = [f"CREATE SEQUENCE IF NOT EXISTS {quote_ident(seq.name)}"]
    if seq.increment is not None:
        parts.append(f"INCREMENT BY {seq.increment}")
    if seq.min_value is not None:
        parts.append(f"MINVALUE {seq.min_value}")
    if seq.max_value is not None:
        parts.append(f"MAXVALUE {seq.max_value}")
    if seq.start is not None:
        parts.append(f"START WITH {seq.start}")
    if seq.cycle:
        parts.append("CYCLE")
    return " ".join(parts) + ";"


def render_sequence_ownership(seq: SequenceDescriptor) -> str:
    """Render ``ALTER SEQUENCE "s" OWNED BY "t"."c";``."""
    if not seq.is_owned:
        raise ValueError(f"Sequence '{seq.name}' has no owning column")
    return (
        f"ALTER SEQUENCE {quote_ident(seq.name)} "
        f"OWNED BY {quote_ident(seq.owner_table)}.{quote_ident(seq.owner_column)};"
    )


def render_sequence_resync(seq: SequenceDescriptor, schema_name: str = "public") -> str:
    """Render the ``setval`` statement that moves a sequence past loaded rows.

    An empty table resyncs to 1, otherwise to the column maximum.
    """
    if not seq.is_owned:
        raise ValueError(f"Sequence '{seq.name}' has no owning column")
    target = f"{schema_name}.{quote_ident(seq.name)}".replace("'", "''")
    return (
        f"SELECT setval('{target}', GREATEST(COALESCE((SELECT MAX({quote_ident(seq.owner_column)}) "
        f"FROM {quote_ident(seq.owner_table)}), 0), 1));"
    )


# ============================================================================
# Tables
# ============================================================================


def render_column(column: ColumnDescriptor) -> str:
    """Render one column definition line (without indentation)."""
    parts = [quote_ident(column.name), column.data_type]
    if column.generated is not None:
        parts.append(f"GENERATED ALWAYS AS ({column.generated}) {column.generated_storage}")
        if not column.is_nullable:
            parts.append("NOT NULL")
    elif column.identity:
        parts.append(f"GENERATED {column.identity} AS IDENTITY")
    else:
        parts.append("NULL" if column.is_nullable else "NOT NULL")
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")
    return " ".join(parts)


def render_constraint(constraint: ConstraintDescriptor) -> str:
    """Render an inline table constraint (PRIMARY KEY, UNIQUE or CHECK)."""
    head = f"CONSTRAINT {quote_ident(constraint.name)}"
    if constraint.constraint_type == "CHECK":
        clause = constraint.check_clause or ""
        if not clause.startswith("("):
            clause = f"({clause})"
        return f"{head} CHECK {clause}"
    if constraint.constraint_type in ("PRIMARY KEY", "UNIQUE"):
        return f"{head} {constraint.constraint_type} ({_column_list(constraint.columns)})"
    raise ValueError(f"Unsupported constraint type: {constraint.constraint_type}")


def render_table(table: TableDescriptor) -> str:
    """Render ``CREATE TABLE`` with columns and inline constraints.

    Foreign keys are rendered separately, after every table exists.

    Raises:
        GenerationError: If the table has no columns or a constraint
            cannot be rendered.
    """
    if not table.columns:
        raise GenerationError(table.name, "no columns")

    lines = [render_column(col) for col in table.columns]
    try:
        lines.extend(render_constraint(c) for c in table.constraints)
    except ValueError as e:
        raise GenerationError(table.name, str(e)) from e

    body = ",\n".join(INDENT + line for line in lines)
    return f"CREATE TABLE {quote_ident(table.name)} (\n{body}\n);"


def render_foreign_key(fk: ForeignKeyDescriptor) -> str:
    """Render ``ALTER TABLE ... ADD CONSTRAINT ... FOREIGN KEY``.

    ``NO ACTION`` referential rules are the default and are not rendered.
    """
    statement = (
        f"ALTER TABLE {quote_ident(fk.table)} ADD CONSTRAINT {quote_ident(fk.name)} "
        f"FOREIGN KEY ({_column_list(fk.columns)}) "
        f"REFERENCES {quote_ident(fk.referenced_table)} ({_column_list(fk.referenced_columns)})"
    )
    if fk.on_delete and fk.on_delete != "NO ACTION":
        statement += f" ON DELETE {fk.on_delete}"
    if fk.on_update and fk.on_update != "NO ACTION":
        statement += f" ON UPDATE {fk.on_update}"
    return statement + ";"


def render_index(index: IndexDescriptor) -> str:
    return index.definition.rstrip().rstrip(";") + ";"
