"""Pydantic models for introspected schema objects.

Descriptors are built fresh from the catalog on every run and are never
mutated after the introspector hands them over:
- ColumnDescriptor, ConstraintDescriptor, ForeignKeyDescriptor,
  IndexDescriptor, TableDescriptor
- SequenceDescriptor, EnumTypeDescriptor
- SchemaCatalog (everything found in one schema)
"""

from pydantic import BaseModel, Field


# ============================================================================
# Table Descriptors
# ============================================================================


class ColumnDescriptor(BaseModel):
    """Schema for a table column.

    Example:
        >>> col = ColumnDescriptor(name="id", data_type="int")
        >>> col.is_nullable
        True
    """

    name: str
    data_type: str  # normalized declaration, e.g. varchar(255), numeric(10,2)
    is_nullable: bool = True
    default: str | None = None
    identity: str | None = None  # ALWAYS, BY DEFAULT
    generated: str | None = None  # expression of a GENERATED ALWAYS AS column
    generated_storage: str = "STORED"  # STORED, VIRTUAL


class ConstraintDescriptor(BaseModel):
    """Schema for a PRIMARY KEY, UNIQUE or CHECK constraint."""

    name: str
    constraint_type: str  # PRIMARY KEY, UNIQUE, CHECK
    columns: list[str] = Field(default_factory=list)
    check_clause: str | None = None


class ForeignKeyDescriptor(BaseModel):
    """Schema for a foreign key constraint.

    ``columns`` and ``referenced_columns`` are paired by position.
    """

    name: str
    table: str
    referenced_table: str
    columns: list[str] = Field(default_factory=list)
    referenced_columns: list[str] = Field(default_factory=list)
    on_delete: str | None = None
    on_update: str | None = None


class IndexDescriptor(BaseModel):
    """Schema for an index that does not back a PK/UNIQUE constraint."""

    name: str
    definition: str


class TableDescriptor(BaseModel):
    """Schema for a database table."""

    name: str
    columns: list[ColumnDescriptor] = Field(default_factory=list)
    constraints: list[ConstraintDescriptor] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyDescriptor] = Field(default_factory=list)
    indexes: list[IndexDescriptor] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        """Column names in ordinal order."""
        return [col.name for col in self.columns]

    @property
    def primary_key_columns(self) -> list[str]:
        """Columns of the primary key (empty if the table has none)."""
        for constraint in self.constraints:
            if constraint.constraint_type == "PRIMARY KEY":
                return list(constraint.columns)
        return []

    @property
    def insertable_columns(self) -> list[str]:
        """Column names an INSERT may name (generated columns are computed)."""
        return [col.name for col in self.columns if col.generated is None]

    @property
    def has_always_identity(self) -> bool:
        """True if an INSERT must use OVERRIDING SYSTEM VALUE."""
        return any(col.identity == "ALWAYS" for col in self.columns)


# ============================================================================
# Schema-level Descriptors
# ============================================================================


class SequenceDescriptor(BaseModel):
    """Schema for a sequence.

    ``owner_table``/``owner_column`` come from ``pg_depend`` and are needed
    for ``OWNED BY`` and for resynchronizing the sequence after a data load.
    Identity sequences are created implicitly by their column and are only
    used for resync.
    """

    name: str
    owner_table: str | None = None
    owner_column: str | None = None
    identity: bool = False
    start: int | None = None
    increment: int | None = None
    min_value: int | None = None
    max_value: int | None = None
    cycle: bool = False

    @property
    def is_owned(self) -> bool:
        return self.owner_table is not None and self.owner_column is not None


class EnumTypeDescriptor(BaseModel):
    """Schema for an enumerated type.  Label order is significant."""

    name: str
    labels: list[str] = Field(default_factory=list)


class SchemaCatalog(BaseModel):
    """Everything introspected from one schema.

    ``errors`` maps a table name to the auxiliary fetches that failed for it
    (the affected lists were left empty).
    """

    schema_name: str = "public"
    tables: list[TableDescriptor] = Field(default_factory=list)
    sequences: list[SequenceDescriptor] = Field(default_factory=list)
    enums: list[EnumTypeDescriptor] = Field(default_factory=list)
    errors: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]

    def table(self, name: str) -> TableDescriptor | None:
        """Find a table descriptor by name."""
        for t in self.tables:
            if t.name == name:
                return t
        return None


class TableSize(BaseModel):
    """A table with its total on-disk size (data, indexes, toast)."""

    name: str
    total_size: str
    total_bytes: int = 0
