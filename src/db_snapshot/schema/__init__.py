"""Schema introspection, dependency graphs, ordering, and DDL rendering.

Provides live database introspection (``SchemaIntrospector``), the foreign
key graph (``build_table_graph``), safe creation/deletion orders
(``constructive_order``, ``destructive_order``), and DDL rendering
(``db_snapshot.schema.ddl``).

Usage:
    from db_snapshot.schema import SchemaIntrospector, build_table_graph
    from db_snapshot.schema import constructive_order, destructive_order
"""

from db_snapshot.schema.graph import (
    DependencyGraph,
    build_sequence_owners,
    build_table_graph,
)
from db_snapshot.schema.introspector import SchemaIntrospector
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
from db_snapshot.schema.ordering import constructive_order, destructive_order

__all__ = [
    "SchemaIntrospector",
    "SchemaCatalog",
    "TableDescriptor",
    "ColumnDescriptor",
    "ConstraintDescriptor",
    "ForeignKeyDescriptor",
    "IndexDescriptor",
    "SequenceDescriptor",
    "EnumTypeDescriptor",
    "TableSize",
    "DependencyGraph",
    "build_table_graph",
    "build_sequence_owners",
    "constructive_order",
    "destructive_order",
]
