"""Dependency graphs between schema objects.

A ``DependencyGraph`` is an adjacency list keyed by object name: an edge
``A -> B`` means A directly references B (A must be created after B and
dropped before it).  Graphs are built per operation and never cached.

Usage:
    graph = build_table_graph(catalog.tables)
    order = constructive_order(graph)
"""

import logging
from collections.abc import Iterable, Iterator

from db_snapshot.schema.models import SequenceDescriptor, TableDescriptor

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Directed graph of ``node -> [dependencies]``.

    Node order and each dependency list keep insertion order, so every
    traversal over the graph is deterministic.
    """

    def __init__(self, nodes: Iterable[str] = ()):
        self._adjacency: dict[str, list[str]] = {}
        for node in nodes:
            self.add_node(node)

    def add_node(self, node: str) -> None:
        if node not in self._adjacency:
            self._adjacency[node] = []

    def add_edge(self, source: str, target: str) -> None:
        """Record that ``source`` depends on ``target``.

        Missing nodes are added; duplicate edges are ignored.
        """
        self.add_node(source)
        self.add_node(target)
        if target not in self._adjacency[source]:
            self._adjacency[source].append(target)

    def dependencies(self, node: str) -> list[str]:
        """Direct dependencies of ``node`` (empty for unknown nodes)."""
        return list(self._adjacency.get(node, []))

    def dependents(self, node: str) -> list[str]:
        """Nodes that directly depend on ``node``."""
        return [source for source, targets in self._adjacency.items() if node in targets]

    @property
    def nodes(self) -> list[str]:
        return list(self._adjacency)

    @property
    def edges(self) -> list[tuple[str, str]]:
        return [(source, target) for source, targets in self._adjacency.items() for target in targets]

    def __contains__(self, node: object) -> bool:
        return node in self._adjacency

    def __len__(self) -> int:
        return len(self._adjacency)

    def __iter__(self) -> Iterator[str]:
        return iter(self._adjacency)

    def __repr__(self) -> str:
        return f"DependencyGraph(nodes={len(self)}, edges={len(self.edges)})"


def build_table_graph(tables: list[TableDescriptor]) -> DependencyGraph:
    """Build the foreign key graph of a set of tables.

    Self-references are kept as edges (ordering ignores them).  References
    to tables outside the set are dropped.

    Args:
        tables: Table descriptors; their order becomes the node order.

    Returns:
        DependencyGraph with an edge A -> B per FK of A referencing B.
    """
    graph = DependencyGraph(table.name for table in tables)
    for table in tables:
        for fk in table.foreign_keys:
            if fk.referenced_table not in graph:
                logger.debug(
                    f"Ignoring FK {fk.name} on {table.name}: "
                    f"{fk.referenced_table} is not part of the snapshot"
                )
                continue
            graph.add_edge(table.name, fk.referenced_table)
    return graph


def build_sequence_owners(
    sequences: list[SequenceDescriptor],
    table_names: Iterable[str] | None = None,
) -> dict[str, tuple[str, str]]:
    """Map each owned sequence to its ``(table, column)``.

    Args:
        sequences: Sequence descriptors from the introspector.
        table_names: If given, only owners inside this set are kept.

    Returns:
        Dict of sequence name -> (owner table, owner column).
    """
    allowed = set(table_names) if table_names is not None else None
    owners: dict[str, tuple[str, str]] = {}
    for seq in sequences:
        if not seq.is_owned:
            continue
        if allowed is not None and seq.owner_table not in allowed:
            continue
        owners[seq.name] = (seq.owner_table, seq.owner_column)
    return owners
