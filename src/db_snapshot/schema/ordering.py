"""Topological ordering of tables by foreign key dependencies.

- ``constructive_order``: referenced tables first (CREATE, INSERT).
  Cycles are tolerated by skipping the back edge.
- ``destructive_order``: referencing tables first (DROP).  A cycle raises
  ``CycleDetected`` so the caller can fall back to a CASCADE drop.

Self-references never constrain the order.  The traversal keeps its own
stack, so deep FK chains do not hit the recursion limit.
"""

import logging
from collections.abc import Iterator
from enum import Enum

from db_snapshot.errors import CycleDetected
from db_snapshot.schema.graph import DependencyGraph

logger = logging.getLogger(__name__)


class _State(Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    VISITED = 2


def _post_order(graph: DependencyGraph, tables: list[str] | None, strict: bool) -> list[str]:
    """Depth-first post-order: every table after the tables it references.

    Args:
        graph: FK dependency graph.
        tables: Tables to order (default: all graph nodes, in node order).
            Edges leaving this set are ignored.
        strict: Raise ``CycleDetected`` on a back edge instead of skipping it.
    """
    roots = graph.nodes if tables is None else list(dict.fromkeys(tables))
    selected = set(roots)
    state = {table: _State.UNVISITED for table in roots}
    result: list[str] = []

    for root in roots:
        if state[root] is not _State.UNVISITED:
            continue

        state[root] = _State.IN_PROGRESS
        path = [root]
        stack: list[tuple[str, Iterator[str]]] = [(root, iter(graph.dependencies(root)))]

        while stack:
            node, deps = stack[-1]
            dep = next(deps, None)

            if dep is None:
                stack.pop()
                path.pop()
                state[node] = _State.VISITED
                result.append(node)
                continue

            if dep == node or dep not in selected:
                continue

            if state[dep] is _State.IN_PROGRESS:
                cycle = path[path.index(dep):] + [dep]
                if strict:
                    raise CycleDetected(cycle)
                logger.debug(f"Skipping back edge {node} -> {dep} (cycle: {' -> '.join(cycle)})")
                continue

            if state[dep] is _State.UNVISITED:
                state[dep] = _State.IN_PROGRESS
                path.append(dep)
                stack.append((dep, iter(graph.dependencies(dep))))

    return result


def constructive_order(graph: DependencyGraph, tables: list[str] | None = None) -> list[str]:
    """Order tables so every table follows the tables it references.

    Example:
        >>> g = DependencyGraph(["a", "b", "c"])
        >>> g.add_edge("b", "a"); g.add_edge("c", "b")
        >>> constructive_order(g)
        ['a', 'b', 'c']
    """
    return _post_order(graph, tables, strict=False)


def destructive_order(graph: DependencyGraph, tables: list[str] | None = None) -> list[str]:
    """Order tables so every table precedes the tables it references.

    Raises:
        CycleDetected: If the tables reference each other in a cycle.
    """
    return list(reversed(_post_order(graph, tables, strict=True)))
