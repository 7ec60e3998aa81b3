"""Dependency graph over plan operations.

Nodes are operation ids; an edge ``a -> b`` means ``b`` must run after ``a``
(``b`` references the placeholder created by ``a``). The graph keeps the
insertion order of nodes so sorting can break ties by original position.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class _Mark(IntEnum):
    WHITE = 0
    GREY = 1
    BLACK = 2


@dataclass(slots=True)
class TopologicalOrder:
    """Result of a best-effort sort.

    ``ordered`` holds every node; nodes that could not be placed because they
    sit on (or behind) a cycle are listed in ``blocked`` and appended to
    ``ordered`` in insertion order.
    """

    ordered: tuple[str, ...]
    blocked: tuple[str, ...] = ()

    @property
    def is_acyclic(self) -> bool:
        return not self.blocked


@dataclass(slots=True)
class DependencyGraph:
    _position: dict[str, int] = field(default_factory=dict["str", "int"], repr=False)
    _successors: dict[str, list[str]] = field(
        default_factory=dict["str", "list[str]"], repr=False
    )
    _predecessors: dict[str, list[str]] = field(
        default_factory=dict["str", "list[str]"], repr=False
    )

    @classmethod
    def from_edges(
        cls, nodes: Iterable[str], edges: Iterable[tuple[str, str]]
    ) -> DependencyGraph:
        graph = cls()
        for node in nodes:
            graph.add_node(node)
        for source, target in edges:
            graph.add_edge(source, target)
        return graph

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(self._position)

    def add_node(self, node: str) -> None:
        if node in self._position:
            return
        self._position[node] = len(self._position)
        self._successors[node] = []
        self._predecessors[node] = []

    def add_edge(self, source: str, target: str) -> None:
        """Record that ``target`` depends on ``source``."""

        self._assert_node_exists(source)
        self._assert_node_exists(target)
        if target not in self._successors[source]:
            self._successors[source].append(target)
            self._predecessors[target].append(source)

    def dependencies_of(self, node: str) -> tuple[str, ...]:
        self._assert_node_exists(node)
        return tuple(self._predecessors[node])

    def position(self, node: str) -> int:
        self._assert_node_exists(node)
        return self._position[node]

    def topological_order(self) -> TopologicalOrder:
        """Kahn's algorithm with a position-keyed heap for a stable order."""

        indegree = {node: len(preds) for node, preds in self._predecessors.items()}
        ready = [(self._position[node], node) for node, degree in indegree.items() if not degree]
        heapq.heapify(ready)

        ordered: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            ordered.append(node)
            for successor in self._successors[node]:
                indegree[successor] -= 1
                if indegree[successor] == 0:
                    heapq.heappush(ready, (self._position[successor], successor))

        placed = set(ordered)
        blocked = tuple(node for node in self._position if node not in placed)
        return TopologicalOrder(ordered=(*ordered, *blocked), blocked=blocked)

    def find_cycles(self) -> list[tuple[str, ...]]:
        """Return each distinct cycle once, as the node chain that closes it.

        Depth-first search with three-colour marking; a back edge to a grey
        node closes a cycle.
        """

        marks = dict.fromkeys(self._position, _Mark.WHITE)
        stack: list[str] = []
        cycles: list[tuple[str, ...]] = []
        seen: set[frozenset[str]] = set()

        for root in self._position:
            if marks[root] is not _Mark.WHITE:
                continue
            marks[root] = _Mark.GREY
            stack.append(root)
            pending = [iter(self._successors[root])]
            while pending:
                successor = next(pending[-1], None)
                if successor is None:
                    pending.pop()
                    marks[stack.pop()] = _Mark.BLACK
                    continue
                if marks[successor] is _Mark.GREY:
                    chain = tuple(stack[stack.index(successor) :])
                    key = frozenset(chain)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(chain)
                elif marks[successor] is _Mark.WHITE:
                    marks[successor] = _Mark.GREY
                    stack.append(successor)
                    pending.append(iter(self._successors[successor]))
        return cycles

    def _assert_node_exists(self, node: str) -> None:
        if node not in self._position:
            raise ValueError(f"Operation does not exist in dependency graph: {node}")
