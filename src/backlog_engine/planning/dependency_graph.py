"""Deterministic adjacency-list dependency graph over item IDs."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence


class DependencyGraph:
    """
    Directed graph where an edge ``A -> B`` means "A depends on B".

    Traversal order is deterministic (sorted node IDs) so that cycle reports are
    stable between runs.
    """

    __slots__ = ("_nodes", "_dependencies", "_dependents")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._nodes: set[str] = set()
        self._dependencies: dict[str, set[str]] = {}
        self._dependents: dict[str, set[str]] = {}

        if nodes is not None:
            for node_id in nodes:
                self.add_node(node_id)

        if edges is not None:
            for item_id, dependency_id in edges:
                self.add_dependency(item_id, dependency_id)

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(sorted(self._nodes))

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """All edges as ``(item, dependency)`` pairs in deterministic order."""
        ordered_edges: list[tuple[str, str]] = []
        for item_id in sorted(self._nodes):
            for dependency_id in sorted(self._dependencies[item_id]):
                ordered_edges.append((item_id, dependency_id))
        return tuple(ordered_edges)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def add_node(self, node_id: str) -> None:
        if not node_id:
            raise ValueError("Node ID must be non-empty.")
        if node_id in self._nodes:
            return
        self._nodes.add(node_id)
        self._dependencies[node_id] = set()
        self._dependents[node_id] = set()

    def add_dependency(self, item_id: str, dependency_id: str) -> None:
        """Record that ``item_id`` depends on ``dependency_id``."""
        self.add_node(item_id)
        self.add_node(dependency_id)
        self._dependencies[item_id].add(dependency_id)
        self._dependents[dependency_id].add(item_id)

    def dependencies_of(self, node_id: str) -> tuple[str, ...]:
        if node_id not in self._nodes:
            return ()
        return tuple(sorted(self._dependencies[node_id]))

    def dependents_of(self, node_id: str) -> tuple[str, ...]:
        if node_id not in self._nodes:
            return ()
        return tuple(sorted(self._dependents[node_id]))

    def transitive_dependencies(self, node_id: str) -> tuple[str, ...]:
        return self._transitive_closure(node_id, upstream=False)

    def transitive_dependents(self, node_id: str) -> tuple[str, ...]:
        """Return every item that directly or indirectly waits on ``node_id``."""
        return self._transitive_closure(node_id, upstream=True)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """
        Detect directed cycles.

        Returns cycle paths as closed paths, e.g. ``("A", "B", "C", "A")``. Each
        cycle is reported once regardless of the node the traversal entered it from.
        """
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in sorted(self._nodes):
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack.append(start)
            stack_index[start] = 0
            frames: list[tuple[str, Iterator[str]]] = [
                (start, iter(sorted(self._dependencies[start])))
            ]

            while frames:
                node, neighbours = frames[-1]

                try:
                    neighbour = next(neighbours)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                neighbour_state = state.get(neighbour, 0)
                if neighbour_state == 0:
                    state[neighbour] = 1
                    stack_index[neighbour] = len(stack)
                    stack.append(neighbour)
                    frames.append((neighbour, iter(sorted(self._dependencies[neighbour]))))
                    continue

                if neighbour_state == 1:
                    cycle = tuple(stack[stack_index[neighbour] :] + [neighbour])
                    cycles[canonicalize_cycle(cycle)] = None

        return tuple(sorted(cycles))

    def _transitive_closure(self, node_id: str, *, upstream: bool) -> tuple[str, ...]:
        if node_id not in self._nodes:
            return ()

        adjacency = self._dependents if upstream else self._dependencies
        visited: set[str] = set()
        pending: list[str] = list(adjacency[node_id])

        while pending:
            node = pending.pop()
            if node in visited:
                continue
            visited.add(node)
            pending.extend(neighbour for neighbour in adjacency[node] if neighbour not in visited)

        visited.discard(node_id)
        return tuple(sorted(visited))


def canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    """Rotate a closed cycle path so it starts at its smallest node."""

    if len(cycle) < 2:
        raise ValueError("Cycle path must contain at least two nodes.")

    core = tuple(cycle[:-1])
    if len(core) == 1:
        return (core[0], core[0])

    best = core
    for offset in range(1, len(core)):
        rotated = core[offset:] + core[:offset]
        if rotated < best:
            best = rotated

    return best + (best[0],)


def format_cycle(cycle: Sequence[str]) -> str:
    return " -> ".join(cycle)


__all__ = ["DependencyGraph", "canonicalize_cycle", "format_cycle"]
