"""
File-level dependency graph.

Nodes are canonical file paths; an edge A -> B exists exactly when A has at
least one resolved-internal import of B. External and unresolved imports stay
FileImport facts only, they never become edges.
"""

import logging
from collections import deque
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

import networkx as nx

from .models import CycleGroup, FileImport

logger = logging.getLogger(__name__)


class NeighborSequence:
    """
    Lazy view over one side of a file's adjacency.

    Nothing is copied up front: every iteration re-reads the graph, so the
    sequence can be walked any number of times.
    """

    def __init__(self, graph: nx.DiGraph, path: str, reverse: bool = False):
        self._graph = graph
        self._path = path
        self._reverse = reverse

    def _neighbors(self) -> Iterable[str]:
        if self._path not in self._graph:
            return ()
        if self._reverse:
            return self._graph.predecessors(self._path)
        return self._graph.successors(self._path)

    def __iter__(self) -> Iterator[str]:
        yield from sorted(self._neighbors())

    def __len__(self) -> int:
        if self._path not in self._graph:
            return 0
        if self._reverse:
            return self._graph.in_degree(self._path)
        return self._graph.out_degree(self._path)

    def __contains__(self, other: object) -> bool:
        if self._path not in self._graph or other not in self._graph:
            return False
        if self._reverse:
            return self._graph.has_edge(other, self._path)
        return self._graph.has_edge(self._path, other)

    def __repr__(self) -> str:
        direction = "importers of" if self._reverse else "imports of"
        return f"<{direction} {self._path}: {list(self)}>"


class DependencyGraph:
    """Directed graph of internal imports between project files."""

    def __init__(self):
        self.graph = nx.DiGraph()

    @classmethod
    def from_imports(cls, imports: Iterable[FileImport],
                     files: Optional[Iterable[str]] = None) -> "DependencyGraph":
        """
        Build the graph from collected imports.

        Args:
            imports: Every FileImport; only resolved-internal ones become edges
            files: Scanned files, added as nodes even when they import nothing
        """
        dependency_graph = cls()
        for path in files or []:
            dependency_graph.add_file(path)
        for file_import in imports:
            if file_import.is_internal and file_import.target:
                dependency_graph.add_import(file_import)
        return dependency_graph

    def add_file(self, path: str) -> None:
        self.graph.add_node(path)

    def add_import(self, file_import: FileImport) -> None:
        source, target = file_import.source_path, file_import.target
        if self.graph.has_edge(source, target):
            data = self.graph.edges[source, target]
            data["weight"] += 1
            data["kinds"].add(file_import.import_kind.value)
            data["lines"].append(file_import.line)
        else:
            self.graph.add_edge(
                source, target,
                weight=1,
                kinds={file_import.import_kind.value},
                lines=[file_import.line],
            )

    # ==================== QUERIES ====================

    def files(self) -> List[str]:
        return sorted(self.graph.nodes)

    def edges(self) -> List[Tuple[str, str]]:
        return sorted(self.graph.edges)

    def has_edge(self, source: str, target: str) -> bool:
        return self.graph.has_edge(source, target)

    def edge_data(self, source: str, target: str) -> Dict[str, Any]:
        data = self.graph.edges[source, target]
        return {
            "weight": data["weight"],
            "kinds": sorted(data["kinds"]),
            "lines": sorted(data["lines"]),
        }

    def importers_of(self, path: str) -> NeighborSequence:
        """Files with an internal import of `path` (reverse adjacency)."""
        return NeighborSequence(self.graph, path, reverse=True)

    def imports_of(self, path: str) -> NeighborSequence:
        """Files that `path` imports internally (forward adjacency)."""
        return NeighborSequence(self.graph, path)

    def __len__(self) -> int:
        return self.graph.number_of_nodes()

    def __contains__(self, path: object) -> bool:
        return path in self.graph

    # ==================== CYCLES ====================

    def find_cycles(self) -> List[CycleGroup]:
        """
        Every circular dependency in the graph.

        Each strongly connected component with more than one file is one
        group, whatever the number of distinct loops inside it; a file that
        imports itself is a group of its own.

        Returns:
            Cycle groups ordered by their smallest member
        """
        groups = []
        for component in nx.strongly_connected_components(self.graph):
            if len(component) < 2:
                continue
            members = sorted(component)
            groups.append(CycleGroup(members=members, path=self._closed_walk(members)))

        for path, _ in nx.selfloop_edges(self.graph):
            groups.append(CycleGroup(members=[path], path=[path], self_import=True))

        groups.sort(key=lambda group: (group.members, group.self_import))
        if groups:
            logger.info(f"Found {len(groups)} circular dependency groups")
        return groups

    def _closed_walk(self, members: List[str]) -> List[str]:
        """
        Deterministic loop through every member, starting at the smallest.

        Repeatedly moves to the nearest member not yet visited (ties broken
        by path order), then returns to the start. The start is not repeated
        at the end of the walk; other members repeat when loops overlap.
        """
        member_set = set(members)
        start = members[0]
        walk = [start]
        visited = {start}
        current = start

        while len(visited) < len(member_set):
            hops = self._shortest_hops(current, member_set, lambda node: node not in visited)
            walk.extend(hops)
            visited.update(hops)
            current = hops[-1]

        back = self._shortest_hops(current, member_set, lambda node: node == start)
        walk.extend(back[:-1])
        return walk

    def _shortest_hops(self, origin: str, allowed: Set[str], is_goal) -> List[str]:
        """BFS inside `allowed`; returns the nodes after `origin` up to the first goal."""
        parents: Dict[str, Optional[str]] = {origin: None}
        queue = deque([origin])
        while queue:
            node = queue.popleft()
            for neighbor in sorted(self.graph.successors(node)):
                if neighbor not in allowed:
                    continue
                if is_goal(neighbor):
                    hops = [neighbor]
                    step = node
                    while step != origin:
                        hops.append(step)
                        step = parents[step]
                    return list(reversed(hops))
                if neighbor not in parents:
                    parents[neighbor] = node
                    queue.append(neighbor)
        # Unreachable inside a strongly connected component
        raise ValueError(f"No path from {origin} inside component")
