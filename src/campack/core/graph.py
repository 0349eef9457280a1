"""Dependency graph shared by the component and package collections"""

from graphlib import CycleError, TopologicalSorter
from typing import Callable, Dict, List, Optional

from .exceptions import DependencyError
from .transact import Transact, TransactEnabled


class DepGraph:
    """Directed node/edge store, an edge runs from a dependant to its dependency"""

    def __init__(self):
        self._outgoing: Dict[str, List[str]] = {}
        self._incoming: Dict[str, List[str]] = {}

    def __len__(self) -> int:
        return len(self._outgoing)

    def __contains__(self, node: str) -> bool:
        return node in self._outgoing

    def nodes(self) -> List[str]:
        return list(self._outgoing)

    def has_node(self, node: str) -> bool:
        return node in self._outgoing

    def add_node(self, node: str) -> None:
        """Add a node, adding an existing node is a no-op"""
        if node not in self._outgoing:
            self._outgoing[node] = []
            self._incoming[node] = []

    def remove_node(self, node: str) -> None:
        """Remove a node along with every edge touching it"""
        if node not in self._outgoing:
            return
        for dependency in self._outgoing.pop(node):
            self._incoming[dependency].remove(node)
        for dependant in self._incoming.pop(node):
            self._outgoing[dependant].remove(node)

    def add_dependency(self, source: str, target: str) -> None:
        """
        Make source depend on target

        Raises:
            KeyError: If either node does not exist
        """
        for node in (source, target):
            if node not in self._outgoing:
                raise KeyError(f"Node does not exist: {node}")
        if target not in self._outgoing[source]:
            self._outgoing[source].append(target)
            self._incoming[target].append(source)

    def remove_dependency(self, source: str, target: str) -> None:
        if target in self._outgoing.get(source, []):
            self._outgoing[source].remove(target)
            self._incoming[target].remove(source)

    def direct_dependencies_of(self, node: str) -> List[str]:
        return list(self._outgoing[node])

    def direct_dependants_of(self, node: str) -> List[str]:
        return list(self._incoming[node])

    def dependencies_of(self, node: str, leaves_only: bool = False) -> List[str]:
        """
        Get every node the given node transitively depends on

        Dependencies come before the nodes depending on them.

        Args:
            node: Node to start from
            leaves_only: Only keep nodes without dependencies of their own

        Raises:
            DependencyError: If a cycle is reachable from the node
        """
        return self._walk(node, self._outgoing, leaves_only)

    def dependants_of(self, node: str, leaves_only: bool = False) -> List[str]:
        """Get every node transitively depending on the given node"""
        return self._walk(node, self._incoming, leaves_only)

    def _walk(
        self, start: str, edges: Dict[str, List[str]], leaves_only: bool
    ) -> List[str]:
        if start not in edges:
            raise KeyError(f"Node does not exist: {start}")

        result: List[str] = []
        done = set()
        path = []

        def visit(node: str) -> None:
            if node in done:
                return
            if node in path:
                cycle = path[path.index(node):] + [node]
                raise DependencyError(
                    "Dependency cycle found", details=" -> ".join(cycle)
                )
            path.append(node)
            for neighbour in edges[node]:
                visit(neighbour)
            path.pop()
            done.add(node)
            if node != start and (not leaves_only or not edges[node]):
                result.append(node)

        visit(start)
        return result

    def overall_order(self, leaves_only: bool = False) -> List[str]:
        """
        Order every node so that dependencies come first

        Raises:
            DependencyError: If the graph contains a cycle
        """
        sorter = TopologicalSorter()
        for node, dependencies in self._outgoing.items():
            sorter.add(node, *dependencies)

        try:
            order = list(sorter.static_order())
        except CycleError as e:
            raise DependencyError(
                "Dependency cycle found",
                details=" -> ".join(str(node) for node in e.args[1]),
            ) from e

        if leaves_only:
            return [node for node in order if not self._outgoing[node]]
        return order

    def is_acyclic(self) -> bool:
        try:
            self.overall_order()
        except DependencyError:
            return False
        return True

    def clone(self) -> "DepGraph":
        graph = DepGraph()
        graph._outgoing = {node: list(deps) for node, deps in self._outgoing.items()}
        graph._incoming = {node: list(deps) for node, deps in self._incoming.items()}
        return graph

    def to_dict(self) -> Dict[str, List[str]]:
        """Node to direct dependencies mapping"""
        return {node: list(deps) for node, deps in self._outgoing.items()}


class Graph(TransactEnabled):
    """Holder of the live dependency graph, revertible through Transact"""

    _holder = "Graph"

    def __init__(self, transact: Transact):
        self._transact = transact
        self._graph: Optional[DepGraph] = None
        self.init()

    def init(self, overwrite: bool = False) -> None:
        """
        Initiate the dependency graph

        Args:
            overwrite: Replace the current graph instead of keeping it
        """
        if self._graph is None or overwrite:
            self._graph = DepGraph()

    def get(self, safe: bool = True, circular_test: bool = False) -> Optional[DepGraph]:
        """
        Get the live graph

        Args:
            safe: Re-initiate the graph if unavailable or failing the circular test
            circular_test: Treat a graph containing a cycle as unavailable

        Returns:
            Optional[DepGraph]: The graph, always a DepGraph when safe is True
        """
        graph = self._graph
        if circular_test and graph is not None and not graph.is_acyclic():
            graph = None

        if safe and graph is None:
            graph = self._graph = DepGraph()

        return graph

    def filter_by(self, predicate: Callable[[str], bool]) -> List[str]:
        """
        Remove every node for which the predicate holds

        Nodes are visited in topological order after confirming that the
        graph is acyclic.

        Returns:
            List[str]: Removed nodes
        """
        graph = self.get()
        removed = []
        for node in graph.overall_order():
            if predicate(node) is True:
                graph.remove_node(node)
                removed.append(node)
        return removed

    def _get_managed_state(self) -> Optional[DepGraph]:
        return self._graph.clone() if self._graph is not None else None

    async def _set_managed_state(self, state: Optional[DepGraph], declined: bool) -> None:
        if state is not None:
            self._graph = state
