"""
Dependency graph for modswitch.

An edge ``A -> B`` means module A requires module B. The graph is built once
from the registry, checked for cycles, frozen, and then only queried.
"""

import heapq
from collections.abc import Iterable

import networkx as nx

from modswitch.modules.errors import ConfigError
from modswitch.modules.interfaces import DependencyNode, WorkspaceSnapshot
from modswitch.modules.registry import ModuleRegistry
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)


class DependencyGraph:
    """Forward and reverse requirement relations between registered modules."""

    def __init__(self, registry: ModuleRegistry):
        """Build the graph from a registry.

        Args:
            registry: Module catalog

        Raises:
            ConfigError: If the declared requirements contain a cycle
        """
        self._registry = registry

        graph = nx.DiGraph()
        for definition in registry:
            graph.add_node(definition.name, known=True)
        for definition in registry:
            for dependency in definition.required_modules:
                if dependency not in graph:
                    graph.add_node(dependency, known=False)
                graph.add_edge(definition.name, dependency)

        self._check_acyclic(graph)
        self._graph = nx.freeze(graph)
        self._core = registry.core_modules()

        logger.debug(
            f"Dependency graph built: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges"
        )

    @staticmethod
    def _check_acyclic(graph: nx.DiGraph) -> None:
        try:
            edges = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            return

        cycle = [edge[0] for edge in edges] + [edges[0][0]]
        description = " -> ".join(cycle)
        logger.error(f"Circular module dependency detected: {description}")
        raise ConfigError(
            f"Circular module dependency: {description}",
            context={"cycle": cycle},
        )

    @property
    def registry(self) -> ModuleRegistry:
        return self._registry

    @property
    def core_modules(self) -> frozenset[str]:
        return self._core

    def is_known(self, module_name: str) -> bool:
        return module_name in self._graph and self._graph.nodes[module_name]["known"]

    def requires(self, module_name: str) -> frozenset[str]:
        """Modules that ``module_name`` requires directly."""
        if module_name not in self._graph:
            return frozenset()
        return frozenset(self._graph.successors(module_name))

    def required_by(self, module_name: str) -> frozenset[str]:
        """Modules that require ``module_name`` directly."""
        if module_name not in self._graph:
            return frozenset()
        return frozenset(self._graph.predecessors(module_name))

    def all_requirements(self, module_name: str) -> frozenset[str]:
        if module_name not in self._graph:
            return frozenset()
        return frozenset(nx.descendants(self._graph, module_name))

    def all_dependents(self, module_name: str) -> frozenset[str]:
        if module_name not in self._graph:
            return frozenset()
        return frozenset(nx.ancestors(self._graph, module_name))

    def topological_order(self, nodes: Iterable[str]) -> list[str]:
        """Order nodes so every module comes after the modules it requires.

        Kahn's algorithm over the subgraph induced by ``nodes``; ready nodes
        are taken in lexicographic order so identical inputs give identical output.
        """
        selected = set(nodes)
        pending = {node: len(self.requires(node) & selected) for node in selected}
        ready = [node for node, count in pending.items() if count == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            current = heapq.heappop(ready)
            order.append(current)
            for dependent in self.required_by(current):
                if dependent in pending:
                    pending[dependent] -= 1
                    if pending[dependent] == 0:
                        heapq.heappush(ready, dependent)

        if len(order) != len(selected):
            # Unreachable for a graph that passed the build-time cycle check
            raise ConfigError("Dependency subgraph is not acyclic")

        return order

    def with_snapshot(self, snapshot: WorkspaceSnapshot) -> "SnapshotGraph":
        """Combine the graph with a workspace's current activation state."""
        return SnapshotGraph(self, snapshot)


class SnapshotGraph:
    """A dependency graph seen through one workspace's activation snapshot."""

    def __init__(self, graph: DependencyGraph, snapshot: WorkspaceSnapshot):
        self.graph = graph
        self.snapshot = snapshot
        registered = set(graph.registry.names())
        # Core modules are active whatever the stored rows say
        self.active: frozenset[str] = frozenset((snapshot.active & registered) | graph.core_modules)

    def is_active(self, module_name: str) -> bool:
        return module_name in self.active

    def missing_requirements(self, module_name: str) -> list[str]:
        return sorted(self.graph.requires(module_name) - self.active)

    def dependency_tree(self) -> list[DependencyNode]:
        """Place every registered module in the dependency hierarchy.

        Level 0 holds modules without requirements; every other module sits
        one level above its deepest requirement. ``path`` runs from a level-0
        module up to the module itself along that deepest chain.
        """
        graph = self.graph
        registry = graph.registry
        order = graph.topological_order(registry.names())

        levels: dict[str, int] = {}
        paths: dict[str, list[str]] = {}
        for name in order:
            known_requirements = sorted(dep for dep in graph.requires(name) if graph.is_known(dep))
            if not known_requirements:
                levels[name] = 0
                paths[name] = [name]
                continue
            deepest = known_requirements[0]
            for dependency in known_requirements[1:]:
                if levels[dependency] > levels[deepest]:
                    deepest = dependency
            levels[name] = levels[deepest] + 1
            paths[name] = paths[deepest] + [name]

        nodes = [
            DependencyNode(
                module_name=name,
                display_name=registry.display_name(name),
                level=levels[name],
                is_active=self.is_active(name),
                depends_on=sorted(graph.requires(name)),
                dependents=sorted(graph.required_by(name)),
                path=paths[name],
            )
            for name in order
        ]
        nodes.sort(key=lambda node: (node.level, node.module_name))
        return nodes

    def dependency_path(self, module_name: str) -> list[DependencyNode]:
        """Tree nodes whose path runs through ``module_name``, shallowest first."""
        return [node for node in self.dependency_tree() if module_name in node.path]
