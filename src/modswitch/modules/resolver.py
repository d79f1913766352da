"""
Activation planning for modswitch.

Given the modules a user asked to enable, computes the smallest ordered list of
modules to switch on so that every module is enabled after everything it
requires.
"""

from collections import deque
from collections.abc import Iterable

from modswitch.modules.errors import MissingModuleError
from modswitch.modules.graph import DependencyGraph
from modswitch.modules.interfaces import ActivationStep, WorkspaceSnapshot
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)


def unique_names(names: Iterable[str]) -> list[str]:
    """Drop duplicates while keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for name in names:
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


class ActivationOrderResolver:
    """Builds activation plans from the dependency graph."""

    def __init__(self, graph: DependencyGraph):
        self._graph = graph

    def resolve(self, requested: Iterable[str], snapshot: WorkspaceSnapshot) -> list[ActivationStep]:
        """Plan the activation of ``requested`` in a workspace.

        Args:
            requested: Module names the caller wants active
            snapshot: Current activation state of the workspace

        Returns:
            Steps in execution order; empty when everything is already active

        Raises:
            MissingModuleError: If a requested module or any of its transitive
                requirements is not registered. No partial plan is returned.
        """
        graph = self._graph
        registry = graph.registry
        view = graph.with_snapshot(snapshot)

        requested_names = unique_names(requested)
        for name in requested_names:
            registry.require(name)
        requested_set = set(requested_names)

        # Breadth-first from the sorted request; the first module to reach a
        # dependency is recorded as the one that pulled it in
        pulled_by: dict[str, str | None] = {name: None for name in sorted(requested_set)}
        queue = deque(pulled_by)
        while queue:
            current = queue.popleft()
            for dependency in sorted(graph.requires(current)):
                if not graph.is_known(dependency):
                    logger.warning(f"Activation plan aborted: {current} requires unknown module {dependency}")
                    raise MissingModuleError(dependency, current)
                if dependency not in pulled_by:
                    pulled_by[dependency] = current
                    queue.append(dependency)

        pending = [name for name in pulled_by if name not in view.active]
        order = graph.topological_order(pending)

        steps = []
        for position, name in enumerate(order, start=1):
            if name in requested_set:
                reason, is_required = "requested", False
            else:
                reason, is_required = f"required_by:{pulled_by[name]}", True
            steps.append(ActivationStep(
                order=position,
                module_name=name,
                display_name=registry.display_name(name),
                reason=reason,
                is_required=is_required,
            ))

        logger.info(
            f"Activation plan for {snapshot.workspace_id}: "
            f"{[step.module_name for step in steps]} (requested {requested_names})"
        )
        return steps
