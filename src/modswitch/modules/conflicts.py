"""
Deactivation conflict analysis for modswitch.

Finds active modules that would lose a requirement if a set of modules were
switched off. Dependents that are part of the same request are not conflicts,
so a whole dependency chain can be deactivated in one batch.
"""

from collections.abc import Iterable

from modswitch.modules.errors import CoreModuleError
from modswitch.modules.graph import DependencyGraph, SnapshotGraph
from modswitch.modules.interfaces import (
    ActivationStep,
    Conflict,
    DeactivationAnalysis,
    WorkspaceSnapshot,
)
from modswitch.modules.resolver import unique_names
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)

DIRECT_DEPENDENCY = "direct_dependency"
TRANSITIVE_DEPENDENCY = "transitive_dependency"


class DeactivationConflictAnalyzer:
    """Detects active dependents that block a deactivation request."""

    def __init__(self, graph: DependencyGraph):
        self._graph = graph

    def _prepare(self, requested: Iterable[str], snapshot: WorkspaceSnapshot) -> tuple[SnapshotGraph, list[str]]:
        registry = self._graph.registry
        names = unique_names(requested)
        for name in names:
            registry.require(name)
            if name in self._graph.core_modules:
                raise CoreModuleError(name)
        return self._graph.with_snapshot(snapshot), names

    def find_conflicts(self, requested: Iterable[str], snapshot: WorkspaceSnapshot) -> list[Conflict]:
        """List the conflicts a deactivation request would cause.

        Args:
            requested: Module names to switch off
            snapshot: Current activation state of the workspace

        Returns:
            Conflicts ordered by request order, then impact level, then name

        Raises:
            MissingModuleError: If a requested module is not registered
            CoreModuleError: If a core module is requested
        """
        view, names = self._prepare(requested, snapshot)
        return self._conflicts(view, names)

    def _conflicts(self, view: SnapshotGraph, names: list[str]) -> list[Conflict]:
        graph = self._graph
        request = set(names)
        conflicts = []

        for name in names:
            if not view.is_active(name):
                continue

            direct = graph.required_by(name)
            blocking = (graph.all_dependents(name) & view.active) - request
            for dependent in sorted(blocking, key=lambda d: (d not in direct, d)):
                conflicts.append(self._build_conflict(view, name, dependent, direct, request))

        if conflicts:
            logger.info(
                f"Deactivation of {names} in {view.snapshot.workspace_id} blocked by "
                f"{sorted({conflict.affected_module for conflict in conflicts})}"
            )
        return conflicts

    def _build_conflict(
        self,
        view: SnapshotGraph,
        module_name: str,
        dependent: str,
        direct: frozenset[str],
        request: set[str]
    ) -> Conflict:
        graph = self._graph
        registry = graph.registry
        dependent_label = registry.display_name(dependent)

        if dependent in direct:
            return Conflict(
                affected_module=dependent,
                display_name=dependent_label,
                blocked_module=module_name,
                conflict_type=DIRECT_DEPENDENCY,
                impact_level=1,
                suggested_action=f"Deactivate {dependent_label} first",
            )

        # Modules between the dependent and the requested module
        chain = graph.all_requirements(dependent) & graph.all_dependents(module_name)
        if all(view.is_active(link) or link in request for link in chain):
            batch = [dependent] + sorted(link for link in chain if link not in request)
            action = (
                f"Include {', '.join(registry.display_name(link) for link in batch)} "
                f"in the same deactivation batch"
            )
        else:
            action = f"Deactivate {dependent_label} first"

        return Conflict(
            affected_module=dependent,
            display_name=dependent_label,
            blocked_module=module_name,
            conflict_type=TRANSITIVE_DEPENDENCY,
            impact_level=2,
            suggested_action=action,
        )

    def can_safely_deactivate(self, requested: Iterable[str], snapshot: WorkspaceSnapshot) -> bool:
        return not self.find_conflicts(requested, snapshot)

    def propose_deactivation_order(self, requested: Iterable[str], snapshot: WorkspaceSnapshot) -> list[ActivationStep]:
        """Order the active requested modules so dependents are switched off first."""
        view, names = self._prepare(requested, snapshot)
        return self._deactivation_steps(view, names)

    def _deactivation_steps(self, view: SnapshotGraph, names: list[str]) -> list[ActivationStep]:
        registry = self._graph.registry
        active = [name for name in names if view.is_active(name)]
        order = list(reversed(self._graph.topological_order(active)))
        return [
            ActivationStep(
                order=position,
                module_name=name,
                display_name=registry.display_name(name),
            )
            for position, name in enumerate(order, start=1)
        ]

    def analyze(self, requested: Iterable[str], snapshot: WorkspaceSnapshot) -> DeactivationAnalysis:
        """Conflicts, safety verdict and, for safe multi-module requests, the order."""
        view, names = self._prepare(requested, snapshot)
        conflicts = self._conflicts(view, names)
        safe = not conflicts
        order = self._deactivation_steps(view, names) if safe and len(names) > 1 else []
        return DeactivationAnalysis(
            conflicts=conflicts,
            can_safely_deactivate=safe,
            deactivation_order=order,
        )
