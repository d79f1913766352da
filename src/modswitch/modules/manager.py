"""
Module administration manager for modswitch.

This module provides the high-level API used by workspace administration:
planning activations, checking deactivations, running bulk operations and
reading per-user module access. It wires the registry, dependency graph,
planners, orchestrator and access cache together.
"""

import asyncio
import weakref
from collections.abc import Iterable
from typing import Any

from modswitch.modules.access import AccessPolicy, compute_statuses, privileged_statuses
from modswitch.modules.cache import ModuleAccessCache
from modswitch.modules.conflicts import DeactivationConflictAnalyzer
from modswitch.modules.errors import DeactivationBlockedError, SettingsValidationError
from modswitch.modules.graph import DependencyGraph
from modswitch.modules.interfaces import (
    ActivationStep,
    Actor,
    BatchResult,
    Conflict,
    DeactivationAnalysis,
    DependencyNode,
    IActivationStore,
    ModuleState,
    ModuleStatus,
    Operation,
    ProgressCallback,
)
from modswitch.modules.orchestrator import BulkOperation, BulkOperationOrchestrator
from modswitch.modules.registry import ModuleRegistry
from modswitch.modules.resolver import ActivationOrderResolver
from modswitch.utils.config import ModswitchSettings, get_settings
from modswitch.utils.errors import ConfigurationError
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)


class ModuleManager:
    """High-level module administration for tenant workspaces."""

    def __init__(
        self,
        registry: ModuleRegistry,
        store: IActivationStore,
        settings: ModswitchSettings | None = None,
        cache: ModuleAccessCache | None = None,
        policy: AccessPolicy | None = None
    ):
        """Initialize the module manager.

        Args:
            registry: Module catalog
            store: Activation Store holding per-workspace state
            settings: Application settings, the global settings if omitted
            cache: Access info cache, built from settings if omitted
            policy: Access policy, built from settings if omitted

        Raises:
            ConfigError: If the registry's dependency graph has a cycle
        """
        self.settings = settings or get_settings()
        self.registry = registry
        self.store = store

        self.graph = DependencyGraph(registry)
        self.resolver = ActivationOrderResolver(self.graph)
        self.analyzer = DeactivationConflictAnalyzer(self.graph)
        self.orchestrator = BulkOperationOrchestrator(store, registry.core_modules())
        self.cache = cache or ModuleAccessCache.from_settings(self.settings)
        self.policy = policy or AccessPolicy.from_settings(self.settings)

        # Locks live only while a batch or settings update holds or awaits them
        self._workspace_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

        logger.info(f"Module manager initialized with {len(registry)} modules")

    @classmethod
    def from_settings(cls, store: IActivationStore, settings: ModswitchSettings | None = None) -> "ModuleManager":
        """Build a manager from the registry file named in settings."""
        settings = settings or get_settings()
        registry_path = settings.get_registry_path()
        if registry_path is None:
            raise ConfigurationError(
                "No module registry configured",
                suggestions=["Set MODSWITCH_REGISTRY_PATH to a YAML or JSON registry file"],
            )
        return cls(ModuleRegistry.from_file(registry_path), store, settings=settings)

    def _workspace_lock(self, workspace_id: str) -> asyncio.Lock:
        lock = self._workspace_locks.get(workspace_id)
        if lock is None:
            lock = self._workspace_locks.setdefault(workspace_id, asyncio.Lock())
        return lock

    async def resolve_activation_order(self, workspace_id: str, requested: Iterable[str]) -> list[ActivationStep]:
        """Plan the activation of ``requested`` and everything it needs.

        Raises:
            MissingModuleError: If a requested module or a dependency is not registered
        """
        snapshot = await self.store.get_snapshot(workspace_id)
        return self.resolver.resolve(requested, snapshot)

    async def get_dependency_conflicts(self, workspace_id: str, requested: Iterable[str]) -> list[Conflict]:
        snapshot = await self.store.get_snapshot(workspace_id)
        return self.analyzer.find_conflicts(requested, snapshot)

    async def can_safely_deactivate(self, workspace_id: str, requested: Iterable[str]) -> bool:
        snapshot = await self.store.get_snapshot(workspace_id)
        return self.analyzer.can_safely_deactivate(requested, snapshot)

    async def analyze_deactivation(self, workspace_id: str, requested: Iterable[str]) -> DeactivationAnalysis:
        snapshot = await self.store.get_snapshot(workspace_id)
        return self.analyzer.analyze(requested, snapshot)

    async def plan_deactivation(self, workspace_id: str, requested: Iterable[str]) -> list[ActivationStep]:
        """Order the active modules of ``requested`` with dependents first."""
        snapshot = await self.store.get_snapshot(workspace_id)
        return self.analyzer.propose_deactivation_order(requested, snapshot)

    async def execute_bulk_operation(
        self,
        workspace_id: str,
        steps: Iterable[ActivationStep | str],
        operation: Operation | str,
        actor_id: str,
        on_progress: ProgressCallback | None = None,
        force: bool = False
    ) -> BatchResult:
        """Apply a plan to a workspace, one step at a time.

        Batches for the same workspace never overlap. Step failures are
        reported in the result and do not stop the batch.

        Args:
            workspace_id: Target workspace
            steps: Plan steps or module names in execution order
            operation: ``activate`` or ``deactivate``
            actor_id: User recorded as the author of every change
            on_progress: Optional callback receiving a ``BatchProgress`` per step
            force: Run a deactivation even when active dependents would break

        Returns:
            Succeeded, failed and skipped steps

        Raises:
            MissingModuleError: If a step names an unregistered module
            CoreModuleError: If an unforced deactivation targets a core module
            DeactivationBlockedError: If an unforced deactivation has conflicts
        """
        batch = BulkOperation(workspace_id, steps, operation, actor_id)
        for step in batch.steps:
            self.registry.require(step.module_name)

        async with self._workspace_lock(workspace_id):
            if batch.operation is Operation.DEACTIVATE and not force:
                snapshot = await self.store.get_snapshot(workspace_id)
                conflicts = self.analyzer.find_conflicts([step.module_name for step in batch.steps], snapshot)
                if conflicts:
                    raise DeactivationBlockedError(conflicts)
            elif batch.operation is Operation.DEACTIVATE:
                logger.warning(f"Forced deactivation in {workspace_id} by {actor_id}")

            try:
                return await self.orchestrator.execute(batch, on_progress)
            finally:
                self.cache.invalidate(workspace_id)

    async def get_module_access_info(self, workspace_id: str, actor: Actor | str) -> list[ModuleStatus]:
        """Resolve what ``actor`` can use in a workspace.

        Privileged actors see every registered module as active without the
        workspace state or the cache being consulted.
        """
        actor = Actor.coerce(actor)
        if self.policy.is_privileged(actor):
            return privileged_statuses(self.registry)
        return await self.cache.get(workspace_id, actor.id, self._load_statuses)

    async def _load_statuses(self, workspace_id: str, user_id: str) -> list[ModuleStatus]:
        snapshot = await self.store.get_snapshot(workspace_id)
        logger.debug(f"Computing module access for {user_id} in {workspace_id}")
        return compute_statuses(self.graph, snapshot)

    async def _module_status(self, workspace_id: str, actor: Actor, module_name: str) -> ModuleStatus:
        statuses = await self.cache.get(workspace_id, actor.id, self._load_statuses)
        return next(status for status in statuses if status.module_name == module_name)

    async def can_access_module(self, workspace_id: str, actor: Actor | str, module_name: str) -> bool:
        """Check whether ``actor`` may use a module in a workspace.

        Privileged actors and core modules always pass; otherwise the module
        must be active.

        Raises:
            MissingModuleError: If the module is not registered
        """
        definition = self.registry.require(module_name)
        actor = Actor.coerce(actor)
        if self.policy.is_privileged(actor) or definition.is_core:
            return True
        return (await self._module_status(workspace_id, actor, module_name)).is_active

    async def can_activate_module(self, workspace_id: str, actor: Actor | str, module_name: str) -> bool:
        """Check whether every requirement of a module is active for ``actor``.

        Raises:
            MissingModuleError: If the module is not registered
        """
        self.registry.require(module_name)
        actor = Actor.coerce(actor)
        if self.policy.is_privileged(actor):
            return True
        return (await self._module_status(workspace_id, actor, module_name)).has_dependencies

    async def get_dependency_tree(self, workspace_id: str) -> list[DependencyNode]:
        snapshot = await self.store.get_snapshot(workspace_id)
        return self.graph.with_snapshot(snapshot).dependency_tree()

    async def get_module_dependency_path(self, workspace_id: str, module_name: str) -> list[DependencyNode]:
        """Return the module's tree node and every node whose path passes through it.

        Raises:
            MissingModuleError: If the module is not registered
        """
        self.registry.require(module_name)
        snapshot = await self.store.get_snapshot(workspace_id)
        return self.graph.with_snapshot(snapshot).dependency_path(module_name)

    async def update_module_settings(
        self,
        workspace_id: str,
        module_name: str,
        settings: dict[str, Any],
        actor_id: str
    ) -> ModuleState:
        """Replace a module's settings after checking them against its schema.

        Raises:
            MissingModuleError: If the module is not registered
            SettingsValidationError: If the settings do not match the schema
        """
        result = self.registry.validate_settings(module_name, settings)
        if not result.valid:
            raise SettingsValidationError(
                f"Invalid settings for {module_name}: {'; '.join(result.errors)}",
                module_name=module_name,
                context={"errors": list(result.errors)},
            )

        async with self._workspace_lock(workspace_id):
            state = await self.store.update_settings(workspace_id, module_name, settings, actor_id)

        self.cache.invalidate(workspace_id)
        logger.info(f"Settings of {module_name} updated in {workspace_id} by {actor_id}")
        return state

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.get_stats()

    async def shutdown(self) -> None:
        """Wait for background cache refreshes to finish."""
        await self.cache.drain()
        logger.info("Module manager shut down")
