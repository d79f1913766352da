"""
modswitch module system.

This package decides which optional feature modules a tenant workspace can
use, in what order they must be switched on or off, and carries out bulk
changes one step at a time.

Key Components:
- ModuleRegistry: Immutable catalog of module definitions
- DependencyGraph: Validated requirement graph with topological ordering
- ActivationOrderResolver: Plans activations including required modules
- DeactivationConflictAnalyzer: Finds active dependents a deactivation would break
- BulkOperationOrchestrator: Sequential, partial-failure tolerant execution
- ModuleAccessCache: TTL cache of per-user module status
- ModuleManager: High-level administration API

Usage:
    from modswitch.modules import MemoryActivationStore, ModuleManager, ModuleRegistry

    registry = ModuleRegistry.from_file("config/modules.yaml")
    manager = ModuleManager(registry, MemoryActivationStore())

    plan = await manager.resolve_activation_order("ws-1", ["neura-crm"])
    result = await manager.execute_bulk_operation("ws-1", plan, "activate", "admin")
    if not result.ok:
        retry = result.failed_modules()
"""

from modswitch.modules.access import AccessPolicy
from modswitch.modules.cache import CacheEntry, ModuleAccessCache
from modswitch.modules.conflicts import DeactivationConflictAnalyzer
from modswitch.modules.errors import (
    CacheMissError,
    ConfigError,
    CoreModuleError,
    DeactivationBlockedError,
    MissingModuleError,
    ModuleError,
    SettingsValidationError,
    StepApplyError,
)
from modswitch.modules.graph import DependencyGraph, SnapshotGraph
from modswitch.modules.interfaces import (
    ActivationStep,
    Actor,
    BatchProgress,
    BatchResult,
    BatchStatus,
    Conflict,
    DeactivationAnalysis,
    DependencyNode,
    IActivationStore,
    ModuleDefinition,
    ModuleState,
    ModuleStatus,
    Operation,
    StepResult,
    StepStatus,
    WorkspaceSnapshot,
)
from modswitch.modules.manager import ModuleManager
from modswitch.modules.orchestrator import BulkOperation, BulkOperationOrchestrator
from modswitch.modules.registry import ModuleRegistry
from modswitch.modules.resolver import ActivationOrderResolver
from modswitch.modules.store import MemoryActivationStore
from modswitch.modules.validation import RegistryValidator

__all__ = [
    # Records and interfaces
    "ModuleDefinition",
    "ModuleState",
    "WorkspaceSnapshot",
    "ActivationStep",
    "Conflict",
    "DeactivationAnalysis",
    "ModuleStatus",
    "DependencyNode",
    "Actor",
    "Operation",
    "StepStatus",
    "BatchStatus",
    "StepResult",
    "BatchProgress",
    "BatchResult",
    "IActivationStore",

    # Main components
    "ModuleRegistry",
    "RegistryValidator",
    "DependencyGraph",
    "SnapshotGraph",
    "ActivationOrderResolver",
    "DeactivationConflictAnalyzer",
    "BulkOperation",
    "BulkOperationOrchestrator",
    "AccessPolicy",
    "CacheEntry",
    "ModuleAccessCache",
    "MemoryActivationStore",
    "ModuleManager",

    # Exceptions
    "ModuleError",
    "ConfigError",
    "MissingModuleError",
    "CoreModuleError",
    "DeactivationBlockedError",
    "SettingsValidationError",
    "StepApplyError",
    "CacheMissError",
]
