"""
Module access resolution for modswitch.

Turns a workspace snapshot into the per-module status users see, and holds the
single authorization decision that lets privileged actors bypass activation
state entirely.
"""

from collections.abc import Iterable

from modswitch.modules.graph import DependencyGraph
from modswitch.modules.interfaces import Actor, ModuleStatus, WorkspaceSnapshot
from modswitch.modules.registry import ModuleRegistry
from modswitch.utils.config import ModswitchSettings

PRIVILEGED_MESSAGE = "Root Access - All Modules Available"
CORE_MESSAGE = "Core Module"
ACTIVE_MESSAGE = "Active"
INACTIVE_MESSAGE = "Inactive - Contact admin to enable"


class AccessPolicy:
    """Decides which actors bypass module activation checks.

    A privileged actor sees every registered module as active and available
    regardless of what the workspace has enabled.
    """

    def __init__(self, privileged_roles: Iterable[str] = ("root",)):
        self._privileged_roles = frozenset(privileged_roles)

    @classmethod
    def from_settings(cls, settings: ModswitchSettings) -> "AccessPolicy":
        return cls(settings.privileged_roles)

    def is_privileged(self, actor: Actor) -> bool:
        return bool(self._privileged_roles.intersection(actor.roles))


def privileged_statuses(registry: ModuleRegistry) -> list[ModuleStatus]:
    return [
        ModuleStatus(
            module_name=definition.name,
            display_name=definition.display_name,
            version=definition.version,
            is_active=True,
            is_available=True,
            is_restricted=False,
            has_dependencies=True,
            missing_dependencies=[],
            status_message=PRIVILEGED_MESSAGE,
        )
        for definition in registry
    ]


def compute_statuses(graph: DependencyGraph, snapshot: WorkspaceSnapshot) -> list[ModuleStatus]:
    """Resolve the status of every registered module in a workspace."""
    view = graph.with_snapshot(snapshot)
    statuses = []

    for definition in graph.registry:
        name = definition.name
        is_active = view.is_active(name)
        missing = view.missing_requirements(name)

        if definition.is_core:
            message = CORE_MESSAGE
        elif is_active:
            message = ACTIVE_MESSAGE
        elif missing:
            message = f"Missing dependencies: {', '.join(missing)}"
        else:
            message = INACTIVE_MESSAGE

        statuses.append(ModuleStatus(
            module_name=name,
            display_name=definition.display_name,
            version=definition.version,
            is_active=is_active,
            is_available=is_active or not missing,
            is_restricted=not is_active,
            has_dependencies=not missing,
            missing_dependencies=missing,
            status_message=message,
        ))

    return statuses
