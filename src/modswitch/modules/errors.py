"""
Module-system error classes for modswitch.

Planning-time errors (ConfigError, MissingModuleError, CoreModuleError,
DeactivationBlockedError) fail the whole call. StepApplyError is only ever
recorded inside a batch result, and CacheMissError never leaves the cache.
"""

from typing import Any

from modswitch.utils.errors import ModswitchError


class ModuleError(ModswitchError):
    """Base exception for module-system errors."""

    def __init__(self, message: str, module_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.module_name = module_name


class ConfigError(ModuleError):
    """Raised when the module registry is cyclic or malformed."""
    pass


class MissingModuleError(ModuleError):
    """Raised when a requested module or one of its dependencies is not registered."""

    def __init__(self, module_name: str, requested_by: str | None = None):
        if requested_by:
            message = f"Module {module_name} (required by {requested_by}) is not registered"
        else:
            message = f"Module {module_name} is not registered"
        super().__init__(
            message,
            module_name=module_name,
            context={"module": module_name, "requested_by": requested_by},
        )
        self.requested_by = requested_by


class CoreModuleError(ModuleError):
    """Raised when a core module is targeted for deactivation."""

    def __init__(self, module_name: str):
        super().__init__(
            f"Core module {module_name} cannot be deactivated",
            module_name=module_name,
            suggestions=[f"Remove {module_name} from the deactivation request"],
        )


class DeactivationBlockedError(ModuleError):
    """Raised when a deactivation with unresolved conflicts is executed without force."""

    def __init__(self, conflicts: list[Any]):
        names = sorted({conflict.affected_module for conflict in conflicts})
        super().__init__(
            f"Deactivation would break active modules: {', '.join(names)}",
            suggestions=[conflict.suggested_action for conflict in conflicts],
            context={"affected_modules": names},
        )
        self.conflicts = list(conflicts)


class SettingsValidationError(ModuleError):
    """Raised when module settings do not match the module's settings schema."""
    pass


class StepApplyError(ModuleError):
    """Failure of a single step during bulk execution."""

    def __init__(self, module_name: str, cause: Exception):
        super().__init__(f"{module_name}: {cause}", module_name=module_name)
        self.cause = cause


class CacheMissError(ModuleError):
    """Internal signal that a cache entry is absent or expired."""
    pass
