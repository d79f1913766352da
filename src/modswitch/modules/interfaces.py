"""
Module-system records and interfaces for modswitch.

This module defines the fixed-shape records exchanged between the planner,
the orchestrator and callers, plus the abstract Activation Store that the
engine consumes but does not implement.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """Base for records serialized with camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-compatible dict using the public field names."""
        return self.model_dump(mode="json", by_alias=True)


class Operation(str, Enum):
    """Bulk operation kind."""
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"

    @property
    def desired_state(self) -> bool:
        return self is Operation.ACTIVATE


class StepStatus(str, Enum):
    """Lifecycle of a single bulk step."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class BatchStatus(str, Enum):
    """Lifecycle of a bulk operation."""
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ModuleDefinition(Record):
    """Catalog entry for a module. Immutable once loaded."""
    name: str = Field(min_length=1)
    display_name: str = ""
    description: str = ""
    is_core: bool = False
    required_modules: tuple[str, ...] = ()
    version: str = "1.0.0"
    settings_schema: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_display_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (data.get("display_name") or data.get("displayName")):
            data = {**data, "display_name": str(data.get("name", "")).strip()}
        return data

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("required_modules", mode="before")
    @classmethod
    def _normalize_requirements(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        return tuple(sorted({str(name).strip() for name in value}))


class ModuleState(Record):
    """Persisted activation record for one (workspace, module) pair."""
    workspace_id: str
    module_name: str
    is_active: bool = False
    activated_at: datetime | None = None
    activated_by: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime | None = None


@dataclass(frozen=True)
class WorkspaceSnapshot:
    """Point-in-time activation state of one workspace."""
    workspace_id: str
    states: Mapping[str, ModuleState] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "states", MappingProxyType(dict(self.states)))

    @classmethod
    def from_active(cls, workspace_id: str, active: Iterable[str]) -> "WorkspaceSnapshot":
        """Build a snapshot where the given modules are active."""
        return cls(
            workspace_id=workspace_id,
            states={
                name: ModuleState(workspace_id=workspace_id, module_name=name, is_active=True)
                for name in active
            },
        )

    @property
    def active(self) -> frozenset[str]:
        return frozenset(name for name, state in self.states.items() if state.is_active)

    def is_active(self, module_name: str) -> bool:
        state = self.states.get(module_name)
        return bool(state and state.is_active)

    def settings_for(self, module_name: str) -> dict[str, Any]:
        state = self.states.get(module_name)
        return dict(state.settings) if state else {}


class ActivationStep(Record):
    """One entry of an activation or deactivation plan."""
    order: int
    module_name: str
    display_name: str = ""
    reason: str = "requested"
    is_required: bool = False


class Conflict(Record):
    """An active dependent that would break if a module were deactivated."""
    affected_module: str
    display_name: str
    blocked_module: str
    conflict_type: str
    impact_level: int
    suggested_action: str


class DeactivationAnalysis(Record):
    """Conflicts plus the proposed order for a deactivation request."""
    conflicts: list[Conflict] = Field(default_factory=list)
    can_safely_deactivate: bool = True
    deactivation_order: list[ActivationStep] = Field(default_factory=list)


class ModuleStatus(Record):
    """Resolved view of one module for one workspace user."""
    module_name: str
    display_name: str
    version: str = "1.0.0"
    is_active: bool
    is_available: bool
    is_restricted: bool
    has_dependencies: bool
    missing_dependencies: list[str] = Field(default_factory=list)
    status_message: str = ""


class DependencyNode(Record):
    """A module's position in the dependency hierarchy of a workspace."""
    module_name: str
    display_name: str
    level: int
    is_active: bool
    depends_on: list[str] = Field(default_factory=list)
    dependents: list[str] = Field(default_factory=list)
    path: list[str] = Field(default_factory=list)


class Actor(Record):
    """The user reading or changing module state."""
    id: str
    roles: list[str] = Field(default_factory=list)

    @classmethod
    def coerce(cls, value: "Actor | str") -> "Actor":
        if isinstance(value, Actor):
            return value
        return cls(id=value)


class StepResult(Record):
    """Outcome of one step of a bulk operation."""
    order: int
    module_name: str
    status: StepStatus = StepStatus.PENDING
    error: str | None = None
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def duration(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return self.finished_at - self.started_at


class BatchProgress(Record):
    """Progress notification emitted after every step."""
    completed: int
    total: int
    last_step: StepResult


class BatchResult(Record):
    """Final outcome of a bulk operation."""
    workspace_id: str
    operation: Operation
    status: BatchStatus
    succeeded: list[StepResult] = Field(default_factory=list)
    failed: list[StepResult] = Field(default_factory=list)
    skipped: list[StepResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped

    def failed_modules(self) -> list[str]:
        """Names to resubmit as a new batch when retrying."""
        return [step.module_name for step in self.failed]


ProgressCallback = Callable[[BatchProgress], Awaitable[None] | None]


class IActivationStore(ABC):
    """Per-workspace record of which modules are active.

    Implementations own persistence and any timeout on individual calls.
    """

    @abstractmethod
    async def get_snapshot(self, workspace_id: str) -> WorkspaceSnapshot:
        """Return the current activation state of a workspace."""
        pass

    @abstractmethod
    async def apply(self, workspace_id: str, module_name: str, is_active: bool, actor_id: str) -> ModuleState:
        """Set a module's activation state.

        The call either fully succeeds or raises; partial application is not allowed.
        """
        pass

    @abstractmethod
    async def update_settings(
        self,
        workspace_id: str,
        module_name: str,
        settings: dict[str, Any],
        actor_id: str
    ) -> ModuleState:
        """Replace a module's settings for a workspace."""
        pass
