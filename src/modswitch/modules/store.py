"""
In-memory Activation Store.

Reference implementation of ``IActivationStore`` used by the CLI and tests.
Rows are created on the first toggle of a (workspace, module) pair, updated in
place afterwards and never deleted. Settings survive deactivation.
"""

import threading
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from modswitch.modules.interfaces import IActivationStore, ModuleState, WorkspaceSnapshot
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)


class MemoryActivationStore(IActivationStore):
    """Activation records held in process memory."""

    def __init__(self, initial: Mapping[str, Iterable[str]] | None = None, seeded_by: str = "system"):
        """Create the store.

        Args:
            initial: Optional mapping of workspace id to module names that start active
            seeded_by: Actor recorded on the seeded rows
        """
        self._rows: dict[tuple[str, str], ModuleState] = {}
        self._lock = threading.RLock()

        now = datetime.now(timezone.utc)
        for workspace_id, module_names in (initial or {}).items():
            for module_name in module_names:
                self._rows[(workspace_id, module_name)] = ModuleState(
                    workspace_id=workspace_id,
                    module_name=module_name,
                    is_active=True,
                    activated_at=now,
                    activated_by=seeded_by,
                    updated_at=now,
                )

    async def get_snapshot(self, workspace_id: str) -> WorkspaceSnapshot:
        with self._lock:
            states = {
                module_name: state
                for (row_workspace, module_name), state in self._rows.items()
                if row_workspace == workspace_id
            }
        return WorkspaceSnapshot(workspace_id=workspace_id, states=states)

    async def apply(self, workspace_id: str, module_name: str, is_active: bool, actor_id: str) -> ModuleState:
        with self._lock:
            current = self._row(workspace_id, module_name)
            now = datetime.now(timezone.utc)
            update: dict[str, Any] = {"is_active": is_active, "updated_at": now, "activated_by": actor_id}
            if is_active and not current.is_active:
                update["activated_at"] = now
            elif not is_active:
                update["activated_at"] = None
            state = current.model_copy(update=update)
            self._rows[(workspace_id, module_name)] = state

        logger.debug(f"{workspace_id}/{module_name} set {'active' if is_active else 'inactive'} by {actor_id}")
        return state

    async def update_settings(
        self,
        workspace_id: str,
        module_name: str,
        settings: dict[str, Any],
        actor_id: str
    ) -> ModuleState:
        with self._lock:
            current = self._row(workspace_id, module_name)
            state = current.model_copy(update={
                "settings": dict(settings),
                "updated_at": datetime.now(timezone.utc),
            })
            self._rows[(workspace_id, module_name)] = state

        logger.debug(f"{workspace_id}/{module_name} settings replaced by {actor_id}")
        return state

    def _row(self, workspace_id: str, module_name: str) -> ModuleState:
        state = self._rows.get((workspace_id, module_name))
        if state is None:
            state = ModuleState(workspace_id=workspace_id, module_name=module_name)
        return state
