"""
Unit tests for the module administration manager.
"""

import asyncio

import pytest

from modswitch.modules.access import PRIVILEGED_MESSAGE
from modswitch.modules.errors import (
    ConfigError,
    CoreModuleError,
    DeactivationBlockedError,
    MissingModuleError,
    SettingsValidationError,
)
from modswitch.modules.interfaces import Actor, BatchStatus, Operation
from modswitch.modules.manager import ModuleManager
from modswitch.modules.registry import ModuleRegistry
from modswitch.modules.store import MemoryActivationStore
from modswitch.utils.config import ModswitchSettings
from modswitch.utils.errors import ConfigurationError
from resources.tests.helpers.stores import CountingStore, FlakyStore, RecordingStore

WS = "ws-1"


@pytest.fixture
def settings():
    return ModswitchSettings(privileged_roles=["root"])


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def manager(platform_registry, store, settings):
    return ModuleManager(platform_registry, store, settings=settings)


def _status(statuses, name):
    return next(status for status in statuses if status.module_name == name)


@pytest.mark.anyio
async def test_plan_and_execute_activation(manager, store):
    plan = await manager.resolve_activation_order(WS, ["neura-crm"])
    assert [step.module_name for step in plan] == ["neura-flow", "neura-crm"]

    result = await manager.execute_bulk_operation(WS, plan, Operation.ACTIVATE, "admin")

    assert result.ok
    assert result.status is BatchStatus.COMPLETED
    snapshot = await store.get_snapshot(WS)
    assert snapshot.active == frozenset({"neura-flow", "neura-crm"})
    assert await manager.resolve_activation_order(WS, ["neura-crm"]) == []


@pytest.mark.anyio
async def test_access_info_is_cached_and_invalidated_by_batches(manager, store):
    before = await manager.get_module_access_info(WS, "user-1")
    await manager.get_module_access_info(WS, "user-1")
    assert store.snapshot_reads == 1
    assert _status(before, "neura-forms").status_message == "Inactive - Contact admin to enable"

    await manager.execute_bulk_operation(WS, ["neura-forms"], "activate", "admin")

    after = await manager.get_module_access_info(WS, "user-1")
    assert _status(after, "neura-forms").is_active
    assert _status(after, "neura-edu").is_available
    assert manager.get_cache_stats()["invalidations"] == 1


@pytest.mark.anyio
async def test_privileged_actor_bypasses_cache(manager, store):
    statuses = await manager.get_module_access_info(WS, Actor(id="ops", roles=["root"]))

    assert all(status.is_active for status in statuses)
    assert {status.status_message for status in statuses} == {PRIVILEGED_MESSAGE}
    assert store.snapshot_reads == 0
    assert manager.get_cache_stats()["total_requests"] == 0


@pytest.mark.anyio
async def test_can_access_module(manager, store):
    assert await manager.can_access_module(WS, "user-1", "neura-core")
    assert not await manager.can_access_module(WS, "user-1", "neura-flow")
    assert await manager.can_access_module(WS, Actor(id="ops", roles=["root"]), "neura-flow")

    await manager.execute_bulk_operation(WS, ["neura-flow"], Operation.ACTIVATE, "admin")

    assert await manager.can_access_module(WS, "user-1", "neura-flow")
    assert store.snapshot_reads == 2


@pytest.mark.anyio
async def test_can_activate_module(manager):
    assert await manager.can_activate_module(WS, "user-1", "neura-flow")
    assert not await manager.can_activate_module(WS, "user-1", "neura-crm")
    assert await manager.can_activate_module(WS, Actor(id="ops", roles=["root"]), "neura-crm")

    await manager.execute_bulk_operation(WS, ["neura-flow"], Operation.ACTIVATE, "admin")

    assert await manager.can_activate_module(WS, "user-1", "neura-crm")


@pytest.mark.anyio
async def test_module_checks_reject_unknown_modules(manager):
    with pytest.raises(MissingModuleError):
        await manager.can_access_module(WS, "user-1", "ghost")
    with pytest.raises(MissingModuleError):
        await manager.can_activate_module(WS, "user-1", "ghost")
    with pytest.raises(MissingModuleError):
        await manager.get_module_dependency_path(WS, "ghost")


@pytest.mark.anyio
async def test_module_dependency_path(manager):
    await manager.execute_bulk_operation(WS, ["neura-forms"], Operation.ACTIVATE, "admin")

    nodes = await manager.get_module_dependency_path(WS, "neura-forms")

    assert [(node.module_name, node.level) for node in nodes] == [("neura-forms", 1), ("neura-edu", 2)]
    assert nodes[0].is_active
    assert nodes[1].path == ["neura-core", "neura-forms", "neura-edu"]


@pytest.mark.anyio
async def test_workspace_locks_are_released(manager):
    for n in range(3):
        await manager.execute_bulk_operation(f"ws-{n}", ["neura-flow"], Operation.ACTIVATE, "admin")
        await manager.update_module_settings(f"ws-{n}", "neura-flow", {"maxConcurrentRuns": 2}, "admin")

    assert len(manager._workspace_locks) == 0


@pytest.mark.anyio
async def test_deactivation_with_conflicts_is_refused(platform_registry, settings):
    store = FlakyStore({WS: ["neura-flow", "neura-crm"]})
    manager = ModuleManager(platform_registry, store, settings=settings)

    with pytest.raises(DeactivationBlockedError) as exc_info:
        await manager.execute_bulk_operation(WS, ["neura-flow"], Operation.DEACTIVATE, "admin")

    assert [conflict.affected_module for conflict in exc_info.value.conflicts] == ["neura-crm"]
    assert exc_info.value.suggestions == ["Deactivate NeuraCRM first"]
    assert store.calls == []


@pytest.mark.anyio
async def test_forced_deactivation_runs(platform_registry, settings):
    store = FlakyStore({WS: ["neura-flow", "neura-crm"]})
    manager = ModuleManager(platform_registry, store, settings=settings)

    result = await manager.execute_bulk_operation(WS, ["neura-flow"], "deactivate", "admin", force=True)

    assert result.ok
    assert (await store.get_snapshot(WS)).active == frozenset({"neura-crm"})


@pytest.mark.anyio
async def test_planned_deactivation_of_a_chain(platform_registry, settings):
    store = MemoryActivationStore({WS: ["neura-flow", "neura-crm", "neura-ai"]})
    manager = ModuleManager(platform_registry, store, settings=settings)
    requested = ["neura-flow", "neura-crm", "neura-ai"]

    assert await manager.can_safely_deactivate(WS, requested)
    assert not await manager.can_safely_deactivate(WS, ["neura-flow"])
    assert len(await manager.get_dependency_conflicts(WS, ["neura-flow"])) == 2

    plan = await manager.plan_deactivation(WS, requested)
    assert [step.module_name for step in plan] == ["neura-crm", "neura-ai", "neura-flow"]

    analysis = await manager.analyze_deactivation(WS, requested)
    assert analysis.deactivation_order == plan

    result = await manager.execute_bulk_operation(WS, plan, Operation.DEACTIVATE, "admin")
    assert result.ok
    assert (await store.get_snapshot(WS)).active == frozenset()


@pytest.mark.anyio
async def test_core_module_deactivation_is_refused(manager):
    with pytest.raises(CoreModuleError):
        await manager.execute_bulk_operation(WS, ["neura-core"], Operation.DEACTIVATE, "admin")


@pytest.mark.anyio
async def test_forced_core_deactivation_fails_the_step(manager):
    result = await manager.execute_bulk_operation(WS, ["neura-core"], Operation.DEACTIVATE, "admin", force=True)

    assert result.failed_modules() == ["neura-core"]


@pytest.mark.anyio
async def test_unknown_module_in_batch(manager, store):
    with pytest.raises(MissingModuleError):
        await manager.execute_bulk_operation(WS, ["neura-flow", "ghost"], Operation.ACTIVATE, "admin")

    assert (await store.get_snapshot(WS)).active == frozenset()


@pytest.mark.anyio
async def test_partial_failure_then_retry(platform_registry, settings):
    store = FlakyStore(fail_on={"neura-forms"})
    manager = ModuleManager(platform_registry, store, settings=settings)
    plan = await manager.resolve_activation_order(WS, ["neura-flow", "neura-forms", "neura-ai"])

    result = await manager.execute_bulk_operation(WS, plan, Operation.ACTIVATE, "admin")
    assert result.failed_modules() == ["neura-forms"]

    store.fail_on.clear()
    retry = await manager.execute_bulk_operation(WS, result.failed_modules(), Operation.ACTIVATE, "admin")
    assert retry.ok
    assert (await store.get_snapshot(WS)).active == frozenset({"neura-flow", "neura-forms", "neura-ai"})


@pytest.mark.anyio
async def test_batches_in_one_workspace_do_not_interleave(platform_registry, settings):
    store = RecordingStore()
    manager = ModuleManager(platform_registry, store, settings=settings)

    await asyncio.gather(
        manager.execute_bulk_operation(WS, ["neura-flow", "neura-crm"], Operation.ACTIVATE, "a"),
        manager.execute_bulk_operation(WS, ["neura-forms", "neura-edu"], Operation.ACTIVATE, "b"),
    )

    first_batch = {module for _, module in store.log[:4]}
    assert first_batch in ({"neura-flow", "neura-crm"}, {"neura-forms", "neura-edu"})
    assert [event for event, _ in store.log] == ["start", "end"] * 4


@pytest.mark.anyio
async def test_progress_is_forwarded(manager):
    events = []

    await manager.execute_bulk_operation(WS, ["neura-flow", "neura-ai"], "activate", "admin", on_progress=events.append)

    assert [event.completed for event in events] == [1, 2]


@pytest.mark.anyio
async def test_settings_update(manager, store):
    state = await manager.update_module_settings(WS, "neura-flow", {"maxConcurrentRuns": 2}, "admin")

    assert state.settings == {"maxConcurrentRuns": 2}
    assert not state.is_active


@pytest.mark.anyio
async def test_invalid_settings_are_rejected(manager):
    with pytest.raises(SettingsValidationError) as exc_info:
        await manager.update_module_settings(WS, "neura-flow", {"maxConcurrentRuns": "many"}, "admin")

    assert exc_info.value.module_name == "neura-flow"
    assert exc_info.value.context["errors"]


@pytest.mark.anyio
async def test_settings_survive_deactivate_and_reactivate(manager, store):
    await manager.execute_bulk_operation(WS, ["neura-flow"], Operation.ACTIVATE, "admin")
    await manager.update_module_settings(WS, "neura-flow", {"notifyOnFailure": False}, "admin")

    await manager.execute_bulk_operation(WS, ["neura-flow"], Operation.DEACTIVATE, "admin")
    await manager.execute_bulk_operation(WS, ["neura-flow"], Operation.ACTIVATE, "admin")

    snapshot = await store.get_snapshot(WS)
    assert snapshot.is_active("neura-flow")
    assert snapshot.settings_for("neura-flow") == {"notifyOnFailure": False}


@pytest.mark.anyio
async def test_dependency_tree(manager):
    nodes = await manager.get_dependency_tree(WS)

    assert nodes[0].module_name == "neura-core"
    assert nodes[0].is_active
    assert max(node.level for node in nodes) == 2


def test_cyclic_registry_fails_at_startup(settings):
    registry = ModuleRegistry([
        {"name": "core", "isCore": True},
        {"name": "a", "requiredModules": ["b"]},
        {"name": "b", "requiredModules": ["a"]},
    ])

    with pytest.raises(ConfigError, match="Circular module dependency"):
        ModuleManager(registry, MemoryActivationStore(), settings=settings)


def test_from_settings(platform_registry_path):
    manager = ModuleManager.from_settings(
        MemoryActivationStore(),
        ModswitchSettings(registry_path=str(platform_registry_path)),
    )

    assert len(manager.registry) == 6


def test_from_settings_without_registry():
    with pytest.raises(ConfigurationError, match="No module registry configured"):
        ModuleManager.from_settings(MemoryActivationStore(), ModswitchSettings(registry_path=""))


@pytest.mark.anyio
async def test_shutdown_waits_for_refreshes(manager):
    await manager.get_module_access_info(WS, "user-1")
    await manager.shutdown()
