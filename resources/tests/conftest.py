"""Pytest configuration for resources/tests.

Ensures the repository root is on sys.path so tests can import
helpers via absolute package path like `resources.tests.helpers`,
and provides the module registries shared by the unit tests.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from modswitch.modules.graph import DependencyGraph  # noqa: E402
from modswitch.modules.registry import ModuleRegistry  # noqa: E402

PLATFORM_REGISTRY_PATH = ROOT / "config" / "modules.yaml"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def example_registry():
    """Core, Flow, CRM and AI, none of them flagged core."""
    return ModuleRegistry([
        {"name": "Core"},
        {"name": "Flow", "requiredModules": ["Core"]},
        {"name": "CRM", "requiredModules": ["Core"]},
        {"name": "AI", "requiredModules": ["Core", "Flow"]},
    ])


@pytest.fixture
def example_graph(example_registry):
    return DependencyGraph(example_registry)


@pytest.fixture
def platform_registry_path():
    return PLATFORM_REGISTRY_PATH


@pytest.fixture
def platform_registry():
    return ModuleRegistry.from_file(PLATFORM_REGISTRY_PATH)


@pytest.fixture
def platform_graph(platform_registry):
    return DependencyGraph(platform_registry)
