"""
modswitch - per-workspace feature module activation.

This package provides:
- An immutable module registry with declared inter-module dependencies
- Activation planning in dependency order
- Deactivation conflict analysis for active dependents
- Sequential bulk execution with partial-failure tolerance
- A TTL cache of resolved module status per workspace user
"""

__version__ = "0.1.0"
