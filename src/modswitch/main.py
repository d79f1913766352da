"""
Main entry point for the modswitch CLI.

This module provides command-line access to registry validation and to the
activation, deactivation and dependency tree planners. Workspace state is
given with repeated ``--active`` options; nothing is persisted.
"""

import asyncio
import json
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import click

from modswitch.modules.errors import ModuleError
from modswitch.modules.graph import DependencyGraph
from modswitch.modules.manager import ModuleManager
from modswitch.modules.registry import ModuleRegistry
from modswitch.modules.store import MemoryActivationStore
from modswitch.utils.config import get_settings
from modswitch.utils.logging import configure_root_logging, setup_logging

logger = setup_logging(__name__)

CLI_WORKSPACE = "cli"


def _load_manager_or_exit(registry_path: Path, active: Iterable[str]) -> ModuleManager:
    try:
        registry = ModuleRegistry.from_file(registry_path)
        store = MemoryActivationStore({CLI_WORKSPACE: list(active)}, seeded_by="cli")
        return ModuleManager(registry, store, settings=get_settings())
    except ModuleError as e:
        click.echo(f"Error: {e.message}")
        sys.exit(1)


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2))


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """modswitch - per-workspace feature module management."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    settings = get_settings()
    configure_root_logging(
        level="DEBUG" if verbose else settings.log_level,
        structured=settings.log_structured,
        log_file=settings.get_log_file_path(),
    )

    if verbose:
        logger.info("Verbose logging enabled")


@cli.command()
@click.argument('registry_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(registry_path: Path) -> None:
    """Load a module registry file and check its dependency graph."""
    try:
        registry = ModuleRegistry.from_file(registry_path)
        DependencyGraph(registry)
    except ModuleError as e:
        click.echo(f"Error: {e.message}")
        sys.exit(1)

    click.echo(f"Registry OK: {len(registry)} modules")
    for definition in registry:
        marker = " (core)" if definition.is_core else ""
        requires = ", ".join(definition.required_modules) or "-"
        click.echo(f"  {definition.name}{marker} v{definition.version} requires: {requires}")


@cli.command()
@click.argument('registry_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('modules', nargs=-1, required=True)
@click.option('--active', '-a', multiple=True, help='Module already active in the workspace')
@click.option('--json', 'as_json', is_flag=True, help='Emit JSON')
def plan(registry_path: Path, modules: tuple[str, ...], active: tuple[str, ...], as_json: bool) -> None:
    """Print the activation plan for MODULES."""
    manager = _load_manager_or_exit(registry_path, active)

    try:
        steps = asyncio.run(manager.resolve_activation_order(CLI_WORKSPACE, modules))
    except ModuleError as e:
        click.echo(f"Error: {e.message}")
        sys.exit(1)

    if as_json:
        _echo_json([step.to_json() for step in steps])
        return

    if not steps:
        click.echo("Nothing to activate.")
        return

    click.echo(f"Activation plan ({len(steps)} steps):")
    for step in steps:
        click.echo(f"{step.order}. {step.display_name} [{step.module_name}] - {step.reason}")


@cli.command()
@click.argument('registry_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('modules', nargs=-1, required=True)
@click.option('--active', '-a', multiple=True, help='Module already active in the workspace')
@click.option('--json', 'as_json', is_flag=True, help='Emit JSON')
def conflicts(registry_path: Path, modules: tuple[str, ...], active: tuple[str, ...], as_json: bool) -> None:
    """Check whether MODULES can be deactivated."""
    manager = _load_manager_or_exit(registry_path, active)

    try:
        analysis = asyncio.run(manager.analyze_deactivation(CLI_WORKSPACE, modules))
    except ModuleError as e:
        click.echo(f"Error: {e.message}")
        sys.exit(1)

    if as_json:
        _echo_json(analysis.to_json())
        return

    if analysis.can_safely_deactivate:
        click.echo("Safe to deactivate.")
        for step in analysis.deactivation_order:
            click.echo(f"{step.order}. {step.display_name} [{step.module_name}]")
        return

    click.echo(f"{len(analysis.conflicts)} conflicts:")
    for conflict in analysis.conflicts:
        click.echo(
            f"- {conflict.display_name} needs {conflict.blocked_module} "
            f"({conflict.conflict_type}, impact {conflict.impact_level}): {conflict.suggested_action}"
        )
    sys.exit(2)


@cli.command()
@click.argument('registry_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--active', '-a', multiple=True, help='Module active in the workspace')
@click.option('--json', 'as_json', is_flag=True, help='Emit JSON')
def tree(registry_path: Path, active: tuple[str, ...], as_json: bool) -> None:
    """Print the dependency tree of a registry."""
    manager = _load_manager_or_exit(registry_path, active)
    nodes = asyncio.run(manager.get_dependency_tree(CLI_WORKSPACE))

    if as_json:
        _echo_json([node.to_json() for node in nodes])
        return

    for node in nodes:
        state = "active" if node.is_active else "inactive"
        click.echo(f"{'  ' * node.level}{node.display_name} [{node.module_name}] ({state}) {' > '.join(node.path)}")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
