"""
Module registry for modswitch.

The registry is the immutable catalog of module definitions and their declared
requirements. It is built once per process, validated on construction and then
passed explicitly to the graph, planner and manager.
"""

import json
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from modswitch.modules.errors import ConfigError, MissingModuleError
from modswitch.modules.interfaces import ModuleDefinition
from modswitch.modules.validation import RegistryValidator
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)


class ModuleRegistry:
    """Immutable catalog of module definitions."""

    def __init__(self, definitions: Iterable[ModuleDefinition | Mapping[str, Any]]):
        """Build and validate the registry.

        Args:
            definitions: Module definitions or raw mappings using either the
                snake_case or camelCase field names

        Raises:
            ConfigError: If any definition is malformed or the catalog is invalid
        """
        parsed: list[ModuleDefinition] = []
        for index, definition in enumerate(definitions):
            if isinstance(definition, ModuleDefinition):
                parsed.append(definition)
                continue
            try:
                parsed.append(ModuleDefinition.model_validate(dict(definition)))
            except (PydanticValidationError, TypeError, ValueError) as e:
                raise ConfigError(
                    f"Malformed module definition at index {index}: {e}",
                    context={"index": index},
                ) from e

        validator = RegistryValidator()
        result = validator.validate_definitions(parsed)
        for warning in result.warnings:
            logger.warning(warning)
        if not result.valid:
            raise ConfigError(
                f"Invalid module registry: {'; '.join(result.errors)}",
                context={"errors": list(result.errors)},
            )

        self._modules: Mapping[str, ModuleDefinition] = MappingProxyType(
            {definition.name: definition for definition in parsed}
        )
        self._validator = validator

        logger.info(f"Module registry loaded with {len(self._modules)} modules")

    @classmethod
    def from_file(cls, path: Path | str) -> "ModuleRegistry":
        """Load a registry from a YAML or JSON file.

        The file holds either a list of module mappings or an object with a
        ``modules`` list.
        """
        path = Path(path).expanduser()
        try:
            with path.open("r", encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read module registry {path}: {e}", context={"path": str(path)}) from e

        if isinstance(data, dict):
            data = data.get("modules")
        if not isinstance(data, list):
            raise ConfigError(f"Module registry {path} must contain a list of modules", context={"path": str(path)})

        logger.debug(f"Read {len(data)} module definitions from {path}")
        return cls(data)

    def __contains__(self, module_name: object) -> bool:
        return module_name in self._modules

    def __iter__(self) -> Iterator[ModuleDefinition]:
        for name in sorted(self._modules):
            yield self._modules[name]

    def __len__(self) -> int:
        return len(self._modules)

    def get(self, module_name: str) -> ModuleDefinition | None:
        return self._modules.get(module_name)

    def require(self, module_name: str, requested_by: str | None = None) -> ModuleDefinition:
        """Get a module definition or raise MissingModuleError."""
        definition = self._modules.get(module_name)
        if definition is None:
            raise MissingModuleError(module_name, requested_by)
        return definition

    def names(self) -> list[str]:
        return sorted(self._modules)

    def core_modules(self) -> frozenset[str]:
        return frozenset(name for name, definition in self._modules.items() if definition.is_core)

    def display_name(self, module_name: str) -> str:
        definition = self._modules.get(module_name)
        return definition.display_name if definition else module_name

    def validate_settings(self, module_name: str, settings: dict[str, Any]):
        """Validate settings for a registered module against its schema."""
        return self._validator.validate_settings(self.require(module_name), settings)

    def default_settings(self, module_name: str) -> dict[str, Any]:
        return self._validator.default_settings(self.require(module_name))

    def to_json(self) -> list[dict[str, Any]]:
        return [definition.to_json() for definition in self]
