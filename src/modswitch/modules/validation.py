"""
Registry and settings validation for modswitch.

This module checks module catalogs before they are frozen into a registry and
validates per-workspace module settings against each module's JSON schema.
"""

import re
from collections import Counter
from typing import Any

import jsonschema
from jsonschema import SchemaError

from modswitch.modules.interfaces import ModuleDefinition
from modswitch.utils.config import ValidationResult
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)

_MODULE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


class RegistryValidator:
    """Validator for module catalogs and module settings."""

    def validate_definitions(self, definitions: list[ModuleDefinition]) -> ValidationResult:
        """Validate a full module catalog.

        Duplicate or malformed names and invalid settings schemas are errors.
        A catalog without a core module and requirements naming modules that
        are not in the catalog are only warnings; they are reported to callers when
        a plan actually needs them.

        Args:
            definitions: Module definitions to validate

        Returns:
            ValidationResult with validation status
        """
        result = ValidationResult()

        counts = Counter(definition.name for definition in definitions)
        for name, count in sorted(counts.items()):
            if count > 1:
                result.errors.append(f"Duplicate module name: {name}")
                result.valid = False

        known = set(counts)
        for definition in definitions:
            definition_result = self.validate_definition(definition, known)
            result.errors.extend(definition_result.errors)
            result.warnings.extend(definition_result.warnings)
            if not definition_result.valid:
                result.valid = False

        if definitions and not any(definition.is_core for definition in definitions):
            result.warnings.append("Registry declares no core module")

        return result

    def validate_definition(self, definition: ModuleDefinition, known: set[str]) -> ValidationResult:
        """Validate a single module definition against the rest of the catalog."""
        result = ValidationResult()

        if not _MODULE_NAME.match(definition.name):
            result.errors.append(f"Invalid module name: {definition.name!r}")
            result.valid = False

        for dependency in definition.required_modules:
            if not _MODULE_NAME.match(dependency):
                result.errors.append(f"Invalid dependency name in {definition.name}: {dependency!r}")
                result.valid = False
            elif dependency not in known:
                result.warnings.append(f"Module {definition.name} requires unknown module {dependency}")

        if definition.is_core and definition.required_modules:
            result.warnings.append(f"Core module {definition.name} declares requirements; they are always active too")

        if definition.settings_schema:
            try:
                jsonschema.Draft7Validator.check_schema(definition.settings_schema)
            except SchemaError as e:
                result.errors.append(f"Invalid settings schema for {definition.name}: {e.message}")
                result.valid = False
                logger.debug(f"Settings schema of {definition.name} rejected: {e.message}")

        return result

    def validate_settings(self, definition: ModuleDefinition, settings: dict[str, Any]) -> ValidationResult:
        """Validate workspace settings for a module.

        Args:
            definition: Module whose schema applies
            settings: Settings to validate

        Returns:
            ValidationResult with validation status
        """
        result = ValidationResult()

        if not isinstance(settings, dict):
            result.errors.append("Settings must be an object")
            result.valid = False
            return result

        if not definition.settings_schema:
            return result

        validator = jsonschema.Draft7Validator(definition.settings_schema)
        for error in sorted(validator.iter_errors(settings), key=lambda e: [str(part) for part in e.absolute_path]):
            location = "/".join(str(part) for part in error.absolute_path) or "<root>"
            result.errors.append(f"{location}: {error.message}")
            result.valid = False

        if not result.valid:
            logger.debug(f"Settings for {definition.name} rejected with {len(result.errors)} errors")

        return result

    def default_settings(self, definition: ModuleDefinition) -> dict[str, Any]:
        """Collect schema defaults, recursing into nested object properties."""
        return _defaults_from(definition.settings_schema)


def _defaults_from(schema: dict[str, Any]) -> dict[str, Any]:
    defaults: dict[str, Any] = {}
    for key, prop in (schema.get("properties") or {}).items():
        if not isinstance(prop, dict):
            continue
        if "default" in prop:
            defaults[key] = prop["default"]
        elif prop.get("type") == "object":
            nested = _defaults_from(prop)
            if nested:
                defaults[key] = nested
    return defaults

