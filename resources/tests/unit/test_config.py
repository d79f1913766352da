"""
Unit tests for settings, logging setup and the base error type.
"""

import logging

from pythonjsonlogger.json import JsonFormatter

from modswitch.modules.errors import CoreModuleError, MissingModuleError
from modswitch.utils.config import ModswitchSettings
from modswitch.utils.errors import ModswitchError
from modswitch.utils.logging import setup_logging


class TestModswitchSettings:
    """Test ModswitchSettings defaults, overrides and validation."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MODSWITCH_CACHE_TTL_SECONDS", raising=False)
        settings = ModswitchSettings(_env_file=None)

        assert settings.cache_ttl_seconds == 300
        assert settings.cache_stale_threshold == 0.8
        assert settings.cache_stale_while_revalidate is True
        assert settings.privileged_roles == ["root"]
        assert settings.get_registry_path() is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MODSWITCH_CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("MODSWITCH_PRIVILEGED_ROLES", '["root", "owner"]')

        settings = ModswitchSettings(_env_file=None)

        assert settings.cache_ttl_seconds == 60
        assert settings.privileged_roles == ["root", "owner"]
        assert settings.get_cache_config()["ttl_seconds"] == 60

    def test_validation_errors(self, tmp_path):
        settings = ModswitchSettings(
            _env_file=None,
            registry_path=str(tmp_path / "missing.yaml"),
            cache_ttl_seconds=0,
            cache_stale_threshold=1.5,
            cache_max_entries=0,
            privileged_roles=[],
        )

        result = settings.validate_settings()

        assert not result.valid
        assert len(result.errors) == 4
        assert result.warnings == ["No privileged roles configured; no actor bypasses module checks"]

    def test_valid_settings(self, platform_registry_path):
        settings = ModswitchSettings(_env_file=None, registry_path=str(platform_registry_path))

        result = settings.validate_settings()

        assert result.valid
        assert settings.get_registry_path() == platform_registry_path.resolve()

    def test_log_file_path_creates_parent(self, tmp_path):
        settings = ModswitchSettings(_env_file=None, log_file=str(tmp_path / "logs" / "modswitch.log"))

        path = settings.get_log_file_path()

        assert path.parent.is_dir()


class TestErrors:
    """Test the error hierarchy."""

    def test_error_to_dict(self):
        error = ModswitchError("Broken", suggestions=["Fix it"], context={"key": "value"})

        assert error.to_dict() == {
            "error": "MODSWITCHERROR",
            "message": "Broken",
            "suggestions": ["Fix it"],
            "context": {"key": "value"},
        }

    def test_module_errors_carry_context(self):
        error = MissingModuleError("ghost", requested_by="flow")

        assert isinstance(error, ModswitchError)
        assert error.to_dict()["context"] == {"module": "ghost", "requested_by": "flow"}
        assert CoreModuleError("core").suggestions == ["Remove core from the deactivation request"]


class TestLogging:
    """Test logger helpers."""

    def test_setup_logging_without_level_adds_no_handler(self):
        logger = setup_logging("modswitch.tests.plain")

        assert logger.handlers == []

    def test_setup_logging_with_level(self, tmp_path):
        logger = setup_logging("modswitch.tests.file", level="debug", log_file=tmp_path / "out.log")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_structured_logging_uses_json_records(self):
        logger = setup_logging("modswitch.tests.json", level="INFO", structured=True)

        assert [type(handler.formatter) for handler in logger.handlers] == [JsonFormatter]
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
