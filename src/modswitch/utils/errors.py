"""
Base exception classes for modswitch.
"""

from typing import Any


class ModswitchError(Exception):
    """Base exception for all modswitch errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        suggestions: list[str] | None = None,
        context: dict[str, Any] | None = None
    ):
        """Initialize the error with enhanced information.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            suggestions: List of suggested remediation steps
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.suggestions = suggestions or []
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "suggestions": list(self.suggestions),
            "context": dict(self.context),
        }


class ConfigurationError(ModswitchError):
    """Raised when there is an issue with the application configuration."""
    pass
