"""Shared utilities: settings, logging and base errors."""
