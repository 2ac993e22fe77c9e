"""Errors raised while reading settings, credentials or quest packages."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A setting is present but unusable. The CLI exits with a usage error."""


class MissingConfigurationError(ConfigurationError):
    """One or more required environment variables are unset or blank."""
