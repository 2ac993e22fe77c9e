"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .github import GitHubConfig, get_github_config
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .orchestrator import OrchestratorConfig, get_orchestrator_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "GitHubConfig",
    "MissingConfigurationError",
    "OrchestratorConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_github_config",
    "get_orchestrator_config",
    "get_storage_config",
    "require_env_var",
    "require_env_vars",
]
