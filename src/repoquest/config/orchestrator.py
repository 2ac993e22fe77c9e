"""Polling and reconciliation defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass

from repoquest.domain.model import WhitespacePolicy

from .env import optional_env_bool, optional_env_float
from .errors import ConfigurationError

DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_MAX_REDERIVE_ATTEMPTS = 2


@dataclass(frozen=True, slots=True)
class OrchestratorConfig:
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    whitespace_policy: WhitespacePolicy = WhitespacePolicy.IGNORE_TRAILING
    auto_merge_starter: bool = False
    max_rederive_attempts: int = DEFAULT_MAX_REDERIVE_ATTEMPTS

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("Poll interval must be positive")
        if self.max_rederive_attempts < 0:
            raise ConfigurationError("Re-derive attempts must be non-negative")


def get_orchestrator_config() -> OrchestratorConfig:
    raw_policy = os.getenv("REPOQUEST_WHITESPACE_POLICY")
    try:
        policy = (
            WhitespacePolicy(raw_policy.strip().lower())
            if raw_policy and raw_policy.strip()
            else WhitespacePolicy.IGNORE_TRAILING
        )
    except ValueError as exc:
        allowed = ", ".join(member.value for member in WhitespacePolicy)
        raise ConfigurationError(
            f"REPOQUEST_WHITESPACE_POLICY must be one of: {allowed}"
        ) from exc
    return OrchestratorConfig(
        poll_interval_seconds=optional_env_float(
            "REPOQUEST_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS
        ),
        whitespace_policy=policy,
        auto_merge_starter=optional_env_bool("REPOQUEST_AUTO_MERGE_STARTER", default=False),
    )
