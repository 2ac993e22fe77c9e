from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING

import httpx
import pytest

from repoquest.config import (
    ConfigurationError,
    MissingConfigurationError,
    OrchestratorConfig,
    get_database_config,
    get_github_config,
    get_orchestrator_config,
    get_storage_config,
    require_env_var,
    require_env_vars,
)
from repoquest.config.env import optional_env_bool, optional_env_float
from repoquest.config.github import DEFAULT_GITHUB_API_URL, warn_on_low_ratelimit
from repoquest.domain.model import WhitespacePolicy

if TYPE_CHECKING:
    from pathlib import Path


def test_require_env_vars_reports_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PRESENT", "value")
    monkeypatch.setenv("BLANK", "   ")
    monkeypatch.delenv("ABSENT", raising=False)

    with pytest.raises(MissingConfigurationError, match="ABSENT, BLANK"):
        require_env_vars(["PRESENT", "BLANK", "ABSENT"])

    assert require_env_var("PRESENT") == "value"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, True), ("", True), ("0", False), ("Yes", True), (" off ", False)],
)
def test_optional_env_bool(
    monkeypatch: pytest.MonkeyPatch, raw: str | None, expected: bool
) -> None:
    if raw is None:
        monkeypatch.delenv("FLAG", raising=False)
    else:
        monkeypatch.setenv("FLAG", raw)

    assert optional_env_bool("FLAG", default=True) is expected


def test_optional_env_values_reject_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLAG", "maybe")
    monkeypatch.setenv("NUMBER", "soon")

    with pytest.raises(ConfigurationError, match="boolean"):
        optional_env_bool("FLAG", default=False)
    with pytest.raises(ConfigurationError, match="number"):
        optional_env_float("NUMBER", 1.0)


def test_orchestrator_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "REPOQUEST_POLL_INTERVAL",
        "REPOQUEST_WHITESPACE_POLICY",
        "REPOQUEST_AUTO_MERGE_STARTER",
    ):
        monkeypatch.delenv(name, raising=False)

    assert get_orchestrator_config() == OrchestratorConfig()
    assert OrchestratorConfig().whitespace_policy is WhitespacePolicy.IGNORE_TRAILING


def test_orchestrator_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPOQUEST_POLL_INTERVAL", "5")
    monkeypatch.setenv("REPOQUEST_WHITESPACE_POLICY", " STRICT ")
    monkeypatch.setenv("REPOQUEST_AUTO_MERGE_STARTER", "true")

    config = get_orchestrator_config()

    assert config.poll_interval_seconds == 5.0
    assert config.whitespace_policy is WhitespacePolicy.STRICT
    assert config.auto_merge_starter


def test_orchestrator_config_rejects_invalid_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REPOQUEST_WHITESPACE_POLICY", "loose")
    with pytest.raises(ConfigurationError, match="REPOQUEST_WHITESPACE_POLICY"):
        get_orchestrator_config()

    with pytest.raises(ConfigurationError, match="positive"):
        OrchestratorConfig(poll_interval_seconds=0)
    with pytest.raises(ConfigurationError, match="non-negative"):
        OrchestratorConfig(max_rederive_attempts=-1)


def test_github_config_requires_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

    with pytest.raises(MissingConfigurationError, match="GITHUB_TOKEN"):
        get_github_config()


def test_github_config_profiles(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_secret")
    monkeypatch.delenv("REPOQUEST_GITHUB_API_URL", raising=False)

    config = get_github_config()

    assert config.token == "ghp_secret"
    assert config.resilience.base_url == DEFAULT_GITHUB_API_URL
    assert config.resilience.cache is None
    assert config.template_resilience.cache is not None
    headers = config.resilience.default_headers
    assert headers is not None
    assert headers["Authorization"] == "Bearer ghp_secret"
    assert headers["Accept"] == "application/vnd.github+json"


def test_low_ratelimit_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    request = httpx.Request("GET", "https://api.github.test/repos/a/b/issues")
    plenty = httpx.Response(200, headers={"X-RateLimit-Remaining": "4000"}, request=request)
    scarce = httpx.Response(
        200,
        headers={"X-RateLimit-Remaining": "7", "X-RateLimit-Reset": "1700000000"},
        request=request,
    )

    with caplog.at_level(logging.WARNING, logger="repoquest.config.github"):
        asyncio.run(warn_on_low_ratelimit(plenty))
        assert caplog.records == []
        asyncio.run(warn_on_low_ratelimit(scarce))

    assert "7 requests left until 1700000000" in caplog.text


def test_storage_config_honours_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("REPOQUEST_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("DATABASE_URI", raising=False)

    storage = get_storage_config()

    assert storage.database_path() == (tmp_path / "data" / "repoquest.db").resolve()
    assert (tmp_path / "data").is_dir()
    assert get_database_config().uri.startswith("sqlite+pysqlite:///")
    assert get_database_config().uri.endswith("repoquest.db")


def test_database_uri_env_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite+pysqlite:///:memory:")

    assert get_database_config().uri == "sqlite+pysqlite:///:memory:"


def test_storage_defaults_to_xdg_data_home(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    if os.name == "nt":
        pytest.skip("XDG paths apply to POSIX hosts")
    monkeypatch.delenv("REPOQUEST_DATA_DIR", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    assert get_storage_config().data_dir == (tmp_path / "repoquest").resolve()
