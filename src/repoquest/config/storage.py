"""Where repoquest keeps its progress database and HTTP cache."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "repoquest"
PROGRESS_DB_FILENAME: Final[str] = "repoquest.db"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Data directory holding one sqlite file per concern."""

    data_dir: Path

    def _file(self, name: str, *, ensure: bool) -> Path:
        directory = self.data_dir.expanduser().resolve()
        if ensure:
            directory.mkdir(parents=True, exist_ok=True)
        return directory / name

    def database_path(self, *, ensure: bool = True) -> Path:
        return self._file(PROGRESS_DB_FILENAME, ensure=ensure)

    def http_cache_path(self, *, ensure: bool = True) -> Path:
        return self._file(HTTP_CACHE_FILENAME, ensure=ensure)


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _platform_data_home() -> Path:
    if os.name == "nt":
        local = os.getenv("LOCALAPPDATA")
        return Path(local) if local else Path.home() / "AppData" / "Local"
    xdg = os.getenv("XDG_DATA_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "share"


def get_storage_config() -> StorageConfig:
    """``REPOQUEST_DATA_DIR`` or the platform's per-user data directory."""

    override = os.getenv("REPOQUEST_DATA_DIR")
    if override:
        return StorageConfig(data_dir=Path(override))
    return StorageConfig(data_dir=(_platform_data_home() / APP_DIR_NAME).resolve())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """``DATABASE_URI`` wins; otherwise a sqlite file in the data directory."""

    uri = os.getenv("DATABASE_URI")
    if uri:
        return DatabaseConfig(uri=uri)
    path = (storage or get_storage_config()).database_path()
    return DatabaseConfig(uri=f"sqlite+pysqlite:///{path}")


def get_http_cache_path() -> Path:
    return get_storage_config().http_cache_path()
