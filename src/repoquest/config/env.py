"""Read settings from the process environment.

A variable that is set but blank counts as unset everywhere in this module.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from .errors import ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def _read(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value


def require_env_vars(names: Iterable[str]) -> dict[str, str]:
    """Return every named variable, or name all the missing ones in one error."""

    found = {name: _read(name) for name in names}
    missing = sorted(name for name, value in found.items() if value is None)
    if missing:
        raise MissingConfigurationError(f"Missing configuration for: {', '.join(missing)}")
    return {name: value for name, value in found.items() if value is not None}


def require_env_var(name: str) -> str:
    return require_env_vars((name,))[name]


def optional_env_float(name: str, default: float) -> float:
    value = _read(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


def optional_env_bool(name: str, default: bool) -> bool:  # noqa: FBT001
    value = _read(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {value!r}")
