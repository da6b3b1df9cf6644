"""
Project configuration for the cseal CLI.

Looked up from ``cseal.toml`` or the ``[tool.cseal]`` table of
``pyproject.toml``, walking up from the working directory:

    [tool.cseal]
    hash_algorithm = "sha256"
    default_name = "myEncoder"

The library API never reads configuration; callers pass hashers explicitly.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import ConfigError, HasherError
from .hasher import DEFAULT_ALGORITHM, Hasher, get_hasher

CONFIG_FILENAME = "cseal.toml"


@dataclass(frozen=True)
class SealConfig:
    hash_algorithm: str = DEFAULT_ALGORITHM
    default_name: str | None = None
    source: Path | None = None

    def hasher(self) -> Hasher:
        return get_hasher(self.hash_algorithm)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e


def find_config(start: Path) -> Path | None:
    """Find the nearest cseal.toml, or pyproject.toml with a [tool.cseal] table."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        pyproject = p / "pyproject.toml"
        if pyproject.is_file() and "cseal" in _read_toml(pyproject).get("tool", {}):
            return pyproject
    return None


def parse_config(data: dict[str, Any], source: Path | None = None) -> SealConfig:
    algorithm = data.get("hash_algorithm", DEFAULT_ALGORITHM)
    if not isinstance(algorithm, str):
        raise ConfigError("hash_algorithm must be a string")
    try:
        get_hasher(algorithm)
    except HasherError as e:
        raise ConfigError(str(e)) from e

    default_name = data.get("default_name")
    if default_name is not None and not isinstance(default_name, str):
        raise ConfigError("default_name must be a string")

    return SealConfig(hash_algorithm=algorithm, default_name=default_name or None, source=source)


def load_config(path: Path | None = None, *, start: Path | None = None) -> SealConfig:
    """
    Load configuration from ``path``, or discover it from ``start``.

    Returns defaults when no configuration file exists.
    """
    if path is None:
        path = find_config(start or Path.cwd())
        if path is None:
            return SealConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    data = _read_toml(path)
    if path.name == "pyproject.toml":
        data = data.get("tool", {}).get("cseal", {})
    if not isinstance(data, dict):
        raise ConfigError(f"[tool.cseal] in {path} must be a table")
    return parse_config(data, source=path)
